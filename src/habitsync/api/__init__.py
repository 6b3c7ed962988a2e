"""Flask application serving the habit store over JSON."""

from __future__ import annotations

from typing import Optional

from flask import Flask, jsonify
from flask_jwt_extended import JWTManager

from ..config import BaseConfig
from ..domain.repositories import Repository
from ..errors import HabitSyncError
from ..infra.database import bootstrap_database
from ..infra.repositories import SQLModelHabitRepository
from ..logging_config import get_logger

logger = get_logger(__name__)

jwt = JWTManager()

REPOSITORY_KEY = "habitsync.repository"


def _unauthorized(message: str):
    return jsonify({"error": message}), 401


@jwt.unauthorized_loader
def _missing_token(reason: str):
    return _unauthorized(reason)


@jwt.invalid_token_loader
def _invalid_token(reason: str):
    return _unauthorized(f"Invalid token: {reason}")


@jwt.expired_token_loader
def _expired_token(_jwt_header, _jwt_payload):
    return _unauthorized("Token has expired")


@jwt.revoked_token_loader
def _revoked_token(_jwt_header, _jwt_payload):
    return _unauthorized("Token has been revoked")


def create_app(
    config: Optional[BaseConfig] = None, repository: Optional[Repository] = None
) -> Flask:
    """Build the API app; defaults to the relational repository from ``config``."""

    config = config or BaseConfig()
    app = Flask(__name__)
    app.config.update(config.flask_settings())
    app.config["TESTING"] = bool(getattr(config, "TESTING", False))

    if repository is None:
        _engine, session_factory = bootstrap_database(config)
        repository = SQLModelHabitRepository(session_factory)
    app.extensions[REPOSITORY_KEY] = repository

    jwt.init_app(app)

    @app.errorhandler(HabitSyncError)
    def handle_habitsync_error(exc: HabitSyncError):
        if exc.status_code >= 500:
            logger.warning("API request failed: %s", exc.message)
        return jsonify({"error": exc.message}), exc.status_code

    from .routes import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")
    return app


__all__ = ["REPOSITORY_KEY", "create_app", "jwt"]
