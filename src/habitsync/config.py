"""Application configuration objects and helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from sqlalchemy.pool import StaticPool

load_dotenv()

BACKENDS = ("local", "sql", "rest", "appwrite")


def _env_bool(name: str, default: bool = False) -> bool:
    """Interpret environment variable values as booleans."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "habitsync"
    DB_FILENAME = "habitsync.db"
    LOCAL_STORE_FILENAME = "habits.json"
    DEFAULT_USER_ID = "local-user"
    DEFAULT_STORE_TIMEOUT = 10.0

    def __init__(self) -> None:
        self.SECRET_KEY = os.getenv("HABITSYNC_SECRET_KEY", "replace-me")
        self.DEV_MODE = _env_bool("HABITSYNC_DEV_MODE", default=True)
        self.DATA_DIR = self._resolve_data_dir()
        self.BACKEND = os.getenv("HABITSYNC_BACKEND", "local").strip().lower()
        self.DATABASE_URL = os.getenv("HABITSYNC_DATABASE_URL", self._build_sqlite_url())
        self.LOCAL_STORE_PATH = Path(
            os.getenv("HABITSYNC_LOCAL_STORE", str(self.DATA_DIR / self.LOCAL_STORE_FILENAME))
        ).expanduser()
        self.USER_ID = os.getenv("HABITSYNC_USER_ID", self.DEFAULT_USER_ID)
        self.STORE_TIMEOUT = _env_float("HABITSYNC_STORE_TIMEOUT", self.DEFAULT_STORE_TIMEOUT)

        self.API_URL = os.getenv("HABITSYNC_API_URL", "http://localhost:8000").rstrip("/")
        self.API_TOKEN = os.getenv("HABITSYNC_API_TOKEN")

        self.APPWRITE_ENDPOINT = os.getenv(
            "APPWRITE_ENDPOINT", "https://cloud.appwrite.io/v1"
        ).rstrip("/")
        self.APPWRITE_PROJECT_ID = os.getenv("APPWRITE_PROJECT_ID", "")
        self.APPWRITE_API_KEY = os.getenv("APPWRITE_API_KEY")
        self.APPWRITE_DATABASE_ID = os.getenv("APPWRITE_DATABASE_ID", "habits_db")
        self.APPWRITE_HABITS_COLLECTION_ID = os.getenv("APPWRITE_HABITS_COLLECTION_ID", "habits")
        self.APPWRITE_COMPLETIONS_COLLECTION_ID = os.getenv(
            "APPWRITE_COMPLETIONS_COLLECTION_ID", "habit_completions"
        )

        if self.BACKEND not in BACKENDS:
            raise ValueError(
                f"HABITSYNC_BACKEND must be one of {', '.join(BACKENDS)}; got {self.BACKEND!r}"
            )
        if self.STORE_TIMEOUT <= 0:
            raise ValueError("HABITSYNC_STORE_TIMEOUT must be positive.")
        if not self.DEV_MODE and self.SECRET_KEY == "replace-me":
            raise ValueError("HABITSYNC_SECRET_KEY must be set in non-dev mode.")

    def _resolve_data_dir(self) -> Path:
        """Return the directory where the SQLite file, device store and logs live."""

        data_root = os.getenv("HABITSYNC_DATA_DIR", "instance")
        path = Path(data_root).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _build_sqlite_url(self) -> str:
        return f"sqlite:///{self.DATA_DIR / self.DB_FILENAME}"

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        """Expose engine kwargs for SQLModel to consume."""

        if self.DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
            return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
        if self.DATABASE_URL.startswith("sqlite"):
            # Store calls run on worker threads.
            return {"connect_args": {"check_same_thread": False}}
        return {"pool_pre_ping": True}

    def flask_settings(self) -> dict[str, Any]:
        """Settings applied to the REST API Flask app."""

        return {
            "SECRET_KEY": self.SECRET_KEY,
            "JWT_SECRET_KEY": self.SECRET_KEY,
            "JWT_TOKEN_LOCATION": ["headers"],
        }


class DevConfig(BaseConfig):
    """Development configuration using local storage."""

    DEBUG = True
    TESTING = False


class TestingConfig(BaseConfig):
    """Configuration for the test-suite; short timeouts and in-memory SQLite."""

    TESTING = True
    DEFAULT_STORE_TIMEOUT = 2.0

    def _build_sqlite_url(self) -> str:
        return "sqlite://"
