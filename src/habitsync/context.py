"""Application context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from .config import BaseConfig
from .domain.repositories import Repository
from .infra.database import bootstrap_database
from .infra.repositories import (
    AppwriteHabitRepository,
    JsonFileHabitRepository,
    RestApiHabitRepository,
    SQLModelHabitRepository,
)
from .infra.store import ThreadedHabitStore
from .logging_config import get_logger
from .services.auth import SessionState
from .services.cache import HabitCache
from .services.habits import HabitsFacade

logger = get_logger(__name__)


@dataclass
class AppContext:
    """Centralized application context with services and state."""

    config: BaseConfig
    repository: Repository
    store: ThreadedHabitStore
    cache: HabitCache
    session: SessionState
    habits: HabitsFacade
    engine: Optional[Engine] = None

    def require_user_id(self) -> str:
        """Return the signed-in user id or raise if nobody is signed in."""

        user_id = self.session.current_user_id()
        if user_id is None:
            raise RuntimeError("User is not authenticated")
        return user_id

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()


def build_repository(config: BaseConfig) -> tuple[Repository, Optional[Engine]]:
    """Instantiate the repository selected by ``config.BACKEND``."""

    if config.BACKEND == "sql":
        engine, session_factory = bootstrap_database(config)
        return SQLModelHabitRepository(session_factory), engine
    if config.BACKEND == "rest":
        return (
            RestApiHabitRepository(
                config.API_URL, token=config.API_TOKEN, timeout=config.STORE_TIMEOUT
            ),
            None,
        )
    if config.BACKEND == "appwrite":
        if not config.APPWRITE_PROJECT_ID:
            raise ValueError("APPWRITE_PROJECT_ID must be set for the appwrite backend.")
        return (
            AppwriteHabitRepository(
                config.APPWRITE_ENDPOINT,
                project_id=config.APPWRITE_PROJECT_ID,
                database_id=config.APPWRITE_DATABASE_ID,
                habits_collection_id=config.APPWRITE_HABITS_COLLECTION_ID,
                completions_collection_id=config.APPWRITE_COMPLETIONS_COLLECTION_ID,
                api_key=config.APPWRITE_API_KEY,
                timeout=config.STORE_TIMEOUT,
            ),
            None,
        )
    return JsonFileHabitRepository(config.LOCAL_STORE_PATH), None


def create_app_context(
    config: Optional[BaseConfig] = None, *, repository: Optional[Repository] = None
) -> AppContext:
    """Create and wire the application context.

    ``repository`` overrides the configured backend (tests pass in-memory ones).
    """

    if config is None:
        config = BaseConfig()

    engine: Optional[Engine] = None
    if repository is None:
        repository, engine = build_repository(config)

    store = ThreadedHabitStore(repository, timeout=config.STORE_TIMEOUT)
    cache = HabitCache()
    session = SessionState(config.USER_ID)
    habits = HabitsFacade(store, cache=cache, auth=session)

    logger.info(
        "App context ready",
        extra={"backend": config.BACKEND, "repository": type(repository).__name__},
    )
    return AppContext(
        config=config,
        repository=repository,
        store=store,
        cache=cache,
        session=session,
        habits=habits,
        engine=engine,
    )
