"""Pytest configuration and shared fixtures for habitsync tests.

Provides isolated SQLite databases, device-file repositories, a facade
factory and two fake HTTP transports (one backed by the Flask API test client,
one emulating the Appwrite Databases API in memory).
"""

from __future__ import annotations

import json
import threading
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

import pytest

from habitsync.config import TestingConfig
from habitsync.errors import NetworkError
from habitsync.infra.database import create_db_engine, create_session_factory, init_database
from habitsync.infra.repositories import JsonFileHabitRepository, SQLModelHabitRepository
from habitsync.infra.store import ThreadedHabitStore
from habitsync.services.auth import SessionState
from habitsync.services.cache import HabitCache
from habitsync.services.habits import HabitsFacade

OWNER = "user-a"
OTHER_OWNER = "user-b"
DAY_ONE = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


def day(n: int, hour: int = 9) -> datetime:
    """Timestamp on day ``n`` (1-based) of the test calendar."""

    return DAY_ONE.replace(hour=hour) + timedelta(days=n - 1)


# =============================================================================
# Configuration and database fixtures
# =============================================================================


@pytest.fixture
def config(tmp_path, monkeypatch) -> TestingConfig:
    """Testing configuration rooted in a temporary data directory."""

    monkeypatch.setenv("HABITSYNC_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("HABITSYNC_DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("HABITSYNC_BACKEND", "local")
    monkeypatch.delenv("HABITSYNC_USER_ID", raising=False)
    monkeypatch.delenv("HABITSYNC_STORE_TIMEOUT", raising=False)
    return TestingConfig()


@pytest.fixture
def db_engine(config):
    """Isolated file-backed SQLite engine with all tables created."""

    engine = create_db_engine(config)
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def sql_repo(session_factory) -> SQLModelHabitRepository:
    return SQLModelHabitRepository(session_factory)


@pytest.fixture
def json_repo(tmp_path) -> JsonFileHabitRepository:
    return JsonFileHabitRepository(tmp_path / "device" / "habits.json")


@pytest.fixture(params=["sql", "local"])
def repository(request):
    """Each local backend in turn, for contract tests."""

    fixture_names = {"sql": "sql_repo", "local": "json_repo"}
    return request.getfixturevalue(fixture_names[request.param])


# =============================================================================
# Facade helpers
# =============================================================================


class FlakyRepository:
    """Delegates to a real repository but fails the operations named in ``fail``."""

    def __init__(self, inner, *, error: Optional[BaseException] = None, delay: float = 0.0):
        self.inner = inner
        self.fail: set[str] = set()
        self.error = error or NetworkError("simulated network failure")
        self.delay = delay
        self.delays: dict[str, float] = {}
        self.calls: list[str] = []
        self.supports_eager_loading = inner.supports_eager_loading
        self.hard_deletes = inner.hard_deletes

    def __getattr__(self, name: str) -> Any:
        target = getattr(self.inner, name)
        if not callable(target):
            return target

        def call(*args: Any, **kwargs: Any) -> Any:
            self.calls.append(name)
            pause = self.delays.get(name, self.delay)
            if pause:
                time.sleep(pause)
            if name in self.fail:
                raise self.error
            return target(*args, **kwargs)

        return call


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(day(3, hour=12))


@pytest.fixture
def make_facade(clock) -> Callable[..., HabitsFacade]:
    """Build a facade over ``repository`` with its own cache and session."""

    def _make(
        repository,
        *,
        user_id: Optional[str] = OWNER,
        timeout: float = 2.0,
        session: Optional[SessionState] = None,
    ) -> HabitsFacade:
        auth = session if session is not None else SessionState(user_id)
        return HabitsFacade(
            ThreadedHabitStore(repository, timeout=timeout),
            cache=HabitCache(),
            auth=auth,
            clock=clock,
        )

    return _make


# =============================================================================
# Fake HTTP transports
# =============================================================================


class FakeResponse:
    """The subset of ``requests.Response`` the HTTP client reads."""

    def __init__(self, status_code: int, body: Any = None, *, raw: Optional[bytes] = None):
        self.status_code = status_code
        if raw is not None:
            self.content = raw
        else:
            self.content = b"" if body is None else json.dumps(body).encode("utf-8")

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def json(self) -> Any:
        return json.loads(self.content)


class FlaskTransport:
    """``requests.Session`` stand-in that routes requests into a Flask test client."""

    def __init__(self, app):
        self.client = app.test_client()
        self.requests: list[tuple[str, str]] = []

    def request(self, method, url, *, headers=None, json=None, params=None, timeout=None):
        path = urlsplit(url).path
        self.requests.append((method, path))
        response = self.client.open(
            path, method=method, headers=headers or {}, json=json, query_string=params
        )
        return FakeResponse(response.status_code, raw=response.get_data())


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


class FakeAppwrite:
    """In-memory Appwrite Databases endpoint speaking the documents REST API."""

    def __init__(self):
        self.collections: dict[str, dict[str, dict]] = {}
        self.fail: dict[tuple[str, str], int] = {}
        self.requests: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def fail_next(self, method: str, collection: str, status: int = 503) -> None:
        self.fail[(method, collection)] = status

    def request(self, method, url, *, headers=None, json=None, params=None, timeout=None):
        path = urlsplit(url).path
        self.requests.append((method, path))
        parts = path.strip("/").split("/")
        # [v1] databases <db> collections <col> documents [<id>]
        index = parts.index("collections")
        collection = parts[index + 1]
        document_id = parts[index + 3] if len(parts) > index + 3 else None
        with self._lock:
            status = self.fail.pop((method, collection), None)
            if status is not None:
                return FakeResponse(status, {"message": "Simulated outage", "code": status})
            documents = self.collections.setdefault(collection, {})
            if method == "POST":
                return self._create(documents, json)
            if document_id is None:
                return self._list(documents, (params or {}).get("queries[]", []))
            if document_id not in documents:
                return FakeResponse(404, {"message": "Document with the requested ID could not be found."})
            if method == "GET":
                return FakeResponse(200, documents[document_id])
            if method == "PATCH":
                documents[document_id].update(json["data"])
                documents[document_id]["$updatedAt"] = datetime.now(timezone.utc).isoformat()
                return FakeResponse(200, documents[document_id])
            if method == "DELETE":
                del documents[document_id]
                return FakeResponse(204)
        return FakeResponse(405, {"message": f"Unsupported {method}"})

    def _create(self, documents: dict, payload: dict) -> FakeResponse:
        document_id = payload.get("documentId") or uuid.uuid4().hex
        if document_id == "unique()":
            document_id = uuid.uuid4().hex
        if document_id in documents:
            return FakeResponse(409, {"message": "Document with the requested ID already exists."})
        stamp = datetime.now(timezone.utc).isoformat()
        document = {"$id": document_id, "$createdAt": stamp, "$updatedAt": stamp, **payload["data"]}
        documents[document_id] = document
        return FakeResponse(201, document)

    def _list(self, documents: dict, raw_queries: list[str]) -> FakeResponse:
        rows = list(documents.values())
        order: list[tuple[str, bool]] = []
        limit = None
        for raw in raw_queries:
            query = json.loads(raw)
            method, attribute, values = query["method"], query.get("attribute"), query.get("values")
            if method == "equal":
                rows = [r for r in rows if r.get(attribute) in values]
            elif method == "greaterThanEqual":
                rows = [r for r in rows if _comparable(r.get(attribute)) >= _comparable(values[0])]
            elif method == "lessThan":
                rows = [r for r in rows if _comparable(r.get(attribute)) < _comparable(values[0])]
            elif method == "orderAsc":
                order.append((attribute, False))
            elif method == "orderDesc":
                order.append((attribute, True))
            elif method == "limit":
                limit = values[0]
        for attribute, descending in reversed(order):
            rows.sort(key=lambda r: _comparable(r.get(attribute)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return FakeResponse(200, {"total": len(rows), "documents": rows})


@pytest.fixture
def appwrite_server() -> FakeAppwrite:
    return FakeAppwrite()


@pytest.fixture
def appwrite_repo(appwrite_server):
    from habitsync.infra.repositories import AppwriteHabitRepository

    return AppwriteHabitRepository(
        "https://appwrite.test/v1",
        project_id="habits-project",
        database_id="habits_db",
        api_key="secret",
        session=appwrite_server,
    )
