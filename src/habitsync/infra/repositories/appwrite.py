"""Appwrite document-store repository over the Databases REST API.

Habits and completions live in two collections. Queries are equality filters
on ``userId`` / ``habitId``; there are no joins, so nested completions need a
query per habit.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Optional

import requests

from ...errors import HabitSyncError, NotFoundError
from ...logging_config import get_logger
from ...models.habit import DEFAULT_COLOR, Completion, Habit, ensure_utc, utcnow
from ...serializers import parse_timestamp
from .http import JsonHttpClient

logger = get_logger(__name__)

# Appwrite caps page sizes; one page is plenty for a single user's habits.
PAGE_LIMIT = 5000


def query(method: str, attribute: Optional[str] = None, values: Optional[list[Any]] = None) -> str:
    """Encode one Appwrite query in its JSON form."""

    payload: dict[str, Any] = {"method": method}
    if attribute is not None:
        payload["attribute"] = attribute
    if values is not None:
        payload["values"] = values
    return json.dumps(payload, separators=(",", ":"))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return ensure_utc(value).isoformat() if value is not None else None


def habit_from_document(document: Mapping[str, Any]) -> Habit:
    return Habit.model_validate(
        {
            "id": document["$id"],
            "owner_id": document["userId"],
            "title": document["title"],
            "description": document.get("description") or None,
            "frequency": document.get("frequency", "DAILY"),
            "color": document.get("color") or DEFAULT_COLOR,
            "streak_count": document.get("streakCount") or 0,
            "last_completed_at": parse_timestamp(document.get("lastCompleted")),
            "is_active": document.get("isActive", True),
            "created_at": parse_timestamp(document.get("createdAt") or document.get("$createdAt")),
            "updated_at": parse_timestamp(document.get("updatedAt") or document.get("$updatedAt")),
        }
    )


def completion_from_document(document: Mapping[str, Any]) -> Completion:
    data: dict[str, Any] = {
        "id": document["$id"],
        "habit_id": document["habitId"],
        "completed_at": parse_timestamp(document["completedAt"]),
        "notes": document.get("notes") or None,
    }
    created_at = parse_timestamp(document.get("createdAt") or document.get("$createdAt"))
    if created_at is not None:
        data["created_at"] = created_at
    return Completion.model_validate(data)


class AppwriteHabitRepository:
    """Document-store repository; soft deletes, no eager loading."""

    supports_eager_loading = False
    hard_deletes = False

    def __init__(
        self,
        endpoint: str,
        *,
        project_id: str,
        database_id: str,
        habits_collection_id: str = "habits",
        completions_collection_id: str = "habit_completions",
        api_key: Optional[str] = None,
        jwt: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        headers = {"X-Appwrite-Project": project_id, "Content-Type": "application/json"}
        if api_key:
            headers["X-Appwrite-Key"] = api_key
        if jwt:
            headers["X-Appwrite-JWT"] = jwt
        self.client = JsonHttpClient(endpoint, headers=headers, timeout=timeout, session=session)
        self.database_id = database_id
        self.habits_collection_id = habits_collection_id
        self.completions_collection_id = completions_collection_id

    # -- document primitives --------------------------------------------------------

    def _documents(self, collection_id: str) -> str:
        return f"/databases/{self.database_id}/collections/{collection_id}/documents"

    def _create(self, collection_id: str, document_id: str, data: dict[str, Any]) -> dict:
        return self.client.post(
            self._documents(collection_id), json={"documentId": document_id, "data": data}
        )

    def _list(self, collection_id: str, queries: list[str]) -> list[dict]:
        body = self.client.get(
            self._documents(collection_id),
            params={"queries[]": [*queries, query("limit", values=[PAGE_LIMIT])]},
        )
        return list(body.get("documents", []))

    def _get(self, collection_id: str, document_id: str) -> dict:
        return self.client.get(f"{self._documents(collection_id)}/{document_id}")

    def _update(self, collection_id: str, document_id: str, data: dict[str, Any]) -> dict:
        return self.client.patch(
            f"{self._documents(collection_id)}/{document_id}", json={"data": data}
        )

    def _delete(self, collection_id: str, document_id: str) -> None:
        self.client.delete(f"{self._documents(collection_id)}/{document_id}")

    def _owned_document(self, habit_id: str, owner_id: str) -> dict:
        document = self._get(self.habits_collection_id, habit_id)
        # Ownership is checked client-side; foreign habits look missing.
        if document.get("userId") != owner_id or not document.get("isActive", True):
            raise NotFoundError(f"Habit {habit_id} not found")
        return document

    # -- habits ----------------------------------------------------------------------

    def create_habit(self, habit: Habit) -> Habit:
        document = self._create(
            self.habits_collection_id,
            habit.id,
            {
                "userId": habit.owner_id,
                "title": habit.title,
                "description": habit.description or "",
                "frequency": habit.frequency.value,
                "color": habit.color,
                "streakCount": habit.streak_count,
                "isActive": habit.is_active,
                "createdAt": _iso(habit.created_at),
                "updatedAt": _iso(habit.updated_at),
            },
        )
        logger.info("Created habit document %s", document["$id"])
        return habit_from_document(document)

    def list_habits(
        self, owner_id: str, *, include_inactive: bool = False, with_completions: bool = False
    ) -> list[Habit]:
        queries = [query("equal", "userId", [owner_id])]
        if not include_inactive:
            queries.append(query("equal", "isActive", [True]))
        queries.append(query("orderDesc", "createdAt"))
        habits = [habit_from_document(d) for d in self._list(self.habits_collection_id, queries)]
        if with_completions:
            for habit in habits:
                habit.completions = self.list_completions(habit.id, owner_id=owner_id)
        return habits

    def get_habit(self, habit_id: str, *, owner_id: str) -> Habit:
        return habit_from_document(self._owned_document(habit_id, owner_id))

    def update_habit(self, habit: Habit, *, owner_id: str) -> Habit:
        self._owned_document(habit.id, owner_id)
        document = self._update(
            self.habits_collection_id,
            habit.id,
            {
                "title": habit.title,
                "description": habit.description or "",
                "frequency": habit.frequency.value,
                "color": habit.color,
                "updatedAt": _iso(habit.updated_at),
            },
        )
        return habit_from_document(document)

    def delete_habit(self, habit_id: str, *, owner_id: str) -> None:
        self._owned_document(habit_id, owner_id)
        self._update(
            self.habits_collection_id,
            habit_id,
            {"isActive": False, "updatedAt": _iso(utcnow())},
        )

    # -- completions -----------------------------------------------------------------

    def list_completions(self, habit_id: str, *, owner_id: str) -> list[Completion]:
        self._owned_document(habit_id, owner_id)
        documents = self._list(
            self.completions_collection_id,
            [query("equal", "habitId", [habit_id]), query("orderAsc", "completedAt")],
        )
        return [completion_from_document(d) for d in documents]

    def record_completion(self, completion: Completion, *, owner_id: str) -> Completion:
        habit = self._owned_document(completion.habit_id, owner_id)
        document = self._create(
            self.completions_collection_id,
            completion.id,
            {
                "habitId": completion.habit_id,
                "completedAt": _iso(completion.completed_at),
                "notes": completion.notes or "",
                "createdAt": _iso(completion.created_at),
            },
        )
        try:
            self._update(
                self.habits_collection_id,
                completion.habit_id,
                {
                    "streakCount": int(habit.get("streakCount") or 0) + 1,
                    "lastCompleted": _iso(completion.completed_at),
                    "updatedAt": _iso(utcnow()),
                },
            )
        except HabitSyncError:
            # Two documents cannot be written atomically; undo the first write.
            logger.warning("Habit patch failed; removing completion %s", document["$id"])
            try:
                self._delete(self.completions_collection_id, document["$id"])
            except HabitSyncError:
                logger.exception("Could not remove orphan completion %s", document["$id"])
            raise
        return completion_from_document(document)

    def delete_completion(self, completion_id: str, *, owner_id: str) -> Completion:
        document = self._get(self.completions_collection_id, completion_id)
        self._owned_document(document["habitId"], owner_id)
        self._delete(self.completions_collection_id, completion_id)
        return completion_from_document(document)

    def list_completions_between(
        self, owner_id: str, start: datetime, end: datetime
    ) -> list[Completion]:
        habit_ids = [h.id for h in self.list_habits(owner_id)]
        if not habit_ids:
            return []
        documents = self._list(
            self.completions_collection_id,
            [
                query("equal", "habitId", habit_ids),
                query("greaterThanEqual", "completedAt", [_iso(start)]),
                query("lessThan", "completedAt", [_iso(end)]),
                query("orderAsc", "completedAt"),
            ],
        )
        return [completion_from_document(d) for d in documents]
