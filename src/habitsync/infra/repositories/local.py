"""On-device repository: habits and completions kept in one JSON file."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, TypeVar

from ...errors import NetworkError, NotFoundError
from ...logging_config import get_logger
from ...models.habit import Completion, Habit, ensure_utc, utcnow

logger = get_logger(__name__)

HABITS_KEY = "@habits"
COMPLETIONS_KEY = "@completions"

T = TypeVar("T")
Document = dict[str, list[dict[str, Any]]]


class JsonFileHabitRepository:
    """Device-local repository with in-process filtering and sorting.

    The whole collection is loaded for every call. Deletes are physical and
    cascade to the habit's completions. Calls may arrive from worker threads,
    so every read-modify-write cycle holds ``_lock``.
    """

    supports_eager_loading = True
    hard_deletes = True

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()
        self._lock = threading.RLock()

    # -- storage -----------------------------------------------------------------

    def _load(self) -> Document:
        if not self.path.exists():
            return {HABITS_KEY: [], COMPLETIONS_KEY: []}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Unreadable habit store %s: %s", self.path, exc)
            raise NetworkError(f"Could not read {self.path}") from exc
        return {
            HABITS_KEY: list(raw.get(HABITS_KEY, [])),
            COMPLETIONS_KEY: list(raw.get(COMPLETIONS_KEY, [])),
        }

    def _save(self, document: Document) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".habits-", suffix=".json", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            logger.error("Could not write habit store %s: %s", self.path, exc)
            raise NetworkError(f"Could not write {self.path}") from exc

    def _mutate(self, change: Callable[[Document], T]) -> T:
        with self._lock:
            document = self._load()
            result = change(document)
            self._save(document)
            return result

    def _read(self, query: Callable[[Document], T]) -> T:
        with self._lock:
            return query(self._load())

    @staticmethod
    def _habit_index(document: Document, habit_id: str, owner_id: str) -> int:
        for index, item in enumerate(document[HABITS_KEY]):
            if item["id"] == habit_id and item["owner_id"] == owner_id and item["is_active"]:
                return index
        raise NotFoundError(f"Habit {habit_id} not found")

    @staticmethod
    def _completions_of(document: Document, habit_id: str) -> list[Completion]:
        rows = [Completion.model_validate(c) for c in document[COMPLETIONS_KEY] if c["habit_id"] == habit_id]
        return sorted(rows, key=lambda c: c.completed_at)

    # -- habits --------------------------------------------------------------------

    def create_habit(self, habit: Habit) -> Habit:
        stored = habit.model_copy(update={"completions": []})

        def change(document: Document) -> Habit:
            document[HABITS_KEY].append(stored.model_dump(mode="json", exclude={"completions"}))
            return stored

        return self._mutate(change)

    def list_habits(
        self, owner_id: str, *, include_inactive: bool = False, with_completions: bool = False
    ) -> list[Habit]:
        def query(document: Document) -> list[Habit]:
            habits = [
                Habit.model_validate(item)
                for item in document[HABITS_KEY]
                if item["owner_id"] == owner_id and (include_inactive or item["is_active"])
            ]
            habits.sort(key=lambda h: h.created_at, reverse=True)
            if with_completions:
                for habit in habits:
                    habit.completions = self._completions_of(document, habit.id)
            return habits

        return self._read(query)

    def get_habit(self, habit_id: str, *, owner_id: str) -> Habit:
        def query(document: Document) -> Habit:
            index = self._habit_index(document, habit_id, owner_id)
            return Habit.model_validate(document[HABITS_KEY][index])

        return self._read(query)

    def update_habit(self, habit: Habit, *, owner_id: str) -> Habit:
        def change(document: Document) -> Habit:
            index = self._habit_index(document, habit.id, owner_id)
            item = document[HABITS_KEY][index]
            item.update(
                habit.model_dump(
                    mode="json", include={"title", "description", "frequency", "color", "updated_at"}
                )
            )
            return Habit.model_validate(item)

        return self._mutate(change)

    def delete_habit(self, habit_id: str, *, owner_id: str) -> None:
        def change(document: Document) -> None:
            index = self._habit_index(document, habit_id, owner_id)
            del document[HABITS_KEY][index]
            before = len(document[COMPLETIONS_KEY])
            document[COMPLETIONS_KEY] = [
                c for c in document[COMPLETIONS_KEY] if c["habit_id"] != habit_id
            ]
            logger.debug(
                "Removed habit %s with %d completions",
                habit_id,
                before - len(document[COMPLETIONS_KEY]),
            )

        self._mutate(change)

    # -- completions ---------------------------------------------------------------

    def list_completions(self, habit_id: str, *, owner_id: str) -> list[Completion]:
        def query(document: Document) -> list[Completion]:
            self._habit_index(document, habit_id, owner_id)
            return self._completions_of(document, habit_id)

        return self._read(query)

    def record_completion(self, completion: Completion, *, owner_id: str) -> Completion:
        def change(document: Document) -> Completion:
            index = self._habit_index(document, completion.habit_id, owner_id)
            document[COMPLETIONS_KEY].append(completion.model_dump(mode="json"))
            habit = Habit.model_validate(document[HABITS_KEY][index])
            bumped = habit.model_copy(
                update={
                    "streak_count": habit.streak_count + 1,
                    "last_completed_at": completion.completed_at,
                    "updated_at": utcnow(),
                }
            )
            document[HABITS_KEY][index] = bumped.model_dump(mode="json", exclude={"completions"})
            return completion

        return self._mutate(change)

    def delete_completion(self, completion_id: str, *, owner_id: str) -> Completion:
        def change(document: Document) -> Completion:
            for index, item in enumerate(document[COMPLETIONS_KEY]):
                if item["id"] != completion_id:
                    continue
                self._habit_index(document, item["habit_id"], owner_id)
                del document[COMPLETIONS_KEY][index]
                return Completion.model_validate(item)
            raise NotFoundError(f"Completion {completion_id} not found")

        return self._mutate(change)

    def list_completions_between(
        self, owner_id: str, start: datetime, end: datetime
    ) -> list[Completion]:
        lower, upper = ensure_utc(start), ensure_utc(end)

        def query(document: Document) -> list[Completion]:
            owned = {
                item["id"]
                for item in document[HABITS_KEY]
                if item["owner_id"] == owner_id and item["is_active"]
            }
            rows = [
                Completion.model_validate(c)
                for c in document[COMPLETIONS_KEY]
                if c["habit_id"] in owned
            ]
            return sorted(
                (c for c in rows if lower <= c.completed_at < upper),
                key=lambda c: c.completed_at,
            )

        return self._read(query)
