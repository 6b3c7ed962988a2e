"""Client repository for the habitsync REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import requests

from ...models.habit import Completion, Habit
from ...serializers import completion_from_json, habit_from_json, parse_timestamp
from .http import JsonHttpClient


class RestApiHabitRepository:
    """Talks to the Flask API; the server owns ids, ownership and transactions."""

    supports_eager_loading = True
    hard_deletes = False

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = JsonHttpClient(
            f"{base_url.rstrip('/')}/api", headers=headers, timeout=timeout, session=session
        )

    def create_habit(self, habit: Habit) -> Habit:
        body = self.client.post(
            "/habits",
            json={
                "title": habit.title,
                "description": habit.description,
                "frequency": habit.frequency.value,
                "color": habit.color,
            },
        )
        return habit_from_json(body)

    def list_habits(
        self, owner_id: str, *, include_inactive: bool = False, with_completions: bool = False
    ) -> list[Habit]:
        params = {"includeInactive": "true"} if include_inactive else None
        habits = [habit_from_json(item) for item in self.client.get("/habits", params=params)]
        if not with_completions:
            for habit in habits:
                habit.completions = []
        return habits

    def get_habit(self, habit_id: str, *, owner_id: str) -> Habit:
        habit = habit_from_json(self.client.get(f"/habits/{habit_id}"))
        habit.completions = []
        return habit

    def update_habit(self, habit: Habit, *, owner_id: str) -> Habit:
        body = self.client.put(
            f"/habits/{habit.id}",
            json={
                "title": habit.title,
                "description": habit.description,
                "frequency": habit.frequency.value,
                "color": habit.color,
            },
        )
        return habit_from_json(body)

    def delete_habit(self, habit_id: str, *, owner_id: str) -> None:
        self.client.delete(f"/habits/{habit_id}")

    def list_completions(self, habit_id: str, *, owner_id: str) -> list[Completion]:
        return [completion_from_json(c) for c in self.client.get(f"/habits/{habit_id}/completions")]

    def record_completion(self, completion: Completion, *, owner_id: str) -> Completion:
        body = self.client.post(
            "/completions",
            json={
                "habitId": completion.habit_id,
                "completedAt": completion.completed_at.isoformat(),
                "notes": completion.notes,
            },
        )
        return completion_from_json(body)

    def delete_completion(self, completion_id: str, *, owner_id: str) -> Completion:
        return completion_from_json(self.client.delete(f"/completions/{completion_id}"))

    def list_completions_between(
        self, owner_id: str, start: datetime, end: datetime
    ) -> list[Completion]:
        body = self.client.get(
            "/completions",
            params={
                "start": parse_timestamp(start).isoformat(),
                "end": parse_timestamp(end).isoformat(),
            },
        )
        return [completion_from_json(c) for c in body]
