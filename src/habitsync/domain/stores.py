"""Asynchronous store protocol the habits facade depends on."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..models.habit import Completion, Habit


class HabitStore(Protocol):
    """Awaitable habit and completion operations with bounded latency.

    Implementations raise only :mod:`habitsync.errors` exceptions; a call that
    exceeds its timeout raises ``StoreTimeoutError``.
    """

    supports_eager_loading: bool
    hard_deletes: bool

    async def create_habit(self, habit: Habit) -> Habit: ...

    async def list_habits(
        self, owner_id: str, *, include_inactive: bool = False, with_completions: bool = False
    ) -> list[Habit]: ...

    async def get_habit(self, habit_id: str, *, owner_id: str) -> Habit: ...

    async def update_habit(self, habit: Habit, *, owner_id: str) -> Habit: ...

    async def delete_habit(self, habit_id: str, *, owner_id: str) -> None: ...

    async def list_completions(self, habit_id: str, *, owner_id: str) -> list[Completion]: ...

    async def record_completion(self, completion: Completion, *, owner_id: str) -> Completion: ...

    async def delete_completion(self, completion_id: str, *, owner_id: str) -> Completion: ...

    async def list_completions_between(
        self, owner_id: str, start: datetime, end: datetime
    ) -> list[Completion]: ...


__all__ = ["HabitStore"]
