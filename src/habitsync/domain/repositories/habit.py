"""Habit and completion repository protocols."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ...models.habit import Completion, Habit


class HabitRepository(Protocol):
    """Blocking access to habit definitions for one backend.

    Every lookup is scoped by ``owner_id``; a habit owned by somebody else is
    reported exactly like a missing one (``NotFoundError``).
    """

    #: True when ``list_habits(with_completions=True)`` loads nested
    #: completions in one round trip.
    supports_eager_loading: bool

    #: True when ``delete_habit`` removes rows instead of flagging them.
    hard_deletes: bool

    def create_habit(self, habit: Habit) -> Habit:
        """Persist a new habit and return the stored copy."""
        ...

    def list_habits(
        self, owner_id: str, *, include_inactive: bool = False, with_completions: bool = False
    ) -> list[Habit]:
        """List the owner's habits, newest first."""
        ...

    def get_habit(self, habit_id: str, *, owner_id: str) -> Habit:
        """Return an active habit owned by ``owner_id`` or raise ``NotFoundError``."""
        ...

    def update_habit(self, habit: Habit, *, owner_id: str) -> Habit:
        """Write the mutable fields of ``habit`` and return the stored copy."""
        ...

    def delete_habit(self, habit_id: str, *, owner_id: str) -> None:
        """Remove a habit and make its completions unreachable."""
        ...


class CompletionRepository(Protocol):
    """Blocking access to completion events for one backend."""

    def list_completions(self, habit_id: str, *, owner_id: str) -> list[Completion]:
        """Completions of one owned habit, oldest first."""
        ...

    def record_completion(self, completion: Completion, *, owner_id: str) -> Completion:
        """Store ``completion`` and bump the habit's legacy counter and
        ``last_completed_at`` in the same logical write."""
        ...

    def delete_completion(self, completion_id: str, *, owner_id: str) -> Completion:
        """Delete a completion of an owned habit and return what was removed."""
        ...

    def list_completions_between(
        self, owner_id: str, start: datetime, end: datetime
    ) -> list[Completion]:
        """Completions of the owner's active habits with ``start <= completed_at < end``."""
        ...


class Repository(HabitRepository, CompletionRepository, Protocol):
    """A backend serving both habits and completions."""


__all__ = ["CompletionRepository", "HabitRepository", "Repository"]
