"""Async store running a blocking repository on worker threads."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, TypeVar

from ..domain.repositories import Repository
from ..errors import HabitSyncError, StoreTimeoutError
from ..logging_config import get_logger
from ..models.habit import Completion, Habit

logger = get_logger(__name__)

T = TypeVar("T")


class ThreadedHabitStore:
    """Implements :class:`habitsync.domain.HabitStore` over any repository.

    Each call runs in ``asyncio.to_thread`` and is bounded by ``timeout``
    seconds. When the bound fires the caller gets ``StoreTimeoutError``; the
    backend call itself is left to finish or fail on its own thread.
    """

    def __init__(self, repository: Repository, *, timeout: float = 10.0):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.repository = repository
        self.timeout = timeout

    @property
    def supports_eager_loading(self) -> bool:
        return bool(getattr(self.repository, "supports_eager_loading", False))

    @property
    def hard_deletes(self) -> bool:
        return bool(getattr(self.repository, "hard_deletes", False))

    async def _call(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs), timeout=self.timeout
            )
        except HabitSyncError:
            raise
        except asyncio.TimeoutError as exc:
            logger.warning("%s timed out after %.1fs", operation, self.timeout)
            raise StoreTimeoutError(f"{operation} timed out after {self.timeout:g}s") from exc

    async def create_habit(self, habit: Habit) -> Habit:
        return await self._call("create_habit", self.repository.create_habit, habit)

    async def list_habits(
        self, owner_id: str, *, include_inactive: bool = False, with_completions: bool = False
    ) -> list[Habit]:
        return await self._call(
            "list_habits",
            self.repository.list_habits,
            owner_id,
            include_inactive=include_inactive,
            with_completions=with_completions,
        )

    async def get_habit(self, habit_id: str, *, owner_id: str) -> Habit:
        return await self._call("get_habit", self.repository.get_habit, habit_id, owner_id=owner_id)

    async def update_habit(self, habit: Habit, *, owner_id: str) -> Habit:
        return await self._call(
            "update_habit", self.repository.update_habit, habit, owner_id=owner_id
        )

    async def delete_habit(self, habit_id: str, *, owner_id: str) -> None:
        await self._call("delete_habit", self.repository.delete_habit, habit_id, owner_id=owner_id)

    async def list_completions(self, habit_id: str, *, owner_id: str) -> list[Completion]:
        return await self._call(
            "list_completions", self.repository.list_completions, habit_id, owner_id=owner_id
        )

    async def record_completion(self, completion: Completion, *, owner_id: str) -> Completion:
        return await self._call(
            "record_completion", self.repository.record_completion, completion, owner_id=owner_id
        )

    async def delete_completion(self, completion_id: str, *, owner_id: str) -> Completion:
        return await self._call(
            "delete_completion", self.repository.delete_completion, completion_id, owner_id=owner_id
        )

    async def list_completions_between(
        self, owner_id: str, start: datetime, end: datetime
    ) -> list[Completion]:
        return await self._call(
            "list_completions_between",
            self.repository.list_completions_between,
            owner_id,
            start,
            end,
        )
