"""Observable in-memory cache of the signed-in user's habits."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..logging_config import get_logger
from ..models.habit import Completion, Habit

logger = get_logger(__name__)

Listener = Callable[[list[Habit]], None]


@dataclass(frozen=True)
class HabitCheckpoint:
    """Confirmed state of one cached habit, used to roll back optimistic edits."""

    habit_id: str
    position: Optional[int]
    habit: Optional[Habit]


class HabitCache:
    """Ordered habits (newest first) with nested completions.

    Only the habits facade writes to the cache. Readers get deep copies from
    :meth:`snapshot` / :meth:`get` and may subscribe for change notifications.
    Writes happen on the event loop thread, so no lock is held.
    """

    def __init__(self) -> None:
        self._habits: dict[str, Habit] = {}
        self._listeners: list[Listener] = []
        self.owner_id: Optional[str] = None
        self.is_loading = False
        self.error: Optional[str] = None
        self.loaded_at: Optional[datetime] = None

    # -- reads ---------------------------------------------------------------------

    def snapshot(self) -> list[Habit]:
        return [habit.model_copy(deep=True) for habit in self._habits.values()]

    def get(self, habit_id: str) -> Optional[Habit]:
        habit = self._habits.get(habit_id)
        return habit.model_copy(deep=True) if habit is not None else None

    def find_completion(self, completion_id: str) -> Optional[str]:
        """Return the id of the cached habit holding ``completion_id``."""

        for habit in self._habits.values():
            if any(c.id == completion_id for c in habit.completions):
                return habit.id
        return None

    def tracks(self, owner_id: str) -> bool:
        """True when writes for ``owner_id`` belong in this cache."""

        return self.owner_id is None or self.owner_id == owner_id

    def __contains__(self, habit_id: object) -> bool:
        return habit_id in self._habits

    def __len__(self) -> int:
        return len(self._habits)

    # -- subscriptions -------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Habit cache listener %r failed", listener)

    # -- writes --------------------------------------------------------------------

    def replace_all(self, habits: list[Habit], *, owner_id: str, loaded_at: datetime) -> None:
        self._habits = {habit.id: habit.model_copy(deep=True) for habit in habits}
        self.owner_id = owner_id
        self.loaded_at = loaded_at
        self.error = None
        self._notify()

    def upsert(self, habit: Habit, *, owner_id: str, front: bool = False) -> None:
        """Insert or replace ``habit``; new habits go first when ``front`` is set."""

        copy = habit.model_copy(deep=True)
        if self.owner_id is None:
            self.owner_id = owner_id
        if habit.id in self._habits or not front:
            self._habits[habit.id] = copy
        else:
            self._habits = {habit.id: copy, **self._habits}
        self._notify()

    def update_fields(self, habit: Habit) -> None:
        """Replace the habit's own fields in place, keeping cached completions."""

        current = self._habits.get(habit.id)
        if current is None:
            return
        fields = habit.model_dump(exclude={"completions"})
        self._habits[habit.id] = current.model_copy(update=fields, deep=True)
        self._notify()

    def remove(self, habit_id: str) -> Optional[Habit]:
        removed = self._habits.pop(habit_id, None)
        if removed is not None:
            self._notify()
        return removed

    def apply_completion(self, completion: Completion) -> None:
        """Append ``completion`` and mirror the store's counter bump."""

        habit = self._habits.get(completion.habit_id)
        if habit is None:
            return
        completions = sorted(
            [*habit.completions, completion.model_copy()], key=lambda c: c.completed_at
        )
        self._habits[habit.id] = habit.model_copy(
            update={
                "completions": completions,
                "streak_count": habit.streak_count + 1,
                "last_completed_at": completion.completed_at,
            }
        )
        self._notify()

    def remove_completion(self, completion_id: str) -> None:
        habit_id = self.find_completion(completion_id)
        if habit_id is None:
            return
        habit = self._habits[habit_id]
        self._habits[habit_id] = habit.model_copy(
            update={"completions": [c for c in habit.completions if c.id != completion_id]}
        )
        self._notify()

    def clear(self) -> None:
        self._habits = {}
        self.owner_id = None
        self.loaded_at = None
        self.error = None
        self._notify()

    def set_loading(self, loading: bool) -> None:
        self.is_loading = loading

    def set_error(self, message: Optional[str]) -> None:
        self.error = message

    # -- rollback ------------------------------------------------------------------

    def checkpoint(self, habit_id: str) -> HabitCheckpoint:
        keys = list(self._habits)
        position = keys.index(habit_id) if habit_id in self._habits else None
        return HabitCheckpoint(habit_id=habit_id, position=position, habit=self.get(habit_id))

    def restore(self, checkpoint: HabitCheckpoint, *, notify: bool = True) -> None:
        """Put one habit back exactly as it was when ``checkpoint`` was taken."""

        items = [(k, v) for k, v in self._habits.items() if k != checkpoint.habit_id]
        if checkpoint.habit is not None:
            position = min(checkpoint.position or 0, len(items))
            items.insert(position, (checkpoint.habit_id, checkpoint.habit.model_copy(deep=True)))
        self._habits = dict(items)
        if notify:
            self._notify()
