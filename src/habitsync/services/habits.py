"""Habits facade: the single entry point for habit and completion changes.

Every mutation goes to the store first-or-optimistically and leaves the
:class:`~habitsync.services.cache.HabitCache` matching what the store
confirmed. Display metrics always come from the streak engine, never from the
legacy ``streak_count`` column.
"""

from __future__ import annotations

import asyncio
import random
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..domain.stores import HabitStore
from ..errors import HabitSyncError, UnauthenticatedError, ValidationError
from ..logging_config import get_logger
from ..models.habit import Completion, Habit, HabitCreate, HabitUpdate, ensure_utc, utcnow
from .auth import AuthProvider
from .cache import HabitCache
from .streaks import StreakMetrics, completions_on, compute_streak_metrics, is_streak_current

logger = get_logger(__name__)

HABIT_COLORS = (
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#96CEB4",
    "#FFEAA7",
    "#DDA0DD",
    "#98D8C8",
    "#F7DC6F",
    "#BB8FCE",
    "#85C1E9",
    "#F8C471",
    "#82E0AA",
    "#F1948A",
    "#D2B4DE",
)

CreateData = Union[HabitCreate, Mapping[str, Any]]
UpdateData = Union[HabitUpdate, Mapping[str, Any]]


def pick_color(rng: Optional[random.Random] = None) -> str:
    """Pick a display color for a new habit."""

    return (rng or random).choice(HABIT_COLORS)


def _first_error(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ())) or "input"
    return f"{field}: {error.get('msg', 'invalid value')}"


def validate_new_habit(data: CreateData) -> HabitCreate:
    """Normalise create input; raises ``ValidationError`` on an empty title or bad frequency."""

    raw = data.model_dump() if isinstance(data, HabitCreate) else dict(data)
    try:
        parsed = HabitCreate.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc
    title = parsed.title.strip()
    if not title:
        raise ValidationError("Title is required")
    return HabitCreate(
        title=title,
        description=(parsed.description or "").strip() or None,
        frequency=parsed.frequency,
    )


def validate_habit_changes(fields: UpdateData) -> dict[str, Any]:
    """Return only the fields being changed, normalised."""

    if isinstance(fields, HabitUpdate):
        raw = fields.model_dump(exclude_unset=True)
    else:
        raw = dict(fields)
        unknown = sorted(set(raw) - set(HabitUpdate.model_fields))
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")
    try:
        changes = HabitUpdate.model_validate(raw).model_dump(exclude_unset=True)
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc

    if "title" in changes:
        title = (changes["title"] or "").strip()
        if not title:
            raise ValidationError("Title cannot be empty")
        changes["title"] = title
    if "description" in changes:
        changes["description"] = (changes["description"] or "").strip() or None
    if "frequency" in changes and changes["frequency"] is None:
        raise ValidationError("Frequency cannot be empty")
    if "color" in changes and not changes["color"]:
        raise ValidationError("Color cannot be empty")
    return changes


def build_habit(
    owner_id: str, data: HabitCreate, *, color: str, now: datetime
) -> Habit:
    """A brand-new active habit with zeroed counters."""

    try:
        return Habit(
            owner_id=owner_id,
            title=data.title,
            description=data.description,
            frequency=data.frequency,
            color=color,
            streak_count=0,
            is_active=True,
            created_at=now,
            updated_at=now,
            completions=[],
        )
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc


def _log_refresh_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("Session reload failed: %s", exc, exc_info=exc)


class HabitsFacade:
    """Backend-agnostic orchestration of habit and completion changes.

    Operations on the same habit are serialised with a per-habit lock, so they
    complete in issue order; different habits proceed concurrently.
    """

    def __init__(
        self,
        store: HabitStore,
        *,
        cache: Optional[HabitCache] = None,
        auth: Optional[AuthProvider] = None,
        clock: Callable[[], datetime] = utcnow,
        tz: tzinfo = timezone.utc,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.cache = cache or HabitCache()
        self.auth = auth
        self.clock = clock
        self.tz = tz
        self._rng = rng
        self._locks: dict[str, asyncio.Lock] = {}
        self._refresh_task: Optional[asyncio.Task] = None
        self._generation = 0
        if auth is not None:
            auth.subscribe(self._on_session_change)

    # -- helpers -------------------------------------------------------------------

    def _owner(self, owner_id: Optional[str]) -> str:
        current = self.auth.current_user_id() if self.auth is not None else None
        if self.auth is not None and current is None:
            raise UnauthenticatedError("Sign in to manage habits")
        resolved = owner_id or current
        if not resolved:
            raise UnauthenticatedError("No user is signed in")
        return resolved

    def _lock(self, habit_id: str) -> asyncio.Lock:
        lock = self._locks.get(habit_id)
        if lock is None:
            lock = self._locks[habit_id] = asyncio.Lock()
        return lock

    def _failed(self, action: str, exc: BaseException, **context: Any) -> None:
        if isinstance(exc, HabitSyncError):
            self.cache.set_error(exc.message)
            logger.warning("%s failed: %s", action, exc.message, extra=context)

    def _signed_in_as(self, owner: str) -> bool:
        return self.auth is None or self.auth.current_user_id() == owner

    def _current(self, owner: str, generation: int) -> bool:
        """True when results for ``owner`` still belong in the cache."""

        return generation == self._generation and self.cache.tracks(owner)

    def _on_session_change(self, user_id: Optional[str]) -> None:
        self._generation += 1
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None
        self.cache.clear()
        if user_id is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the next list_habits() call loads the new user's habits.
            return
        self._refresh_task = loop.create_task(self.list_habits(user_id))
        self._refresh_task.add_done_callback(_log_refresh_failure)

    # -- operations ----------------------------------------------------------------

    async def create_habit(self, owner_id: Optional[str], data: CreateData) -> Habit:
        """Create an active habit and insert it at the top of the cache."""

        owner = self._owner(owner_id)
        generation = self._generation
        payload = validate_new_habit(data)
        habit = build_habit(
            owner, payload, color=pick_color(self._rng), now=ensure_utc(self.clock())
        )
        self.cache.set_error(None)
        try:
            created = await self.store.create_habit(habit)
        except BaseException as exc:
            self._failed("create_habit", exc, owner_id=owner)
            raise
        created.completions = []
        if self._current(owner, generation):
            self.cache.upsert(created, owner_id=owner, front=True)
        logger.info("Created habit %s", created.id, extra={"owner_id": owner})
        return created.model_copy(deep=True)

    async def update_habit(
        self, habit_id: str, owner_id: Optional[str], fields: UpdateData
    ) -> Habit:
        """Merge ``fields`` into an owned habit; completions are untouched."""

        owner = self._owner(owner_id)
        changes = validate_habit_changes(fields)
        generation = self._generation
        async with self._lock(habit_id):
            self.cache.set_error(None)
            try:
                current = await self.store.get_habit(habit_id, owner_id=owner)
                merged = current.model_copy(
                    update={**changes, "updated_at": ensure_utc(self.clock())}
                )
                saved = await self.store.update_habit(merged, owner_id=owner)
            except BaseException as exc:
                self._failed("update_habit", exc, habit_id=habit_id)
                raise
            if self._current(owner, generation):
                self.cache.update_fields(saved)
            cached = self.cache.get(habit_id)
        logger.info("Updated habit %s", habit_id, extra={"fields": sorted(changes)})
        if cached is not None:
            return cached
        saved.completions = []
        return saved

    async def delete_habit(self, habit_id: str, owner_id: Optional[str]) -> None:
        """Delete an owned habit and its completions; it vanishes from the cache at once."""

        owner = self._owner(owner_id)
        generation = self._generation
        async with self._lock(habit_id):
            self.cache.set_error(None)
            checkpoint = self.cache.checkpoint(habit_id)
            self.cache.remove(habit_id)
            try:
                await self.store.delete_habit(habit_id, owner_id=owner)
            except BaseException as exc:
                # Cancelled calls roll back too.
                if self._current(owner, generation):
                    self.cache.restore(checkpoint)
                self._failed("delete_habit", exc, habit_id=habit_id)
                raise
        self._locks.pop(habit_id, None)
        logger.info(
            "Deleted habit %s",
            habit_id,
            extra={"hard_delete": self.store.hard_deletes, "owner_id": owner},
        )

    async def complete_habit(
        self,
        habit_id: str,
        owner_id: Optional[str],
        completed_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Completion:
        """Record a completion (now unless ``completed_at`` backfills one)."""

        owner = self._owner(owner_id)
        when = ensure_utc(completed_at) if completed_at is not None else ensure_utc(self.clock())
        completion = Completion(
            habit_id=habit_id,
            completed_at=when,
            notes=(notes or "").strip() or None,
            created_at=ensure_utc(self.clock()),
        )
        generation = self._generation
        async with self._lock(habit_id):
            self.cache.set_error(None)
            checkpoint = self.cache.checkpoint(habit_id)
            if checkpoint.habit is not None:
                self.cache.apply_completion(completion)
            try:
                confirmed = await self.store.record_completion(completion, owner_id=owner)
            except BaseException as exc:
                if self._current(owner, generation):
                    self.cache.restore(checkpoint)
                self._failed("complete_habit", exc, habit_id=habit_id)
                raise
            if self._current(owner, generation):
                if checkpoint.habit is not None:
                    self.cache.restore(checkpoint, notify=False)
                    self.cache.apply_completion(confirmed)
                elif self.cache.owner_id is not None:
                    await self._reload_habit(habit_id, owner)
        logger.info(
            "Completed habit %s",
            habit_id,
            extra={"completion_id": confirmed.id, "completed_at": confirmed.completed_at},
        )
        return confirmed.model_copy()

    async def delete_completion(self, completion_id: str, owner_id: Optional[str]) -> Completion:
        """Undo a completion of an owned habit."""

        owner = self._owner(owner_id)
        generation = self._generation
        habit_id = self.cache.find_completion(completion_id)
        lock = self._lock(habit_id) if habit_id is not None else asyncio.Lock()
        async with lock:
            self.cache.set_error(None)
            checkpoint = self.cache.checkpoint(habit_id) if habit_id is not None else None
            self.cache.remove_completion(completion_id)
            try:
                removed = await self.store.delete_completion(completion_id, owner_id=owner)
            except BaseException as exc:
                if checkpoint is not None and self._current(owner, generation):
                    self.cache.restore(checkpoint)
                self._failed("delete_completion", exc, completion_id=completion_id)
                raise
        logger.info("Deleted completion %s of habit %s", completion_id, removed.habit_id)
        return removed

    async def list_habits(self, owner_id: Optional[str] = None) -> list[Habit]:
        """Load all active habits with completions and replace the cache contents."""

        owner = self._owner(owner_id)
        generation = self._generation
        self.cache.set_loading(True)
        self.cache.set_error(None)
        try:
            if self.store.supports_eager_loading:
                habits = await self.store.list_habits(owner, with_completions=True)
            else:
                habits = await self.store.list_habits(owner)
                # No cross-habit invariant, so per-habit fetches run concurrently.
                nested = await asyncio.gather(
                    *(self.store.list_completions(h.id, owner_id=owner) for h in habits)
                )
                for habit, completions in zip(habits, nested):
                    habit.completions = completions
        except BaseException as exc:
            self._failed("list_habits", exc, owner_id=owner)
            raise
        finally:
            self.cache.set_loading(False)

        for habit in habits:
            habit.completions.sort(key=lambda c: c.completed_at)
        if generation == self._generation and self._signed_in_as(owner):
            self.cache.replace_all(habits, owner_id=owner, loaded_at=ensure_utc(self.clock()))
        else:
            logger.debug("Session changed while loading; cache left as is", extra={"owner_id": owner})
        logger.debug("Loaded %d habits", len(habits), extra={"owner_id": owner})
        return [habit.model_copy(deep=True) for habit in habits]

    async def refresh(self) -> list[Habit]:
        """Reload the signed-in user's habits."""

        return await self.list_habits(None)

    async def get_habit(self, habit_id: str, owner_id: Optional[str]) -> Habit:
        """Fetch one owned habit with its completions and refresh its cache entry."""

        owner = self._owner(owner_id)
        async with self._lock(habit_id):
            return await self._reload_habit(habit_id, owner)

    async def completions_for_day(
        self, owner_id: Optional[str], day: Optional[date] = None
    ) -> list[Completion]:
        """Completions of the owner's habits on ``day`` (today by default) in ``tz``."""

        owner = self._owner(owner_id)
        day = day or ensure_utc(self.clock()).astimezone(self.tz).date()
        start = datetime.combine(day, time.min, tzinfo=self.tz)
        end = start + timedelta(days=1)
        found = await self.store.list_completions_between(
            owner, ensure_utc(start), ensure_utc(end)
        )
        return completions_on(found, day, tz=self.tz)

    async def _reload_habit(self, habit_id: str, owner: str) -> Habit:
        generation = self._generation
        habit = await self.store.get_habit(habit_id, owner_id=owner)
        habit.completions = sorted(
            await self.store.list_completions(habit_id, owner_id=owner),
            key=lambda c: c.completed_at,
        )
        if self._current(owner, generation):
            self.cache.upsert(habit, owner_id=owner, front=True)
        return habit.model_copy(deep=True)

    # -- derived metrics -----------------------------------------------------------

    def get_streak(self, habit: Habit) -> StreakMetrics:
        """Streak metrics for ``habit`` from its nested completions."""

        return compute_streak_metrics(habit.completions, habit.frequency, tz=self.tz)

    def streaks(self) -> dict[str, StreakMetrics]:
        """Streak metrics for every cached habit, keyed by habit id."""

        return {habit.id: self.get_streak(habit) for habit in self.cache.snapshot()}

    def is_streak_current(self, habit: Habit, today: Optional[date] = None) -> bool:
        today = today or ensure_utc(self.clock()).astimezone(self.tz).date()
        return is_streak_current(habit.completions, habit.frequency, today=today, tz=self.tz)


__all__ = [
    "HABIT_COLORS",
    "HabitsFacade",
    "build_habit",
    "pick_color",
    "validate_habit_changes",
    "validate_new_habit",
]
