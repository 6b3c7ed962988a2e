"""Domain models and SQLModel table exports."""

from .habit import (
    DEFAULT_COLOR,
    Completion,
    Frequency,
    Habit,
    HabitCreate,
    HabitUpdate,
    ensure_utc,
    new_id,
    utcnow,
)
from .records import CompletionRecord, HabitRecord

__all__ = [
    "DEFAULT_COLOR",
    "Completion",
    "CompletionRecord",
    "Frequency",
    "Habit",
    "HabitCreate",
    "HabitRecord",
    "HabitUpdate",
    "ensure_utc",
    "new_id",
    "utcnow",
]
