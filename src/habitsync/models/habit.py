"""Habit and completion data structures shared by every backend."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import field_validator
from sqlmodel import Field, SQLModel

DEFAULT_COLOR = "#4ECDC4"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Return a fresh opaque identifier for habits and completions."""

    return uuid.uuid4().hex


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops tzinfo) and normalise the rest."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Frequency(str, Enum):
    """Intended cadence of a habit."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"

    @classmethod
    def coerce(cls, value: Any) -> "Frequency":
        """Accept enum members and case-insensitive names ("weekly", "Weekly")."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise ValueError(f"Invalid frequency: {value!r}")


def _frequency_or_none(value: Any) -> Any:
    if value is None:
        return None
    return Frequency.coerce(value)


class CompletionBase(SQLModel):
    habit_id: str = Field(index=True)
    completed_at: datetime = Field(default_factory=utcnow, index=True)
    notes: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("completed_at", "created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class Completion(CompletionBase):
    """A timestamped record that a habit was performed once."""

    id: str = Field(default_factory=new_id)


class HabitBase(SQLModel):
    owner_id: str = Field(index=True, max_length=64)
    title: str = Field(max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    frequency: Frequency = Field(default=Frequency.DAILY)
    color: str = Field(default=DEFAULT_COLOR, max_length=16)
    # Legacy counter bumped by every completion; display code uses the streak engine.
    streak_count: int = Field(default=0, ge=0)
    last_completed_at: Optional[datetime] = None
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("frequency", mode="before")
    @classmethod
    def _frequency(cls, value: Any) -> Any:
        return _frequency_or_none(value)

    @field_validator("created_at", "updated_at", "last_completed_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class Habit(HabitBase):
    """A user-defined recurring activity, optionally with its completions loaded."""

    id: str = Field(default_factory=new_id)
    completions: List[Completion] = Field(default_factory=list)


class HabitCreate(SQLModel):
    """Fields accepted when a habit is created."""

    title: str
    description: Optional[str] = None
    frequency: Frequency = Frequency.DAILY

    @field_validator("frequency", mode="before")
    @classmethod
    def _frequency(cls, value: Any) -> Any:
        return Frequency.DAILY if value is None else Frequency.coerce(value)


class HabitUpdate(SQLModel):
    """Mutable habit fields; unset fields are left untouched."""

    title: Optional[str] = None
    description: Optional[str] = None
    frequency: Optional[Frequency] = None
    color: Optional[str] = None

    @field_validator("frequency", mode="before")
    @classmethod
    def _frequency(cls, value: Any) -> Any:
        return _frequency_or_none(value)


__all__ = [
    "DEFAULT_COLOR",
    "Completion",
    "CompletionBase",
    "Frequency",
    "Habit",
    "HabitBase",
    "HabitCreate",
    "HabitUpdate",
    "ensure_utc",
    "new_id",
    "utcnow",
]
