"""Habit services: streak engine, client cache, session and facade."""

from .auth import AuthProvider, SessionState
from .cache import HabitCache, HabitCheckpoint
from .habits import HABIT_COLORS, HabitsFacade, build_habit, pick_color
from .streaks import (
    StreakMetrics,
    completions_on,
    compute_streak_metrics,
    gap_tolerance,
    is_streak_current,
    period_length,
)

__all__ = [
    "AuthProvider",
    "HABIT_COLORS",
    "HabitCache",
    "HabitCheckpoint",
    "HabitsFacade",
    "SessionState",
    "StreakMetrics",
    "build_habit",
    "completions_on",
    "compute_streak_metrics",
    "gap_tolerance",
    "is_streak_current",
    "period_length",
    "pick_color",
]
