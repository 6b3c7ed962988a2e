"""Streak metrics derived from a habit's completion history.

Everything here is synchronous and free of clock reads: results depend only on
the ``completed_at`` values passed in, plus an explicit ``today`` where a
function needs one.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Iterable, Sequence

from ..models.habit import Completion, Frequency, ensure_utc

# MONTHLY is a fixed 30-day approximation, not calendar months.
PERIOD_DAYS = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.MONTHLY: 30,
}

# A daily run survives same-day duplicates and next-day completions.
DAILY_TOLERANCE_DAYS = 1.5
# Weekly and monthly runs get one day of slack on top of the period.
PERIOD_SLACK_DAYS = 1


@dataclass(frozen=True)
class StreakMetrics:
    """Derived display metrics for one habit."""

    streak: int = 0
    best_streak: int = 0
    total: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def period_length(frequency: Frequency | str) -> int:
    """Return the period of ``frequency`` in days."""

    return PERIOD_DAYS[Frequency.coerce(frequency)]


def gap_tolerance(frequency: Frequency | str) -> float:
    """Largest day gap between two completions that keeps a run alive."""

    freq = Frequency.coerce(frequency)
    if freq is Frequency.DAILY:
        return DAILY_TOLERANCE_DAYS
    return PERIOD_DAYS[freq] + PERIOD_SLACK_DAYS


def _local_day(moment: datetime, tz: tzinfo) -> date:
    return ensure_utc(moment).astimezone(tz).date()


def _timestamps(completions: Iterable[Completion | datetime]) -> list[datetime]:
    stamps = []
    for item in completions:
        stamps.append(item if isinstance(item, datetime) else item.completed_at)
    return sorted(ensure_utc(stamp) for stamp in stamps)


def compute_streak_metrics(
    completions: Sequence[Completion | datetime],
    frequency: Frequency | str,
    *,
    tz: tzinfo = timezone.utc,
) -> StreakMetrics:
    """Derive current streak, best streak and total from raw completions.

    ``completions`` may be unsorted and may hold several entries on one
    calendar day. Duplicates are counted as given: they add to ``total`` and
    extend a daily run (a gap of zero days is within tolerance).

    ``streak`` is the length of the run ending at the most recent completion;
    it is not checked against today's date. Use :func:`is_streak_current` to
    decide whether that run is still alive.

    Calendar days are taken in ``tz`` (UTC unless the caller supplies the
    user's zone).
    """

    stamps = _timestamps(completions)
    total = len(stamps)
    if not stamps:
        return StreakMetrics(streak=0, best_streak=0, total=0)

    tolerance = gap_tolerance(frequency)
    run = 0
    best = 0
    previous: date | None = None
    for stamp in stamps:
        day = _local_day(stamp, tz)
        if previous is None:
            run = 1
        else:
            gap_in_days = (day - previous).days
            run = run + 1 if gap_in_days <= tolerance else 1
        best = max(best, run)
        previous = day

    return StreakMetrics(streak=run, best_streak=best, total=total)


def is_streak_current(
    completions: Sequence[Completion | datetime],
    frequency: Frequency | str,
    *,
    today: date,
    tz: tzinfo = timezone.utc,
) -> bool:
    """Return True when the latest completion is recent enough to extend today.

    Separate from :func:`compute_streak_metrics` so the metrics stay a pure
    function of history; callers that want to hide stale streaks pass
    ``today`` explicitly.
    """

    stamps = _timestamps(completions)
    if not stamps:
        return False
    last_day = _local_day(stamps[-1], tz)
    return (today - last_day).days <= gap_tolerance(frequency)


def completions_on(
    completions: Iterable[Completion],
    day: date,
    *,
    tz: tzinfo = timezone.utc,
) -> list[Completion]:
    """Completions whose calendar day in ``tz`` is ``day``, oldest first."""

    matches = [c for c in completions if _local_day(c.completed_at, tz) == day]
    return sorted(matches, key=lambda c: ensure_utc(c.completed_at))


__all__ = [
    "DAILY_TOLERANCE_DAYS",
    "PERIOD_DAYS",
    "StreakMetrics",
    "completions_on",
    "compute_streak_metrics",
    "gap_tolerance",
    "is_streak_current",
    "period_length",
]
