"""JSON wire format shared by the REST API and its client.

Field names are camelCase, timestamps ISO-8601 strings in UTC.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from .errors import ValidationError
from .models.habit import DEFAULT_COLOR, Completion, Habit, ensure_utc


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware datetime."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValidationError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise ValidationError(f"Invalid timestamp: {value!r}") from exc


def completion_to_json(completion: Completion) -> dict[str, Any]:
    return {
        "id": completion.id,
        "habitId": completion.habit_id,
        "completedAt": _iso(completion.completed_at),
        "notes": completion.notes,
        "createdAt": _iso(completion.created_at),
    }


def completion_from_json(payload: Mapping[str, Any]) -> Completion:
    data: dict[str, Any] = {
        "id": payload["id"],
        "habit_id": payload["habitId"],
        "completed_at": parse_timestamp(payload["completedAt"]),
        "notes": payload.get("notes"),
    }
    created_at = parse_timestamp(payload.get("createdAt"))
    if created_at is not None:
        data["created_at"] = created_at
    return Completion.model_validate(data)


def habit_to_json(habit: Habit, *, include_completions: bool = True) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": habit.id,
        "userId": habit.owner_id,
        "title": habit.title,
        "description": habit.description,
        "frequency": habit.frequency.value,
        "color": habit.color,
        "streakCount": habit.streak_count,
        "lastCompleted": _iso(habit.last_completed_at),
        "isActive": habit.is_active,
        "createdAt": _iso(habit.created_at),
        "updatedAt": _iso(habit.updated_at),
    }
    if include_completions:
        payload["completions"] = [completion_to_json(c) for c in habit.completions]
    return payload


def habit_from_json(payload: Mapping[str, Any]) -> Habit:
    return Habit.model_validate(
        {
            "id": payload["id"],
            "owner_id": payload["userId"],
            "title": payload["title"],
            "description": payload.get("description"),
            "frequency": payload.get("frequency", "DAILY"),
            "color": payload.get("color") or DEFAULT_COLOR,
            "streak_count": payload.get("streakCount", 0),
            "last_completed_at": parse_timestamp(payload.get("lastCompleted")),
            "is_active": payload.get("isActive", True),
            "created_at": parse_timestamp(payload["createdAt"]),
            "updated_at": parse_timestamp(payload["updatedAt"]),
            "completions": [
                completion_from_json(item) for item in payload.get("completions") or []
            ],
        }
    )


__all__ = [
    "completion_from_json",
    "completion_to_json",
    "habit_from_json",
    "habit_to_json",
    "parse_timestamp",
]
