"""Habit and completion JSON endpoints; the JWT identity is the owner id."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from ..domain.repositories import Repository
from ..errors import ValidationError
from ..logging_config import get_logger
from ..models.habit import Completion, HabitCreate, utcnow
from ..serializers import completion_to_json, habit_to_json, parse_timestamp
from ..services.habits import build_habit, pick_color, validate_habit_changes, validate_new_habit
from . import REPOSITORY_KEY

logger = get_logger(__name__)

bp = Blueprint("api", __name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
END_OF_TIME = datetime(9999, 12, 31, tzinfo=timezone.utc)


def _repository() -> Repository:
    return current_app.extensions[REPOSITORY_KEY]


def _owner() -> str:
    return str(get_jwt_identity())


def _json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _flag(name: str) -> bool:
    return request.args.get(name, "").strip().lower() in {"1", "true", "yes"}


@bp.get("/habits")
@jwt_required()
def list_habits():
    habits = _repository().list_habits(
        _owner(), include_inactive=_flag("includeInactive"), with_completions=True
    )
    return jsonify([habit_to_json(habit) for habit in habits])


@bp.post("/habits")
@jwt_required()
def create_habit():
    payload = _json_body()
    data: HabitCreate = validate_new_habit(
        {
            "title": payload.get("title") or "",
            "description": payload.get("description"),
            "frequency": payload.get("frequency"),
        }
    )
    color = payload.get("color") or pick_color()
    habit = build_habit(_owner(), data, color=color, now=utcnow())
    created = _repository().create_habit(habit)
    logger.info("API created habit %s", created.id)
    return jsonify(habit_to_json(created)), 201


@bp.get("/habits/<habit_id>")
@jwt_required()
def get_habit(habit_id: str):
    repository = _repository()
    owner = _owner()
    habit = repository.get_habit(habit_id, owner_id=owner)
    habit.completions = repository.list_completions(habit_id, owner_id=owner)
    return jsonify(habit_to_json(habit))


@bp.put("/habits/<habit_id>")
@jwt_required()
def update_habit(habit_id: str):
    changes = validate_habit_changes(_json_body())
    repository = _repository()
    owner = _owner()
    current = repository.get_habit(habit_id, owner_id=owner)
    merged = current.model_copy(update={**changes, "updated_at": utcnow()})
    saved = repository.update_habit(merged, owner_id=owner)
    return jsonify(habit_to_json(saved, include_completions=False))


@bp.delete("/habits/<habit_id>")
@jwt_required()
def delete_habit(habit_id: str):
    _repository().delete_habit(habit_id, owner_id=_owner())
    return "", 204


@bp.get("/habits/<habit_id>/completions")
@jwt_required()
def list_habit_completions(habit_id: str):
    completions = _repository().list_completions(habit_id, owner_id=_owner())
    return jsonify([completion_to_json(c) for c in completions])


@bp.post("/completions")
@jwt_required()
def create_completion():
    payload = _json_body()
    habit_id = payload.get("habitId")
    if not habit_id:
        raise ValidationError("habitId is required")
    now = utcnow()
    completion = Completion(
        habit_id=str(habit_id),
        completed_at=parse_timestamp(payload.get("completedAt")) or now,
        notes=(payload.get("notes") or "").strip() or None,
        created_at=now,
    )
    saved = _repository().record_completion(completion, owner_id=_owner())
    return jsonify(completion_to_json(saved)), 201


@bp.get("/completions")
@jwt_required()
def list_completions():
    """Completions on ``date`` (UTC, default today), in ``[start, end)``, or ``all``."""

    if _flag("all"):
        start, end = EPOCH, END_OF_TIME
    elif request.args.get("start") or request.args.get("end"):
        start = parse_timestamp(request.args.get("start")) or EPOCH
        end = parse_timestamp(request.args.get("end")) or END_OF_TIME
    else:
        raw_day = request.args.get("date")
        try:
            day = date.fromisoformat(raw_day) if raw_day else utcnow().date()
        except ValueError as exc:
            raise ValidationError(f"Invalid date: {raw_day!r}") from exc
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
    if end <= start:
        raise ValidationError("end must be after start")
    completions = _repository().list_completions_between(_owner(), start, end)
    return jsonify([completion_to_json(c) for c in completions])


@bp.delete("/completions/<completion_id>")
@jwt_required()
def delete_completion(completion_id: str):
    removed = _repository().delete_completion(completion_id, owner_id=_owner())
    return jsonify(completion_to_json(removed))
