"""SQLModel implementation of the habit and completion repositories."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from ...errors import ConflictError, NetworkError, NotFoundError
from ...infra.database import SessionFactory
from ...logging_config import get_logger
from ...models.habit import Completion, Habit, ensure_utc, utcnow
from ...models.records import CompletionRecord, HabitRecord

logger = get_logger(__name__)


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Map SQLAlchemy failures onto the store error taxonomy."""

    try:
        yield
    except IntegrityError as exc:
        logger.warning("Integrity error during %s: %s", action, exc.orig)
        raise ConflictError(f"Conflicting write during {action}") from exc
    except OperationalError as exc:
        logger.warning("Database unavailable during %s: %s", action, exc.orig)
        raise NetworkError(f"Database unavailable during {action}") from exc


class SQLModelHabitRepository:
    """SQLModel-based repository; habits and completions are related rows."""

    supports_eager_loading = True
    hard_deletes = False

    def __init__(self, session_factory: SessionFactory):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def _owned(
        self, session: Session, habit_id: str, owner_id: str, *, include_inactive: bool = False
    ) -> HabitRecord:
        statement = select(HabitRecord).where(
            HabitRecord.id == habit_id, HabitRecord.owner_id == owner_id
        )
        if not include_inactive:
            statement = statement.where(HabitRecord.is_active == True)  # noqa: E712
        row = session.exec(statement).first()
        if row is None:
            raise NotFoundError(f"Habit {habit_id} not found")
        return row

    def create_habit(self, habit: Habit) -> Habit:
        """Insert a new habit row."""
        with _translate_errors("create_habit"), self.session_factory() as session:
            row = HabitRecord.model_validate(habit.model_dump(exclude={"completions"}))
            session.add(row)
            session.flush()
            return row.to_domain(completions=[])

    def list_habits(
        self, owner_id: str, *, include_inactive: bool = False, with_completions: bool = False
    ) -> list[Habit]:
        """List the owner's habits, newest first, optionally with completions."""
        with _translate_errors("list_habits"), self.session_factory() as session:
            statement = (
                select(HabitRecord)
                .where(HabitRecord.owner_id == owner_id)
                .order_by(HabitRecord.created_at.desc())  # type: ignore[attr-defined]
            )
            if not include_inactive:
                statement = statement.where(HabitRecord.is_active == True)  # noqa: E712
            if with_completions:
                statement = statement.options(
                    selectinload(HabitRecord.completions)  # type: ignore[arg-type]
                )
            rows = session.exec(statement).all()
            return [
                row.to_domain(completions=list(row.completions) if with_completions else None)
                for row in rows
            ]

    def get_habit(self, habit_id: str, *, owner_id: str) -> Habit:
        """Retrieve an active habit by ID."""
        with _translate_errors("get_habit"), self.session_factory() as session:
            return self._owned(session, habit_id, owner_id).to_domain()

    def update_habit(self, habit: Habit, *, owner_id: str) -> Habit:
        """Write the user-editable fields of a habit."""
        with _translate_errors("update_habit"), self.session_factory() as session:
            row = self._owned(session, habit.id, owner_id)
            row.title = habit.title
            row.description = habit.description
            row.frequency = habit.frequency
            row.color = habit.color
            row.updated_at = ensure_utc(habit.updated_at)
            session.add(row)
            session.flush()
            return row.to_domain()

    def delete_habit(self, habit_id: str, *, owner_id: str) -> None:
        """Soft-delete a habit; its completions stay in the table but unreachable."""
        with _translate_errors("delete_habit"), self.session_factory() as session:
            row = self._owned(session, habit_id, owner_id)
            row.is_active = False
            row.updated_at = utcnow()
            session.add(row)

    # Completion operations
    def list_completions(self, habit_id: str, *, owner_id: str) -> list[Completion]:
        """Completions for one habit, oldest first."""
        with _translate_errors("list_completions"), self.session_factory() as session:
            self._owned(session, habit_id, owner_id)
            rows = session.exec(
                select(CompletionRecord)
                .where(CompletionRecord.habit_id == habit_id)
                .order_by(CompletionRecord.completed_at)  # type: ignore[arg-type]
            ).all()
            return [row.to_domain() for row in rows]

    def record_completion(self, completion: Completion, *, owner_id: str) -> Completion:
        """Insert a completion and bump the habit counters in one transaction."""
        with _translate_errors("record_completion"), self.session_factory() as session:
            habit = self._owned(session, completion.habit_id, owner_id)
            row = CompletionRecord.model_validate(completion.model_dump())
            session.add(row)
            habit.streak_count += 1
            habit.last_completed_at = row.completed_at
            habit.updated_at = utcnow()
            session.add(habit)
            session.flush()
            return row.to_domain()

    def delete_completion(self, completion_id: str, *, owner_id: str) -> Completion:
        """Delete one completion of an owned, active habit."""
        with _translate_errors("delete_completion"), self.session_factory() as session:
            row = session.exec(
                select(CompletionRecord)
                .join(HabitRecord)
                .where(CompletionRecord.id == completion_id)
                .where(HabitRecord.owner_id == owner_id)
                .where(HabitRecord.is_active == True)  # noqa: E712
            ).first()
            if row is None:
                raise NotFoundError(f"Completion {completion_id} not found")
            removed = row.to_domain()
            session.delete(row)
            return removed

    def list_completions_between(
        self, owner_id: str, start: datetime, end: datetime
    ) -> list[Completion]:
        """Completions of active habits in ``[start, end)``."""
        with _translate_errors("list_completions_between"), self.session_factory() as session:
            rows = session.exec(
                select(CompletionRecord)
                .join(HabitRecord)
                .where(HabitRecord.owner_id == owner_id)
                .where(HabitRecord.is_active == True)  # noqa: E712
                .where(CompletionRecord.completed_at >= ensure_utc(start))
                .where(CompletionRecord.completed_at < ensure_utc(end))
                .order_by(CompletionRecord.completed_at)  # type: ignore[arg-type]
            ).all()
            return [row.to_domain() for row in rows]
