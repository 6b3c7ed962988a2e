"""SQLModel tables for the relational backend."""

from typing import ClassVar, List, Optional

from sqlmodel import Field, Relationship

from .habit import Completion, CompletionBase, Habit, HabitBase, new_id


class HabitRecord(HabitBase, table=True):
    """Row in the ``habit`` table."""

    __tablename__: ClassVar[str] = "habit"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)

    completions: List["CompletionRecord"] = Relationship(
        back_populates="habit",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "CompletionRecord.completed_at",
        },
    )

    def to_domain(self, completions: Optional[List["CompletionRecord"]] = None) -> Habit:
        habit = Habit.model_validate(self.model_dump())
        if completions is not None:
            habit.completions = [row.to_domain() for row in completions]
        return habit


class CompletionRecord(CompletionBase, table=True):
    """Row in the ``habit_completion`` table."""

    __tablename__: ClassVar[str] = "habit_completion"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    habit_id: str = Field(foreign_key="habit.id", index=True, nullable=False)

    habit: Optional[HabitRecord] = Relationship(back_populates="completions")

    def to_domain(self) -> Completion:
        return Completion.model_validate(self.model_dump())


__all__ = ["CompletionRecord", "HabitRecord"]
