"""Backend-agnostic contracts consumed by the habits facade."""

from .repositories import CompletionRepository, HabitRepository, Repository
from .stores import HabitStore

__all__ = ["CompletionRepository", "HabitRepository", "HabitStore", "Repository"]
