"""Repository protocol definitions for domain layer."""

from .habit import CompletionRepository, HabitRepository, Repository

__all__ = ["CompletionRepository", "HabitRepository", "Repository"]
