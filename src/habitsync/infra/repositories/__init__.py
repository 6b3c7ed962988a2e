"""Concrete repository implementations, one per backend."""

from .appwrite import AppwriteHabitRepository
from .habit import SQLModelHabitRepository
from .local import JsonFileHabitRepository
from .rest import RestApiHabitRepository

__all__ = [
    "AppwriteHabitRepository",
    "JsonFileHabitRepository",
    "RestApiHabitRepository",
    "SQLModelHabitRepository",
]
