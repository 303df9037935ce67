"""Storage layer for the exercise catalog.

Provides repository interfaces and SQLite implementations for persisting
validated exercises and learner progress.
"""

from pathlib import Path

from .base import ExerciseRepository, ProgressRepository
from .sqlite import SQLiteExerciseRepository, SQLiteProgressRepository
from .connection import get_connection, init_schema, DEFAULT_DB_PATH

__all__ = [
    # Abstract interfaces
    "ExerciseRepository",
    "ProgressRepository",
    # SQLite implementations
    "SQLiteExerciseRepository",
    "SQLiteProgressRepository",
    # Connection utilities
    "get_connection",
    "init_schema",
    "DEFAULT_DB_PATH",
    # Factory functions
    "get_exercise_repo",
    "get_progress_repo",
]


def get_exercise_repo(db_path: Path = DEFAULT_DB_PATH) -> ExerciseRepository:
    """Get an ExerciseRepository instance."""
    return SQLiteExerciseRepository(db_path)


def get_progress_repo(db_path: Path = DEFAULT_DB_PATH) -> ProgressRepository:
    """Get a ProgressRepository instance."""
    return SQLiteProgressRepository(db_path)
