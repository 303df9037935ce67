"""SQLite implementations of repository interfaces."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path

from .base import ExerciseRepository, ProgressRepository
from .connection import get_connection, DEFAULT_DB_PATH
from models import (
    Exercise,
    ExerciseProgress,
    ProgressStatus,
    ReviewState,
    Submission,
)


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteExerciseRepository(ExerciseRepository):
    """SQLite implementation of ExerciseRepository."""

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = db_path

    def add(self, exercise: Exercise) -> None:
        """Add a new exercise."""
        conn = get_connection(self.db_path)
        try:
            self._insert(conn, exercise)
            conn.commit()
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Exercise '{exercise.id}' already exists") from exc
        finally:
            conn.close()

    def save(self, exercise: Exercise) -> None:
        """Insert or replace an exercise."""
        conn = get_connection(self.db_path)
        try:
            self._insert(conn, exercise, replace=True)
            conn.commit()
        finally:
            conn.close()

    def get_by_id(self, exercise_id: str) -> Exercise | None:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT document FROM exercises WHERE id = ?", (exercise_id,)
            )
            row = cursor.fetchone()
            return self._row_to_model(row) if row else None
        finally:
            conn.close()

    def get_all(self) -> list[Exercise]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("SELECT document FROM exercises ORDER BY id")
            return [self._row_to_model(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_by_difficulty(self, difficulty: str) -> list[Exercise]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT document FROM exercises WHERE difficulty = ? ORDER BY id",
                (difficulty,),
            )
            return [self._row_to_model(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def delete(self, exercise_id: str) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("DELETE FROM exercises WHERE id = ?", (exercise_id,))
            conn.commit()
        finally:
            conn.close()

    def _row_to_model(self, row) -> Exercise:
        """Convert a database row to an Exercise model."""
        return Exercise.model_validate(json.loads(row["document"]))

    def _insert(self, conn, exercise: Exercise, replace: bool = False) -> None:
        sql = "INSERT OR REPLACE" if replace else "INSERT"
        conn.execute(
            f"""{sql} INTO exercises
            (id, title, difficulty, type, source, review_status, document)
            VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                exercise.id,
                exercise.title,
                exercise.difficulty.value,
                exercise.type.value,
                exercise.metadata.source,
                exercise.metadata.review_status.value,
                json.dumps(exercise.to_document(), ensure_ascii=False),
            ),
        )


class SQLiteProgressRepository(ProgressRepository):
    """SQLite implementation of ProgressRepository."""

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = db_path

    def get_progress(self, user_id: str, exercise_id: str) -> ExerciseProgress | None:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT * FROM exercise_progress WHERE user_id = ? AND exercise_id = ?",
                (user_id, exercise_id),
            )
            row = cursor.fetchone()
            return self._row_to_progress(row) if row else None
        finally:
            conn.close()

    def get_all_progress(self, user_id: str) -> list[ExerciseProgress]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT * FROM exercise_progress WHERE user_id = ? ORDER BY exercise_id",
                (user_id,),
            )
            return [self._row_to_progress(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def save_progress(self, progress: ExerciseProgress) -> None:
        """Save/update a progress record."""
        review = progress.review_state
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """INSERT OR REPLACE INTO exercise_progress
                (user_id, exercise_id, status, attempts, best_score, hints_used,
                 time_spent, first_attempt_at, last_attempt_at, completed_at,
                 stability, difficulty, due, last_review, state, step)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    progress.user_id,
                    progress.exercise_id,
                    progress.status.value,
                    progress.attempts,
                    progress.best_score,
                    progress.hints_used,
                    progress.time_spent,
                    _isoformat(progress.first_attempt_at),
                    _isoformat(progress.last_attempt_at),
                    _isoformat(progress.completed_at),
                    review.stability if review else None,
                    review.difficulty if review else None,
                    _isoformat(review.due) if review else None,
                    _isoformat(review.last_review) if review else None,
                    review.state if review else 1,
                    review.step if review else None,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def add_submission(self, submission: Submission) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """INSERT INTO submissions
                (user_id, exercise_id, code, passed, score, time_spent,
                 hints_used, submitted_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    submission.user_id,
                    submission.exercise_id,
                    submission.code,
                    int(submission.passed),
                    submission.score,
                    submission.time_spent,
                    submission.hints_used,
                    submission.submitted_at.isoformat(),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def get_submissions(
        self, user_id: str, exercise_id: str | None = None
    ) -> list[Submission]:
        conn = get_connection(self.db_path)
        try:
            if exercise_id is None:
                cursor = conn.execute(
                    "SELECT * FROM submissions WHERE user_id = ? ORDER BY id",
                    (user_id,),
                )
            else:
                cursor = conn.execute(
                    """SELECT * FROM submissions
                    WHERE user_id = ? AND exercise_id = ? ORDER BY id""",
                    (user_id, exercise_id),
                )
            return [self._row_to_submission(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def _row_to_progress(self, row) -> ExerciseProgress:
        """Convert a database row to an ExerciseProgress model."""
        review_state = None
        # Only completed exercises carry a review card
        if row["stability"] is not None or row["due"] is not None:
            review_state = ReviewState(
                stability=row["stability"],
                difficulty=row["difficulty"],
                due=_parse(row["due"]),
                last_review=_parse(row["last_review"]),
                state=row["state"],
                step=row["step"],
            )
        return ExerciseProgress(
            user_id=row["user_id"],
            exercise_id=row["exercise_id"],
            status=ProgressStatus(row["status"]),
            attempts=row["attempts"],
            best_score=row["best_score"],
            hints_used=row["hints_used"],
            time_spent=row["time_spent"],
            first_attempt_at=_parse(row["first_attempt_at"]),
            last_attempt_at=_parse(row["last_attempt_at"]),
            completed_at=_parse(row["completed_at"]),
            review_state=review_state,
        )

    def _row_to_submission(self, row) -> Submission:
        return Submission(
            user_id=row["user_id"],
            exercise_id=row["exercise_id"],
            code=row["code"],
            passed=bool(row["passed"]),
            score=row["score"],
            time_spent=row["time_spent"],
            hints_used=row["hints_used"],
            submitted_at=datetime.fromisoformat(row["submitted_at"]),
        )
