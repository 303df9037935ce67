"""Per-learner progress tracking with spaced review of completed exercises.

Progress records are the only state mutated at runtime; exercise
definitions are never touched here. Once an exercise is completed it gets an
FSRS card, and every later submission counts as a review of it.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

import fsrs
from pydantic import BaseModel

from models import ExerciseProgress, ProgressStatus, Submission, ValidationResult
from storage.base import ProgressRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionOutcome(BaseModel):
    progress: ExerciseProgress
    is_first_attempt: bool
    is_new_completion: bool


class ProgressTracker:
    """Records submissions and schedules reviews for one progress store."""

    def __init__(
        self,
        repository: ProgressRepository,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.clock = clock

    def record_submission(
        self,
        user_id: str,
        exercise_id: str,
        code: str,
        result: ValidationResult,
        time_spent: int = 0,
        hints_used: int = 0,
    ) -> SubmissionOutcome:
        """Store a judged submission and update the learner's progress.

        Args:
            user_id: The learner.
            exercise_id: The exercise the code was submitted for.
            code: The submitted source text.
            result: The validation result for the submission.
            time_spent: Seconds spent on this attempt.
            hints_used: Hints revealed during this attempt.
        """
        now = self.clock()
        progress = self.repository.get_progress(user_id, exercise_id)
        if progress is None:
            progress = ExerciseProgress(user_id=user_id, exercise_id=exercise_id)

        is_first_attempt = progress.attempts == 0
        was_completed = progress.is_completed

        progress.attempts += 1
        progress.best_score = max(progress.best_score, result.score)
        progress.hints_used = max(progress.hints_used, hints_used)
        progress.time_spent += time_spent
        progress.last_attempt_at = now
        if progress.first_attempt_at is None:
            progress.first_attempt_at = now

        if result.passed and not was_completed:
            progress.status = ProgressStatus.COMPLETED
            progress.completed_at = now
        elif not progress.is_completed:
            progress.status = ProgressStatus.IN_PROGRESS

        if progress.is_completed:
            rating = fsrs.Rating.Good if result.passed else fsrs.Rating.Again
            progress.process_review(rating)

        self.repository.add_submission(
            Submission(
                user_id=user_id,
                exercise_id=exercise_id,
                code=code,
                passed=result.passed,
                score=result.score,
                time_spent=time_spent,
                hints_used=hints_used,
                submitted_at=now,
            )
        )
        self.repository.save_progress(progress)

        is_new_completion = progress.is_completed and not was_completed
        if is_new_completion:
            logger.info("User %s completed exercise %s", user_id, exercise_id)

        return SubmissionOutcome(
            progress=progress,
            is_first_attempt=is_first_attempt,
            is_new_completion=is_new_completion,
        )

    def due_for_review(self, user_id: str) -> list[str]:
        """Ids of completed exercises whose review is due, most overdue first."""
        due = [p for p in self.repository.get_all_progress(user_id) if p.is_due]
        due.sort(key=lambda p: p.review_state.due)
        return [p.exercise_id for p in due]

    def summary(self, user_id: str) -> dict[str, float | int]:
        records = self.repository.get_all_progress(user_id)
        completed = [p for p in records if p.is_completed]
        return {
            "attempted": len(records),
            "completed": len(completed),
            "total_attempts": sum(p.attempts for p in records),
            "total_time_spent": sum(p.time_spent for p in records),
            "average_best_score": (
                sum(p.best_score for p in records) / len(records) if records else 0.0
            ),
        }
