"""Abstract repository interfaces for the storage layer."""

from abc import ABC, abstractmethod

from models import Exercise, ExerciseProgress, Submission


class ExerciseRepository(ABC):
    """Abstract interface for the exercise catalog."""

    @abstractmethod
    def add(self, exercise: Exercise) -> None:
        """Add a new exercise.

        Args:
            exercise: The exercise to add.

        Raises:
            ValueError: If an exercise with the same ID already exists.
        """
        pass

    @abstractmethod
    def save(self, exercise: Exercise) -> None:
        """Insert or replace an exercise.

        Args:
            exercise: The exercise to save.
        """
        pass

    @abstractmethod
    def get_by_id(self, exercise_id: str) -> Exercise | None:
        """Load a single exercise by ID.

        Args:
            exercise_id: The exercise ID.

        Returns:
            The exercise, or None if not found.
        """
        pass

    @abstractmethod
    def get_all(self) -> list[Exercise]:
        """Load all exercises, ordered by ID."""
        pass

    @abstractmethod
    def get_by_difficulty(self, difficulty: str) -> list[Exercise]:
        """Load exercises of one difficulty level."""
        pass

    @abstractmethod
    def delete(self, exercise_id: str) -> None:
        pass


class ProgressRepository(ABC):
    """Abstract interface for learner progress storage."""

    @abstractmethod
    def get_progress(self, user_id: str, exercise_id: str) -> ExerciseProgress | None:
        """Get progress for one user and exercise.

        Returns:
            The progress record, or None if the user never attempted it.
        """
        pass

    @abstractmethod
    def get_all_progress(self, user_id: str) -> list[ExerciseProgress]:
        pass

    @abstractmethod
    def save_progress(self, progress: ExerciseProgress) -> None:
        """Save/update a progress record."""
        pass

    @abstractmethod
    def add_submission(self, submission: Submission) -> None:
        pass

    @abstractmethod
    def get_submissions(
        self, user_id: str, exercise_id: str | None = None
    ) -> list[Submission]:
        """Get a user's submissions, oldest first.

        Args:
            user_id: The user ID.
            exercise_id: If provided, only submissions for this exercise.
        """
        pass
