from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

import fsrs

_scheduler = fsrs.Scheduler()


def get_scheduler() -> fsrs.Scheduler:
    """Get the global FSRS scheduler instance."""
    return _scheduler


class CamelModel(BaseModel):
    """Base for every wire-format model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Enumerations
# ============================================================================


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class ExerciseType(str, Enum):
    TUTORIAL = "tutorial"
    PRACTICE = "practice"
    CHALLENGE = "challenge"
    DEBUG = "debug"
    ASSESSMENT = "assessment"
    BUILD = "build"


class ValidationStrategy(str, Enum):
    """Named algorithms used to judge submitted code."""

    EXACT_MATCH = "exact-match"
    PATTERN_MATCH = "pattern-match"
    SEMANTIC_MATCH = "semantic-match"
    CUSTOM_FUNCTION = "custom-function"
    EXECUTION_RESULT = "execution-result"


class ReviewStatus(str, Enum):
    DRAFT = "draft"
    REVIEW = "review"
    APPROVED = "approved"


class ResourceKind(str, Enum):
    DOCUMENTATION = "documentation"
    EXAMPLE = "example"
    VIDEO = "video"
    ARTICLE = "article"
    REFERENCE = "reference"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class SourceStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class ProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# ============================================================================
# Exercise Document
# ============================================================================


class Hint(CamelModel):
    """A progressive hint. Levels start at 1 and are revealed in order."""

    level: int = Field(ge=1)
    text: str
    code: str | None = None
    explanation: str | None = None


class Resource(CamelModel):
    title: str
    url: str
    type: ResourceKind = ResourceKind.DOCUMENTATION


class ExerciseContent(CamelModel):
    instructions: str
    background: str | None = None
    hints: list[Hint] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)


class ExerciseFile(CamelModel):
    name: str = Field(min_length=1)
    template: str = ""
    solution: str | None = None  # Reference answer, None when not provided
    readonly: bool = False
    hidden: bool = False
    language: str = "cql"

    @field_validator("solution")
    @classmethod
    def _empty_solution_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


class ValidationPattern(CamelModel):
    pattern: str
    description: str = ""
    required: bool = False
    points: int = Field(default=10, ge=0)


class NormalizationOptions(CamelModel):
    ignore_whitespace: bool = False
    ignore_case: bool = False
    ignore_comments: bool = False


class TestCase(CamelModel):
    __test__ = False  # not a pytest class

    input: Any = None
    expected: Any = None
    description: str = ""


class ValidationSpec(CamelModel):
    """How an exercise judges submitted code.

    ``custom_validator`` is a name into a registry of validator callables,
    never code. Migrated legacy predicates are kept as opaque text in
    ``legacy_predicate`` with ``needs_manual_port`` set.
    """

    strategy: ValidationStrategy
    patterns: list[ValidationPattern] | None = None
    test_cases: list[TestCase] | None = None
    custom_validator: str | None = None
    legacy_predicate: str | None = None
    needs_manual_port: bool = False
    passing_score: int | None = Field(default=None, ge=0, le=100)
    normalization: NormalizationOptions = Field(default_factory=NormalizationOptions)
    time_limit: int | None = Field(default=None, ge=1)


class CommonError(CamelModel):
    pattern: str  # Trigger, a regular expression
    explanation: str
    suggestion: str = ""
    example: str = ""


class ExerciseFeedback(CamelModel):
    success: str = "Great job! You completed this exercise."
    failure: str = "Not quite right yet. Review the instructions and try again."
    common_errors: list[CommonError] = Field(default_factory=list)


class AnalyticsSpec(CamelModel):
    tracking_enabled: bool = True
    events: list[str] = Field(
        default_factory=lambda: ["start", "complete", "hint-used", "error-encountered"]
    )
    learning_objectives: list[str] = Field(default_factory=list)
    clinical_domain: str | None = None


class ExerciseMetadata(CamelModel):
    author: str | None = None
    created: datetime | None = None
    modified: datetime | None = None
    source: str | None = None
    license: str | None = None
    review_status: ReviewStatus = ReviewStatus.DRAFT
    # Derived, never authoritative. Recomputed by the quality checker.
    quality_score: int | None = Field(default=None, ge=0, le=100)
    extra: dict[str, Any] = Field(default_factory=dict)


class Exercise(CamelModel):
    """A self-contained learning unit with instructions, starter code and validation rules."""

    id: str = Field(min_length=1)
    version: str = "1.0.0"
    title: str = Field(min_length=1)
    description: str
    difficulty: Difficulty
    estimated_time: int = Field(ge=1)
    prerequisites: list[str] = Field(default_factory=list)
    concepts: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    type: ExerciseType
    content: ExerciseContent
    files: list[ExerciseFile]
    validation: ValidationSpec
    feedback: ExerciseFeedback = Field(default_factory=ExerciseFeedback)
    analytics: AnalyticsSpec | None = None
    metadata: ExerciseMetadata = Field(default_factory=ExerciseMetadata)

    def to_document(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON document format."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @property
    def reference_solution(self) -> str | None:
        """The first file's reference solution, if any."""
        for file in self.files:
            if file.solution is not None:
                return file.solution
        return None


# ============================================================================
# Validation and Assessment Results
# ============================================================================


class SchemaError(CamelModel):
    path: str
    message: str
    severity: Severity = Severity.ERROR


class SchemaValidationResult(CamelModel):
    success: bool
    errors: list[SchemaError] = Field(default_factory=list)
    warnings: list[SchemaError] = Field(default_factory=list)


class Recommendation(CamelModel):
    priority: str  # critical, high, medium, low
    type: str
    message: str
    actions: list[str] = Field(default_factory=list)
    exercise_id: str | None = None


class QualityReport(CamelModel):
    quality_score: int = Field(ge=0, le=100)
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)


class PatternResult(CamelModel):
    pattern: str
    description: str = ""
    matched: bool
    required: bool = False
    points_awarded: int = 0


class ValidationResult(CamelModel):
    """Outcome of judging one submission. Produced per submission, never stored on the exercise."""

    passed: bool
    score: int = Field(ge=0, le=100)
    feedback: list[str] = Field(default_factory=list)
    pattern_results: list[PatternResult] = Field(default_factory=list)
    strategy: ValidationStrategy | None = None

    @classmethod
    def failure(cls, message: str, strategy: ValidationStrategy | None = None):
        return cls(passed=False, score=0, feedback=[message], strategy=strategy)


class MigrationResult(CamelModel):
    index: int
    exercise: Exercise
    validation: SchemaValidationResult
    quality: QualityReport
    valid: bool


class ProcessingFailure(CamelModel):
    """An exercise dropped by the enhancement pass, with the phase that failed."""

    exercise_id: str
    title: str = ""
    phase: str  # enhance, quality, validation
    errors: list[str] = Field(default_factory=list)


class LogEntry(BaseModel):
    timestamp: datetime
    level: str  # debug, info, success, warning, error
    message: str
    details: Any = None


# ============================================================================
# Code Execution Outcomes
# ============================================================================


class ExecutionOutcome(CamelModel):
    """One per-expression result returned by the code-execution service."""

    name: str
    location: str | None = None
    result_type: str | None = None
    result: Any = None
    error: str | None = None
    translator_error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.translator_error is None


# ============================================================================
# FSRS and Progress Models
# ============================================================================


class ReviewState(BaseModel):
    """
    Stores FSRS card state for spaced review of a completed exercise. These
    fields mirror the py-fsrs Card class but are stored as primitives for
    JSON serialization with Pydantic.
    """

    stability: float | None = None
    difficulty: float | None = None
    due: datetime | None = None
    last_review: datetime | None = None
    state: int = 1  # 1=Learning, 2=Review, 3=Relearning
    step: int | None = 0  # Learning step (None when in Review state)

    def to_card(self) -> fsrs.Card:
        """Convert our ReviewState model to a py-fsrs Card object."""
        card = fsrs.Card()
        card.stability = self.stability
        card.difficulty = self.difficulty
        if self.due:
            card.due = self.due.replace(tzinfo=timezone.utc)

        if self.last_review:
            card.last_review = self.last_review.replace(tzinfo=timezone.utc)

        card.state = fsrs.State(self.state)
        card.step = self.step
        return card

    @classmethod
    def from_fsrs_card(cls, card: fsrs.Card) -> "ReviewState":
        """Convert a py-fsrs Card object to our ReviewState model."""
        return cls(
            stability=card.stability,
            difficulty=card.difficulty,
            due=card.due.replace(tzinfo=None) if card.due else None,
            last_review=card.last_review.replace(tzinfo=None)
            if card.last_review
            else None,
            state=card.state.value,
            step=card.step,
        )


class ExerciseProgress(BaseModel):
    user_id: str
    exercise_id: str
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    attempts: int = 0
    best_score: int = 0
    hints_used: int = 0
    time_spent: int = 0  # seconds
    first_attempt_at: datetime | None = None
    last_attempt_at: datetime | None = None
    completed_at: datetime | None = None
    review_state: ReviewState | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED

    @property
    def is_due(self) -> bool:
        """Check if a completed exercise is due for review."""
        if self.review_state is None or self.review_state.due is None:
            return False

        now = datetime.now(timezone.utc)
        due = self.review_state.due
        if due.tzinfo is None:
            due = due.replace(tzinfo=timezone.utc)
        return now >= due

    @property
    def retrievability(self) -> float | None:
        """
        Probability the learner still recalls the exercise.
        Returns None until the exercise has been completed once.
        """
        if self.review_state is None:
            return None
        return get_scheduler().get_card_retrievability(self.review_state.to_card())

    def process_review(self, rating: fsrs.Rating) -> fsrs.ReviewLog:
        """Advance the review card with the given rating, creating it if needed."""
        card = self.review_state.to_card() if self.review_state else fsrs.Card()
        card, review_log = get_scheduler().review_card(card, rating)
        self.review_state = ReviewState.from_fsrs_card(card)
        return review_log


class Submission(BaseModel):
    user_id: str
    exercise_id: str
    code: str
    passed: bool
    score: int = Field(ge=0, le=100)
    time_spent: int = 0
    hints_used: int = 0
    submitted_at: datetime = Field(default_factory=datetime.now)
