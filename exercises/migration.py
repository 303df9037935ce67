"""Migration of legacy exercise records into the structured exercise schema.

Legacy records are flat: a name, HTML content chunks and a list of editor
tabs, each tab holding a template, a key (the answer) and sometimes an
``eval`` predicate. The transformer infers everything else (difficulty,
time, concepts, tags, hints, common errors) from that text.

The transformer does not validate its own output. ``migrate_batch`` runs the
schema validator and quality checker afterwards.
"""

import logging
import math
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from models import (
    AnalyticsSpec,
    CommonError,
    Difficulty,
    Exercise,
    ExerciseContent,
    ExerciseFeedback,
    ExerciseFile,
    ExerciseMetadata,
    ExerciseType,
    Hint,
    MigrationResult,
    Recommendation,
    ReviewStatus,
    ValidationPattern,
    ValidationSpec,
    ValidationStrategy,
)

from .base import escape_regex, flatten_content, slugify, unique_id
from .config import MigrationConfig
from .quality import QualityChecker
from .schema_validator import SchemaValidator

logger = logging.getLogger(__name__)

MIGRATION_AUTHOR = "CQL Code Clinic Migration"
MIGRATION_SOURCE = "Legacy exercise store"
MIGRATION_LICENSE = "CC-BY-4.0"
INFERRED_PREREQUISITES_TAG = "inferred-prerequisites"

# Concept -> keywords, scanned in order against title and content.
CONCEPT_KEYWORDS: dict[str, list[str]] = {
    "whitespace": ["whitespace", "space", "tab"],
    "comments": ["comment", "//"],
    "operators": [
        "operator", "comparison", "arithmetic",
        "+", "-", "*", "/", "=", "!=", "<", ">",
    ],
    "syntax": ["syntax", "grammar", "structure"],
    "expressions": ["expression", "define"],
    "identifiers": ["identifier", "name", "variable"],
    "case-sensitivity": ["case", "sensitive", "upper", "lower"],
    "literals": ["literal", "string", "number"],
    "types": ["type", "string", "integer", "boolean"],
    "functions": ["function", "call"],
    "logic": ["and", "or", "not", "logic"],
    "comparisons": ["compare", "equal", "greater", "less"],
}

LEARNING_OBJECTIVES = [
    (("whitespace",), "Understand CQL whitespace handling"),
    (("comment",), "Learn to use CQL comment syntax"),
    (("operator",), "Master CQL operators and expressions"),
    (("case-sensitive",), "Understand CQL case sensitivity rules"),
]

FILE_LANGUAGES = {
    "cql": "cql",
    "md": "markdown",
    "json": "json",
    "txt": "text",
}


def _text_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


class LegacyTab(BaseModel):
    """One editor tab of a legacy exercise."""

    name: str | None = None
    template: str = ""
    key: str | None = None
    solution: str | None = None
    eval: str | None = None  # Predicate source text, never executed

    @model_validator(mode="before")
    @classmethod
    def _mapping_or_empty(cls, data: Any) -> Any:
        return data if isinstance(data, dict) else {}

    @field_validator("name", "key", "solution", "eval", mode="before")
    @classmethod
    def _unusable_is_none(cls, value: Any) -> str | None:
        return _text_or_none(value)

    @field_validator("template", mode="before")
    @classmethod
    def _unusable_is_blank(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @property
    def answer(self) -> str:
        return self.key or self.solution or ""


class LegacyExercise(BaseModel):
    """A record from the legacy exercise store.

    Unusable values (wrong types, non-list tabs) are dropped rather than
    rejected, so a malformed record still migrates to a placeholder exercise.
    """

    name: str | None = None
    description: str | None = None
    content: str | list[str] | None = None
    tabs: list[LegacyTab] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _mapping_or_empty(cls, data: Any) -> Any:
        return data if isinstance(data, dict) else {}

    @field_validator("name", "description", mode="before")
    @classmethod
    def _unusable_is_none(cls, value: Any) -> str | None:
        return _text_or_none(value)

    @field_validator("content", mode="before")
    @classmethod
    def _text_chunks(cls, value: Any) -> str | list[str] | None:
        if isinstance(value, list):
            return [chunk for chunk in value if isinstance(chunk, str)]
        return _text_or_none(value)

    @field_validator("tabs", mode="before")
    @classmethod
    def _list_or_empty(cls, value: Any) -> list:
        return value if isinstance(value, list) else []

    @property
    def text(self) -> str:
        return flatten_content(self.content)

    @property
    def searchable_text(self) -> str:
        """Lowercased title and content, used by every keyword heuristic."""
        return f"{self.name or ''} {self.text}".lower()

    @property
    def first_tab(self) -> LegacyTab | None:
        return self.tabs[0] if self.tabs else None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MigrationTransformer:
    """Converts legacy records into Exercise documents."""

    def __init__(
        self,
        config: MigrationConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or MigrationConfig()
        self.clock = clock

    def migrate(
        self,
        record: LegacyExercise | dict[str, Any],
        index: int,
        preceding_ids: list[str] | None = None,
    ) -> Exercise:
        """Migrate one legacy record.

        Args:
            record: The legacy record or its raw JSON form.
            index: Position of the record in the legacy collection.
            preceding_ids: Ids of the records migrated before this one, in
                order. When omitted, positional ``legacy-exercise-<n>`` ids
                are assumed.

        Returns:
            A structurally valid Exercise with review status ``review``.
        """
        if not isinstance(record, LegacyExercise):
            record = LegacyExercise.model_validate(record)

        difficulty = self.infer_difficulty(record, index)
        concepts = self.infer_concepts(record)
        now = self.clock()

        return Exercise(
            id=self.generate_id(record, index),
            title=record.name or f"Exercise {index + 1}",
            description=record.description or "Legacy exercise migration",
            difficulty=difficulty,
            estimated_time=self.estimate_time(record),
            prerequisites=self.infer_prerequisites(index, preceding_ids),
            concepts=concepts,
            tags=self.generate_tags(index, difficulty, concepts),
            type=self.infer_type(record),
            content=ExerciseContent(
                instructions=flatten_content(record.content, "\n\n")
                or "No instructions available",
                hints=self.generate_hints(record),
            ),
            files=self.migrate_files(record.tabs),
            validation=self.migrate_validation(record),
            feedback=ExerciseFeedback(
                success=(
                    f'Excellent work! You\'ve successfully completed "{record.name or "Exercise"}". '
                    "Keep up the great learning!"
                ),
                failure=(
                    "Not quite right yet. Review the instructions and try again. "
                    "Remember, learning takes practice!"
                ),
                common_errors=self.extract_common_errors(record),
            ),
            analytics=AnalyticsSpec(
                learning_objectives=self.extract_learning_objectives(record)
            ),
            metadata=ExerciseMetadata(
                author=MIGRATION_AUTHOR,
                created=now,
                modified=now,
                source=MIGRATION_SOURCE,
                license=MIGRATION_LICENSE,
                review_status=ReviewStatus.REVIEW,
            ),
        )

    def migrate_batch(
        self,
        records: Iterable[LegacyExercise | dict[str, Any]],
        validator: SchemaValidator | None = None,
        checker: QualityChecker | None = None,
    ) -> dict[str, Any]:
        """Migrate, validate and score a legacy collection.

        Returns:
            A dict with ``exercises`` (valid ones only), ``results``,
            ``summary`` and ``recommendations``.
        """
        validator = validator or SchemaValidator()
        checker = checker or QualityChecker()
        records = list(records)
        logger.info("Starting migration of %d exercises", len(records))

        results: list[MigrationResult] = []
        migrated_ids: list[str] = []
        for index, record in enumerate(records):
            exercise = self.migrate(record, index, preceding_ids=migrated_ids)
            exercise_id = unique_id(exercise.id, set(migrated_ids))
            if exercise_id != exercise.id:
                logger.warning("Renamed duplicate id %s to %s", exercise.id, exercise_id)
                exercise = exercise.model_copy(update={"id": exercise_id})
            exercise = checker.with_recomputed_score(exercise)
            migrated_ids.append(exercise.id)

            validation = validator.validate(exercise)
            quality = checker.assess(exercise)
            results.append(
                MigrationResult(
                    index=index,
                    exercise=exercise,
                    validation=validation,
                    quality=quality,
                    valid=validation.success,
                )
            )
            if not validation.success:
                logger.warning(
                    "Migrated exercise %s failed validation with %d errors",
                    exercise.id,
                    len(validation.errors),
                )

        exercises = [r.exercise for r in results if r.valid]
        collection = validator.validate_collection(exercises)
        summary = self._summarize(len(records), results)
        summary["collection_errors"] = [
            f"{error.path}: {error.message}" for error in collection.errors
        ]
        logger.info(
            "Migration completed: %d valid, %d invalid, average quality %.1f",
            summary["valid"],
            summary["invalid"],
            summary["average_quality"],
        )
        for message in summary["collection_errors"]:
            logger.warning("Migrated collection: %s", message)
        return {
            "exercises": exercises,
            "results": results,
            "summary": summary,
            "recommendations": self._recommendations(summary, results),
        }

    # ------------------------------------------------------------------
    # Inference heuristics
    # ------------------------------------------------------------------

    def generate_id(self, record: LegacyExercise, index: int) -> str:
        return slugify(record.name) or f"legacy-exercise-{index + 1}"

    def infer_difficulty(self, record: LegacyExercise, index: int) -> Difficulty:
        text = record.searchable_text
        if "advanced" in text or "complex" in text:
            return Difficulty.ADVANCED
        if "intermediate" in text:
            return Difficulty.INTERMEDIATE
        if "basic" in text or "simple" in text:
            return Difficulty.BEGINNER

        if index < 3:
            return Difficulty.BEGINNER
        if index > 5:
            return Difficulty.INTERMEDIATE
        return Difficulty.INTERMEDIATE if index < 5 else Difficulty.ADVANCED

    def estimate_time(self, record: LegacyExercise) -> int:
        config = self.config
        content_length = len(flatten_content(record.content, ""))
        minutes = max(
            config.min_estimated_time,
            math.ceil(content_length / 100) * config.minutes_per_100_chars,
        )

        template_length = len(record.first_tab.template) if record.first_tab else 0
        for threshold, bonus in zip(
            config.template_bonus_thresholds, config.template_bonus_minutes
        ):
            if template_length > threshold:
                minutes += bonus

        return min(config.max_estimated_time, minutes)

    def infer_prerequisites(
        self, index: int, preceding_ids: list[str] | None = None
    ) -> list[str]:
        if index == 0:
            return []
        if preceding_ids is None:
            preceding_ids = [f"legacy-exercise-{i + 1}" for i in range(index)]
        # Nearest predecessor first
        return list(reversed(preceding_ids[:index]))[: self.config.max_prerequisites]

    def infer_concepts(self, record: LegacyExercise) -> list[str]:
        text = record.searchable_text
        concepts = [
            concept
            for concept, keywords in CONCEPT_KEYWORDS.items()
            if any(keyword in text for keyword in keywords)
        ]
        if "syntax" not in concepts:
            concepts.insert(0, "syntax")
        return concepts[: self.config.max_concepts]

    def infer_type(self, record: LegacyExercise) -> ExerciseType:
        title = (record.name or "").lower()
        content = record.text.lower()
        if "tutorial" in title or "learn about" in content:
            return ExerciseType.TUTORIAL
        if "challenge" in title or "challenge" in content:
            return ExerciseType.CHALLENGE
        if "debug" in title or "fix" in content:
            return ExerciseType.DEBUG
        if "assessment" in title or "test" in title:
            return ExerciseType.ASSESSMENT
        return ExerciseType.PRACTICE

    def generate_tags(
        self, index: int, difficulty: Difficulty, concepts: list[str]
    ) -> list[str]:
        tags = ["legacy", "migrated", difficulty.value, *concepts[:3]]
        if index == 0:
            tags.extend(["first", "introduction"])
        if index < 3:
            tags.append("fundamentals")
        if index > 0:
            tags.append(INFERRED_PREREQUISITES_TAG)
        return list(dict.fromkeys(tags))

    def generate_hints(self, record: LegacyExercise) -> list[Hint]:
        answer = record.first_tab.answer if record.first_tab else ""
        hints = [
            Hint(
                level=1,
                text="Read the instructions carefully and identify what you need to accomplish.",
            ),
            Hint(
                level=2,
                text="Look at the code in the editor. What needs to be changed or added?",
            ),
        ]
        if "//" in answer or "/*" in answer:
            hints.append(
                Hint(
                    level=3,
                    text=(
                        "This exercise involves using comments. Remember the two types: "
                        "// for single-line and /* */ for multi-line."
                    ),
                )
            )
        elif any(op in answer for op in ("!=", "<=", ">=")):
            hints.append(
                Hint(
                    level=3,
                    text="Check the operators being used. Make sure they have the correct syntax.",
                )
            )
        hints.append(
            Hint(
                level=len(hints) + 1,
                text=(
                    "If you're stuck, try comparing your code with the expected "
                    "pattern in the instructions."
                ),
            )
        )
        return hints

    def migrate_files(self, tabs: list[LegacyTab]) -> list[ExerciseFile]:
        files = []
        seen: set[str] = set()
        for index, tab in enumerate(tabs):
            name = _unique_file_name(tab.name or f"exercise-{index + 1}.cql", seen)
            seen.add(name)
            files.append(
                ExerciseFile(
                    name=name,
                    template=tab.template,
                    solution=tab.answer or None,
                    language=file_language(name),
                )
            )
        return files

    def migrate_validation(self, record: LegacyExercise) -> ValidationSpec:
        tab = record.first_tab
        if tab is not None and tab.eval:
            logger.info(
                "Legacy predicate on %s needs a manual port",
                record.name or "unnamed exercise",
            )
            return ValidationSpec(
                strategy=ValidationStrategy.CUSTOM_FUNCTION,
                legacy_predicate=tab.eval,
                needs_manual_port=True,
                passing_score=self.config.default_passing_score,
            )

        patterns = []
        answer = tab.answer.strip() if tab is not None else ""
        if answer:
            patterns.append(
                ValidationPattern(
                    pattern=escape_regex(answer),
                    description="Code should match the expected solution pattern",
                    required=True,
                    points=100,
                )
            )
        return ValidationSpec(
            strategy=ValidationStrategy.PATTERN_MATCH,
            patterns=patterns,
            passing_score=self.config.default_passing_score,
        )

    def extract_common_errors(self, record: LegacyExercise) -> list[CommonError]:
        tab = record.first_tab
        answer = tab.answer if tab else ""
        template = tab.template if tab else ""
        errors = []

        if "<>" in template and "!=" in answer:
            errors.append(
                CommonError(
                    pattern="<>",
                    explanation="CQL uses != for inequality, not <>",
                    suggestion="Replace <> with !=",
                    example="4 != 5",
                )
            )
        if "< =" in template and "<=" in answer:
            errors.append(
                CommonError(
                    pattern="< =",
                    explanation="Comparison operators cannot have spaces",
                    suggestion="Remove the space between < and =",
                    example="4 <= 5",
                )
            )
        if "//" not in answer and "/*" not in answer and answer != template:
            errors.append(
                CommonError(
                    pattern="^[^/]*$",
                    explanation="The code needs to be commented out",
                    suggestion="Add // at the beginning or wrap with /* */",
                    example="// This is a comment",
                )
            )
        return errors

    def extract_learning_objectives(self, record: LegacyExercise) -> list[str]:
        text = record.searchable_text
        return [
            objective
            for keywords, objective in LEARNING_OBJECTIVES
            if any(keyword in text for keyword in keywords)
        ]

    # ------------------------------------------------------------------
    # Batch reporting
    # ------------------------------------------------------------------

    def _summarize(self, total: int, results: list[MigrationResult]) -> dict[str, Any]:
        scores = [r.quality.quality_score for r in results]
        valid = sum(1 for r in results if r.valid)
        return {
            "total": total,
            "migrated": len(results),
            "valid": valid,
            "invalid": len(results) - valid,
            "average_quality": sum(scores) / len(scores) if scores else 0.0,
            "high_quality": sum(
                1 for s in scores if s >= self.config.high_quality_threshold
            ),
            "needs_review": sum(
                1 for s in scores if s < self.config.needs_review_threshold
            ),
        }

    def _recommendations(
        self, summary: dict[str, Any], results: list[MigrationResult]
    ) -> list[Recommendation]:
        recommendations = []
        if summary.get("collection_errors"):
            recommendations.append(
                Recommendation(
                    priority="high",
                    type="collection",
                    message=(
                        f"{len(summary['collection_errors'])} problems across the "
                        "migrated collection"
                    ),
                    actions=list(summary["collection_errors"]),
                )
            )
        if summary["invalid"] > 0:
            recommendations.append(
                Recommendation(
                    priority="high",
                    type="validation",
                    message=f"{summary['invalid']} exercises failed validation",
                    actions=["Review and fix validation errors before proceeding"],
                )
            )
        if summary["needs_review"] > summary["total"] * 0.5:
            recommendations.append(
                Recommendation(
                    priority="medium",
                    type="quality",
                    message="Many exercises need quality improvements",
                    actions=["Review instructions, add hints, and improve validation"],
                )
            )
        if results and summary["average_quality"] < self.config.needs_review_threshold:
            recommendations.append(
                Recommendation(
                    priority="medium",
                    type="content",
                    message="Overall exercise quality is low",
                    actions=["Consider rewriting instructions and adding better examples"],
                )
            )

        for result in results:
            if result.exercise.validation.needs_manual_port:
                recommendations.append(
                    Recommendation(
                        priority="high",
                        type="manual-port",
                        message=(
                            f'Exercise "{result.exercise.title}" carries a legacy '
                            "predicate that must be ported to a registered validator"
                        ),
                        actions=["Implement and register a validator, then set customValidator"],
                        exercise_id=result.exercise.id,
                    )
                )
            if not result.valid or result.quality.quality_score < self.config.needs_review_threshold:
                recommendations.append(
                    Recommendation(
                        priority="medium",
                        type="individual",
                        message=f'Exercise "{result.exercise.title}" needs attention',
                        actions=["Review validation errors and quality suggestions"],
                        exercise_id=result.exercise.id,
                    )
                )
        return recommendations


def file_language(filename: str) -> str:
    """Language tag for a file name, by extension. Unknown extensions are CQL."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return FILE_LANGUAGES.get(extension, "cql")


def _unique_file_name(name: str, seen: set[str]) -> str:
    """Suffix a repeated file name before its extension: a.cql, a-2.cql, ..."""
    stem, dot, extension = name.rpartition(".")
    if not dot or not stem:
        stem, dot, extension = name, "", ""
    candidate = name
    suffix = 2
    while candidate in seen:
        candidate = f"{stem}-{suffix}{dot}{extension}"
        suffix += 1
    return candidate
