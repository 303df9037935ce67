"""Heuristic quality scoring for exercise content.

Scores start at 100 and lose points for each independent shortcoming. The
score is a pure function of the document: no randomness, no external calls.
It is recomputed on every pass and never read back from input metadata.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from models import Exercise, QualityReport, Recommendation

from .config import QualityConfig
from .schema_validator import SchemaValidator

CQL_LANGUAGE = "cql"


class QualityChecker:
    """Scores exercise content richness and suggests improvements."""

    def __init__(self, config: QualityConfig | None = None):
        self.config = config or QualityConfig()

    def assess(self, exercise: Exercise | Mapping[str, Any]) -> QualityReport:
        """Score an exercise.

        Args:
            exercise: An Exercise, or a raw document. Raw documents need not
                be structurally valid; whatever fields are readable are used.

        Returns:
            The score in [0, 100] with warnings, suggestions and recommendations.
        """
        document = exercise.to_document() if isinstance(exercise, Exercise) else exercise
        if not isinstance(document, Mapping):
            document = {}

        warnings: list[str] = []
        suggestions: list[str] = []
        score = 100

        content = _mapping(document.get("content"))
        instructions = content.get("instructions")
        instructions = instructions if isinstance(instructions, str) else ""

        if len(instructions) < self.config.min_instructions_length:
            warnings.append("Instructions are very short - consider adding more detail")
            score -= 10

        if "```" not in instructions and "<pre>" not in instructions:
            suggestions.append("Consider adding code examples to the instructions")
            score -= 5

        if "![" not in instructions and "<img" not in instructions:
            suggestions.append("Consider adding diagrams or images to enhance learning")
            score -= 3

        hints = _list(content.get("hints"))
        if not hints:
            suggestions.append(
                "Consider adding progressive hints to help struggling learners"
            )
            score -= 10
        elif len(hints) < self.config.recommended_hint_count:
            suggestions.append(
                "Consider adding more hint levels for better progressive disclosure"
            )
            score -= 5

        validation = _mapping(document.get("validation"))
        if not (
            _list(validation.get("patterns"))
            or _list(validation.get("testCases"))
            or validation.get("customValidator")
        ):
            warnings.append(
                "Exercise has weak validation - consider adding test cases or patterns"
            )
            score -= 15

        if validation.get("strategy") == "exact-match":
            suggestions.append(
                "Consider using pattern-match or semantic-match for more flexible validation"
            )
            score -= 5

        files = [_mapping(f) for f in _list(document.get("files"))]
        if not any(_is_cql_file(f) for f in files):
            warnings.append(
                "Exercise has no CQL files - this may not be appropriate for CQL learning"
            )
            score -= 20

        if not any(f.get("solution") for f in files):
            suggestions.append(
                "Consider providing reference solutions for comparison and validation"
            )
            score -= 8

        difficulty = document.get("difficulty")
        if difficulty in ("intermediate", "advanced") and not _list(
            document.get("prerequisites")
        ):
            suggestions.append(
                "Consider adding prerequisites for intermediate/advanced exercises"
            )
            score -= 5

        if len(_list(document.get("concepts"))) == 1:
            suggestions.append("Consider whether this exercise teaches additional concepts")
            score -= 3

        feedback = _mapping(document.get("feedback"))
        if not _list(feedback.get("commonErrors")):
            suggestions.append("Consider adding common error patterns and explanations")
            score -= 10

        score = max(0, min(100, score))
        return QualityReport(
            quality_score=score,
            warnings=warnings,
            suggestions=suggestions,
            recommendations=self._recommendations(difficulty, score),
        )

    def score(self, exercise: Exercise | Mapping[str, Any]) -> int:
        return self.assess(exercise).quality_score

    def with_recomputed_score(self, exercise: Exercise) -> Exercise:
        """Return a copy of the exercise with its metadata quality score recomputed."""
        metadata = exercise.metadata.model_copy(
            update={"quality_score": self.score(exercise)}
        )
        return exercise.model_copy(update={"metadata": metadata})

    def _recommendations(self, difficulty: Any, score: int) -> list[Recommendation]:
        recommendations: list[Recommendation] = []

        if score < self.config.needs_improvement_threshold:
            recommendations.append(
                Recommendation(
                    priority="high",
                    type="quality",
                    message="This exercise needs significant improvement before publication",
                    actions=[
                        "Review and expand instructions",
                        "Add comprehensive validation",
                        "Include progressive hints",
                        "Test with actual learners",
                    ],
                )
            )
        elif score < self.config.high_quality_threshold:
            recommendations.append(
                Recommendation(
                    priority="medium",
                    type="enhancement",
                    message="This exercise is good but could be enhanced",
                    actions=[
                        "Add more detailed feedback",
                        "Consider additional test cases",
                        "Enhance visual presentation",
                    ],
                )
            )

        if difficulty == "beginner":
            recommendations.append(
                Recommendation(
                    priority="medium",
                    type="pedagogy",
                    message="For beginner exercises, ensure extra support",
                    actions=[
                        "Provide detailed step-by-step instructions",
                        "Include plenty of examples",
                        "Add extensive hints and explanations",
                    ],
                )
            )

        return recommendations


def validate_batch(
    documents: Iterable[Exercise | Mapping[str, Any]],
    validator: SchemaValidator | None = None,
    checker: QualityChecker | None = None,
) -> dict[str, Any]:
    """Run schema validation and quality checks over a batch.

    Returns:
        A dict with per-item ``results``, a ``summary`` and batch-level
        ``recommendations``.
    """
    validator = validator or SchemaValidator()
    checker = checker or QualityChecker()

    results = []
    for index, document in enumerate(documents):
        validation = validator.validate(document)
        quality = checker.assess(document)
        if isinstance(document, Exercise):
            exercise_id = document.id
        else:
            exercise_id = _mapping(document).get("id") or f"exercise-{index}"
        results.append(
            {
                "index": index,
                "id": exercise_id,
                "validation": validation,
                "quality": quality,
                "valid": validation.success,
                "quality_score": quality.quality_score,
            }
        )

    total = len(results)
    valid = sum(1 for r in results if r["valid"])
    summary = {
        "total": total,
        "valid": valid,
        "invalid": total - valid,
        "average_quality": (
            sum(r["quality_score"] for r in results) / total if total else 0.0
        ),
        "high_quality": sum(
            1
            for r in results
            if r["quality_score"] >= checker.config.high_quality_threshold
        ),
        "needs_improvement": sum(
            1
            for r in results
            if r["quality_score"] < checker.config.needs_improvement_threshold
        ),
    }

    return {
        "results": results,
        "summary": summary,
        "recommendations": batch_recommendations(summary),
    }


def batch_recommendations(summary: dict[str, Any]) -> list[Recommendation]:
    recommendations: list[Recommendation] = []

    if summary["invalid"] > 0:
        recommendations.append(
            Recommendation(
                priority="critical",
                type="validation",
                message=f"{summary['invalid']} exercises have schema validation errors",
                actions=["Fix validation errors before proceeding"],
            )
        )

    if summary["needs_improvement"] > summary["total"] * 0.3:
        recommendations.append(
            Recommendation(
                priority="high",
                type="quality",
                message="Many exercises need quality improvements",
                actions=["Conduct comprehensive review of exercise content and validation"],
            )
        )

    if summary["total"] and summary["average_quality"] < 75:
        recommendations.append(
            Recommendation(
                priority="medium",
                type="enhancement",
                message="Overall exercise quality could be improved",
                actions=["Focus on adding better feedback, hints, and validation"],
            )
        )

    return recommendations


def _is_cql_file(file: Mapping[str, Any]) -> bool:
    name = file.get("name")
    if isinstance(name, str) and name.lower().endswith(".cql"):
        return True
    return file.get("language") == CQL_LANGUAGE


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []
