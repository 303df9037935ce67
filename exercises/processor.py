"""Enhancement pass for imported exercises.

Processing runs in four phases over a batch:

1. Enhance: per-exercise rewrites that never change meaning (CQL code block
   formatting, table of contents, content metrics in metadata).
2. Improve: when the recomputed quality score is below the configured
   threshold, synthesize missing hints and validation patterns.
3. Analyze: batch-level analyses (difficulty progression, concept coverage).
4. Validate: final schema validation; invalid exercises are dropped.

Exercises are immutable values here: each step returns a new copy.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from models import (
    Difficulty,
    Exercise,
    Hint,
    LogEntry,
    ProcessingFailure,
    QualityReport,
    ValidationPattern,
)

from .base import count_code_lines, count_words, escape_regex
from .config import ProcessorConfig
from .quality import QualityChecker
from .schema_validator import SchemaValidator

logger = logging.getLogger(__name__)

ESSENTIAL_CONCEPTS = [
    "syntax",
    "literals",
    "expressions",
    "functions",
    "clinical-data",
    "conditions",
    "observations",
]

DIFFICULTY_ORDER = [d.value for d in Difficulty]

_CQL_BLOCK = re.compile(r"```cql\n([\s\S]*?)\n```")
_HEADING = re.compile(r"^(#+)\s+(.+)$", re.MULTILINE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContentEnhancer(ABC):
    """Rewrites one exercise without changing what it teaches."""

    name: str = ""

    @abstractmethod
    def process(self, exercise: Exercise) -> Exercise:
        pass


class QualityImprover(ABC):
    """Fills in content that the quality checker found missing."""

    name: str = ""

    @abstractmethod
    def process(self, exercise: Exercise, report: QualityReport) -> Exercise:
        pass


class ContentAnalyzer(ABC):
    """Batch-level analysis. Produces a JSON-serializable dict."""

    name: str = ""

    @abstractmethod
    def analyze(self, exercises: list[Exercise]) -> dict[str, Any]:
        pass


class InstructionEnhancer(ContentEnhancer):
    """Formats fenced CQL blocks and prefixes long instructions with a table of contents."""

    name = "instruction_enhancer"

    def __init__(self, toc_min_length: int = 2000):
        self.toc_min_length = toc_min_length

    def process(self, exercise: Exercise) -> Exercise:
        instructions = exercise.content.instructions
        if not instructions:
            return exercise

        if len(instructions) > self.toc_min_length:
            toc = table_of_contents(instructions)
            if toc:
                instructions = f"{toc}\n\n{instructions}"

        instructions = _CQL_BLOCK.sub(
            lambda m: f"```cql\n{format_cql(m.group(1))}\n```", instructions
        )
        content = exercise.content.model_copy(update={"instructions": instructions})
        return exercise.model_copy(update={"content": content})


class MetadataEnhancer(ContentEnhancer):
    """Records content metrics in the metadata extras."""

    name = "metadata_enhancer"

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self.clock = clock

    def process(self, exercise: Exercise) -> Exercise:
        extra = dict(exercise.metadata.extra)
        extra.update(
            {
                "processedAt": self.clock().isoformat(),
                "contentWordCount": count_words(exercise.content.instructions),
                "codeLineCount": count_code_lines([f.template for f in exercise.files]),
                "conceptCoverage": len(exercise.concepts),
            }
        )
        metadata = exercise.metadata.model_copy(update={"extra": extra})
        return exercise.model_copy(update={"metadata": metadata})


class HintImprover(QualityImprover):
    name = "hint_improver"

    def __init__(self, min_hint_count: int = 3):
        self.min_hint_count = min_hint_count

    def process(self, exercise: Exercise, report: QualityReport) -> Exercise:
        if len(exercise.content.hints) >= self.min_hint_count:
            return exercise
        content = exercise.content.model_copy(
            update={"hints": generate_hints(exercise)}
        )
        return exercise.model_copy(update={"content": content})


class PatternImprover(QualityImprover):
    name = "pattern_improver"

    def process(self, exercise: Exercise, report: QualityReport) -> Exercise:
        if exercise.validation.patterns:
            return exercise
        validation = exercise.validation.model_copy(
            update={"patterns": generate_patterns(exercise)}
        )
        return exercise.model_copy(update={"validation": validation})


class DifficultyProgressionAnalyzer(ContentAnalyzer):
    """Flags exercises that drop more than one difficulty tier from their predecessor."""

    name = "difficulty_progression"

    def analyze(self, exercises: list[Exercise]) -> dict[str, Any]:
        progression = [exercise.difficulty.value for exercise in exercises]
        issues = []
        for i in range(1, len(progression)):
            current = DIFFICULTY_ORDER.index(progression[i])
            previous = DIFFICULTY_ORDER.index(progression[i - 1])
            if current < previous - 1:
                issues.append(f"Exercise {i + 1} has difficulty regression")

        return {
            "progression": progression,
            "issues": issues,
            "recommendation": (
                "Consider reordering exercises for better difficulty progression"
                if issues
                else "Difficulty progression is appropriate"
            ),
        }


class ConceptCoverageAnalyzer(ContentAnalyzer):
    name = "concept_coverage"

    def __init__(self, essential_concepts: list[str] | None = None):
        self.essential_concepts = essential_concepts or ESSENTIAL_CONCEPTS

    def analyze(self, exercises: list[Exercise]) -> dict[str, Any]:
        frequency: dict[str, int] = {}
        progression: dict[str, dict[str, Any]] = {}

        for index, exercise in enumerate(exercises):
            for concept in exercise.concepts:
                frequency[concept] = frequency.get(concept, 0) + 1
                entry = progression.setdefault(
                    concept, {"first": index, "last": index, "exercises": []}
                )
                entry["last"] = index
                entry["exercises"].append(exercise.id)

        gaps = [c for c in self.essential_concepts if c not in frequency]
        recommendations = []
        if gaps:
            recommendations.append(f"Add exercises covering: {', '.join(gaps)}")

        return {
            "total_concepts": len(frequency),
            "frequency": frequency,
            "progression": progression,
            "gaps": gaps,
            "recommendations": recommendations,
        }


class ProcessingResult(BaseModel):
    processed: list[Exercise] = Field(default_factory=list)
    failed: list[ProcessingFailure] = Field(default_factory=list)
    enhanced: list[str] = Field(default_factory=list)  # Ids touched by an improver
    analytics: dict[str, Any] = Field(default_factory=dict)
    log: list[LogEntry] = Field(default_factory=list)


class ContentProcessor:
    """Runs the enhancement pipeline over a batch of exercises."""

    def __init__(
        self,
        config: ProcessorConfig | None = None,
        validator: SchemaValidator | None = None,
        checker: QualityChecker | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or ProcessorConfig()
        self.validator = validator or SchemaValidator()
        self.checker = checker or QualityChecker()
        self.clock = clock

        self.enhancers: list[ContentEnhancer] = [
            InstructionEnhancer(self.config.toc_min_length),
            MetadataEnhancer(clock),
        ]
        self.improvers: list[QualityImprover] = [
            HintImprover(self.config.min_hint_count),
            PatternImprover(),
        ]
        self.analyzers: list[ContentAnalyzer] = [
            DifficultyProgressionAnalyzer(),
            ConceptCoverageAnalyzer(),
        ]

    def process(self, exercises: list[Exercise]) -> ProcessingResult:
        """Enhance, improve, analyze and validate a batch.

        Failures are isolated per exercise and recorded with their phase.
        """
        result = ProcessingResult()
        self._log(result, "info", f"Starting content processing for {len(exercises)} exercises")

        enhanced = []
        for exercise in exercises:
            try:
                for enhancer in self.enhancers:
                    exercise = enhancer.process(exercise)
                enhanced.append(exercise)
            except Exception as exc:
                self._fail(result, exercise, "enhance", [str(exc)])

        improved = []
        for exercise in enhanced:
            try:
                improved.append(self._improve(exercise, result))
            except Exception as exc:
                self._fail(result, exercise, "quality", [str(exc)])

        for analyzer in self.analyzers:
            try:
                result.analytics[analyzer.name] = analyzer.analyze(improved)
            except Exception as exc:
                logger.exception("Analysis %s failed", analyzer.name)
                self._log(result, "error", f"Failed analysis: {analyzer.name}", str(exc))

        for exercise in improved:
            validation = self.validator.validate(exercise)
            if validation.success:
                result.processed.append(exercise)
            else:
                self._fail(
                    result,
                    exercise,
                    "validation",
                    [f"{e.path}: {e.message}" for e in validation.errors],
                )

        result.analytics["summary"] = self._summary(result, len(exercises))
        self._log(
            result,
            "info",
            f"Content processing completed: {len(result.processed)} processed, "
            f"{len(result.failed)} failed",
        )
        return result

    def _improve(self, exercise: Exercise, result: ProcessingResult) -> Exercise:
        report = self.checker.assess(exercise)
        if report.quality_score < self.config.improvement_threshold:
            for improver in self.improvers:
                exercise = improver.process(exercise, report)
            after = self.checker.score(exercise)
            result.enhanced.append(exercise.id)
            self._log(
                result,
                "info",
                f"Quality improved for {exercise.id}: {report.quality_score} -> {after}",
            )
        return self.checker.with_recomputed_score(exercise)

    def _summary(self, result: ProcessingResult, total: int) -> dict[str, Any]:
        by_phase: dict[str, int] = {}
        for failure in result.failed:
            by_phase[failure.phase] = by_phase.get(failure.phase, 0) + 1
        return {
            "total": total,
            "processed": len(result.processed),
            "failed": len(result.failed),
            "enhanced": len(result.enhanced),
            "success_rate": 100.0 * len(result.processed) / total if total else 0.0,
            "failures_by_phase": by_phase,
        }

    def _fail(
        self,
        result: ProcessingResult,
        exercise: Exercise,
        phase: str,
        errors: list[str],
    ) -> None:
        logger.warning("Exercise %s failed during %s: %s", exercise.id, phase, errors)
        result.failed.append(
            ProcessingFailure(
                exercise_id=exercise.id,
                title=exercise.title,
                phase=phase,
                errors=errors,
            )
        )
        self._log(result, "error", f"Failed {phase}: {exercise.title}", errors)

    def _log(
        self,
        result: ProcessingResult,
        level: str,
        message: str,
        details: Any = None,
    ) -> None:
        result.log.append(
            LogEntry(timestamp=self.clock(), level=level, message=message, details=details)
        )
        logger.debug(message)


def format_cql(code: str) -> str:
    """Strip leading and trailing whitespace from every line."""
    return "\n".join(line.strip() for line in code.split("\n"))


def table_of_contents(instructions: str) -> str:
    """Markdown table of contents, or "" when there are fewer than 3 headings."""
    headings = _HEADING.findall(instructions)
    if len(headings) < 3:
        return ""

    lines = ["## Table of Contents", ""]
    for hashes, text in headings:
        anchor = re.sub(r"\s+", "-", re.sub(r"[^\w\s]", "", text.lower()))
        indent = "  " * max(0, len(hashes) - 2)
        lines.append(f"{indent}- [{text}](#{anchor})")
    return "\n".join(lines)


def generate_hints(exercise: Exercise) -> list[Hint]:
    hints = [
        Hint(
            level=1,
            text=(
                "Start by reading the instructions carefully and understanding "
                "what you need to accomplish."
            ),
        ),
        Hint(level=2, text="Look at the code template to see what parts need to be completed."),
        Hint(level=3, text="Review the examples in the instructions for the correct syntax patterns."),
    ]
    solution = exercise.files[0].solution if exercise.files else None
    if solution:
        hints.append(
            Hint(level=4, text="Compare your code structure with the expected solution format.")
        )
        hints.append(Hint(level=5, text="Complete solution:", code=solution))
    return hints


def generate_patterns(exercise: Exercise) -> list[ValidationPattern]:
    """Required patterns for each ``define`` line of the first file's solution.

    Points are split evenly over the define lines. Falls back to a generic
    definition pattern when there is no solution or it has no defines.
    """
    solution = exercise.files[0].solution if exercise.files else None
    define_lines = [
        line.strip()
        for line in (solution or "").split("\n")
        if line.strip() and "define" in line
    ]

    patterns = [
        ValidationPattern(
            pattern=escape_regex(line),
            description=f"Should include definition: {line}",
            required=True,
            points=100 // len(define_lines),
        )
        for line in define_lines
    ]
    if not patterns:
        patterns.append(
            ValidationPattern(
                pattern="define.*:",
                description="Should include at least one CQL definition",
                required=True,
                points=100,
            )
        )
    return patterns
