"""Coordinates imports from several content sources into one catalog batch.

A run goes through six phases in order: import, merge, process, quality
validation, reports and summary. Each source is imported in isolation: a
source that fails is recorded as failed and the run carries on. Only a
failure while merging or analysing the whole batch is fatal, and is raised
as ``OrchestrationError``.
"""

import logging
import re
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from models import Exercise, LogEntry, ProcessingFailure, SourceStatus

from .base import unique_id
from .config import ImportOptions, PipelineConfig
from .exceptions import OrchestrationError, UnknownSourceError
from .importers import ContentImporter, default_importers
from .processor import ContentProcessor
from .quality import QualityChecker, validate_batch
from .schema_validator import SchemaValidator

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceResult(BaseModel):
    name: str
    status: SourceStatus
    exercises: list[Exercise] = Field(default_factory=list)
    count: int = 0
    error: str | None = None
    imported_at: datetime


class DuplicateRecord(BaseModel):
    """An exercise dropped because another one shares its fingerprint."""

    duplicate_id: str
    original_id: str
    fingerprint: str
    similarity: int


class ProcessedContent(BaseModel):
    exercises: list[Exercise] = Field(default_factory=list)
    failed: list[ProcessingFailure] = Field(default_factory=list)
    duplicates: list[DuplicateRecord] = Field(default_factory=list)


class ImportResults(BaseModel):
    sources: dict[str, SourceResult] = Field(default_factory=dict)
    processed: ProcessedContent = Field(default_factory=ProcessedContent)
    analytics: dict[str, Any] = Field(default_factory=dict)
    quality: dict[str, Any] = Field(default_factory=dict)
    reports: dict[str, Any] = Field(default_factory=dict)
    summary: dict[str, Any] = Field(default_factory=dict)
    log: list[LogEntry] = Field(default_factory=list)


def fingerprint(exercise: Exercise) -> str:
    """Duplicate-detection key: normalized title, sorted concepts and difficulty."""
    title = re.sub(r"[^\w]", "", exercise.title.lower())
    concepts = ",".join(sorted(exercise.concepts))
    return f"{title}_{concepts}_{exercise.difficulty.value}"


def similarity(first: Exercise, second: Exercise) -> int:
    """Weighted similarity in [0, 100] between two exercises."""
    score = 0.0
    if first.title == second.title:
        score += 40
    elif first.title.lower() == second.title.lower():
        score += 30

    concepts_a, concepts_b = set(first.concepts), set(second.concepts)
    largest = max(len(concepts_a), len(concepts_b))
    # Two empty concept sets are identical
    overlap = len(concepts_a & concepts_b) / largest if largest else 1.0
    score += overlap * 30

    if first.difficulty == second.difficulty:
        score += 15
    if first.type == second.type:
        score += 15
    return round(score)


class ImportOrchestrator:
    """Runs the import workflow over registered content sources."""

    def __init__(
        self,
        importers: Iterable[ContentImporter] | None = None,
        validator: SchemaValidator | None = None,
        checker: QualityChecker | None = None,
        processor: ContentProcessor | None = None,
        config: PipelineConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or PipelineConfig()
        self.validator = validator or SchemaValidator(self.config.schema_validator)
        self.checker = checker or QualityChecker(self.config.quality)
        self.processor = processor or ContentProcessor(
            self.config.processor, self.validator, self.checker, clock
        )
        self.clock = clock
        self.import_log: list[LogEntry] = []
        self.importers: dict[str, ContentImporter] = {}

        if importers is None:
            importers = default_importers(validator=self.validator, clock=clock)
        for importer in importers:
            self.register_importer(importer)

    def register_importer(self, importer: ContentImporter) -> None:
        self.importers[importer.name] = importer
        self._log("info", f"Registered importer: {importer.name}")

    def run(
        self,
        source_names: list[str] | None = None,
        options: ImportOptions | None = None,
    ) -> ImportResults:
        """Import, merge, process and report on content from the named sources.

        Args:
            source_names: Sources to import from. Defaults to every
                registered importer.
            options: Phase toggles. Defaults to the pipeline configuration.

        Returns:
            The complete results, including per-source status.

        Raises:
            OrchestrationError: If merging or analysing the batch fails.
        """
        options = options or self.config.import_options
        source_names = list(self.importers) if source_names is None else source_names
        started = time.perf_counter()
        first_entry = len(self.import_log)
        results = ImportResults()

        self._log("info", "Starting content import orchestration")
        self._log("info", f"Sources: {', '.join(source_names)}")

        self._import_sources(source_names, results)

        try:
            self._merge(results, dedupe=options.merge_duplicates)
            if options.process_content:
                self._process(results)
            else:
                results.processed.exercises = [
                    self.checker.with_recomputed_score(e)
                    for e in results.processed.exercises
                ]
            if options.validate_quality:
                self._validate_quality(results)
            if options.generate_reports:
                results.reports = self._reports(results)
        except Exception as exc:
            self._log("error", "Content import orchestration failed", str(exc))
            raise OrchestrationError(
                f"Import orchestration failed: {exc}",
                {"sources": source_names},
            ) from exc

        elapsed_ms = round((time.perf_counter() - started) * 1000)
        results.summary = self._summary(results, elapsed_ms)
        self._log("info", "Content import orchestration completed successfully")
        results.log = self.import_log[first_entry:]
        return results

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _import_sources(self, source_names: list[str], results: ImportResults) -> None:
        self._log("info", "Phase 1: Importing from sources")
        for name in source_names:
            try:
                importer = self.importers.get(name)
                if importer is None:
                    raise UnknownSourceError(name)
                self._log("info", f"Importing from {name}...")
                exercises = importer.import_exercises()
            except Exception as exc:
                self._log("error", f"Failed to import from {name}", str(exc))
                results.sources[name] = SourceResult(
                    name=name,
                    status=SourceStatus.FAILED,
                    error=str(exc),
                    imported_at=self.clock(),
                )
                continue

            results.sources[name] = SourceResult(
                name=name,
                status=SourceStatus.SUCCESS,
                exercises=exercises,
                count=len(exercises),
                imported_at=self.clock(),
            )
            self._log("success", f"Imported {len(exercises)} exercises from {name}")

    def _merge(self, results: ImportResults, dedupe: bool) -> None:
        self._log("info", "Phase 2: Merging and deduplicating content")
        candidates = [
            exercise
            for source in results.sources.values()
            for exercise in source.exercises
        ]

        if dedupe:
            unique, duplicates = self._deduplicate(candidates)
        else:
            unique, duplicates = candidates, []

        results.processed.exercises = _unique_ids(unique)
        results.processed.duplicates = duplicates
        self._log(
            "info",
            f"Merged {len(candidates)} exercises into {len(unique)} unique exercises",
        )
        self._log("info", f"Found {len(duplicates)} duplicates")

    def _deduplicate(
        self, candidates: list[Exercise]
    ) -> tuple[list[Exercise], list[DuplicateRecord]]:
        unique: list[Exercise] = []
        scores: list[int] = []
        positions: dict[str, int] = {}
        duplicates: list[DuplicateRecord] = []

        for exercise in candidates:
            key = fingerprint(exercise)
            score = self.checker.score(exercise)
            if key not in positions:
                positions[key] = len(unique)
                unique.append(exercise)
                scores.append(score)
                continue

            position = positions[key]
            existing = unique[position]
            if score > scores[position]:
                kept, dropped = exercise, existing
                unique[position] = exercise
                scores[position] = score
            else:
                kept, dropped = existing, exercise

            duplicates.append(
                DuplicateRecord(
                    duplicate_id=dropped.id,
                    original_id=kept.id,
                    fingerprint=key,
                    similarity=similarity(exercise, existing),
                )
            )
        return unique, duplicates

    def _process(self, results: ImportResults) -> None:
        self._log("info", "Phase 3: Processing and enhancing content")
        processing = self.processor.process(results.processed.exercises)
        results.processed.exercises = processing.processed
        results.processed.failed.extend(processing.failed)
        results.analytics["processing"] = processing.analytics
        self._log(
            "info",
            f"Content processing completed: {len(processing.processed)} processed, "
            f"{len(processing.failed)} failed",
        )

    def _validate_quality(self, results: ImportResults) -> None:
        self._log("info", "Phase 4: Quality validation")
        exercises = results.processed.exercises
        batch = validate_batch(exercises, self.validator, self.checker)
        collection = self.validator.validate_collection(exercises)

        recommendations = []
        summary = batch["summary"]
        if summary["invalid"] > 0:
            recommendations.append(
                f"Fix {summary['invalid']} exercises with validation errors"
            )
        if summary["needs_improvement"] > summary["total"] * 0.3:
            recommendations.append("Many exercises need quality improvements")
        if summary["total"] and summary["average_quality"] < 75:
            recommendations.append("Overall content quality could be improved")
        if not collection.success:
            recommendations.append("Resolve collection errors in ids and prerequisites")

        results.quality = {
            "validation": summary,
            "distribution": self._distribution(exercises),
            "collection_errors": [
                f"{error.path}: {error.message}" for error in collection.errors
            ],
            "recommendations": recommendations,
        }
        self._log(
            "info",
            f"Quality validation completed: {summary['valid']}/{summary['total']} exercises valid",
        )

    def _reports(self, results: ImportResults) -> dict[str, Any]:
        self._log("info", "Phase 5: Generating reports")
        exercises = results.processed.exercises
        validation = results.quality.get("validation", {})

        by_difficulty: dict[str, int] = {}
        by_type: dict[str, int] = {}
        by_concept: dict[str, int] = {}
        by_source: dict[str, int] = {}
        for exercise in exercises:
            _count(by_difficulty, exercise.difficulty.value)
            _count(by_type, exercise.type.value)
            for concept in exercise.concepts:
                _count(by_concept, concept)
            _count(by_source, exercise.metadata.source or "unknown")

        immediate = []
        if results.processed.failed:
            immediate.append("Fix exercises that failed processing")
        if validation.get("invalid"):
            immediate.append("Resolve validation errors")
        short_term = []
        if results.quality.get("distribution", {}).get("low"):
            short_term.append("Improve low-quality exercises")
        if results.processed.duplicates:
            short_term.append("Review and merge duplicate exercises")
        manual_ports = [e.id for e in exercises if e.validation.needs_manual_port]
        if manual_ports:
            short_term.append(
                "Port legacy validation predicates to registered validators: "
                + ", ".join(manual_ports)
            )

        return {
            "import_summary": {
                "timestamp": self.clock().isoformat(),
                "sources": [
                    {
                        "name": source.name,
                        "status": source.status.value,
                        "exercise_count": source.count,
                        "error": source.error,
                    }
                    for source in results.sources.values()
                ],
                "totals": {
                    "imported": sum(s.count for s in results.sources.values()),
                    "unique": len(exercises),
                    "duplicates": len(results.processed.duplicates),
                },
            },
            "quality_report": {
                "distribution": results.quality.get("distribution", {}),
                "validation": {
                    "valid": validation.get("valid", 0),
                    "invalid": validation.get("invalid", 0),
                    "average_quality": validation.get("average_quality", 0),
                },
                "recommendations": results.quality.get("recommendations", []),
            },
            "content_analysis": {
                "by_difficulty": by_difficulty,
                "by_type": by_type,
                "by_concept": by_concept,
                "by_source": by_source,
                "average_time": (
                    round(sum(e.estimated_time for e in exercises) / len(exercises))
                    if exercises
                    else 0
                ),
            },
            "recommendations": {
                "immediate": immediate,
                "short_term": short_term,
                "long_term": [
                    "Establish regular content review process",
                    "Create content creation guidelines",
                ],
            },
        }

    def _summary(self, results: ImportResults, elapsed_ms: int) -> dict[str, Any]:
        sources = list(results.sources.values())
        successful = sum(1 for s in sources if s.status == SourceStatus.SUCCESS)
        exercises = results.processed.exercises
        scores = [self.checker.score(e) for e in exercises]
        distribution = results.quality.get("distribution") or self._distribution(exercises)

        return {
            "sources": {
                "total": len(sources),
                "successful": successful,
                "failed": len(sources) - successful,
            },
            "exercises": {
                "total_imported": sum(s.count for s in sources),
                "unique": len(exercises),
                "duplicates": len(results.processed.duplicates),
                "failed": len(results.processed.failed),
                "valid": results.quality.get("validation", {}).get("valid", 0),
            },
            "quality": {
                "average_score": round(sum(scores) / len(scores)) if scores else 0,
                "high_quality": distribution["high"],
                "needs_improvement": distribution["low"],
            },
            "completed_at": self.clock().isoformat(),
            "processing_time_ms": elapsed_ms,
        }

    def _distribution(self, exercises: list[Exercise]) -> dict[str, int]:
        distribution = {"high": 0, "medium": 0, "low": 0}
        config = self.checker.config
        for exercise in exercises:
            score = self.checker.score(exercise)
            if score >= config.high_quality_threshold:
                distribution["high"] += 1
            elif score >= config.needs_improvement_threshold:
                distribution["medium"] += 1
            else:
                distribution["low"] += 1
        return distribution

    def _log(self, level: str, message: str, details: Any = None) -> None:
        self.import_log.append(
            LogEntry(timestamp=self.clock(), level=level, message=message, details=details)
        )
        if details is None:
            logger.log(LOG_LEVELS.get(level, logging.INFO), message)
        else:
            logger.log(LOG_LEVELS.get(level, logging.INFO), "%s: %s", message, details)


def _unique_ids(exercises: list[Exercise]) -> list[Exercise]:
    """Suffix colliding ids with -2, -3, ... so every retained id is unique."""
    seen: set[str] = set()
    unique = []
    for exercise in exercises:
        exercise_id = unique_id(exercise.id, seen)
        if exercise_id != exercise.id:
            logger.warning("Renamed duplicate id %s to %s", exercise.id, exercise_id)
            exercise = exercise.model_copy(update={"id": exercise_id})
        seen.add(exercise_id)
        unique.append(exercise)
    return unique


def _count(counter: dict[str, int], key: str) -> None:
    counter[key] = counter.get(key, 0) + 1
