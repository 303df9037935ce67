"""Content sources that produce exercises for the import orchestrator.

Each importer reads raw records (injected directly, or loaded from a JSON
file under ``data/``), converts them to Exercise documents and keeps only the
ones that pass schema validation. A source that cannot be read at all raises
``ImportSourceError``; individual bad records are logged and dropped.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

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
    Resource,
    ResourceKind,
    ReviewStatus,
    ValidationPattern,
    ValidationSpec,
    ValidationStrategy,
)

from .base import escape_regex, slugify
from .exceptions import ImportSourceError
from .migration import MigrationTransformer
from .schema_validator import SchemaValidator

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent / "data"

CQL_SPEC_RESOURCE = Resource(
    title="CQL Language Specification",
    url="https://cql.hl7.org/",
    type=ResourceKind.DOCUMENTATION,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContentImporter(ABC):
    """Abstract base class for a named content source."""

    name: str = ""
    data_file: str = ""

    def __init__(
        self,
        records: list[dict[str, Any]] | None = None,
        data_path: Path | None = None,
        validator: SchemaValidator | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.records = records
        self.data_path = data_path or DATA_DIR / self.data_file
        self.validator = validator or SchemaValidator()
        self.clock = clock

    def load_records(self) -> list[dict[str, Any]]:
        """Return the raw records, reading the data file when none were injected.

        Raises:
            ImportSourceError: If the data file is missing or malformed.
        """
        if self.records is not None:
            return self.records
        try:
            with open(self.data_path, encoding="utf-8") as f:
                records = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise ImportSourceError(
                f"Cannot read {self.name} records from {self.data_path}: {exc}",
                {"source": self.name, "path": str(self.data_path)},
            ) from exc
        if not isinstance(records, list):
            raise ImportSourceError(
                f"Expected a list of {self.name} records in {self.data_path}",
                {"source": self.name, "path": str(self.data_path)},
            )
        return records

    def import_exercises(self) -> list[Exercise]:
        """Convert every record, keeping the structurally valid ones."""
        records = self.load_records()
        logger.info("Importing %d records from %s", len(records), self.name)

        exercises: list[Exercise] = []
        for index, record in enumerate(records):
            title = f"record {index + 1}"
            if isinstance(record, dict):
                title = record.get("title") or record.get("name") or title
            try:
                exercise = self.convert(record, index, [e.id for e in exercises])
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Failed to convert %s exercise %s: %s", self.name, title, exc)
                continue

            validation = self.validator.validate(exercise)
            if not validation.success:
                logger.warning(
                    "Dropping %s exercise %s: %s",
                    self.name,
                    title,
                    "; ".join(f"{e.path}: {e.message}" for e in validation.errors),
                )
                continue
            exercises.append(exercise)

        logger.info("%s import completed: %d exercises", self.name, len(exercises))
        return exercises

    @abstractmethod
    def convert(
        self, record: dict[str, Any], index: int, previous_ids: list[str]
    ) -> Exercise:
        """Convert one raw record.

        Args:
            record: The raw record.
            index: Position of the record in the source.
            previous_ids: Ids of the exercises already imported from this source.
        """
        pass


class LegacyImporter(ContentImporter):
    """Migrates records from the legacy exercise store."""

    name = "legacy"
    data_file = "legacy_exercises.json"

    def __init__(
        self,
        records: list[dict[str, Any]] | None = None,
        data_path: Path | None = None,
        validator: SchemaValidator | None = None,
        clock: Callable[[], datetime] = _utcnow,
        transformer: MigrationTransformer | None = None,
    ):
        super().__init__(records, data_path, validator, clock)
        self.transformer = transformer or MigrationTransformer(clock=clock)

    def convert(
        self, record: dict[str, Any], index: int, previous_ids: list[str]
    ) -> Exercise:
        return self.transformer.migrate(record, index, preceding_ids=previous_ids)


class CQFImporter(ContentImporter):
    """Converts Clinical Quality Framework tutorial records."""

    name = "cqf"
    data_file = "cqf_tutorials.json"

    DIFFICULTY_BY_CATEGORY = {
        "basics": Difficulty.BEGINNER,
        "intermediate": Difficulty.INTERMEDIATE,
        "advanced": Difficulty.ADVANCED,
    }
    BASE_MINUTES = {"basics": 15, "intermediate": 25}
    BACKGROUNDS = {
        "syntax": "CQL (Clinical Quality Language) is a domain-specific language for expressing clinical knowledge artifacts.",
        "types": "Understanding data types is fundamental to writing correct CQL expressions.",
        "fhir": "FHIR (Fast Healthcare Interoperability Resources) is the standard for healthcare data exchange.",
        "measures": "Clinical quality measures help assess healthcare quality and outcomes.",
        "functions": "CQL provides a rich set of built-in functions for data manipulation and analysis.",
    }
    OBJECTIVES = {
        "syntax": "Master CQL basic syntax",
        "types": "Understand CQL data types",
        "fhir": "Access FHIR clinical data",
        "measures": "Build quality measure logic",
        "functions": "Use advanced CQL functions",
    }
    # Content keyword -> concept
    CONTENT_CONCEPTS = [
        (("library",), "libraries"),
        (("define",), "definitions"),
        (("where",), "filtering"),
        (("fhir",), "clinical-data"),
        (("count", "sum"), "functions"),
        (("date", "time"), "dates"),
    ]

    def convert(
        self, record: dict[str, Any], index: int, previous_ids: list[str]
    ) -> Exercise:
        title = record["title"]
        category = record.get("category", "")
        topic = record.get("topic", "")
        content = record.get("content", "")
        solution = record.get("solution") or None
        now = self.clock()

        tags = ["cqf", "tutorial", category, record.get("clinicalDomain"), topic]
        return Exercise(
            id=f"cqf-{slugify(title)}-{index + 1}",
            title=title,
            description=record.get("description")
            or f"Learn about {topic} in Clinical Quality Language",
            difficulty=self._difficulty(category, index),
            estimated_time=min(
                60, self.BASE_MINUTES.get(category, 35) + len(content) // 500 * 5
            ),
            prerequisites=previous_ids[-1:],
            concepts=_with_content_concepts(
                record.get("concepts", []), content, self.CONTENT_CONCEPTS
            ),
            tags=list(dict.fromkeys(t for t in tags if t)),
            type=(
                ExerciseType.TUTORIAL
                if category == "basics"
                else ExerciseType.CHALLENGE
                if topic == "measures"
                else ExerciseType.PRACTICE
            ),
            content=ExerciseContent(
                instructions=_demote_headings(content)
                + "\n\n---\n\n*This exercise is based on CQF (Clinical Quality Framework) tutorial materials.*",
                background=record.get("background")
                or self.BACKGROUNDS.get(
                    topic, "This exercise covers important CQL concepts and techniques."
                ),
                hints=self._hints(record.get("template"), solution),
                resources=self._resources(topic),
            ),
            files=_files("exercise.cql", record.get("template"), solution),
            validation=self._validation(solution),
            feedback=ExerciseFeedback(
                success=f"Excellent! You've successfully completed this CQF exercise on {topic}.",
                failure="Not quite right. Review the CQF tutorial content and try again.",
            ),
            analytics=AnalyticsSpec(
                learning_objectives=[self.OBJECTIVES[topic]] if topic in self.OBJECTIVES else [],
                clinical_domain=record.get("clinicalDomain") or "general",
            ),
            metadata=ExerciseMetadata(
                author="CQF Framework",
                created=now,
                modified=now,
                source=f"CQF Tutorial {index + 1}",
                license="Apache-2.0",
                review_status=ReviewStatus.APPROVED,
            ),
        )

    def _difficulty(self, category: str, index: int) -> Difficulty:
        if category in self.DIFFICULTY_BY_CATEGORY:
            return self.DIFFICULTY_BY_CATEGORY[category]
        if index < 2:
            return Difficulty.BEGINNER
        return Difficulty.INTERMEDIATE if index < 4 else Difficulty.ADVANCED

    def _hints(self, template: str | None, solution: str | None) -> list[Hint]:
        if not template:
            return []
        hints = [
            Hint(level=1, text="Look at the template code and identify what needs to be completed."),
            Hint(level=2, text="Review the instructions for examples of the syntax you need to use."),
            Hint(level=3, text="Check the solution structure and try to match that pattern."),
        ]
        if solution:
            hints.append(Hint(level=4, text="Compare your code with the expected solution format."))
            hints.append(Hint(level=5, text="Solution:", code=solution))
        return hints

    def _resources(self, topic: str) -> list[Resource]:
        resources = [CQL_SPEC_RESOURCE]
        if topic == "fhir":
            resources.append(
                Resource(title="FHIR R4 Specification", url="https://hl7.org/fhir/R4/")
            )
        if topic == "measures":
            resources.append(
                Resource(
                    title="CQF Quality Measures",
                    url="https://github.com/cqframework/ecqm-content-qicore-2021",
                    type=ResourceKind.EXAMPLE,
                )
            )
        return resources

    def _validation(self, solution: str | None) -> ValidationSpec:
        if solution:
            return ValidationSpec(
                strategy=ValidationStrategy.PATTERN_MATCH,
                patterns=[
                    ValidationPattern(
                        pattern=escape_regex(solution.strip()),
                        description="Code should match the expected CQF solution pattern",
                        required=True,
                        points=100,
                    )
                ],
                passing_score=70,
            )
        return ValidationSpec(strategy=ValidationStrategy.SEMANTIC_MATCH, passing_score=80)


class CookingWithCQLImporter(ContentImporter):
    """Converts recipe-style records from the Cooking with CQL series."""

    name = "cooking-with-cql"
    data_file = "cooking_with_cql.json"

    DIFFICULTY_BY_CATEGORY = {
        "getting-started": Difficulty.BEGINNER,
        "clinical-basics": Difficulty.BEGINNER,
        "clinical-intermediate": Difficulty.INTERMEDIATE,
        "clinical-advanced": Difficulty.ADVANCED,
        "quality-measures": Difficulty.EXPERT,
    }
    MINUTES_BY_CATEGORY = {
        "getting-started": 15,
        "clinical-basics": 20,
        "clinical-intermediate": 30,
        "clinical-advanced": 45,
        "quality-measures": 60,
    }
    SCENARIO_CONCEPTS = {
        "basic-syntax": ["syntax", "literals"],
        "patient-data": ["clinical-data", "demographics"],
        "conditions": ["diagnoses", "clinical-status"],
        "medications": ["pharmaceuticals", "adherence"],
        "lab-results": ["observations", "trends"],
        "performance-measurement": ["quality-measures", "populations"],
    }
    SCENARIO_OBJECTIVES = {
        "basic-syntax": "Master CQL syntax fundamentals",
        "patient-data": "Access and work with patient demographics",
        "conditions": "Analyze patient conditions and diagnoses",
        "medications": "Manage medication data and calculations",
        "lab-results": "Analyze laboratory results and trends",
        "performance-measurement": "Build clinical quality measures",
    }
    _RECIPE_NUMBER = re.compile(r"Recipe (\d+)")
    _RECIPE_PREFIX = re.compile(r"Recipe \d+:\s*")

    def convert(
        self, record: dict[str, Any], index: int, previous_ids: list[str]
    ) -> Exercise:
        title = record["title"]
        category = record.get("category", "")
        scenario = record.get("scenario", "")
        domain = record.get("clinicalDomain")
        solution = record.get("solution") or None
        match = self._RECIPE_NUMBER.search(title)
        recipe_number = match.group(1) if match else str(index + 1)
        now = self.clock()

        tags = ["cooking-with-cql", "practical", "hands-on", category]
        if scenario and scenario != category:
            tags.append(scenario)
        if domain and domain != "general":
            tags.append(domain)
        tags.append(f"recipe-{index + 1}")

        if category in self.DIFFICULTY_BY_CATEGORY:
            difficulty = self.DIFFICULTY_BY_CATEGORY[category]
        elif index < 2:
            difficulty = Difficulty.BEGINNER
        else:
            difficulty = Difficulty.INTERMEDIATE if index < 4 else Difficulty.ADVANCED

        resources = [
            Resource(
                title="Cooking with CQL Series",
                url="https://github.com/cqframework/CQL-Formatting-and-Usage-Wiki/wiki/Cooking-with-CQL",
            )
        ]
        if scenario == "patient-data":
            resources.append(
                Resource(
                    title="FHIR Patient Resource",
                    url="https://hl7.org/fhir/R4/patient.html",
                    type=ResourceKind.REFERENCE,
                )
            )
        if scenario == "performance-measurement":
            resources.append(
                Resource(title="Clinical Quality Measures", url="https://ecqi.healthit.gov/")
            )

        return Exercise(
            id=f"cooking-recipe-{recipe_number}-{slugify(self._RECIPE_PREFIX.sub('', title))}",
            title=title,
            description=record.get("description")
            or f"Learn practical CQL skills through hands-on {scenario} scenarios",
            difficulty=difficulty,
            estimated_time=self.MINUTES_BY_CATEGORY.get(category, 25),
            prerequisites=previous_ids[-1:],
            concepts=list(
                dict.fromkeys(
                    [*record.get("concepts", []), *self.SCENARIO_CONCEPTS.get(scenario, [])]
                )
            ),
            tags=list(dict.fromkeys(t for t in tags if t)),
            type=(
                ExerciseType.TUTORIAL
                if category == "getting-started"
                else ExerciseType.CHALLENGE
                if category == "quality-measures"
                else ExerciseType.PRACTICE
            ),
            content=ExerciseContent(
                instructions=self._instructions(record.get("content", "")),
                background=record.get("background")
                or "This practical exercise will teach you real-world CQL skills through hands-on experience.",
                hints=self._hints(solution),
                resources=resources,
            ),
            files=_files("recipe.cql", record.get("template"), solution),
            validation=self._validation(solution),
            feedback=ExerciseFeedback(
                success=(
                    f"Delicious! You've successfully completed Recipe {recipe_number}. "
                    "Your CQL skills are cooking!"
                ),
                failure=(
                    "Don't worry, even master chefs burn a few dishes! "
                    "Review the recipe and try again."
                ),
                common_errors=[
                    CommonError(
                        pattern=r"\A(?![\s\S]*library\s+\S+\s+version)",
                        explanation="Every CQL recipe needs a proper library header with version",
                        suggestion="Add: library RecipeName version '1.0.0'",
                        example="library HelloCQLWorld version '1.0.0'",
                    )
                ],
            ),
            analytics=AnalyticsSpec(
                events=["start", "complete", "hint-used", "error-encountered", "code-run"],
                learning_objectives=(
                    [self.SCENARIO_OBJECTIVES[scenario]]
                    if scenario in self.SCENARIO_OBJECTIVES
                    else []
                ),
                clinical_domain=domain or "practical",
            ),
            metadata=ExerciseMetadata(
                author="Cooking with CQL",
                created=now,
                modified=now,
                source=f"Cooking with CQL Recipe {index + 1}",
                license="Apache-2.0",
                review_status=ReviewStatus.APPROVED,
                extra={"recipeNumber": index + 1},
            ),
        )

    def _instructions(self, content: str) -> str:
        instructions = _demote_headings(content)
        instructions = re.sub(r"^## Ingredients", "### Ingredients", instructions, flags=re.MULTILINE)
        instructions = re.sub(
            r"^## Preparation Steps", "### Preparation Steps", instructions, flags=re.MULTILINE
        )
        instructions = re.sub(
            r"^## The Challenge", "### The Challenge", instructions, flags=re.MULTILINE
        )
        return (
            instructions
            + "\n\n---\n\n*Happy cooking with CQL! The best recipes come from practice and experimentation.*"
        )

    def _hints(self, solution: str | None) -> list[Hint]:
        hints = [
            Hint(level=1, text="Start by reading through the recipe ingredients and preparation steps carefully."),
            Hint(level=2, text="Look at the template code. It shows you exactly where to add your ingredients."),
            Hint(level=3, text="Review the examples in the preparation steps for the syntax you need."),
            Hint(level=4, text="Compare your code structure with the patterns shown in the examples."),
        ]
        if solution:
            hints.append(Hint(level=5, text="Here's the complete recipe:", code=solution))
        return hints

    def _validation(self, solution: str | None) -> ValidationSpec:
        if not solution:
            return ValidationSpec(
                strategy=ValidationStrategy.EXECUTION_RESULT, passing_score=80
            )

        lines = [
            line.strip()
            for line in solution.split("\n")
            if line.strip()
            and not line.strip().startswith("//")
            and not line.strip().startswith("library")
        ]
        patterns = [
            ValidationPattern(
                pattern=escape_regex(line),
                description=f"Should include: {line}",
                points=100 // len(lines),
            )
            for line in lines
        ]
        if not patterns:
            patterns = [
                ValidationPattern(
                    pattern=escape_regex(solution.strip()),
                    description="Code should follow the recipe pattern",
                    required=True,
                    points=100,
                )
            ]
        return ValidationSpec(
            strategy=ValidationStrategy.PATTERN_MATCH, patterns=patterns, passing_score=70
        )


def _demote_headings(markdown: str) -> str:
    return re.sub(r"^# ", "## ", markdown, flags=re.MULTILINE)


def _files(name: str, template: str | None, solution: str | None) -> list[ExerciseFile]:
    if not template and not solution:
        return []
    return [ExerciseFile(name=name, template=template or "", solution=solution)]


def _with_content_concepts(
    concepts: list[str],
    content: str,
    keyword_concepts: list[tuple[tuple[str, ...], str]],
) -> list[str]:
    text = content.lower()
    enriched = list(concepts)
    for keywords, concept in keyword_concepts:
        if any(keyword in text for keyword in keywords):
            enriched.append(concept)
    return list(dict.fromkeys(enriched))


def default_importers(**kwargs: Any) -> list[ContentImporter]:
    """The bundled sources, reading their records from ``data/``."""
    return [
        LegacyImporter(**kwargs),
        CQFImporter(**kwargs),
        CookingWithCQLImporter(**kwargs),
    ]
