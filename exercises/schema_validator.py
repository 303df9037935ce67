"""Structural validation of exercise documents.

The structural schema is the pydantic ``Exercise`` model. Validation never
raises on malformed input: every problem is reported as a ``SchemaError``
with a dotted camelCase path. Semantic checks that pydantic cannot express
(hint level ordering, regex syntax, prerequisite graphs) run afterwards.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from models import (
    Exercise,
    SchemaError,
    SchemaValidationResult,
    Severity,
    ValidationStrategy,
)

from .config import SchemaValidatorConfig

logger = logging.getLogger(__name__)

ROOT_PATH = "<root>"


def _format_path(loc: tuple[Any, ...]) -> str:
    if not loc:
        return ROOT_PATH
    return ".".join(str(part) for part in loc)


class SchemaValidator:
    """Checks exercise documents against the exercise schema."""

    def __init__(self, config: SchemaValidatorConfig | None = None):
        self.config = config or SchemaValidatorConfig()

    def validate(self, document: Mapping[str, Any] | Exercise) -> SchemaValidationResult:
        """Validate one exercise document.

        Args:
            document: A raw (possibly malformed) mapping, or an Exercise.

        Returns:
            A result with ``success`` and the lists of errors and warnings.
        """
        try:
            if isinstance(document, Exercise):
                document = document.to_document()
            exercise = Exercise.model_validate(document)
        except ValidationError as exc:
            errors = [
                SchemaError(
                    path=_format_path(error["loc"]),
                    message=error["msg"],
                )
                for error in exc.errors()
            ]
            return SchemaValidationResult(success=False, errors=errors)
        except Exception as exc:
            logger.exception("Schema validation raised unexpectedly")
            return SchemaValidationResult(
                success=False,
                errors=[SchemaError(path=ROOT_PATH, message=str(exc))],
            )

        errors, warnings = self._semantic_checks(exercise)
        return SchemaValidationResult(
            success=not errors, errors=errors, warnings=warnings
        )

    def validate_collection(
        self, documents: Iterable[Mapping[str, Any] | Exercise]
    ) -> SchemaValidationResult:
        """Validate documents together: each one, plus ids and prerequisites.

        Paths of per-document errors are prefixed with the document index.
        """
        errors: list[SchemaError] = []
        warnings: list[SchemaError] = []
        exercises: list[Exercise] = []

        for index, document in enumerate(documents):
            result = self.validate(document)
            errors.extend(_prefixed(index, result.errors))
            warnings.extend(_prefixed(index, result.warnings))
            if result.success:
                exercises.append(
                    document
                    if isinstance(document, Exercise)
                    else Exercise.model_validate(document)
                )

        errors.extend(self._collection_checks(exercises))
        return SchemaValidationResult(
            success=not errors, errors=errors, warnings=warnings
        )

    def _semantic_checks(
        self, exercise: Exercise
    ) -> tuple[list[SchemaError], list[SchemaError]]:
        errors: list[SchemaError] = []
        warnings: list[SchemaError] = []

        if self.config.check_hint_levels:
            levels = [hint.level for hint in exercise.content.hints]
            if len(set(levels)) != len(levels):
                errors.append(
                    SchemaError(
                        path="content.hints",
                        message="Hint levels must be unique",
                    )
                )
            if levels != sorted(levels):
                errors.append(
                    SchemaError(
                        path="content.hints",
                        message="Hint levels must be in ascending order",
                    )
                )
            if levels and levels[0] != 1:
                errors.append(
                    SchemaError(
                        path="content.hints.0.level",
                        message="Hint levels must start at 1",
                    )
                )

        names = [file.name for file in exercise.files]
        for index, name in enumerate(names):
            if name in names[:index]:
                errors.append(
                    SchemaError(
                        path=f"files.{index}.name",
                        message=f"Duplicate file name: {name}",
                    )
                )

        validation = exercise.validation
        if self.config.check_pattern_syntax:
            for index, pattern in enumerate(validation.patterns or []):
                if not _compiles(pattern.pattern):
                    errors.append(
                        SchemaError(
                            path=f"validation.patterns.{index}.pattern",
                            message=f"Invalid regular expression: {pattern.pattern}",
                        )
                    )
            for index, common_error in enumerate(exercise.feedback.common_errors):
                if not _compiles(common_error.pattern):
                    errors.append(
                        SchemaError(
                            path=f"feedback.commonErrors.{index}.pattern",
                            message=f"Invalid regular expression: {common_error.pattern}",
                        )
                    )

        if validation.strategy == ValidationStrategy.PATTERN_MATCH and not validation.patterns:
            warnings.append(
                SchemaError(
                    path="validation.patterns",
                    message="Pattern-match strategy has no patterns",
                    severity=Severity.WARNING,
                )
            )
        if (
            validation.strategy == ValidationStrategy.CUSTOM_FUNCTION
            and not validation.custom_validator
        ):
            message = (
                "Legacy predicate needs a manual port to a registered validator"
                if validation.legacy_predicate
                else "Custom-function strategy has no validator name"
            )
            warnings.append(
                SchemaError(
                    path="validation.customValidator",
                    message=message,
                    severity=Severity.WARNING,
                )
            )

        return errors, warnings

    def _collection_checks(self, exercises: list[Exercise]) -> list[SchemaError]:
        errors: list[SchemaError] = []
        ids: set[str] = set()
        for exercise in exercises:
            if exercise.id in ids:
                errors.append(
                    SchemaError(path="id", message=f"Duplicate exercise id: {exercise.id}")
                )
            ids.add(exercise.id)

        for exercise in exercises:
            for prerequisite in exercise.prerequisites:
                if prerequisite not in ids:
                    errors.append(
                        SchemaError(
                            path=f"{exercise.id}.prerequisites",
                            message=f"Unknown prerequisite: {prerequisite}",
                        )
                    )

        graph = {exercise.id: exercise.prerequisites for exercise in exercises}
        for cycle in find_prerequisite_cycles(graph):
            errors.append(
                SchemaError(
                    path=f"{cycle[0]}.prerequisites",
                    message="Prerequisite cycle: " + " -> ".join(cycle + [cycle[0]]),
                )
            )
        return errors


def find_prerequisite_cycles(graph: dict[str, list[str]]) -> list[list[str]]:
    """Find cycles in a prerequisite graph.

    Args:
        graph: Maps exercise id to the ids it depends on. Edges to unknown
            ids are ignored.

    Returns:
        Each cycle once, as the list of its member ids in traversal order.
    """
    visiting, done = 1, 2
    state: dict[str, int] = {}
    cycles: list[list[str]] = []
    seen_cycles: set[frozenset[str]] = set()

    for root in graph:
        if root in state:
            continue
        state[root] = visiting
        path = [root]
        # One neighbour iterator per node on the current path
        frames = [iter(graph[root])]
        while frames:
            neighbour = next(frames[-1], None)
            if neighbour is None:
                frames.pop()
                state[path.pop()] = done
                continue
            if neighbour not in graph:
                continue
            if state.get(neighbour) == visiting:
                cycle = path[path.index(neighbour):]
                key = frozenset(cycle)
                if key not in seen_cycles:
                    seen_cycles.add(key)
                    cycles.append(list(cycle))
            elif neighbour not in state:
                state[neighbour] = visiting
                path.append(neighbour)
                frames.append(iter(graph[neighbour]))
    return cycles


def _compiles(pattern: str) -> bool:
    try:
        re.compile(pattern)
    except re.error:
        return False
    return True


def _prefixed(index: int, errors: list[SchemaError]) -> list[SchemaError]:
    return [
        error.model_copy(
            update={
                "path": f"[{index}]"
                if error.path == ROOT_PATH
                else f"[{index}].{error.path}"
            }
        )
        for error in errors
    ]
