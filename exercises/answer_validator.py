"""Judging learner submissions against an exercise's validation rules.

The validator dispatches on the exercise's strategy. It never raises to the
caller: any error during evaluation becomes a failed result with score 0.

Custom and semantic strategies refer to validators by name. Names resolve
through an explicitly constructed ``ValidatorRegistry``; no code carried in
exercise documents is ever executed.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

from models import (
    ExecutionOutcome,
    Exercise,
    PatternResult,
    ValidationResult,
    ValidationStrategy,
)

from .base import normalize_code
from .config import AnswerValidatorConfig, MissingValidatorPolicy

logger = logging.getLogger(__name__)

VALIDATION_ERROR_MESSAGE = "Validation error occurred"

ValidatorFunction = Callable[[str, Exercise], "ValidationResult | bool"]
SuccessMetric = Callable[[list[ExecutionOutcome]], float]


class ValidatorRegistry:
    """Named validator callables for custom-function and semantic-match strategies."""

    def __init__(self):
        self._validators: dict[str, ValidatorFunction] = {}

    def register(
        self, name: str, validator: ValidatorFunction | None = None
    ) -> Any:
        """Register a validator. Usable directly or as a decorator.

        Raises:
            ValueError: If the name is already registered.
        """

        def decorator(func: ValidatorFunction) -> ValidatorFunction:
            if name in self._validators:
                raise ValueError(f"Validator '{name}' already exists")
            self._validators[name] = func
            return func

        if validator is not None:
            return decorator(validator)
        return decorator

    def get(self, name: str | None) -> ValidatorFunction | None:
        if name is None:
            return None
        return self._validators.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._validators

    def names(self) -> list[str]:
        return sorted(self._validators)


class CodeExecutor(ABC):
    """Port to the external code-execution service."""

    @abstractmethod
    def execute(self, code: str) -> list[ExecutionOutcome]:
        """Run source text and return one outcome per top-level expression."""
        ...


def passing_expression_ratio(outcomes: list[ExecutionOutcome]) -> float:
    """Default success metric: percentage of expressions that ran without error."""
    if not outcomes:
        return 0.0
    succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
    return 100.0 * succeeded / len(outcomes)


def _clamp(score: float) -> int:
    return int(max(0, min(100, round(score))))


class AnswerValidator:
    """Evaluates submitted code and produces a ValidationResult."""

    def __init__(
        self,
        config: AnswerValidatorConfig | None = None,
        registry: ValidatorRegistry | None = None,
        executor: CodeExecutor | None = None,
    ):
        self.config = config or AnswerValidatorConfig()
        self.registry = registry or ValidatorRegistry()
        self.executor = executor

    def evaluate(
        self,
        exercise: Exercise | Mapping[str, Any],
        code: str,
        file_index: int = 0,
        success_metric: SuccessMetric | None = None,
    ) -> ValidationResult:
        """Judge a submission.

        Args:
            exercise: The exercise, or its raw document.
            code: The submitted source text.
            file_index: Which file's solution exact-match compares against.
            success_metric: Execution-result only. Maps execution outcomes to
                a 0-100 metric; defaults to the share of error-free expressions.

        Returns:
            The result. Never raises.
        """
        try:
            if not isinstance(exercise, Exercise):
                exercise = Exercise.model_validate(exercise)

            strategy = exercise.validation.strategy
            if strategy == ValidationStrategy.EXACT_MATCH:
                result = self._exact_match(exercise, code, file_index)
            elif strategy == ValidationStrategy.PATTERN_MATCH:
                result = self._pattern_match(exercise, code)
            elif strategy in (
                ValidationStrategy.SEMANTIC_MATCH,
                ValidationStrategy.CUSTOM_FUNCTION,
            ):
                result = self._registered(exercise, code)
            elif strategy == ValidationStrategy.EXECUTION_RESULT:
                result = self._execution_result(exercise, code, success_metric)
            else:
                raise ValueError(f"Unsupported strategy: {strategy}")

            if self.config.include_exercise_feedback:
                result = self._with_exercise_feedback(exercise, code, result)
            return result
        except Exception as exc:
            logger.warning("Validation error: %s", exc)
            return ValidationResult.failure(VALIDATION_ERROR_MESSAGE)

    def _exact_match(
        self, exercise: Exercise, code: str, file_index: int
    ) -> ValidationResult:
        strategy = ValidationStrategy.EXACT_MATCH
        solution = exercise.files[file_index].solution
        if solution is None:
            solution = exercise.reference_solution
        if solution is None:
            return ValidationResult.failure(
                "This exercise has no reference solution to compare against",
                strategy,
            )

        options = exercise.validation.normalization
        flags = {
            "ignore_whitespace": options.ignore_whitespace,
            "ignore_case": options.ignore_case,
            "ignore_comments": options.ignore_comments,
        }
        passed = normalize_code(code, **flags) == normalize_code(solution, **flags)
        return ValidationResult(
            passed=passed,
            score=100 if passed else 0,
            feedback=[] if passed else ["Your code does not match the expected solution"],
            strategy=strategy,
        )

    def _pattern_match(self, exercise: Exercise, code: str) -> ValidationResult:
        validation = exercise.validation
        score = 0
        feedback: list[str] = []
        pattern_results: list[PatternResult] = []

        for pattern in validation.patterns or []:
            label = pattern.description or pattern.pattern
            matched = (
                re.search(pattern.pattern, code, re.IGNORECASE | re.MULTILINE)
                is not None
            )
            awarded = 0
            if matched:
                awarded = pattern.points
                score += awarded
                feedback.append(f"✓ {label}")
            elif pattern.required:
                feedback.append(f"✗ Missing required pattern: {label}")

            pattern_results.append(
                PatternResult(
                    pattern=pattern.pattern,
                    description=pattern.description,
                    matched=matched,
                    required=pattern.required,
                    points_awarded=awarded,
                )
            )

        score = _clamp(score)
        return ValidationResult(
            passed=score >= self._passing_score(exercise),
            score=score,
            feedback=feedback,
            pattern_results=pattern_results,
            strategy=ValidationStrategy.PATTERN_MATCH,
        )

    def _registered(self, exercise: Exercise, code: str) -> ValidationResult:
        strategy = exercise.validation.strategy
        validator = self.registry.get(exercise.validation.custom_validator)

        if validator is None:
            if self.config.missing_validator_policy == MissingValidatorPolicy.PASS:
                return ValidationResult(
                    passed=True,
                    score=100,
                    feedback=["Accepted: no validator is configured for this exercise"],
                    strategy=strategy,
                )
            return ValidationResult.failure(
                "No validator is registered for this exercise", strategy
            )

        outcome = validator(code, exercise)
        if isinstance(outcome, ValidationResult):
            return outcome.model_copy(update={"strategy": strategy})
        if isinstance(outcome, bool):
            return ValidationResult(
                passed=outcome, score=100 if outcome else 0, strategy=strategy
            )
        raise TypeError(
            f"Validator returned {type(outcome).__name__}, expected bool or ValidationResult"
        )

    def _execution_result(
        self,
        exercise: Exercise,
        code: str,
        success_metric: SuccessMetric | None,
    ) -> ValidationResult:
        strategy = ValidationStrategy.EXECUTION_RESULT
        if self.executor is None:
            return ValidationResult.failure(
                "Code execution is not available for this exercise", strategy
            )

        outcomes = self.executor.execute(code)
        metric = success_metric or passing_expression_ratio
        score = _clamp(metric(outcomes))

        feedback = []
        for outcome in outcomes:
            if outcome.error:
                feedback.append(f"✗ {outcome.name}: {outcome.error}")
            elif outcome.translator_error:
                feedback.append(f"✗ {outcome.name}: {outcome.translator_error}")

        return ValidationResult(
            passed=score >= self._passing_score(exercise),
            score=score,
            feedback=feedback,
            strategy=strategy,
        )

    def _with_exercise_feedback(
        self, exercise: Exercise, code: str, result: ValidationResult
    ) -> ValidationResult:
        messages = list(result.feedback)
        if result.passed:
            messages.append(exercise.feedback.success)
        else:
            messages.append(exercise.feedback.failure)
            for common_error in exercise.feedback.common_errors:
                if re.search(common_error.pattern, code, re.MULTILINE):
                    line = common_error.explanation
                    if common_error.suggestion:
                        line += f" {common_error.suggestion}"
                    messages.append(line)
        return result.model_copy(update={"feedback": messages})

    def _passing_score(self, exercise: Exercise) -> int:
        passing = exercise.validation.passing_score
        return self.config.default_passing_score if passing is None else passing
