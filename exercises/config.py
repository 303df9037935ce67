"""Configuration for the exercise content pipeline.

These configuration models allow users to tune each stage, such as the
default points awarded per pattern, the quality thresholds used in reports,
or the time-estimation constants used during migration.
"""

import json
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class MissingValidatorPolicy(str, Enum):
    """What to do when a custom or semantic strategy has no validator."""

    FAIL_CLOSED = "fail_closed"
    PASS = "pass"


class SchemaValidatorConfig(BaseModel):
    """Configuration for schema validation."""

    check_pattern_syntax: bool = True
    check_hint_levels: bool = True


class QualityConfig(BaseModel):
    """Configuration for quality scoring and reports."""

    min_instructions_length: int = Field(default=100, ge=0)
    recommended_hint_count: int = Field(default=3, ge=1)
    high_quality_threshold: int = Field(default=85, ge=0, le=100)
    needs_improvement_threshold: int = Field(default=70, ge=0, le=100)


class AnswerValidatorConfig(BaseModel):
    """Configuration for answer validation."""

    default_passing_score: int = Field(default=70, ge=0, le=100)
    missing_validator_policy: MissingValidatorPolicy = (
        MissingValidatorPolicy.FAIL_CLOSED
    )
    include_exercise_feedback: bool = True


class MigrationConfig(BaseModel):
    """Configuration for legacy migration heuristics."""

    minutes_per_100_chars: int = Field(default=2, ge=0)
    min_estimated_time: int = Field(default=5, ge=1)
    max_estimated_time: int = Field(default=45, ge=1)
    template_bonus_thresholds: tuple[int, int] = (100, 300)
    template_bonus_minutes: tuple[int, int] = (5, 10)
    max_concepts: int = Field(default=5, ge=1)
    max_prerequisites: int = Field(default=2, ge=0)
    default_passing_score: int = Field(default=70, ge=0, le=100)
    high_quality_threshold: int = Field(default=80, ge=0, le=100)
    needs_review_threshold: int = Field(default=70, ge=0, le=100)


class ProcessorConfig(BaseModel):
    """Configuration for the enhancement pass."""

    improvement_threshold: int = Field(default=80, ge=0, le=100)
    min_hint_count: int = Field(default=3, ge=1)
    toc_min_length: int = Field(default=2000, ge=0)


class ImportOptions(BaseModel):
    """Phase toggles for an orchestrated import."""

    process_content: bool = True
    validate_quality: bool = True
    generate_reports: bool = True
    merge_duplicates: bool = True


class PipelineConfig(BaseModel):
    """Master configuration for all pipeline stages."""

    schema_validator: SchemaValidatorConfig = Field(
        default_factory=SchemaValidatorConfig
    )
    quality: QualityConfig = Field(default_factory=QualityConfig)
    answer_validator: AnswerValidatorConfig = Field(
        default_factory=AnswerValidatorConfig
    )
    migration: MigrationConfig = Field(default_factory=MigrationConfig)
    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)
    import_options: ImportOptions = Field(default_factory=ImportOptions)

    @classmethod
    def from_file(cls, path: Path) -> "PipelineConfig":
        """Load configuration from a JSON file. Missing sections use defaults."""
        with open(path) as f:
            return cls.model_validate(json.load(f))
