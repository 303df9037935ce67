"""Exercise content validation and migration pipeline.

This package turns raw exercise records from several sources into a
validated, deduplicated catalog, and judges learner submissions against it.

Architecture:
- Importers read raw records and convert them to Exercise documents
- The migration transformer infers structure for legacy records
- The schema validator and quality checker judge each document
- The content processor fills in missing hints and patterns
- The import orchestrator runs all of the above over several sources

Validation:
- SchemaValidator: Structural and semantic checks on exercise documents
- QualityChecker: Deterministic 0-100 content quality score

Answer checking:
- AnswerValidator: Judges submitted code by the exercise's strategy
- ValidatorRegistry: Named validators for custom and semantic strategies
- CodeExecutor: Port to the code-execution service

Import:
- MigrationTransformer: Legacy records to Exercise documents
- ContentImporter: Base class for a content source
- LegacyImporter, CQFImporter, CookingWithCQLImporter: Bundled sources
- ContentProcessor: Enhancement pass over a batch
- ImportOrchestrator: Multi-source import with dedup and reports

Progress:
- ProgressTracker: Records submissions and schedules spaced reviews

Configuration:
- PipelineConfig: Configure every stage
"""

from exercises.answer_validator import (
    AnswerValidator,
    CodeExecutor,
    ValidatorRegistry,
    passing_expression_ratio,
)
from exercises.base import escape_regex, normalize_code, slugify
from exercises.config import (
    AnswerValidatorConfig,
    ImportOptions,
    MigrationConfig,
    MissingValidatorPolicy,
    PipelineConfig,
    ProcessorConfig,
    QualityConfig,
    SchemaValidatorConfig,
)
from exercises.exceptions import (
    ImportSourceError,
    OrchestrationError,
    PipelineError,
    UnknownSourceError,
)
from exercises.importers import (
    ContentImporter,
    CookingWithCQLImporter,
    CQFImporter,
    LegacyImporter,
    default_importers,
)
from exercises.migration import LegacyExercise, LegacyTab, MigrationTransformer
from exercises.orchestrator import (
    ImportOrchestrator,
    ImportResults,
    fingerprint,
    similarity,
)
from exercises.processor import ContentProcessor, ProcessingResult
from exercises.progress import ProgressTracker, SubmissionOutcome
from exercises.quality import QualityChecker, validate_batch
from exercises.schema_validator import SchemaValidator, find_prerequisite_cycles

__all__ = [
    # Answer checking
    "AnswerValidator",
    "CodeExecutor",
    "ValidatorRegistry",
    "passing_expression_ratio",
    # Text helpers
    "escape_regex",
    "normalize_code",
    "slugify",
    # Configuration
    "AnswerValidatorConfig",
    "ImportOptions",
    "MigrationConfig",
    "MissingValidatorPolicy",
    "PipelineConfig",
    "ProcessorConfig",
    "QualityConfig",
    "SchemaValidatorConfig",
    # Errors
    "ImportSourceError",
    "OrchestrationError",
    "PipelineError",
    "UnknownSourceError",
    # Import
    "ContentImporter",
    "CookingWithCQLImporter",
    "CQFImporter",
    "LegacyImporter",
    "default_importers",
    "LegacyExercise",
    "LegacyTab",
    "MigrationTransformer",
    "ImportOrchestrator",
    "ImportResults",
    "fingerprint",
    "similarity",
    "ContentProcessor",
    "ProcessingResult",
    # Progress
    "ProgressTracker",
    "SubmissionOutcome",
    # Validation
    "QualityChecker",
    "validate_batch",
    "SchemaValidator",
    "find_prerequisite_cycles",
]
