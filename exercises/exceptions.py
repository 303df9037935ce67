"""Exceptions raised by the exercise content pipeline.

Most failures in the pipeline are returned as data (schema errors, failed
validation results, failed source entries). These exceptions cover the cases
that cross a boundary: a content source that cannot be imported, and a batch
that cannot be merged or analysed.
"""

from typing import Any


class PipelineError(Exception):
    """Base class for pipeline errors, carrying optional context for logging."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "context": self.context,
        }


class ImportSourceError(PipelineError):
    """A content source failed to produce exercises."""


class UnknownSourceError(ImportSourceError):
    """No importer is registered under the requested source name."""

    def __init__(self, source_name: str):
        super().__init__(f"Unknown source: {source_name}", {"source": source_name})
        self.source_name = source_name


class OrchestrationError(PipelineError):
    """Merging or analysing the whole batch failed. Fatal for the run."""
