"""Terminal reports for the exercise pipeline."""

from ui.app import PipelineUI
from ui.components import (
    ImportReport,
    MigrationReport,
    QualityTable,
    SchemaErrorsPanel,
    ValidationResultPanel,
)
from ui.styles import (
    CLINIC_BLUE,
    WARNING_AMBER,
    SUCCESS_GREEN,
    ERROR_RED,
    INFO_BLUE,
    MUTED_GRAY,
)

__all__ = [
    "PipelineUI",
    "ImportReport",
    "MigrationReport",
    "QualityTable",
    "SchemaErrorsPanel",
    "ValidationResultPanel",
    "CLINIC_BLUE",
    "WARNING_AMBER",
    "SUCCESS_GREEN",
    "ERROR_RED",
    "INFO_BLUE",
    "MUTED_GRAY",
]
