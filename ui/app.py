from rich.console import Console
from rich.text import Text
from rich.panel import Panel
from ui.components import (
    ImportReport,
    MigrationReport,
    QualityTable,
    SchemaErrorsPanel,
    ValidationResultPanel,
)
from ui.styles import (
    SUCCESS_GREEN,
    ERROR_RED,
    INFO_BLUE,
    WARNING_AMBER,
)
from typing import Any, Dict, List, Optional

from exercises.quality import QualityChecker
from exercises.schema_validator import SchemaValidator
from models import Exercise, SchemaValidationResult, ValidationResult


class PipelineUI:
    """Prints pipeline reports to the terminal."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def show_migration(self, batch: Dict[str, Any]) -> None:
        """Display the report for a migrated legacy batch."""
        self.console.print(MigrationReport(batch))
        self.console.print()

    def show_import(self, reports: Dict[str, Any], summary: Dict[str, Any]) -> None:
        """Display the report for a multi-source import run."""
        self.console.print(ImportReport(reports, summary))
        self.console.print()

    def show_catalog(
        self,
        exercises: List[Exercise],
        title: str = "Catalog",
        checker: Optional[QualityChecker] = None,
        validator: Optional[SchemaValidator] = None,
    ) -> None:
        """Display stored exercises with freshly computed quality and validity."""
        if not exercises:
            self.show_info("No exercises stored.")
            return
        self.console.print(
            QualityTable(exercises, title=title, checker=checker, validator=validator)
        )
        self.console.print()

    def show_schema(self, result: SchemaValidationResult, exercise_id: str = "") -> None:
        self.console.print(SchemaErrorsPanel(result, exercise_id))
        self.console.print()

    def show_result(self, result: ValidationResult, exercise_title: str = "") -> None:
        """Display the verdict for a submission."""
        self.console.print(ValidationResultPanel(result, exercise_title))
        self.console.print()

    def show_error(self, message: str) -> None:
        """Display an error message."""
        self.console.print(
            Panel(
                Text(f"Error: {message}", style=ERROR_RED),
                title="Error",
                border_style=ERROR_RED,
            )
        )

    def show_warning(self, message: str) -> None:
        self.console.print(Text(message, style=WARNING_AMBER))

    def show_info(self, message: str) -> None:
        """Display an informational message."""
        self.console.print(Text(message, style=INFO_BLUE))

    def show_success(self, message: str) -> None:
        """Display a success message."""
        self.console.print(Text(message, style=SUCCESS_GREEN))
