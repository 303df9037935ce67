from rich.text import Text
from rich.panel import Panel
from rich.table import Table
from rich.style import Style
from rich.align import Align
from rich.console import Group
from rich import box
from typing import Any, Dict, List, Optional

from exercises.quality import QualityChecker
from exercises.schema_validator import SchemaValidator
from models import (
    Exercise,
    MigrationResult,
    QualityReport,
    Recommendation,
    SchemaValidationResult,
    ValidationResult,
)
from ui.styles import (
    CLINIC_BLUE,
    WARNING_AMBER,
    SUCCESS_GREEN,
    ERROR_RED,
    INFO_BLUE,
    MUTED_GRAY,
    TEXT_WHITE,
    get_quality_style,
    get_priority_style,
    status_mark,
)


def _recommendation_text(recommendations: List[Recommendation]) -> Text:
    content = Text()
    for rec in recommendations:
        content.append(f"[{rec.priority.upper()}] ", get_priority_style(rec.priority))
        content.append(rec.message, Style(color=TEXT_WHITE))
        content.append("\n")
        for action in rec.actions:
            content.append(f"  • {action}\n", Style(color=MUTED_GRAY))
    return content


class ValidationResultPanel:
    """A styled panel for the verdict on one submission."""

    def __init__(self, result: ValidationResult, exercise_title: str = ""):
        self.result = result
        self.exercise_title = exercise_title

    def render(self) -> Panel:
        content = Text()
        if self.result.passed:
            content.append("✓ Passed", Style(color=SUCCESS_GREEN, bold=True))
        else:
            content.append("✗ Not passed", Style(color=ERROR_RED, bold=True))
        content.append("   Score: ", Style(color=MUTED_GRAY))
        content.append(f"{self.result.score}/100", get_quality_style(self.result.score))
        content.append("\n\n")

        for line in self.result.feedback:
            if line.startswith("✓"):
                style = Style(color=SUCCESS_GREEN)
            elif line.startswith("✗"):
                style = Style(color=ERROR_RED)
            else:
                style = Style(color=TEXT_WHITE)
            content.append(line, style)
            content.append("\n")

        return Panel(
            Align.left(content),
            title=self.exercise_title or "Result",
            subtitle=self.result.strategy.value if self.result.strategy else None,
            border_style=SUCCESS_GREEN if self.result.passed else ERROR_RED,
            box=box.HEAVY,
            padding=(1, 2),
        )

    def __rich__(self) -> Panel:
        return self.render()


class SchemaErrorsPanel:
    """Schema errors and warnings for one exercise document."""

    def __init__(self, result: SchemaValidationResult, exercise_id: str = ""):
        self.result = result
        self.exercise_id = exercise_id

    def render(self) -> Panel:
        content = Text()
        if self.result.success and not self.result.warnings:
            content.append("✓ Document is valid", Style(color=SUCCESS_GREEN, bold=True))
        for error in self.result.errors:
            content.append("✗ ", Style(color=ERROR_RED, bold=True))
            content.append(f"{error.path}: ", Style(color=MUTED_GRAY))
            content.append(f"{error.message}\n", Style(color=TEXT_WHITE))
        for warning in self.result.warnings:
            content.append("! ", Style(color=WARNING_AMBER, bold=True))
            content.append(f"{warning.path}: ", Style(color=MUTED_GRAY))
            content.append(f"{warning.message}\n", Style(color=TEXT_WHITE))

        return Panel(
            Align.left(content),
            title=f"Schema: {self.exercise_id}" if self.exercise_id else "Schema",
            border_style=SUCCESS_GREEN if self.result.success else ERROR_RED,
            box=box.HEAVY,
            padding=(1, 2),
        )

    def __rich__(self) -> Panel:
        return self.render()


class QualityTable:
    """A table of exercises with their schema verdict and quality score.

    Scores and verdicts not supplied by the caller are computed from the
    exercise content; a stored ``metadata.qualityScore`` is never shown.
    """

    def __init__(
        self,
        exercises: List[Exercise],
        reports: Optional[Dict[str, QualityReport]] = None,
        valid: Optional[Dict[str, bool]] = None,
        title: str = "Exercise Quality",
        checker: Optional[QualityChecker] = None,
        validator: Optional[SchemaValidator] = None,
    ):
        self.exercises = exercises
        self.reports = dict(reports or {})
        self.valid = dict(valid or {})
        self.title = title
        checker = checker or QualityChecker()
        validator = validator or SchemaValidator()
        for exercise in exercises:
            if exercise.id not in self.reports:
                self.reports[exercise.id] = checker.assess(exercise)
            if exercise.id not in self.valid:
                self.valid[exercise.id] = validator.validate(exercise).success

    def render(self) -> Panel:
        table = Table(
            show_header=True,
            header_style=Style(color=CLINIC_BLUE, bold=True),
            border_style=MUTED_GRAY,
            row_styles=[Style(), Style(dim=True)],
            box=box.HEAVY,
        )

        table.add_column("ID", style=Style(color=CLINIC_BLUE, bold=True))
        table.add_column("Title", style=Style(color=TEXT_WHITE))
        table.add_column("Difficulty", style=Style(color=MUTED_GRAY))
        table.add_column("Valid", justify="center")
        table.add_column("Quality", justify="right")
        table.add_column("Warnings", justify="right", style=Style(color=WARNING_AMBER))

        for exercise in self.exercises:
            report = self.reports[exercise.id]
            score = report.quality_score
            table.add_row(
                exercise.id,
                exercise.title,
                exercise.difficulty.value,
                status_mark(self.valid[exercise.id]),
                Text(str(score), style=get_quality_style(score)),
                str(len(report.warnings)),
            )

        return Panel(
            Align.center(table),
            title=self.title,
            border_style=CLINIC_BLUE,
            box=box.HEAVY,
            padding=(1, 1),
        )

    def __rich__(self) -> Panel:
        return self.render()


class MigrationReport:
    """Summary of a legacy migration batch."""

    def __init__(self, batch: Dict[str, Any]):
        self.summary: Dict[str, Any] = batch["summary"]
        self.results: List[MigrationResult] = batch["results"]
        self.recommendations: List[Recommendation] = batch["recommendations"]

    def render(self) -> Panel:
        stats = Table(show_header=False, box=None, padding=(0, 2))
        stats.add_column("Label", style=Style(color=MUTED_GRAY))
        stats.add_column("Value", style=Style(color=TEXT_WHITE, bold=True))
        stats.add_row("Records", str(self.summary["total"]))
        stats.add_row("Migrated", str(self.summary["migrated"]))
        stats.add_row(
            "Valid", Text(str(self.summary["valid"]), Style(color=SUCCESS_GREEN))
        )
        stats.add_row(
            "Invalid",
            Text(
                str(self.summary["invalid"]),
                Style(color=ERROR_RED if self.summary["invalid"] else MUTED_GRAY),
            ),
        )
        average = self.summary["average_quality"]
        stats.add_row("Average quality", Text(f"{average:.1f}", get_quality_style(average)))
        stats.add_row("High quality", str(self.summary["high_quality"]))
        stats.add_row("Needs review", str(self.summary["needs_review"]))
        collection_errors = self.summary.get("collection_errors", [])
        if collection_errors:
            stats.add_row(
                "Collection errors",
                Text(str(len(collection_errors)), Style(color=ERROR_RED)),
            )

        table = QualityTable(
            [r.exercise for r in self.results],
            reports={r.exercise.id: r.quality for r in self.results},
            valid={r.exercise.id: r.valid for r in self.results},
            title="Migrated Exercises",
        )

        parts = [stats, table]
        if self.recommendations:
            parts.append(_recommendation_text(self.recommendations))

        return Panel(
            Group(*parts),
            title="Migration Report",
            border_style=CLINIC_BLUE,
            box=box.HEAVY,
            padding=(1, 2),
        )

    def __rich__(self) -> Panel:
        return self.render()


class ImportReport:
    """Summary of a multi-source import run."""

    def __init__(self, reports: Dict[str, Any], summary: Dict[str, Any]):
        self.reports = reports
        self.summary = summary

    def _sources_table(self) -> Table:
        table = Table(
            show_header=True,
            header_style=Style(color=CLINIC_BLUE, bold=True),
            border_style=MUTED_GRAY,
            box=box.SIMPLE_HEAVY,
        )
        table.add_column("Source", style=Style(color=CLINIC_BLUE, bold=True))
        table.add_column("Status", justify="center")
        table.add_column("Exercises", justify="right")
        table.add_column("Error", style=Style(color=ERROR_RED))

        for source in self.reports["import_summary"]["sources"]:
            ok = source["status"] == "success"
            table.add_row(
                source["name"],
                status_mark(ok),
                str(source["exercise_count"]),
                source["error"] or "",
            )
        return table

    def _counts(self, title: str, counts: Dict[str, int]) -> Text:
        content = Text()
        content.append(f"{title}\n", Style(color=WARNING_AMBER, bold=True))
        for key, value in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])):
            content.append(f"  {key:<24}", Style(color=TEXT_WHITE))
            content.append(f"{value}\n", Style(color=INFO_BLUE))
        return content

    def render(self) -> Panel:
        exercises = self.summary["exercises"]
        quality = self.summary["quality"]

        totals = Text()
        totals.append("Imported: ", Style(color=MUTED_GRAY))
        totals.append(f"{exercises['total_imported']}  ", Style(color=TEXT_WHITE, bold=True))
        totals.append("Unique: ", Style(color=MUTED_GRAY))
        totals.append(f"{exercises['unique']}  ", Style(color=TEXT_WHITE, bold=True))
        totals.append("Duplicates: ", Style(color=MUTED_GRAY))
        totals.append(f"{exercises['duplicates']}  ", Style(color=WARNING_AMBER))
        totals.append("Failed: ", Style(color=MUTED_GRAY))
        totals.append(f"{exercises['failed']}\n", Style(color=ERROR_RED))
        totals.append("Average quality: ", Style(color=MUTED_GRAY))
        totals.append(
            str(quality["average_score"]), get_quality_style(quality["average_score"])
        )
        totals.append(f"   ({self.summary['processing_time_ms']} ms)", Style(color=MUTED_GRAY))

        analysis = self.reports["content_analysis"]
        parts = [
            self._sources_table(),
            totals,
            self._counts("By difficulty", analysis["by_difficulty"]),
            self._counts("By type", analysis["by_type"]),
        ]

        actions = self.reports["recommendations"]
        advice = Text()
        for label, key, color in (
            ("Immediate", "immediate", ERROR_RED),
            ("Short term", "short_term", WARNING_AMBER),
        ):
            for item in actions[key]:
                advice.append(f"{label}: ", Style(color=color, bold=True))
                advice.append(f"{item}\n", Style(color=TEXT_WHITE))
        if advice.plain:
            parts.append(advice)

        return Panel(
            Group(*parts),
            title="Import Report",
            border_style=CLINIC_BLUE,
            box=box.HEAVY,
            padding=(1, 2),
        )

    def __rich__(self) -> Panel:
        return self.render()
