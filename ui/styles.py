from rich.theme import Theme
from rich.console import Console
from rich.style import Style
from rich.text import Text

CLINIC_BLUE = "#2E86C1"
WARNING_AMBER = "#F39C12"
SUCCESS_GREEN = "#27AE60"
ERROR_RED = "#C0392B"
INFO_BLUE = "#3498DB"
MUTED_GRAY = "#7F8C8D"
TEXT_WHITE = "#FFFFFF"

DEFAULT_THEME = Theme(
    {
        "primary": Style(color=CLINIC_BLUE, bold=True),
        "secondary": Style(color=WARNING_AMBER, bold=True),
        "success": Style(color=SUCCESS_GREEN),
        "warning": Style(color=WARNING_AMBER),
        "error": Style(color=ERROR_RED, bold=True),
        "info": Style(color=INFO_BLUE),
        "muted": Style(color=MUTED_GRAY),
        "title": Style(color=CLINIC_BLUE, bold=True),
        "subtitle": Style(color=MUTED_GRAY),
        "quality_high": Style(color=SUCCESS_GREEN, bold=True),
        "quality_medium": Style(color=WARNING_AMBER),
        "quality_low": Style(color=ERROR_RED),
    }
)

CONSOLE = Console(theme=DEFAULT_THEME)


def get_quality_style(score: float) -> Style:
    """Get color style for a 0-100 quality score."""
    if score >= 80:
        return Style(color=SUCCESS_GREEN, bold=True)
    elif score >= 60:
        return Style(color=WARNING_AMBER)
    else:
        return Style(color=ERROR_RED)


def get_priority_style(priority: str) -> Style:
    """Get style for a recommendation priority."""
    styles = {
        "critical": Style(color=ERROR_RED, bold=True),
        "high": Style(color=ERROR_RED),
        "medium": Style(color=WARNING_AMBER),
        "low": Style(color=INFO_BLUE),
    }
    return styles.get(priority.lower(), Style())


def status_mark(ok: bool) -> Text:
    """A check or cross mark."""
    if ok:
        return Text("✓", Style(color=SUCCESS_GREEN, bold=True))
    return Text("✗", Style(color=ERROR_RED, bold=True))
