"""Central UI handler for pastoralist.

Single source of truth for Rich console styling. Import this instead of
instantiating Console() in every command file.

Usage:
    from pastoralist.ui import console, print_header, print_success

    console.print("[success]No vulnerable packages found[/success]")
    print_header("SECURITY CHECK")
"""

import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

PASTORALIST_THEME = Theme({
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
    "success": "bold green",
    "critical": "bold red",
    "high": "bold yellow",
    "medium": "bold blue",
    "low": "cyan",
    "pkg": "bold magenta",
    "path": "bold cyan",
    "dim": "dim white",
})

console = Console(
    theme=PASTORALIST_THEME,
    force_terminal=sys.stdout.isatty()
)


def print_header(title: str) -> None:
    """Print a styled section header with horizontal rules."""
    console.rule(f"[bold]{title}[/bold]")


def print_success(msg: str) -> None:
    console.print(f"[success]OK:[/success] {msg}")


def print_status_panel(
    status: str,
    message: str,
    detail: str,
    level: str = "info"
) -> None:
    """Print a status panel with colored border.

    Args:
        status: Status label (e.g., "VULNERABLE", "CLEAN")
        message: Main message line
        detail: Additional detail line
        level: One of "critical", "high", "medium", "low", "success", "info"
    """
    style_map = {
        "critical": ("bold red", "red"),
        "high": ("bold yellow", "yellow"),
        "medium": ("bold blue", "blue"),
        "low": ("cyan", "cyan"),
        "success": ("bold green", "green"),
        "info": ("bold cyan", "cyan"),
    }
    text_style, border_style = style_map.get(level, ("white", "white"))

    panel = Panel(
        Text.assemble(
            (f"STATUS: [{status}]\n", text_style),
            (f"{message}\n", border_style),
            (detail, border_style)
        ),
        border_style=border_style,
        expand=False
    )
    console.print(panel)


def print_alert_table(alerts) -> None:
    """Render alerts as a severity-colored table."""
    table = Table(title="Vulnerable packages", show_lines=False)
    table.add_column("Severity")
    table.add_column("Package", style="pkg")
    table.add_column("Version")
    table.add_column("Fix")
    table.add_column("Title")

    for alert in alerts:
        sev = alert.severity
        fix = alert.patched_version if alert.fix_available and alert.patched_version else "none"
        table.add_row(
            f"[{sev}]{sev.upper()}[/{sev}]",
            alert.package_name,
            alert.current_version,
            fix,
            alert.title,
        )

    console.print(table)
