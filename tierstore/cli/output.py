"""CLI output utilities."""

from typing import Any

from rich.console import Console
from rich.table import Table

BAR_WIDTH = 40


def print_success(console: Console, message: str) -> None:
    """Print success message."""
    console.print(f"✅ {message}", style="green")


def print_error(message: str) -> None:
    """Print error message to stderr."""
    Console(stderr=True).print(f"❌ {message}", style="red")


def print_info(console: Console, message: str) -> None:
    """Print info message."""
    console.print(f"ℹ️  {message}", style="cyan")


def print_table(
    console: Console,
    headers: list[str],
    rows: list[list[Any]],
    title: str | None = None,
) -> None:
    """Print a table.

    Args:
        console: Console to print to
        headers: Table headers
        rows: Table rows
        title: Optional table title
    """
    table = Table(title=title) if title else Table()

    for header in headers:
        table.add_column(header)

    for row in rows:
        table.add_row(*[str(cell) for cell in row])

    console.print(table)


def print_list(console: Console, items: list[str], limit: int = 10, bullet: str = "-") -> None:
    """Print a bulleted list, summarizing whatever is past the limit."""
    for item in items[:limit]:
        console.print(f"  {bullet} {item}")
    if len(items) > limit:
        console.print(f"  ... and {len(items) - limit} more", style="dim")


def print_bar_chart(console: Console, counts: dict[str, int], title: str | None = None) -> None:
    """Print a horizontal bar per label, scaled to the largest count."""
    if not counts:
        return
    table = Table(title=title, show_header=False, box=None)
    table.add_column("label", style="bold")
    table.add_column("bar", style="cyan")
    table.add_column("count", justify="right")

    peak = max(counts.values())
    for label, count in sorted(counts.items(), key=lambda item: -item[1]):
        length = max(1, round(count / peak * BAR_WIDTH)) if peak else 0
        table.add_row(label, "█" * length, str(count))

    console.print(table)
