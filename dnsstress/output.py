"""
Output formatting for dnsstress.

Provides:
- Plain interval lines
- Rich terminal output (banner, live interval lines, summary table)
- JSON run summary for scripting
"""

import json
from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .models import IntervalStats, RunSummary, StressConfig


def _latency(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:.0f}ms"


class ConsoleOutput:
    """Plain text output formatter."""

    @staticmethod
    def format_interval(stats: IntervalStats) -> str:
        """
        Format one display interval as a single line.

        Args:
            stats: IntervalStats to format

        Returns:
            Line with request/reply rates and latency
        """
        line = (
            f"Requests sent: {stats.rate:6.0f}r/s  "
            f"Replies received: {stats.reply_rate:6.0f}r/s "
            f"(mean={_latency(stats.avg_latency_ms)} / "
            f"max={_latency(stats.max_latency_ms)})"
        )
        if stats.errors:
            line += f"  Errors: {stats.errors}"
        return line

    @staticmethod
    def print(stats: IntervalStats) -> None:
        """Print one interval line to stdout."""
        print(ConsoleOutput.format_interval(stats), flush=True)


class RichConsoleOutput:
    """Rich library console output with colors and tables."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(highlight=False)

    def banner(self, config: StressConfig, domains: list[str]) -> None:
        """Print the tool name, destination and targets."""
        self.console.print("dnsstress - dns stress tool")
        self.console.print()
        if config.doh_endpoint:
            self.console.print(f"Testing DOH endpoint: [bold]{escape(config.doh_endpoint)}[/bold].")
        else:
            self.console.print(f"Testing resolver: [bold]{escape(config.resolver)}[/bold].")
        self.console.print(f"Target domains: {escape(str(domains))}.")
        self.console.print()

    def error(self, message: str, detail: object = None) -> None:
        """Print a fatal error in red."""
        if detail is not None:
            message = f"{message} ({detail})"
        self.console.print(f"[red]{escape(message)}[/red]")

    def warning(self, message: str) -> None:
        """Print a highlighted warning."""
        self.console.print(f"[black on yellow] WARNING [/black on yellow] {message}")

    def info(self, message: str) -> None:
        """Print a status line."""
        self.console.print(escape(message))

    def interval(self, stats: IntervalStats) -> None:
        """Print one display interval."""
        line = (
            f"Requests sent: [bold]{stats.rate:6.0f}[/bold]r/s  "
            f"Replies received: [bold]{stats.reply_rate:6.0f}[/bold]r/s "
            f"[dim](mean={_latency(stats.avg_latency_ms)} / "
            f"max={_latency(stats.max_latency_ms)})[/dim]"
        )
        if stats.errors:
            line += f"  [red]Errors: {stats.errors}[/red]"
        self.console.print(line)

    def summary(self, summary: RunSummary) -> None:
        """Print the end-of-run summary table."""
        table = Table(
            title="Run Summary",
            box=box.ROUNDED,
            header_style="bold magenta",
        )
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")

        table.add_row("Destination", f"{escape(summary.destination)} ({summary.transport.value.upper()})")
        table.add_row("Duration", f"{summary.duration_seconds:.1f}s")
        table.add_row("Workers", str(summary.concurrency))
        table.add_row("Queries sent", str(summary.total_sent))
        table.add_row("Errors", f"{summary.total_errors} ({summary.error_rate:.1f}%)")
        table.add_row("Mean rate", f"{summary.mean_rate:.0f} r/s")
        table.add_row("Peak rate", f"{summary.peak_rate:.0f} r/s")
        table.add_row("Avg latency", _latency(summary.avg_latency_ms))
        table.add_row("p95 latency", _latency(summary.p95_latency_ms))
        table.add_row("Max latency", _latency(summary.max_latency_ms))

        self.console.print()
        self.console.print(table)
        if summary.total_sent and summary.total_errors == summary.total_sent:
            self.console.print(Panel(
                "[bold yellow]No replies received - check the resolver address[/bold yellow]",
                border_style="yellow",
            ))


class JSONOutput:
    """JSON output formatter."""

    @staticmethod
    def format(summary: RunSummary, indent: int = 2) -> str:
        """
        Format a run summary as JSON.

        Args:
            summary: RunSummary to format
            indent: JSON indentation level

        Returns:
            JSON string
        """
        def rounded(value: Optional[float]) -> Optional[float]:
            return None if value is None else round(value, 3)

        data = {
            "metadata": {
                "started_at": summary.started_at.isoformat(),
                "completed_at": summary.completed_at.isoformat(),
                "duration_seconds": summary.duration_seconds,
                "destination": summary.destination,
                "transport": summary.transport.value,
                "domains": summary.domains,
                "concurrency": summary.concurrency,
            },
            "queries": {
                "sent": summary.total_sent,
                "errors": summary.total_errors,
                "error_rate_pct": round(summary.error_rate, 2),
            },
            "rate": {
                "mean": rounded(summary.mean_rate),
                "peak": rounded(summary.peak_rate),
                "intervals": summary.intervals,
            },
            "latency_ms": {
                "avg": rounded(summary.avg_latency_ms),
                "p95": rounded(summary.p95_latency_ms),
                "max": rounded(summary.max_latency_ms),
            },
        }
        return json.dumps(data, indent=indent)
