"""
Rich formatter for Profundo CLI output.

Handles all Rich-based formatting: recall results, usage stats, status,
learnings listings and run reports.
"""

from datetime import date
from typing import Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich import box

from ..core.models import LearningRecord, Origin, ResultItem
from ..harvest.runner import HarvestReport
from ..rag.indexer import EmbedReport
from .export import group_by_session
from .stats import AggregatedStats


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def _format_tokens(count: int) -> str:
    if count >= 1_000_000:
        return f"{count / 1_000_000:.2f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


class ProfundoFormatter:
    """
    Rich-based formatter for all commands.

    Args:
        console: Rich Console instance (creates default if not provided)
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def _score_style(self, score: float) -> str:
        if score >= 0.8:
            return "green"
        if score >= 0.6:
            return "yellow"
        return "red"

    def print_recall(self, results: List[ResultItem], query: str,
                     expansions: Optional[List[str]] = None) -> None:
        if expansions:
            self.console.print(f"[dim]Expanded with: {', '.join(expansions)}[/dim]")

        if not results:
            self.console.print(f"[yellow]→[/yellow] No results found for: [italic]{query}[/italic]")
            return

        self.console.print(
            f"\n[blue]→[/blue] Found [cyan]{len(results)}[/cyan] results for: [italic]{query}[/italic]\n"
        )
        for item in results:
            day = (item.timestamp or "unknown").split("T")[0] or "unknown"
            pct = int(item.raw_score * 100)
            style = self._score_style(item.raw_score)
            if item.origin is Origin.CHUNK:
                label = f"[dim]{item.session_id[:8]}[/dim]"
                score = f"[{style}]{pct}%[/{style}]"
            else:
                label = f"[magenta]{item.learning.kind}[/magenta] [dim]{item.session_id[:8]}[/dim]"
                score = f"[{style}]{pct}% match[/{style}]"

            self.console.print(f"[bold]{item.rank}.[/bold] [cyan]{day}[/cyan] {label} ({score})")
            preview = _truncate(item.text, 300).splitlines()
            for line in preview[:6]:
                self.console.print(Text(f"   {line}", style="dim"))
            if len(preview) > 6:
                self.console.print("   [dim]...[/dim]")
            self.console.print()

    def print_embed_report(self, report: EmbedReport) -> None:
        self.console.print(
            f"[green]✓[/green] Embedded [cyan]{report.chunks_embedded}[/cyan] chunks from "
            f"[cyan]{report.sessions_seen}[/cyan] sessions "
            f"([yellow]{report.sessions_unchanged}[/yellow] unchanged, "
            f"{report.chunks_already_stored} already stored)"
        )
        for failure in report.failures:
            self.console.print(
                f"[red]✗[/red] {failure.source} stopped at position {failure.position}: {failure.reason}"
            )
        if report.halted:
            self.console.print("[red]Run halted: embedding provider unavailable[/red]")

    def print_harvest_report(self, report: HarvestReport) -> None:
        self.console.print(
            f"[green]✓[/green] Harvested [cyan]{len(report.harvested)}[/cyan] sessions, "
            f"{report.records_written} records ([yellow]{report.skipped}[/yellow] skipped, "
            f"[red]{len(report.failures)}[/red] errors)"
        )
        for failure in report.failures:
            self.console.print(f"[red]✗[/red] {failure.session_id}: {failure.reason}")

    def print_stats(self, stats: AggregatedStats) -> None:
        if stats.session_count == 0:
            self.console.print("[yellow]No sessions found for this period[/yellow]")
            return

        low, high = stats.date_range
        total = stats.total
        summary = Text()
        summary.append(f"{stats.session_count} sessions", style="bold")
        summary.append(f"  {low} → {high}\n", style="dim")
        summary.append(f"Input {_format_tokens(total.input_tokens)}  ")
        summary.append(f"Output {_format_tokens(total.output_tokens)}  ")
        summary.append(f"Cache read {_format_tokens(total.cache_read_tokens)}  ")
        summary.append(f"Cache write {_format_tokens(total.cache_write_tokens)}\n")
        summary.append(f"Cache hit rate {total.cache_hit_rate * 100:.1f}%  ")
        summary.append(f"Cost ${total.total_cost:.4f}", style="green bold")
        self.console.print(Panel(summary, title="[bold]Usage[/bold]", border_style="blue"))

        table = Table(title="By model", box=box.SIMPLE)
        table.add_column("Model", style="cyan")
        table.add_column("Messages", justify="right")
        table.add_column("Input", justify="right")
        table.add_column("Output", justify="right")
        table.add_column("Cache %", justify="right")
        table.add_column("Cost", justify="right", style="green")
        for model, model_stats in sorted(stats.by_model.items(), key=lambda m: -m[1].total_cost):
            table.add_row(
                model,
                str(model_stats.message_count),
                _format_tokens(model_stats.input_tokens),
                _format_tokens(model_stats.output_tokens),
                f"{model_stats.cache_hit_rate * 100:.0f}%",
                f"${model_stats.total_cost:.4f}",
            )
        self.console.print(table)

        days = Table(title="By date", box=box.SIMPLE)
        days.add_column("Date", style="cyan")
        days.add_column("Input", justify="right")
        days.add_column("Output", justify="right")
        days.add_column("Cost", justify="right", style="green")
        for day in sorted(stats.by_date, reverse=True)[:14]:
            day_stats = stats.by_date[day]
            days.add_row(
                day.isoformat(),
                _format_tokens(day_stats.input_tokens),
                _format_tokens(day_stats.output_tokens),
                f"${day_stats.total_cost:.4f}",
            )
        self.console.print(days)

    def print_status(self, status: Dict) -> None:
        table = Table(title="Profundo status", box=box.ROUNDED, show_header=False)
        table.add_column("Item", style="bold")
        table.add_column("Value")

        table.add_row("Sessions dir", str(status["sessions_dir"]))
        table.add_row("Memory dir", str(status["memory_dir"]))
        table.add_row(
            "Session logs",
            f"{status['session_files']} files ({status['session_bytes'] / 1_000_000:.1f} MB)",
        )
        by_model = status["store_by_model"]
        if not by_model:
            table.add_row("Vector store", "[dim]empty[/dim]")
        for model, info in by_model.items():
            table.add_row(
                f"Vectors [{model}]",
                f"{info['chunks']} chunks, {info['sessions']} sessions, dim {info['dim']}",
            )
        table.add_row("Last appended", str(status.get("last_appended") or "---"))
        table.add_row(
            "Learnings",
            f"{status['learning_records']} records from {status['learning_sessions']} sessions",
        )
        table.add_row("Embed cursors", str(status["embed_cursors"]))
        table.add_row("Harvest cursors", str(status["harvest_cursors"]))
        self.console.print(table)

    def print_learnings(self, records: List[LearningRecord], query: Optional[str] = None) -> None:
        sessions = group_by_session(records)
        if not sessions:
            message = f"No learnings matching '{query}'" if query else "No learnings harvested yet"
            self.console.print(f"[yellow]{message}[/yellow]")
            return

        for session_id, session_records in sessions.items():
            day: Optional[date] = session_records[0].date
            title = f"[bold]{day or 'unknown'}[/bold] [dim]{session_id[:8]}[/dim]"
            body = Text()
            for record in session_records:
                if record.kind == "topic":
                    continue
                body.append(f"{record.kind}: ", style="magenta")
                body.append(f"{record.text}\n")
            topics = [r.text for r in session_records if r.kind == "topic"]
            if topics:
                body.append(f"topics: {', '.join(topics)}", style="dim")
            self.console.print(Panel(body, title=title, title_align="left", border_style="blue"))
