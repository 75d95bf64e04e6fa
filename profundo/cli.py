"""
Profundo - Command Line Interface
Semantic memory over chat session logs: index, recall, harvest, report
"""

import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from .core.config import Config, Paths
from .core.errors import AlreadyRunning, ProfundoError
from .core.models import Query
from .harvest.extractor import HarvestExtractor
from .harvest.learnings import LearningsLog
from .harvest.runner import HarvestRunner
from .providers.openrouter import ChatClient, RetryPolicy, create_client
from .rag.embeddings import EmbeddingClient
from .rag.expansion import QueryExpander
from .rag.indexer import Indexer
from .rag.retriever import Retriever
from .rag.store import VectorStore
from .reports.export import export_markdown, write_rollup
from .reports.formatter import ProfundoFormatter
from .reports.stats import collect
from .reports.status import collect_status

# Initialize CLI app and console
app = typer.Typer(help="Profundo - semantic memory for your chat sessions")

console = Console()
formatter = ProfundoFormatter(console)

DATE_FORMATS = ["%Y-%m-%d"]

# Set by the callback before any command runs
_state = {"paths": None, "config": None}


def setup_logging(log_dir: Path, verbose: bool = False) -> None:
    """File log at INFO; console shows warnings (everything with --verbose)"""
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_dir / "profundo.log")
    file_handler.setLevel(logging.INFO)
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[file_handler, stream_handler],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def get_paths() -> Paths:
    if _state["paths"] is None:
        _state["paths"] = Paths.default()
    return _state["paths"]


def get_config() -> Config:
    if _state["config"] is None:
        _state["config"] = Config(get_paths())
    return _state["config"]


def build_embedder(config: Config) -> EmbeddingClient:
    return EmbeddingClient(
        create_client(config),
        model=config.get("embedding_model"),
        batch_size=int(config.get("embed_batch_size", 32)),
        retry_policy=RetryPolicy.from_config(config),
    )


def build_chat(config: Config, model: Optional[str] = None) -> ChatClient:
    return ChatClient(
        create_client(config),
        model=model or config.get("chat_model"),
        retry_policy=RetryPolicy.from_config(config),
    )


def _fail(e: ProfundoError) -> None:
    """Print a typed error and exit (2 when another run holds the lock)"""
    console.print(f"[red]Error: {e}[/red]")
    raise typer.Exit(2 if isinstance(e, AlreadyRunning) else 1)


def _as_date(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value else None


@app.callback()
def main(
    sessions_dir: Optional[Path] = typer.Option(None, "--sessions-dir", help="Session logs directory"),
    memory_dir: Optional[Path] = typer.Option(None, "--memory-dir", help="Profundo workspace directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Profundo - semantic memory for your chat sessions"""
    paths = Paths.with_bases(sessions_dir, memory_dir)
    _state["paths"] = paths
    _state["config"] = None
    setup_logging(paths.log_dir, verbose)


# ============================================================================
# CLI Commands
# ============================================================================

@app.command()
def embed(
    full: bool = typer.Option(False, "--full", "-f", help="Re-embed every session from scratch"),
):
    """
    Index new conversation turns into the vector store

    Only turns added since the last run are embedded. --full resets every
    cursor and re-embeds everything without creating duplicates.
    """
    try:
        config = get_config()
        paths = get_paths()
        indexer = Indexer(
            paths,
            VectorStore(paths.db_path),
            build_embedder(config),
            batch_size=int(config.get("embed_batch_size", 32)),
            concurrency=int(config.get("embed_concurrency", 4)),
        )
        with console.status("Embedding sessions..."):
            report = indexer.run(full=full)
    except ProfundoError as e:
        _fail(e)

    formatter.print_embed_report(report)
    if report.failures:
        raise typer.Exit(1)


@app.command()
def recall(
    query: str = typer.Argument(..., help="What to search for"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Number of results"),
    expand: bool = typer.Option(False, "--expand", "-e", help="Expand the query with an LLM"),
    threshold: Optional[float] = typer.Option(None, "--threshold", "-t", help="Minimum similarity (0-1)"),
    since: Optional[datetime] = typer.Option(None, "--since", formats=DATE_FORMATS, help="Only from this date"),
    until: Optional[datetime] = typer.Option(None, "--until", formats=DATE_FORMATS, help="Only up to this date"),
    no_learnings: bool = typer.Option(False, "--no-learnings", help="Search conversations only"),
):
    """
    Search past conversations by meaning

    Examples:
      profundo recall "database migration plan"
      profundo recall "what did we decide about hosting" -n 10 --expand
    """
    try:
        config = get_config()
        paths = get_paths()
        expander = QueryExpander(build_chat(config)) if expand else None
        retriever = Retriever(
            VectorStore(paths.db_path),
            build_embedder(config),
            learnings=LearningsLog(paths.learnings_path),
            expander=expander,
            fusion_policy=config.get("fusion_policy", "minmax"),
        )
        q = Query(
            text=query,
            expansions=retriever.expand(query) if expand else [],
            k=limit or int(config.get("recall_top_k", 5)),
            since=_as_date(since),
            until=_as_date(until),
            threshold=threshold if threshold is not None else float(config.get("recall_threshold", 0.3)),
            include_learnings=not no_learnings,
        )
        results = retriever.recall(q)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except ProfundoError as e:
        _fail(e)

    formatter.print_recall(results, query, q.expansions)


@app.command()
def harvest(
    since: Optional[datetime] = typer.Option(None, "--since", formats=DATE_FORMATS, help="Only sessions started on or after this date"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Chat model for extraction"),
    min_messages: Optional[int] = typer.Option(None, "--min-messages", help="Minimum new messages per session"),
):
    """
    Extract topics, decisions, facts and action items from sessions
    """
    try:
        config = get_config()
        chat = build_chat(config, model)
        extractor = HarvestExtractor(chat, max_chars=int(config.get("harvest_max_chars", 50000)))
        runner = HarvestRunner(
            get_paths(),
            extractor,
            min_messages=min_messages or int(config.get("harvest_min_messages", 4)),
        )
        with console.status("Harvesting sessions..."):
            report = runner.run(since=_as_date(since))
    except ProfundoError as e:
        _fail(e)

    formatter.print_harvest_report(report)
    if report.failures:
        raise typer.Exit(1)


@app.command()
def learnings(
    query: Optional[str] = typer.Argument(None, help="Filter by text or tag"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of sessions to show"),
):
    """
    List harvested learnings, newest sessions first
    """
    try:
        records = LearningsLog(get_paths().learnings_path).search(query, limit=limit)
    except ProfundoError as e:
        _fail(e)

    formatter.print_learnings(records, query)


@app.command()
def status():
    """
    Show index, learnings and cursor status
    """
    try:
        info = collect_status(get_paths())
    except ProfundoError as e:
        _fail(e)

    formatter.print_status(info)


@app.command()
def stats(
    since: Optional[datetime] = typer.Option(None, "--since", formats=DATE_FORMATS, help="Start date"),
    until: Optional[datetime] = typer.Option(None, "--until", formats=DATE_FORMATS, help="End date"),
):
    """
    Show token usage and cost across sessions
    """
    try:
        aggregated = collect(get_paths().sessions_dir, since=_as_date(since), until=_as_date(until))
    except ProfundoError as e:
        _fail(e)

    formatter.print_stats(aggregated)


@app.command()
def export(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Markdown file to write"),
):
    """
    Export all learnings as markdown
    """
    paths = get_paths()
    output = output or paths.memory_dir / "profundo-learnings.md"
    try:
        result = export_markdown(paths.learnings_path, output)
    except ProfundoError as e:
        _fail(e)

    if result.sessions == 0:
        console.print("[yellow]No learnings to export[/yellow]")
        return
    console.print(
        f"[green]✓[/green] Exported {result.sessions} sessions "
        f"({result.decisions} decisions, {result.facts} facts, {result.actions} actions) to {output}"
    )


@app.command()
def rollup(
    day: Optional[datetime] = typer.Option(None, "--date", "-d", formats=DATE_FORMATS, help="Day to roll up (default: yesterday)"),
):
    """
    Write a Profundo section into the daily memory log
    """
    target = _as_date(day) or date.today() - timedelta(days=1)
    try:
        result = write_rollup(get_paths(), target)
    except ProfundoError as e:
        _fail(e)

    console.print(
        f"[green]✓[/green] Rolled up {result.sessions} harvested sessions "
        f"({result.stats_sessions} with usage) into {result.path}"
    )


if __name__ == "__main__":
    app()
