"""CLI for codebase-context.

Index a local codebase once, then search it with natural language queries.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from .core.config import ContextConfig
from .core.debug import Verbosity, setup_logging
from .core.errors import ContextError
from .core.index_types import IndexStatus, ProgressEvent
from .core.paths import normalize_path, truncate_content
from .core.user_config import CONFIG_FILE, parse_config_value, set_config_value
from .engine import build_engine, open_snapshot

app = typer.Typer(
    name="codebase-context",
    help="Semantic indexing and search over local codebases",
    no_args_is_help=True,
)
console = Console()


class Splitter(str, Enum):
    ast = "ast"
    langchain = "langchain"


PathArg = Annotated[Path, typer.Argument(help="Codebase directory")]
ExtOpt = Annotated[
    Optional[list[str]],
    typer.Option("--ext", "-e", help="File extension to include (repeatable), e.g. .vue"),
]

STATUS_STYLES = {
    IndexStatus.INDEXED: "green",
    IndexStatus.INDEXING: "yellow",
    IndexStatus.INDEX_FAILED: "red",
    IndexStatus.NOT_INDEXED: "dim",
}


def _fail(error: ContextError) -> NoReturn:
    console.print(f"[red]✗ {error.message}[/red]")
    raise typer.Exit(1)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show info and debug logs")] = False,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Only show errors")] = False,
) -> None:
    """Configure logging before any command runs."""
    verbosity = None
    if verbose:
        verbosity = Verbosity.VERBOSE
    elif quiet:
        verbosity = Verbosity.QUIET
    setup_logging(verbosity)


@app.command("index")
def index_cmd(
    path: PathArg,
    force: Annotated[bool, typer.Option("--force", "-f", help="Re-index even if an index exists")] = False,
    splitter: Annotated[Splitter, typer.Option("--splitter", "-s", help="Code splitter")] = Splitter.ast,
    ext: ExtOpt = None,
    ignore: Annotated[
        Optional[list[str]],
        typer.Option("--ignore", "-i", help="Extra gitignore-style pattern (repeatable)"),
    ] = None,
) -> None:
    """Index a codebase for semantic search."""

    async def run():
        engine = build_engine()
        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task("Starting...", total=100)

                def on_progress(event: ProgressEvent) -> None:
                    progress.update(task, completed=event.percentage, description=event.phase)

                return await engine.manager.run_index(
                    str(path),
                    force=force,
                    splitter=splitter.value,
                    custom_extensions=ext or [],
                    ignore_patterns=ignore or [],
                    on_progress=on_progress,
                )
        finally:
            await engine.aclose()

    try:
        stats = asyncio.run(run())
    except ContextError as e:
        _fail(e)
    except Exception as e:
        console.print(f"[red]✗ Failed to index {path}: {e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] Indexed {path}: {stats.indexed_files} files, {stats.total_chunks} chunks"
    )
    if stats.status == "limit_reached":
        console.print("[yellow]Chunk limit reached; part of the codebase was not indexed.[/yellow]")


@app.command("search")
def search_cmd(
    path: PathArg,
    query: Annotated[str, typer.Argument(help="Natural language query")],
    limit: Annotated[int, typer.Option("--limit", "-n", min=1, max=50, help="Number of results")] = 10,
    ext: ExtOpt = None,
) -> None:
    """Search an indexed codebase."""

    async def run():
        engine = build_engine()
        try:
            indexing = engine.manager.is_indexing(str(path))
            results = await engine.manager.search(str(path), query, limit=limit, extension_filter=ext)
            return indexing, results
        finally:
            await engine.aclose()

    try:
        indexing, results = asyncio.run(run())
    except ContextError as e:
        _fail(e)

    if indexing:
        console.print("[yellow]Indexing is still in progress; results may be incomplete.[/yellow]")

    if not results:
        console.print("[yellow]No results found[/yellow]")
        return

    for i, result in enumerate(results, 1):
        chunk = result.chunk
        console.print(
            f"\n[bold cyan]Result {i}:[/bold cyan] {chunk.relative_path}:{chunk.start_line}-{chunk.end_line}"
            f" [dim](score {result.score:.3f})[/dim]"
        )
        console.print(truncate_content(chunk.text, 500), markup=False, highlight=False)


@app.command("status")
def status_cmd(path: PathArg) -> None:
    """Show the indexing state of a codebase."""
    try:
        config = ContextConfig.from_user_config()
        identity = normalize_path(path)
        record = open_snapshot(config).get_record(identity)
    except ContextError as e:
        _fail(e)

    table = Table(title=f"Index Status: {identity}")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    status = record.status if record else IndexStatus.NOT_INDEXED
    style = STATUS_STYLES[status]
    table.add_row("Status", f"[{style}]{status.value}[/{style}]")

    if record is not None:
        if status is IndexStatus.INDEXING or status is IndexStatus.INDEX_FAILED:
            table.add_row("Progress", f"{record.progress_percentage:.1f}%")
        if record.last_indexed_stats:
            stats = record.last_indexed_stats
            table.add_row("Files", str(stats.indexed_files))
            table.add_row("Chunks", str(stats.total_chunks))
            table.add_row("Result", stats.status)
        if record.last_error:
            table.add_row("Error", f"[red]{record.last_error}[/red]")
        table.add_row("Last Updated", record.updated_at)

    console.print(table)


@app.command("clear")
def clear_cmd(path: PathArg) -> None:
    """Remove a codebase's index."""

    async def run():
        engine = build_engine()
        try:
            return engine.manager.clear(str(path))
        finally:
            await engine.aclose()

    try:
        cleared = asyncio.run(run())
    except ContextError as e:
        _fail(e)

    if cleared:
        console.print(f"[green]✓[/green] Cleared index for {path}")
    else:
        console.print(f"[dim]No index for {path}[/dim]")


@app.command("config")
def config_cmd(
    set_values: Annotated[
        Optional[list[str]],
        typer.Option("--set", help="Persist KEY=VALUE to the config file (repeatable)"),
    ] = None,
) -> None:
    """Show (or update) the effective configuration."""
    for item in set_values or []:
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            console.print(f"[red]Expected KEY=VALUE, got {item!r}[/red]")
            raise typer.Exit(2)
        set_config_value(key.strip(), parse_config_value(raw))
        console.print(f"[green]✓[/green] Set {key.strip()} in {CONFIG_FILE}")

    config = ContextConfig.from_user_config()
    table = Table(title="codebase-context Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for key, value in config.summary().items():
        table.add_row(key, str(value))
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
