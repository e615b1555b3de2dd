"""Command line interface for DocMonitor."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import typer
from rich.console import Console
from rich.table import Table

from docmonitor.config import AppConfig
from docmonitor.errors import ConfigError, IndexOpenError, IndexWriteError, QuerySyntaxError
from docmonitor.monitor.watcher import ChangeMonitor
from docmonitor.models import ScoredResult
from docmonitor.service import IndexService
from docmonitor.utils.files import iter_supported_paths

console = Console()
app = typer.Typer(help="DocMonitor - keep a full-text index in sync with your folders")

SEARCH_COMMANDS = {"s", "search"}
QUIT_COMMANDS = {"q", "quit", "exit"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_index_parent(index_dir: Path) -> None:
    index_dir.parent.mkdir(parents=True, exist_ok=True)


def _load_config(config_file: Optional[Path], index: Optional[Path]) -> AppConfig:
    try:
        config = AppConfig.from_file(config_file)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if index is not None:
        config.index_dir = index
    return config


def _results_table(results: Sequence[ScoredResult]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("File")
    table.add_column("Modified")
    table.add_column("Path")
    for result in results:
        modified = result.modified_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(f"{result.score:.2f}", result.filename, modified, str(result.path))
    return table


def _print_results(results: Sequence[ScoredResult]) -> None:
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return
    console.print(f"Found {len(results)} results:")
    console.print(_results_table(results))


def _report_fatal(error: Exception) -> None:
    console.print(f"\n[red]Indexing stopped: {error}. Press Enter to exit.[/red]")


def run_console(service: IndexService, monitor: ChangeMonitor, *, max_results: int = 20) -> None:
    """Blocking command loop: ``s`` searches, ``q`` quits."""
    console.print("\nDocument Monitor is running. Type 's' to search, 'q' to quit.")
    while monitor.fatal_error is None:
        try:
            command = console.input("[bold]> [/bold]").strip().lower()
        except (EOFError, KeyboardInterrupt):
            break
        if command in QUIT_COMMANDS:
            break
        if command not in SEARCH_COMMANDS:
            if command:
                console.print(f"[yellow]Unknown command {command!r}. Use 's' or 'q'.[/yellow]")
            continue
        try:
            query = console.input("Enter search query: ").strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not query:
            continue
        try:
            _print_results(service.search(query, max_results=max_results))
        except QuerySyntaxError as exc:
            console.print(f"[red]Invalid query {query!r}: {exc}[/red]")


@app.command()
def watch(
    folders: Optional[List[Path]] = typer.Argument(
        None, help="Folders to monitor (defaults to the configured folders).", resolve_path=True
    ),
    index_dir: Path = typer.Option(None, "--index", help="Index directory"),
    config_file: Path = typer.Option(None, "--config", help="Path to appsettings.json"),
    debounce: float = typer.Option(None, "--debounce", help="Seconds to wait after a change"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index the monitored folders, watch them for changes and search interactively."""
    _setup_logging(verbose)
    config = _load_config(config_file, index_dir)
    if folders:
        config.watched_folders = list(folders)
    if debounce is not None:
        config.debounce_seconds = debounce

    for folder in config.ensure_folders():
        console.print(f"Created monitored folder: {folder}")
    console.print("\nMonitored folders:")
    for folder in config.watched_folders:
        console.print(f"- {folder}")

    resolved_index = config.resolve_index_dir(Path.cwd())
    _ensure_index_parent(resolved_index)
    try:
        service = IndexService(resolved_index, default_fields=config.default_fields).open()
    except IndexOpenError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    monitor = ChangeMonitor(
        service,
        config.watched_folders,
        debounce_seconds=config.debounce_seconds,
        on_fatal=_report_fatal,
    )
    try:
        console.print("\nIndexing existing files...")
        monitor.start()
        run_console(service, monitor, max_results=config.max_results)
    except IndexWriteError as exc:
        console.print(f"[red]Index write failed: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    finally:
        monitor.stop()
        service.close()

    if monitor.fatal_error is not None:
        console.print(f"[red]Stopped: {monitor.fatal_error}[/red]")
        raise typer.Exit(code=1)
    console.print("\nDocument Monitor has been stopped.")


@app.command()
def index(
    inputs: List[Path] = typer.Argument(
        ..., help="Folders or files to index.", resolve_path=True
    ),
    index_dir: Path = typer.Option(None, "--index", help="Index directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index one or more folders once."""
    _setup_logging(verbose)
    config = AppConfig(index_dir=index_dir if index_dir is not None else AppConfig().index_dir)
    resolved_index = config.resolve_index_dir(Path.cwd())
    _ensure_index_parent(resolved_index)

    paths = list(iter_supported_paths(inputs))
    if not paths:
        console.print("[yellow]No supported documents found.[/yellow]")
        return

    console.print(f"Indexing into [bold]{resolved_index}[/bold]...")
    try:
        with IndexService(resolved_index) as service:
            stats = service.index_paths(paths)
    except (IndexOpenError, IndexWriteError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    console.print(
        f"Inserted: {stats.inserted}, updated: {stats.updated}, skipped: {stats.skipped}, "
        f"empty: {stats.empty}, failed: {stats.failed}"
    )


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    index_dir: Path = typer.Option(None, "--index", help="Index directory"),
    max_results: int = typer.Option(20, "--max-results", "-n", min=1, help="Number of results"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Run a ranked full-text search."""
    _setup_logging(verbose)
    config = AppConfig(index_dir=index_dir if index_dir is not None else AppConfig().index_dir)
    resolved_index = config.resolve_index_dir(Path.cwd())

    if not resolved_index.exists():
        raise typer.BadParameter(f"Index not found: {resolved_index}")

    with IndexService(resolved_index) as service:
        try:
            results = service.search(query, max_results=max_results)
        except QuerySyntaxError as exc:
            raise typer.BadParameter(f"Invalid query: {exc}") from exc
    _print_results(results)


@app.command()
def prune(
    index_dir: Path = typer.Option(None, "--index", help="Index directory"),
) -> None:
    """Remove documents that no longer exist on disk."""
    config = AppConfig(index_dir=index_dir if index_dir is not None else AppConfig().index_dir)
    resolved_index = config.resolve_index_dir(Path.cwd())

    if not resolved_index.exists():
        console.print("[yellow]Index not found, nothing to prune.[/yellow]")
        return

    with IndexService(resolved_index) as service:
        removed = service.prune()
    console.print(f"Removed {removed} orphaned documents.")
