"""Command line interface for NoteFinder."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from notefinder.config import AppConfig
from notefinder.service import SearchService, ToolResponse

console = Console()
app = typer.Typer(help="NoteFinder - local hybrid search for markdown notes")

DB_OPTION = typer.Option(None, "--db", help="Index storage directory")
WORKSPACE_OPTION = typer.Option(None, "--workspace", "-w", help="Workspace root")
MODEL_OPTION = typer.Option(None, help="Sentence-transformer model name")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose logging")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _build_service(
    db: Optional[Path], workspace: Optional[Path], model: Optional[str]
) -> SearchService:
    config = AppConfig.from_env(db_path=db, workspace_root=workspace, model_name=model)
    return SearchService(config)


def _emit(response: ToolResponse) -> None:
    if response.is_error:
        console.print(f"[red]{response.text}[/red]")
        raise typer.Exit(code=1)
    console.print(response.text, markup=False, highlight=False)


@app.command("index")
def index_file(
    path: Path = typer.Argument(..., help="File to (re)index"),
    db: Optional[Path] = DB_OPTION,
    workspace: Optional[Path] = WORKSPACE_OPTION,
    model: Optional[str] = MODEL_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Index or re-index a single file, replacing its previous chunks."""
    _setup_logging(verbose)
    with _build_service(db, workspace, model) as service:
        _emit(service.index_file(path))


@app.command("index-dir")
def index_directory(
    path: Path = typer.Argument(..., help="Directory to index"),
    pattern: Optional[str] = typer.Option(None, "--pattern", "-p", help="Glob pattern"),
    db: Optional[Path] = DB_OPTION,
    workspace: Optional[Path] = WORKSPACE_OPTION,
    model: Optional[str] = MODEL_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Index all files in a directory that match a glob pattern."""
    _setup_logging(verbose)
    with _build_service(db, workspace, model) as service:
        _emit(service.index_directory(path, pattern))


@app.command()
def reindex(
    db: Optional[Path] = DB_OPTION,
    workspace: Optional[Path] = WORKSPACE_OPTION,
    model: Optional[str] = MODEL_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Clear the index and rebuild it from the default workspace folders."""
    _setup_logging(verbose)
    with _build_service(db, workspace, model) as service:
        _emit(service.reindex_all())


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of results to display"),
    hybrid: bool = typer.Option(True, "--hybrid/--semantic", help="Boost keyword matches"),
    db: Optional[Path] = DB_OPTION,
    workspace: Optional[Path] = WORKSPACE_OPTION,
    model: Optional[str] = MODEL_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Execute a hybrid semantic search."""
    _setup_logging(verbose)
    with _build_service(db, workspace, model) as service:
        response = service.search(query, limit=limit, hybrid=hybrid)

    if response.is_error:
        _emit(response)
    results = response.data.get("results", [])
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Lines")
    table.add_column("Snippet")

    for result in results:
        snippet = result["text"].replace("\n", " ")
        table.add_row(
            f"{result['score']:.3f}",
            result["source_path"],
            f"{result['line_start']}-{result['line_end']}",
            snippet[:150],
        )

    console.print(table)


@app.command()
def stats(
    db: Optional[Path] = DB_OPTION,
    workspace: Optional[Path] = WORKSPACE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Show chunk count, file count and index size."""
    _setup_logging(verbose)
    with _build_service(db, workspace, None) as service:
        response = service.get_stats()

    if response.is_error:
        _emit(response)
    data = response.data
    console.print(
        f"Chunks: [bold]{data['total_chunks']}[/bold], files: [bold]{data['total_files']}[/bold], "
        f"size: [bold]{data['db_size_mb']} MB[/bold]"
    )
    if data["file_list"]:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Indexed files")
        for path in data["file_list"]:
            table.add_row(path)
        console.print(table)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Optional[Path] = DB_OPTION,
    workspace: Optional[Path] = WORKSPACE_OPTION,
) -> None:
    """Start the JSON web API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - optional extra
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from notefinder.web.app import create_app

    config = AppConfig.from_env(db_path=db, workspace_root=workspace)
    console.print(
        f"Starting web API on http://{host}:{port} (index: {config.resolve_db_path()})"
    )
    uvicorn.run(create_app(config), host=host, port=port, reload=False, log_level="info")
