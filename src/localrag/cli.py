"""Command line interface for localrag."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

import psycopg2
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from localrag.config import AppConfig
from localrag.embedding.client import EmbeddingError
from localrag.index.indexer import IndexBuildError
from localrag.index.store import DimensionMismatchError, UnsupportedOperationError
from localrag.service import RagService

console = Console()
app = typer.Typer(help="localrag - local-first semantic retrieval over a document folder")

LIBRARY_ERRORS = (
    EmbeddingError,
    IndexBuildError,
    DimensionMismatchError,
    UnsupportedOperationError,
    ValueError,
    OSError,
    sqlite3.Error,
    psycopg2.Error,
)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _build_config(
    ingest_dir: Optional[Path],
    db: Optional[Path],
    backend: Optional[str],
    top_k: Optional[int] = None,
) -> AppConfig:
    load_dotenv()
    return AppConfig.from_env(ingest_dir=ingest_dir, db_path=db, backend=backend, top_k=top_k)


def _fail(exc: Exception) -> None:
    console.print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(code=1)


@app.command()
def index(
    ingest_dir: Optional[Path] = typer.Option(None, "--ingest-dir", help="Folder to ingest"),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
    backend: Optional[str] = typer.Option(None, "--backend", help="Vector backend: sqlite or pg"),
    force: bool = typer.Option(False, "--force", help="Rebuild even if nothing changed"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Build or refresh the index for the ingest folder."""
    _setup_logging(verbose)
    try:
        config = _build_config(ingest_dir, db, backend)
        with RagService(config) as service:
            console.print(f"Indexing [bold]{config.ingest_dir}[/bold] ({config.backend})...")
            stats = service.ensure_indexed(force=force)
    except LIBRARY_ERRORS as exc:
        _fail(exc)
        return

    if not stats.rebuilt:
        console.print(f"[green]Index up to date[/green] ({stats.files} files).")
        return
    console.print(
        f"Files: {stats.files}, documents: {stats.documents}, chunks: {stats.chunks}, "
        f"skipped: {stats.skipped_files}, dimension: {stats.dimension or '-'}"
    )


@app.command()
def query(
    text: str = typer.Argument(..., help="Query text"),
    ingest_dir: Optional[Path] = typer.Option(None, "--ingest-dir", help="Folder to ingest"),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
    backend: Optional[str] = typer.Option(None, "--backend", help="Vector backend: sqlite or pg"),
    top_k: Optional[int] = typer.Option(None, "--top-k", help="Number of results to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Answer a query from the indexed documents."""
    _setup_logging(verbose)
    try:
        config = _build_config(ingest_dir, db, backend, top_k)
        with RagService(config) as service:
            response = service.query(text)
    except LIBRARY_ERRORS as exc:
        _fail(exc)
        return

    if response.is_unknown:
        console.print("[yellow]No matches found.[/yellow]")
        return

    console.print(response.text)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Distance")
    table.add_column("Title")
    table.add_column("Snippet")

    for snippet in response.snippets or []:
        distance = f"{snippet.distance:.4f}" if snippet.distance is not None else "-"
        table.add_row(
            f"{snippet.score:.4f}",
            distance,
            snippet.title,
            snippet.content.replace("\n", " ")[:180],
        )

    console.print(table)


@app.command()
def stats(
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
    backend: Optional[str] = typer.Option(None, "--backend", help="Vector backend: sqlite or pg"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show what the index currently holds."""
    _setup_logging(verbose)
    try:
        config = _build_config(None, db, backend)
        with RagService(config) as service:
            data = service.stats()
    except LIBRARY_ERRORS as exc:
        _fail(exc)
        return

    console.print(f"Backend: [bold]{data['backend']}[/bold]")
    console.print(f"Records: {data['records']}")
    console.print(f"Dimension: {data['dimension'] if data['dimension'] is not None else '-'}")
    console.print(f"Signature: {data['signature'] or '-'}")
    ingest_count = data.get("ingest_count")
    console.print(f"Indexed chunks: {ingest_count if ingest_count is not None else '-'}")
