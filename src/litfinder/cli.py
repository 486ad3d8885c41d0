"""Command line interface for LitFinder."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.table import Table

from litfinder.config import AppConfig
from litfinder.embedding.encoder import create_embedder
from litfinder.index.indexer import (
    DuplicateDecision,
    Indexer,
    remove_missing_documents,
)
from litfinder.index.search import Searcher, normalize_scores
from litfinder.index.storage import SQLiteLocalStore
from litfinder.index.vector_index import InMemoryVectorIndex, rebuild_vector_index
from litfinder.ingestion.chunker import SentenceChunker
from litfinder.models import Document
from litfinder.utils.files import iter_document_paths


console = Console()
app = typer.Typer(help="LitFinder - local semantic search for papers and documents")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_config(db: Path | None, **overrides: object) -> AppConfig:
    defaults = AppConfig()
    return AppConfig(
        db_path=db if db is not None else defaults.db_path,
        **{key: value for key, value in overrides.items() if value is not None},
    )


def _ask_duplicate(path: Path, matches: List[Document]) -> DuplicateDecision:
    console.print(f"[yellow]{path.name}[/yellow] has the same content as:")
    for doc in matches:
        console.print(f"  - {doc.file_path}")
    answer = typer.prompt(
        "Skip, index anyway, or replace existing? [skip/index/replace]",
        default=DuplicateDecision.SKIP.value,
    )
    try:
        return DuplicateDecision(answer.strip().lower())
    except ValueError:
        console.print("[yellow]Unknown answer, skipping.[/yellow]")
        return DuplicateDecision.SKIP


@app.command()
def index(
    inputs: List[Path] = typer.Argument(
        ..., help="Files or folders to index.", resolve_path=True
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    embedder: str = typer.Option(
        AppConfig().embedder, help="Embedding backend: sentence-transformers or hash"
    ),
    on_duplicate: DuplicateDecision = typer.Option(
        DuplicateDecision.SKIP, help="What to do with files whose content is already indexed"
    ),
    ask: bool = typer.Option(False, "--ask", help="Ask about every duplicate"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index one or more files or folders."""
    _setup_logging(verbose)
    config = _build_config(db, model_name=model, embedder=embedder)

    paths = list(iter_document_paths(inputs))
    if not paths:
        console.print("[yellow]No documents found.[/yellow]")
        return

    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)

    encoder = create_embedder(config)
    store = SQLiteLocalStore(resolved_db)
    indexer = Indexer(
        encoder,
        store,
        InMemoryVectorIndex(encoder.dimension),
        chunker=SentenceChunker(
            window=config.chunk_sentences,
            stride=config.chunk_stride,
            min_chars=config.min_chunk_chars,
        ),
    )

    cancel_event = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda *_: cancel_event.set())
    console.print(f"Indexing into [bold]{resolved_db}[/bold]... (Ctrl+C to stop)")
    try:
        summary = indexer.index(
            paths,
            resolve_duplicate=_ask_duplicate if ask else (lambda path, matches: on_duplicate),
            progress=lambda message: console.print(message, markup=False, highlight=False),
            cancel_event=cancel_event,
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        store.close()

    console.print(
        f"Inserted: {summary.inserted}, updated: {summary.updated}, "
        f"skipped: {summary.skipped}, failed: {summary.failed}"
    )
    if summary.cancelled:
        console.print("[yellow]Indexing cancelled; completed documents were kept.[/yellow]")


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    embedder: str = typer.Option(
        AppConfig().embedder, help="Embedding backend: sentence-transformers or hash"
    ),
    top_k: int = typer.Option(AppConfig().top_k, help="Number of results to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Execute a semantic search."""
    _setup_logging(verbose)
    config = _build_config(db, model_name=model, embedder=embedder)
    resolved_db = config.resolve_db_path(Path.cwd())

    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    encoder = create_embedder(config)
    store = SQLiteLocalStore(resolved_db)
    try:
        with console.status("Loading vector index..."):
            vector_index = rebuild_vector_index(store, encoder.dimension)
        results = Searcher(encoder, vector_index, store).search(query, top_k=top_k)
    finally:
        store.close()

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Relevance")
    table.add_column("Document")
    table.add_column("Chunk")
    table.add_column("Snippet")

    for result, relevance in zip(results, normalize_scores(results)):
        snippet = result.chunk.text.replace("\n", " ")
        table.add_row(
            f"{result.score:.4f}",
            f"{relevance:.2f}",
            str(result.document.file_path),
            str(result.chunk.index_in_document),
            snippet[:180],
        )

    console.print(table)


@app.command()
def prune(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Delete without asking"),
) -> None:
    """Remove documents whose files no longer exist on disk."""
    config = _build_config(db)
    resolved_db = config.resolve_db_path(Path.cwd())

    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to prune.[/yellow]")
        return

    def confirm(missing: List[Document]) -> bool:
        for doc in missing:
            console.print(f"  - {doc.file_path}")
        return yes or typer.confirm(f"Remove {len(missing)} documents with missing files?")

    store = SQLiteLocalStore(resolved_db)
    try:
        removed = remove_missing_documents(store, confirm)
    finally:
        store.close()
    console.print(f"Removed {removed} orphaned documents.")


@app.command()
def stats(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show document, chunk and embedding counts."""
    config = _build_config(db)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    store = SQLiteLocalStore(resolved_db)
    try:
        counts = store.get_stats()
    finally:
        store.close()

    table = Table(show_header=False)
    for key, value in counts.items():
        table.add_row(key.replace("_", " ").capitalize(), str(value))
    console.print(table)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Start the JSON web API."""
    import uvicorn

    from litfinder.web.app import app as web_app

    config = _build_config(db)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Warning: database not found, searches might fail.[/yellow]")

    console.print(f"Starting web API on http://{host}:{port} (database: {resolved_db})")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")
