"""Command-line interface for the prompt context pipeline.

Commands:
- search: Rank knowledge passages for a query
- context: Print the knowledge block a prompt would receive
- ask: Answer a question with knowledge context and budgeted history
- ingest: Chunk text and markdown files into the knowledge base
- compress: Budget a conversation history stored as JSON
- embed: Backfill embeddings for chunks that lack one
- stats: Show knowledge base counts
- info: Show configuration
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from groundwork.config.loader import get_default_config_path, load_config
from groundwork.config.schema import AppConfig, SummarizerType
from groundwork.core.relevance import Degraded, Empty, Fallback, RelevanceEngine
from groundwork.observability.logging import configure_from_config, get_logger
from groundwork.pipelines.embedding import EmbeddingPipeline
from groundwork.pipelines.ingestion import SUPPORTED_SUFFIXES
from groundwork.pipelines.prompt import PromptAssembler
from groundwork.providers.base import ProviderConfig, ProviderError, UnavailableEmbeddingProvider
from groundwork.service import (
    build_context_manager,
    build_embedding_provider,
    build_ingestion_pipeline,
    build_llm_provider,
    initialize_store,
)
from groundwork.storage.base import StorageError

app = typer.Typer(
    name="groundwork",
    help="Knowledge retrieval and conversation budgeting for LLM prompts",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Number of results"),
    min_similarity: Optional[float] = typer.Option(None, "--min-similarity", "-s", help="Similarity floor (0-1)"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Rank knowledge passages for a query."""
    asyncio.run(_search_async(query, top_k, min_similarity, config_file))


async def _search_async(
    query: str,
    top_k: Optional[int],
    min_similarity: Optional[float],
    config_file: Optional[Path],
):
    """Async implementation of search command."""
    config = _load_config(config_file)
    store = None
    embedding_provider = None

    try:
        store, embedding_provider = await _open_components(config)
        engine = RelevanceEngine(
            embedding_provider,
            store,
            top_k=config.retrieval.top_k,
            min_similarity=config.retrieval.min_similarity,
        )

        try:
            outcome = await engine.retrieve(query, top_k=top_k, min_similarity=min_similarity)
        except ValueError as e:
            console.print(f"[red]Invalid search: {e}[/red]")
            raise typer.Exit(2)

        if isinstance(outcome, Degraded):
            console.print(f"[red]Retrieval failed: {outcome.reason}[/red]")
            raise typer.Exit(1)
        if isinstance(outcome, Empty):
            console.print("[yellow]Knowledge base is empty[/yellow]")
            return
        if isinstance(outcome, Fallback):
            console.print("[yellow]No passage cleared the similarity floor; showing unranked passages[/yellow]")

        table = Table(title=f"Results for: {query}")
        table.add_column("#", style="cyan", justify="right")
        table.add_column("Similarity", style="green")
        table.add_column("Source")
        table.add_column("Page", justify="right")
        table.add_column("Chunk", justify="right")
        table.add_column("Text")

        for i, result in enumerate(outcome.results, 1):
            table.add_row(
                str(i),
                f"{result.similarity:.4f}" if result.ranked else "-",
                result.source_title,
                str(result.page_number) if result.page_number is not None else "",
                str(result.chunk_index),
                result.chunk_text[:120],
            )

        console.print(table)

    finally:
        await _close(store, embedding_provider)


@app.command()
def context(
    query: str = typer.Argument(..., help="User question"),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Number of passages"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Print the knowledge block a prompt would receive."""
    asyncio.run(_context_async(query, top_k, config_file))


async def _context_async(query: str, top_k: Optional[int], config_file: Optional[Path]):
    """Async implementation of context command."""
    config = _load_config(config_file)
    store = None
    embedding_provider = None

    try:
        store, embedding_provider = await _open_components(config, allow_unavailable_provider=True)
        engine = RelevanceEngine(
            embedding_provider,
            store,
            top_k=config.retrieval.top_k,
            min_similarity=config.retrieval.min_similarity,
        )
        text = await engine.get_context(query, top_k=top_k)
        if text:
            console.print(text, markup=False, highlight=False)
        else:
            console.print("[yellow]No knowledge context available[/yellow]")
    finally:
        await _close(store, embedding_provider)


@app.command()
def ask(
    question: str = typer.Argument(..., help="User question"),
    history_file: Optional[Path] = typer.Option(
        None, "--history", "-H", help="JSON file holding the conversation so far"
    ),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Number of passages"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Answer a question with knowledge context and budgeted history."""
    asyncio.run(_ask_async(question, history_file, top_k, config_file))


async def _ask_async(
    question: str,
    history_file: Optional[Path],
    top_k: Optional[int],
    config_file: Optional[Path],
):
    """Async implementation of ask command."""
    config = _load_config(config_file)
    history = _read_history(history_file) if history_file else []
    store = None
    embedding_provider = None
    llm_provider = None

    try:
        store, embedding_provider = await _open_components(config, allow_unavailable_provider=True)

        try:
            llm_provider = build_llm_provider(config)
        except (ProviderError, ValueError) as e:
            console.print(f"[red]Error creating LLM provider: {e}[/red]")
            raise typer.Exit(1)

        assembler = PromptAssembler(
            RelevanceEngine(
                embedding_provider,
                store,
                top_k=config.retrieval.top_k,
                min_similarity=config.retrieval.min_similarity,
            ),
            build_context_manager(config, llm_provider),
            config.system_prompt,
        )

        try:
            reply = await assembler.answer(
                history,
                question,
                llm_provider,
                max_tokens=config.llm.max_tokens,
                temperature=config.llm.temperature,
                top_k=top_k,
            )
        except ValueError as e:
            console.print(f"[red]Invalid request: {e}[/red]")
            raise typer.Exit(2)
        except ProviderError as e:
            console.print(f"[red]LLM error: {e.message}[/red]")
            raise typer.Exit(1)

        console.print(reply, markup=False, highlight=False)
    finally:
        if llm_provider:
            await llm_provider.close()
        await _close(store, embedding_provider)


@app.command()
def ingest(
    paths: list[Path] = typer.Argument(..., help="Text or markdown files, or directories of them"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Source title (single file only)"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Chunk text and markdown files into the knowledge base."""
    asyncio.run(_ingest_async(paths, title, config_file))


async def _ingest_async(paths: list[Path], title: Optional[str], config_file: Optional[Path]):
    """Async implementation of ingest command."""
    config = _load_config(config_file)

    files = _collect_files(paths)
    if not files:
        console.print("[yellow]No text or markdown files found[/yellow]")
        raise typer.Exit(1)
    if title and len(files) > 1:
        console.print("[red]--title applies to a single file only[/red]")
        raise typer.Exit(2)

    try:
        store = await initialize_store(config)
    except StorageError as e:
        console.print(f"[red]Error initializing store: {e.message}[/red]")
        raise typer.Exit(1)

    total_chunks = 0
    errors = 0
    try:
        try:
            pipeline = build_ingestion_pipeline(config, store)
        except ValueError as e:
            console.print(f"[red]Invalid chunking settings: {e}[/red]")
            raise typer.Exit(2)

        for file_path in files:
            try:
                result = await pipeline.ingest_file(file_path, title=title)
            except (OSError, ValueError) as e:
                console.print(f"[red]Skipped {file_path}: {e}[/red]")
                errors += 1
                continue
            except StorageError as e:
                console.print(f"[red]Storage error for {file_path}: {e.message}[/red]")
                errors += 1
                continue

            total_chunks += result.chunk_count
            console.print(f"  {result.title}: {result.chunk_count} chunk(s)", highlight=False)
    finally:
        await store.close()

    console.print(
        f"[green]Ingested {len(files) - errors} file(s), {total_chunks} chunk(s)[/green]"
        + (f", [red]{errors} failed[/red]" if errors else "")
    )
    if total_chunks:
        console.print("Run [cyan]groundwork embed[/cyan] to enable ranked retrieval")
    if errors:
        raise typer.Exit(1)


@app.command()
def compress(
    history_file: Path = typer.Argument(..., help="JSON file holding a list of {role, content} messages"),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens", "-t", help="History token budget"),
    keep_pairs: Optional[int] = typer.Option(None, "--keep-pairs", "-p", help="Recent pairs kept verbatim"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the managed history here"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Fit a conversation history into the token budget."""
    asyncio.run(_compress_async(history_file, max_tokens, keep_pairs, output, config_file))


async def _compress_async(
    history_file: Path,
    max_tokens: Optional[int],
    keep_pairs: Optional[int],
    output: Optional[Path],
    config_file: Optional[Path],
):
    """Async implementation of compress command."""
    config = _load_config(config_file)
    history = _read_history(history_file)

    llm_provider = None
    if config.context_window.summarizer == SummarizerType.LLM:
        try:
            llm_provider = build_llm_provider(config)
        except (ProviderError, ValueError) as e:
            console.print(f"[red]Error creating LLM provider: {e}[/red]")
            raise typer.Exit(1)

    try:
        manager = build_context_manager(config, llm_provider)
        managed = await manager.manage_async(history, max_tokens=max_tokens, keep_recent_pairs=keep_pairs)
    except ValueError as e:
        console.print(f"[red]Invalid history: {e}[/red]")
        raise typer.Exit(2)
    finally:
        if llm_provider:
            await llm_provider.close()

    stats = managed.stats
    table = Table(title="Context Window")
    table.add_column("", style="cyan")
    table.add_column("Messages", justify="right")
    table.add_column("Tokens (est.)", justify="right")
    table.add_row("Original", str(stats.original_messages), str(stats.original_tokens))
    table.add_row("Final", str(stats.final_messages), str(stats.final_tokens))
    console.print(table)
    console.print(
        "[green]History compressed[/green]" if managed.was_compressed else "[cyan]History unchanged[/cyan]"
    )

    if output:
        output.write_text(
            json.dumps([m.to_dict() for m in managed.managed_history], indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        console.print(f"Wrote {len(managed.managed_history)} messages to {output}")


@app.command()
def embed(
    limit: int = typer.Option(100, "--limit", "-l", help="Maximum chunks to embed"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Backfill embeddings for chunks that lack one."""
    asyncio.run(_embed_async(limit, config_file))


async def _embed_async(limit: int, config_file: Optional[Path]):
    """Async implementation of embed command."""
    config = _load_config(config_file)
    store = None
    embedding_provider = None

    try:
        store, embedding_provider = await _open_components(config)
        pipeline = EmbeddingPipeline(
            embedding_provider,
            store,
            model_name=config.embedding.model_name,
            batch_size=config.embedding.batch_size,
        )

        try:
            result = await pipeline.process_unembedded(limit=limit)
        except StorageError as e:
            console.print(f"[red]Storage error: {e.message}[/red]")
            raise typer.Exit(1)

        if result.processed == 0 and result.failed == 0:
            console.print("[green]No chunks need embeddings[/green]")
        else:
            console.print(
                f"[green]Embedded {result.processed} chunk(s)[/green], "
                f"[red]{result.failed} failed[/red]"
            )
        if result.failed:
            raise typer.Exit(1)
    finally:
        await _close(store, embedding_provider)


@app.command()
def stats(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show knowledge base counts."""
    asyncio.run(_stats_async(config_file))


async def _stats_async(config_file: Optional[Path]):
    """Async implementation of stats command."""
    config = _load_config(config_file)

    try:
        store = await initialize_store(config)
    except StorageError as e:
        console.print(f"[red]Error initializing store: {e.message}[/red]")
        raise typer.Exit(1)

    try:
        kb_stats = await store.get_stats()
    except StorageError as e:
        console.print(f"[red]Storage error: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        await store.close()

    table = Table(title="Knowledge Base")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Sources", str(kb_stats.source_count))
    table.add_row("Chunks", str(kb_stats.total_chunks))
    table.add_row("Embedded chunks", str(kb_stats.embedded_chunks))
    console.print(table)


@app.command()
def info(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show configuration."""
    config = _load_config(config_file)

    table = Table(title="Groundwork Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Embedding Provider", config.embedding.provider.value)
    table.add_row("Embedding Model", config.embedding.model_name)
    table.add_row("LLM Provider", config.llm.provider.value)
    table.add_row("LLM Model", config.llm.model_name)
    table.add_row("Passage Store", config.passage_store.store_type.value)
    table.add_row("Store Location", config.passage_store.connection_string)
    table.add_row("Top K", str(config.retrieval.top_k))
    table.add_row("Min Similarity", str(config.retrieval.min_similarity))
    table.add_row("History Token Budget", str(config.context_window.max_history_tokens))
    table.add_row("Recent Pairs Kept", str(config.context_window.keep_recent_pairs))
    table.add_row("Summarizer", config.context_window.summarizer.value)
    table.add_row("Chunk Size / Overlap", f"{config.chunking.chunk_size} / {config.chunking.chunk_overlap}")
    table.add_row("Log Level", config.logging.level.value)

    console.print(table)


async def _open_components(config: AppConfig, allow_unavailable_provider: bool = False):
    """Initialize the passage store and embedding provider, exiting on failure.

    With ``allow_unavailable_provider`` a provider that cannot be built is
    replaced by one whose calls fail, so retrieval degrades instead.
    """
    try:
        store = await initialize_store(config)
    except StorageError as e:
        console.print(f"[red]Error initializing store: {e.message}[/red]")
        raise typer.Exit(1)

    try:
        embedding_provider = build_embedding_provider(config)
    except ProviderError as e:
        if allow_unavailable_provider:
            logger.warning("embedding_provider_unavailable", provider=e.provider, error=e.message)
            return store, UnavailableEmbeddingProvider(
                ProviderConfig(
                    provider_type=config.embedding.provider.value,
                    model_name=config.embedding.model_name,
                ),
                e,
            )
        await store.close()
        console.print(f"[red]Error creating embedding provider: {e.message}[/red]")
        raise typer.Exit(1)

    return store, embedding_provider


def _read_history(history_file: Path) -> list:
    """Read a JSON list of messages, exiting on failure."""
    try:
        history = json.loads(history_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read history: {e}[/red]")
        raise typer.Exit(1)

    if not isinstance(history, list):
        console.print("[red]History file must contain a JSON list of messages[/red]")
        raise typer.Exit(1)
    return history


def _collect_files(paths: list[Path]) -> list[Path]:
    """Expand directories into the supported files they contain."""
    files = []
    for path in paths:
        if path.is_dir():
            files.extend(
                sorted(p for p in path.rglob("*") if p.is_file() and p.suffix.lower() in SUPPORTED_SUFFIXES)
            )
        else:
            files.append(path)
    return files


async def _close(store, embedding_provider) -> None:
    if embedding_provider:
        await embedding_provider.close()
    if store:
        await store.close()


def _load_config(config_file: Optional[Path]) -> AppConfig:
    """Load configuration and setup logging."""
    if config_file is None:
        config_file = get_default_config_path()

    config = load_config(config_file)
    configure_from_config(config.logging)

    return config


if __name__ == "__main__":
    app()
