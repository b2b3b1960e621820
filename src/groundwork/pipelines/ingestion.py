"""Ingestion pipeline: turn documents into knowledge passages.

Why this exists:
- Retrieval only sees what was chunked and stored
- Re-ingesting a source replaces its passages instead of duplicating them

How to use:
    from groundwork.pipelines.ingestion import IngestionPipeline

    pipeline = IngestionPipeline(store)
    result = await pipeline.ingest_file(Path("notes/soil.md"))

Chunks are stored without embeddings; run EmbeddingPipeline afterwards to
move them from fallback retrieval into ranked retrieval.
"""

import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from groundwork.core.chunking import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MIN_CHUNK_SIZE,
    chunk_text,
    validate_chunk_sizes,
)
from groundwork.entities import KnowledgeChunk
from groundwork.observability.logging import get_logger
from groundwork.storage.base import PassageStore

logger = get_logger(__name__)

SUPPORTED_SUFFIXES = (".txt", ".md", ".markdown")

# Form feeds separate pages in text extracted from paginated documents
PAGE_BREAK = "\f"

_MARKDOWN_HEADING = re.compile(r"^#[ \t]+(.+?)[ \t]*$", re.MULTILINE)


@dataclass
class IngestionResult:
    """Outcome of ingesting one source."""

    source_id: str
    title: str
    chunk_count: int
    replaced: int = 0


def source_id_for(path: Path) -> str:
    """Stable source id for a file, so re-ingesting it targets the same source."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, path.resolve().as_uri()))


def title_for(path: Path, text: str) -> str:
    """First markdown heading of a markdown file, else the file stem."""
    if path.suffix.lower() in (".md", ".markdown"):
        match = _MARKDOWN_HEADING.search(text)
        if match:
            return match.group(1)
    return path.stem


class IngestionPipeline:
    """Chunks text and writes the passages to a passage store."""

    def __init__(
        self,
        store: PassageStore,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE,
    ):
        validate_chunk_sizes(chunk_size, chunk_overlap, min_chunk_size)
        self.store = store
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.min_chunk_size = min_chunk_size

    def split_pages(self, text: str) -> list[tuple[Optional[int], str]]:
        """Split on form feeds; unpaginated text gets no page number."""
        pages = text.split(PAGE_BREAK)
        if len(pages) == 1:
            return [(None, text)]
        return [(number, page) for number, page in enumerate(pages, start=1)]

    async def ingest_text(
        self,
        source_id: str,
        title: str,
        text: str,
        filename: Optional[str] = None,
    ) -> IngestionResult:
        """Chunk ``text`` and store it as the passages of one source.

        Existing passages of the source are deleted first. ``chunk_index``
        increases across pages.

        Raises:
            StorageError: If the store rejects a write
        """
        logger.info("ingestion_started", source_id=source_id, title=title, char_count=len(text))

        await self.store.add_source(source_id, title, filename)
        replaced = await self.store.delete_chunks(source_id)

        chunk_index = 0
        for page_number, page in self.split_pages(text):
            for passage, _start, _end in chunk_text(
                page, self.chunk_size, self.chunk_overlap, self.min_chunk_size
            ):
                await self.store.add_chunk(
                    KnowledgeChunk(
                        source_id=source_id,
                        source_title=title,
                        page_number=page_number,
                        chunk_index=chunk_index,
                        text=passage,
                    )
                )
                chunk_index += 1

        if chunk_index == 0:
            logger.warning("ingestion_no_chunks", source_id=source_id, title=title)

        logger.info(
            "ingestion_completed",
            source_id=source_id,
            chunk_count=chunk_index,
            replaced=replaced,
        )
        return IngestionResult(source_id=source_id, title=title, chunk_count=chunk_index, replaced=replaced)

    async def ingest_file(self, path: Path, title: Optional[str] = None) -> IngestionResult:
        """Ingest a UTF-8 text or markdown file.

        Raises:
            ValueError: If the file type is not supported
            OSError: If the file cannot be read
            UnicodeDecodeError: If the file is not UTF-8
            StorageError: If the store rejects a write
        """
        if path.suffix.lower() not in SUPPORTED_SUFFIXES:
            raise ValueError(
                f"Unsupported file type '{path.suffix}'. Supported: {', '.join(SUPPORTED_SUFFIXES)}"
            )

        text = path.read_text(encoding="utf-8")
        return await self.ingest_text(
            source_id_for(path),
            title or title_for(path, text),
            text,
            filename=path.name,
        )
