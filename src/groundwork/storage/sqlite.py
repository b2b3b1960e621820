"""SQLite passage store.

Persists knowledge sources and chunks with aiosqlite. Embeddings are
stored as float32 little-endian BLOBs and decoded into KnowledgeChunk
values as rows leave the database.
"""

import os
from datetime import datetime, timezone
from typing import Optional

import aiosqlite

from groundwork.core.tokens import estimate_tokens
from groundwork.entities import KnowledgeBaseStats, KnowledgeChunk, encode_embedding
from groundwork.observability.logging import get_logger
from groundwork.storage.base import PassageStore, StorageConfig, StorageError

logger = get_logger(__name__)

_CHUNK_COLUMNS = """
    kc.id,
    kc.source_id,
    kc.chunk_index,
    kc.page_number,
    kc.chunk_text,
    kc.embedding,
    ks.title
"""


class SQLitePassageStore(PassageStore):
    """SQLite passage store implementation."""

    def __init__(self, config: StorageConfig) -> None:
        """Resolve the database path from the connection string."""
        super().__init__(config)

        conn_str = config.connection_string
        if conn_str is None:
            db_dir = os.path.expanduser("~/.groundwork")
            os.makedirs(db_dir, exist_ok=True)
            self.db_path = os.path.join(db_dir, "knowledge.db")
        elif conn_str.startswith("sqlite:///"):
            self.db_path = os.path.expanduser(conn_str.replace("sqlite:///", "", 1))
        else:
            self.db_path = os.path.expanduser(conn_str)

        self.connection: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Open the connection and create tables."""
        try:
            if self.db_path != ":memory:":
                parent = os.path.dirname(self.db_path)
                if parent:
                    os.makedirs(parent, exist_ok=True)

            self.connection = await aiosqlite.connect(self.db_path)
            self.connection.row_factory = aiosqlite.Row
            await self.connection.execute("PRAGMA foreign_keys = ON")

            await self.connection.execute("""
                CREATE TABLE IF NOT EXISTS knowledge_sources (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    filename TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            await self.connection.execute("""
                CREATE TABLE IF NOT EXISTS knowledge_chunks (
                    id TEXT PRIMARY KEY,
                    source_id TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    page_number INTEGER,
                    chunk_text TEXT NOT NULL,
                    embedding BLOB,
                    embedding_model TEXT,
                    token_count INTEGER,
                    FOREIGN KEY (source_id) REFERENCES knowledge_sources(id) ON DELETE CASCADE
                )
            """)

            await self.connection.execute(
                "CREATE INDEX IF NOT EXISTS idx_chunks_source ON knowledge_chunks(source_id, chunk_index)"
            )

            await self.connection.commit()

        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite passage store: {e}",
                storage_type="sqlite",
                original_error=e,
            )

    def _require_connection(self) -> aiosqlite.Connection:
        if not self.connection:
            raise StorageError("Database not initialized", storage_type="sqlite")
        return self.connection

    async def add_source(self, source_id: str, title: str, filename: str | None = None) -> None:
        """Register or retitle a knowledge source."""
        connection = self._require_connection()
        try:
            await connection.execute(
                """
                INSERT INTO knowledge_sources (id, title, filename, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET title = excluded.title, filename = excluded.filename
                """,
                (source_id, title, filename, datetime.now(timezone.utc).isoformat()),
            )
            await connection.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to add knowledge source: {e}",
                storage_type="sqlite",
                original_error=e,
            )

    async def add_chunk(self, chunk: KnowledgeChunk) -> None:
        """Store a chunk, embedding included when present."""
        connection = self._require_connection()
        try:
            await connection.execute(
                """
                INSERT INTO knowledge_chunks
                    (id, source_id, chunk_index, page_number, chunk_text, embedding, token_count)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chunk.id,
                    chunk.source_id,
                    chunk.chunk_index,
                    chunk.page_number,
                    chunk.text,
                    encode_embedding(chunk.embedding) if chunk.embedding else None,
                    estimate_tokens(chunk.text),
                ),
            )
            await connection.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to add chunk: {e}",
                storage_type="sqlite",
                original_error=e,
            )

    async def list_embedded_chunks(self) -> list[KnowledgeChunk]:
        """Return every chunk that has an embedding."""
        return await self._query_chunks(
            f"""
            SELECT {_CHUNK_COLUMNS}
            FROM knowledge_chunks kc
            JOIN knowledge_sources ks ON ks.id = kc.source_id
            WHERE kc.embedding IS NOT NULL
            """,
            (),
        )

    async def list_chunks(self, limit: int) -> list[KnowledgeChunk]:
        """Return up to ``limit`` chunks in (title, chunk_index) order."""
        return await self._query_chunks_paged(
            f"""
            SELECT {_CHUNK_COLUMNS}
            FROM knowledge_chunks kc
            JOIN knowledge_sources ks ON ks.id = kc.source_id
            ORDER BY ks.title, kc.chunk_index, kc.id
            """,
            limit,
        )

    async def list_unembedded_chunks(self, limit: int) -> list[KnowledgeChunk]:
        """Return up to ``limit`` chunks with no embedding yet."""
        return await self._query_chunks_paged(
            f"""
            SELECT {_CHUNK_COLUMNS}
            FROM knowledge_chunks kc
            JOIN knowledge_sources ks ON ks.id = kc.source_id
            WHERE kc.embedding IS NULL
            ORDER BY ks.title, kc.chunk_index, kc.id
            """,
            limit,
        )

    async def delete_chunks(self, source_id: str) -> int:
        """Delete every chunk of a source, keeping the source itself."""
        connection = self._require_connection()
        try:
            cursor = await connection.execute(
                "DELETE FROM knowledge_chunks WHERE source_id = ?",
                (source_id,),
            )
            await connection.commit()
            return cursor.rowcount
        except Exception as e:
            raise StorageError(
                f"Failed to delete chunks: {e}",
                storage_type="sqlite",
                original_error=e,
            )

    async def _query_chunks(self, sql: str, params: tuple) -> list[KnowledgeChunk]:
        return self._decode_rows(await self._fetch_rows(sql, params))

    async def _query_chunks_paged(self, sql: str, limit: int) -> list[KnowledgeChunk]:
        """Page through an ordered query until ``limit`` rows decode.

        Skipped rows would otherwise make a LIMIT query come back short.
        """
        chunks: list[KnowledgeChunk] = []
        offset = 0
        while len(chunks) < limit:
            rows = await self._fetch_rows(f"{sql} LIMIT ? OFFSET ?", (limit, offset))
            chunks.extend(self._decode_rows(rows))
            if len(rows) < limit:
                break
            offset += len(rows)
        return chunks[:limit]

    async def _fetch_rows(self, sql: str, params: tuple) -> list:
        connection = self._require_connection()
        try:
            cursor = await connection.execute(sql, params)
            return list(await cursor.fetchall())
        except Exception as e:
            raise StorageError(
                f"Failed to query knowledge chunks: {e}",
                storage_type="sqlite",
                original_error=e,
            )

    def _decode_rows(self, rows: list) -> list[KnowledgeChunk]:
        chunks = []
        for row in rows:
            try:
                chunks.append(
                    KnowledgeChunk(
                        id=row["id"],
                        source_id=row["source_id"],
                        source_title=row["title"],
                        page_number=row["page_number"],
                        chunk_index=row["chunk_index"],
                        text=row["chunk_text"],
                        embedding=row["embedding"],
                    )
                )
            except ValueError as e:
                # One corrupt row must not hide the rest of the store
                logger.warning("chunk_row_skipped", chunk_id=row["id"], error=str(e))
        return chunks

    async def update_embedding(self, chunk_id: str, vector: list[float], model: str) -> bool:
        """Write an embedding BLOB for a chunk."""
        connection = self._require_connection()
        try:
            cursor = await connection.execute(
                """
                UPDATE knowledge_chunks
                SET embedding = ?, embedding_model = ?
                WHERE id = ?
                """,
                (encode_embedding(vector), model, chunk_id),
            )
            await connection.commit()
            return cursor.rowcount > 0
        except Exception as e:
            raise StorageError(
                f"Failed to update embedding: {e}",
                storage_type="sqlite",
                original_error=e,
            )

    async def get_stats(self) -> KnowledgeBaseStats:
        """Count chunks, embedded chunks and sources."""
        connection = self._require_connection()
        try:
            cursor = await connection.execute(
                "SELECT COUNT(*) AS total, COUNT(embedding) AS embedded FROM knowledge_chunks"
            )
            chunk_row = await cursor.fetchone()
            cursor = await connection.execute("SELECT COUNT(*) AS count FROM knowledge_sources")
            source_row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to read knowledge base stats: {e}",
                storage_type="sqlite",
                original_error=e,
            )

        return KnowledgeBaseStats(
            total_chunks=chunk_row["total"] or 0,
            embedded_chunks=chunk_row["embedded"] or 0,
            source_count=source_row["count"] or 0,
        )

    async def close(self) -> None:
        """Close the database connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None
