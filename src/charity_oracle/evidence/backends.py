"""
Storage backends for the evidence map.

A backend is a flat key -> ordered url list mapping. ``replace`` writes one
key and deletes another as a single atomic update; the evidence store uses
it to migrate wallet-keyed entries to entity keys.
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import aiosqlite

logger = logging.getLogger(__name__)


class EvidenceBackend(abc.ABC):
    """Key-value interface the evidence store is written against."""

    async def initialize(self) -> None:
        """Prepare storage. Called once before use."""

    async def close(self) -> None:
        """Release resources."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[List[str]]:
        ...

    @abc.abstractmethod
    async def put(self, key: str, urls: List[str]) -> None:
        ...

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abc.abstractmethod
    async def replace(self, put_key: str, urls: List[str], delete_key: str) -> None:
        """Write ``put_key`` and remove ``delete_key`` atomically."""

    @abc.abstractmethod
    async def snapshot(self) -> Dict[str, List[str]]:
        """Return a copy of the whole mapping."""


class MemoryEvidenceBackend(EvidenceBackend):
    """In-process backend for tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, List[str]]] = None):
        self._data: Dict[str, List[str]] = {k: list(v) for k, v in (initial or {}).items()}

    async def get(self, key: str) -> Optional[List[str]]:
        urls = self._data.get(key)
        return list(urls) if urls is not None else None

    async def put(self, key: str, urls: List[str]) -> None:
        self._data[key] = list(urls)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def replace(self, put_key: str, urls: List[str], delete_key: str) -> None:
        # No await between the two mutations, so readers never see a half-applied migration.
        self._data[put_key] = list(urls)
        if delete_key != put_key:
            self._data.pop(delete_key, None)

    async def snapshot(self) -> Dict[str, List[str]]:
        return {k: list(v) for k, v in self._data.items()}


class SqliteEvidenceBackend(EvidenceBackend):
    """
    Async SQLite storage for evidence entries.

    WAL journaling lets readers proceed while the single writer commits.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._lock = asyncio.Lock()
        self._connection: Optional[aiosqlite.Connection] = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create a shared connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(str(self.db_path))
        return self._connection

    async def initialize(self) -> None:
        """Create schema if not exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._lock:
            conn = await self._get_connection()
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS evidence (
                    key TEXT PRIMARY KEY,
                    urls TEXT NOT NULL,  -- JSON list
                    updated_at TEXT NOT NULL
                )
            """)
            await conn.commit()
            logger.info(f"Initialized evidence store at {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def get(self, key: str) -> Optional[List[str]]:
        conn = await self._get_connection()
        async with conn.execute("SELECT urls FROM evidence WHERE key = ?", (key,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return list(json.loads(row[0]))

    async def _upsert(self, conn: aiosqlite.Connection, key: str, urls: List[str]) -> None:
        await conn.execute(
            """
            INSERT INTO evidence (key, urls, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                urls = excluded.urls,
                updated_at = excluded.updated_at
            """,
            (key, json.dumps(list(urls)), datetime.now(timezone.utc).isoformat()),
        )

    async def put(self, key: str, urls: List[str]) -> None:
        async with self._lock:
            conn = await self._get_connection()
            await self._upsert(conn, key, urls)
            await conn.commit()

    async def delete(self, key: str) -> None:
        async with self._lock:
            conn = await self._get_connection()
            await conn.execute("DELETE FROM evidence WHERE key = ?", (key,))
            await conn.commit()

    async def replace(self, put_key: str, urls: List[str], delete_key: str) -> None:
        async with self._lock:
            conn = await self._get_connection()
            try:
                await self._upsert(conn, put_key, urls)
                if delete_key != put_key:
                    await conn.execute("DELETE FROM evidence WHERE key = ?", (delete_key,))
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

    async def snapshot(self) -> Dict[str, List[str]]:
        conn = await self._get_connection()
        async with conn.execute("SELECT key, urls FROM evidence ORDER BY key") as cursor:
            rows = await cursor.fetchall()
        return {row[0]: list(json.loads(row[1])) for row in rows}
