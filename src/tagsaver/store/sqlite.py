"""SQLite-backed record store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import replace
from pathlib import Path
from typing import AsyncIterator, List, Optional, Union

from ..logging import get_logger
from .base import ImageRecord, IndexConflict, RecordId, RecordOperations, RecordStore, StoreError

logger = get_logger(__name__)

_COLUMNS = "id, source_url, tags, media_url, timestamp, fingerprint, pool_id, pool_index"

_SCHEMA = (
    '''
    CREATE TABLE IF NOT EXISTS records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_url TEXT NOT NULL,
        tags TEXT NOT NULL DEFAULT '[]',
        media_url TEXT,
        timestamp TEXT NOT NULL,
        fingerprint TEXT,
        pool_id TEXT,
        pool_index INTEGER
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_records_fingerprint ON records(fingerprint)',
    # Enforces one record per pool slot.
    'CREATE UNIQUE INDEX IF NOT EXISTS idx_records_pool_slot ON records(pool_id, pool_index) '
    'WHERE pool_id IS NOT NULL',
)


def _row_to_record(row: sqlite3.Row) -> ImageRecord:
    return ImageRecord(
        id=row["id"],
        source_url=row["source_url"],
        tags=tuple(json.loads(row["tags"])),
        media_url=row["media_url"],
        timestamp=row["timestamp"],
        fingerprint=row["fingerprint"],
        pool_id=row["pool_id"],
        pool_index=row["pool_index"],
    )


class _Cursor(RecordOperations):
    """Record operations over one open connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def _select(self, where: str = "", params: tuple = ()) -> List[ImageRecord]:
        try:
            rows = self._conn.execute(f"SELECT {_COLUMNS} FROM records {where} ORDER BY id", params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read records: {exc}") from exc

        records = []
        for row in rows:
            try:
                records.append(_row_to_record(row))
            except (ValueError, TypeError) as exc:
                logger.warning(f"Skipping unreadable record {row['id']}: {exc}")
        return records

    async def scan_all(self) -> List[ImageRecord]:
        return self._select()

    async def get(self, record_id: RecordId) -> Optional[ImageRecord]:
        records = self._select("WHERE id = ?", (record_id,))
        return records[0] if records else None

    async def get_by_pool(self, pool_id: str) -> List[ImageRecord]:
        return self._select("WHERE pool_id = ?", (pool_id,))

    async def get_by_pool_and_index(self, pool_id: str, pool_index: int) -> List[ImageRecord]:
        return self._select("WHERE pool_id = ? AND pool_index = ?", (pool_id, pool_index))

    async def put(self, record: ImageRecord) -> ImageRecord:
        values = (
            record.source_url,
            json.dumps(list(record.tags)),
            record.media_url,
            record.timestamp,
            record.fingerprint,
            record.pool_id,
            record.pool_index,
        )
        try:
            if record.id is None:
                cursor = self._conn.execute(
                    "INSERT INTO records (source_url, tags, media_url, timestamp, fingerprint, pool_id, pool_index) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    values,
                )
                return replace(record, id=cursor.lastrowid)

            # Upsert on id only; a clash on the pool slot index must still fail.
            self._conn.execute(
                "INSERT INTO records (id, source_url, tags, media_url, timestamp, fingerprint, pool_id, pool_index) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET source_url = excluded.source_url, tags = excluded.tags, "
                "media_url = excluded.media_url, timestamp = excluded.timestamp, "
                "fingerprint = excluded.fingerprint, pool_id = excluded.pool_id, pool_index = excluded.pool_index",
                (record.id,) + values,
            )
            return record
        except sqlite3.IntegrityError as exc:
            if record.pool_id is not None and "pool_index" in str(exc):
                raise IndexConflict(
                    f"Pool {record.pool_id} index {record.pool_index} is already taken"
                ) from exc
            raise StoreError(f"Failed to write record: {exc}") from exc
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to write record: {exc}") from exc


class SqliteRecordStore(RecordStore):
    """
    Persists records in a single SQLite table.

    Calls run on the event loop thread; an asyncio lock keeps one
    transaction open at a time on the shared connection.
    """

    def __init__(self, db_path: Union[str, Path]) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(self.db_path, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            for statement in _SCHEMA:
                self._conn.execute(statement)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to open record database {self.db_path}: {exc}") from exc
        self._ops = _Cursor(self._conn)
        self._lock = asyncio.Lock()
        logger.debug(f"Opened record database {self.db_path}")

    async def scan_all(self) -> List[ImageRecord]:
        async with self._lock:
            return await self._ops.scan_all()

    async def get(self, record_id: RecordId) -> Optional[ImageRecord]:
        async with self._lock:
            return await self._ops.get(record_id)

    async def get_by_pool(self, pool_id: str) -> List[ImageRecord]:
        async with self._lock:
            return await self._ops.get_by_pool(pool_id)

    async def get_by_pool_and_index(self, pool_id: str, pool_index: int) -> List[ImageRecord]:
        async with self._lock:
            return await self._ops.get_by_pool_and_index(pool_id, pool_index)

    async def put(self, record: ImageRecord) -> ImageRecord:
        async with self.transaction() as txn:
            return await txn.put(record)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[RecordOperations]:
        async with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StoreError(f"Failed to start transaction: {exc}") from exc
            try:
                yield self._ops
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            try:
                self._conn.execute("COMMIT")
            except sqlite3.Error as exc:
                self._conn.execute("ROLLBACK")
                raise StoreError(f"Failed to commit transaction: {exc}") from exc

    async def close(self) -> None:
        self._conn.close()
