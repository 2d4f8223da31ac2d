"""In-process record store."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncIterator, Dict, Iterable, List, Optional

from ..logging import get_logger
from .base import ImageRecord, IndexConflict, RecordId, RecordOperations, RecordStore

logger = get_logger(__name__)


class _RecordTable(RecordOperations):
    """Records keyed by id; dict order is storage iteration order."""

    def __init__(self, rows: Dict[RecordId, ImageRecord], next_id: int) -> None:
        self.rows = rows
        self.next_id = next_id

    async def scan_all(self) -> List[ImageRecord]:
        return list(self.rows.values())

    async def get(self, record_id: RecordId) -> Optional[ImageRecord]:
        return self.rows.get(record_id)

    async def get_by_pool(self, pool_id: str) -> List[ImageRecord]:
        return [r for r in self.rows.values() if r.pool_id == pool_id]

    async def get_by_pool_and_index(self, pool_id: str, pool_index: int) -> List[ImageRecord]:
        return [r for r in self.rows.values() if r.pool_id == pool_id and r.pool_index == pool_index]

    async def put(self, record: ImageRecord) -> ImageRecord:
        if record.pool_id is not None:
            for other in self.rows.values():
                if (
                    other.id != record.id
                    and other.pool_id == record.pool_id
                    and other.pool_index == record.pool_index
                ):
                    raise IndexConflict(
                        f"Pool {record.pool_id} index {record.pool_index} is held by record {other.id}"
                    )

        if record.id is None:
            record = replace(record, id=self.next_id)
            self.next_id += 1
        elif isinstance(record.id, int) and record.id >= self.next_id:
            self.next_id = record.id + 1

        self.rows[record.id] = record
        return record


class MemoryRecordStore(RecordStore):
    """
    Keeps records in a dict. Transactions work on a copy that replaces the
    live table on success, so a failed block leaves no partial writes.
    """

    def __init__(self, records: Iterable[ImageRecord] = ()) -> None:
        self._table = _RecordTable({}, 1)
        self._lock = asyncio.Lock()
        for record in records:
            self._seed(record)

    def _seed(self, record: ImageRecord) -> None:
        if record.id is None:
            record = replace(record, id=self._table.next_id)
        self._table.rows[record.id] = record
        if isinstance(record.id, int):
            self._table.next_id = max(self._table.next_id, record.id + 1)

    async def scan_all(self) -> List[ImageRecord]:
        return await self._table.scan_all()

    async def get(self, record_id: RecordId) -> Optional[ImageRecord]:
        return await self._table.get(record_id)

    async def get_by_pool(self, pool_id: str) -> List[ImageRecord]:
        return await self._table.get_by_pool(pool_id)

    async def get_by_pool_and_index(self, pool_id: str, pool_index: int) -> List[ImageRecord]:
        return await self._table.get_by_pool_and_index(pool_id, pool_index)

    async def put(self, record: ImageRecord) -> ImageRecord:
        async with self.transaction() as txn:
            return await txn.put(record)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[RecordOperations]:
        async with self._lock:
            working = _RecordTable(dict(self._table.rows), self._table.next_id)
            yield working
            self._table = working
            logger.debug(f"Committed memory transaction ({len(working.rows)} records)")
