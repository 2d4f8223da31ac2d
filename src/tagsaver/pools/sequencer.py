"""Ordinal positions for records grouped into pools."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Dict, Optional

from ..logging import get_logger
from ..store.base import ImageRecord, IndexConflict, RecordOperations, RecordStore

logger = get_logger(__name__)


def _check_index(requested_index: int) -> int:
    if isinstance(requested_index, bool):
        raise ValueError("pool index must be an integer, not a bool")
    index = int(requested_index)
    if index < 0:
        raise ValueError(f"pool index must be non-negative, got {index}")
    return index


class PoolSequencer:
    """
    Keeps ``(pool_id, pool_index)`` unique across the store.

    Inserting at an occupied slot shifts that record and every later one up
    by one. Work for one pool runs under that pool's lock inside a single
    store transaction; different pools do not wait on each other's lock.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, pool_id: str) -> asyncio.Lock:
        lock = self._locks.get(pool_id)
        if lock is None:
            lock = self._locks[pool_id] = asyncio.Lock()
        return lock

    async def _make_room(self, txn: RecordOperations, pool_id: str, index: int) -> int:
        occupants = await txn.get_by_pool_and_index(pool_id, index)
        if not occupants:
            return 0

        members = await txn.get_by_pool(pool_id)
        # Highest first, so each record moves into a slot that is already free.
        to_shift = sorted(
            (r for r in members if r.pool_index is not None and r.pool_index >= index),
            key=lambda r: r.pool_index,
            reverse=True,
        )
        for record in to_shift:
            await txn.put(replace(record, pool_index=record.pool_index + 1))

        logger.info(f"Pool {pool_id}: shifted {len(to_shift)} records up from index {index}")
        return len(to_shift)

    async def assign_index(self, pool_id: str, requested_index: int) -> None:
        """
        Free ``(pool_id, requested_index)`` for a new record.

        If the slot is empty nothing changes and the caller stores the new
        record there. Otherwise every record in the pool at or above the
        index moves up by one.

        Raises:
            ValueError: If ``requested_index`` is negative
            StoreError: If the store fails; no partial shift is kept
        """
        index = _check_index(requested_index)
        async with self._lock_for(pool_id):
            async with self.store.transaction() as txn:
                await self._make_room(txn, pool_id, index)

    async def insert_into(self, txn: RecordOperations, record: ImageRecord) -> ImageRecord:
        """
        Shift and store ``record`` through an already open transaction.

        The caller owns the transaction, so a later failure in the same
        block also discards this write. No pool lock is taken.

        Returns:
            The stored record with its id
        """
        if record.pool_id is None:
            return await txn.put(record)

        index = _check_index(record.pool_index)
        await self._make_room(txn, record.pool_id, index)
        try:
            return await txn.put(record)
        except IndexConflict:
            logger.debug(f"Pool {record.pool_id}: slot {index} taken again, shifting")
            await self._make_room(txn, record.pool_id, index)
            return await txn.put(record)

    async def insert(self, record: ImageRecord) -> ImageRecord:
        """
        Store ``record`` at its pool position, shifting others as needed.

        Unpooled records are stored directly.

        Returns:
            The stored record with its id
        """
        if record.pool_id is None:
            return await self.store.put(record)

        _check_index(record.pool_index)
        async with self._lock_for(record.pool_id):
            async with self.store.transaction() as txn:
                stored = await self.insert_into(txn, record)

        logger.debug(f"Stored record {stored.id} at pool {record.pool_id}[{record.pool_index}]")
        return stored

    async def get_highest_index(self, pool_id: str) -> Optional[int]:
        """Highest pool_index in the pool, or None if the pool has no records."""
        members = await self.store.get_by_pool(pool_id)
        indices = [r.pool_index for r in members if r.pool_index is not None]
        return max(indices) if indices else None

    async def next_index(self, pool_id: str) -> int:
        """Position that appends to the pool."""
        highest = await self.get_highest_index(pool_id)
        return 0 if highest is None else highest + 1
