"""JSON export and import of the record collection."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Any, List

from ..logging import get_logger
from ..pools.sequencer import PoolSequencer
from .base import ImageRecord, RecordStore, StoreError

logger = get_logger(__name__)


async def export_records(store: RecordStore, path: Path) -> int:
    """
    Write every record to ``path`` as a JSON array.

    Returns:
        Number of records written
    """
    records = await store.scan_all()
    payload = [record.to_dict() for record in records]
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as exc:
        raise StoreError(f"Failed to write export {path}: {exc}") from exc
    logger.info(f"Exported {len(payload)} records to {path}")
    return len(payload)


def _load_entries(path: Path) -> List[Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise StoreError(f"Failed to read import file {path}: {exc}") from exc
    if not isinstance(data, list):
        raise StoreError(f"Import file {path} must contain a JSON array of records")
    return data


async def import_records(store: RecordStore, path: Path) -> int:
    """
    Add the records in ``path`` to ``store`` as new records.

    Ids from the file are discarded. Pooled records go through the pool
    sequencer, so an imported record landing on an occupied slot pushes the
    existing ones up instead of failing. Entries that cannot be parsed are
    skipped. The whole file is written in one transaction: a store failure
    part way through leaves the store as it was.

    Returns:
        Number of records imported

    Raises:
        StoreError: If the file cannot be read or a write fails
    """
    entries = _load_entries(path)
    sequencer = PoolSequencer(store)
    imported = 0
    async with store.transaction() as txn:
        for position, entry in enumerate(entries):
            try:
                record = ImageRecord.from_dict(entry)
            except (TypeError, ValueError, AttributeError) as exc:
                logger.warning(f"Skipping import entry {position}: {exc}")
                continue
            await sequencer.insert_into(txn, replace(record, id=None))
            imported += 1

    logger.info(f"Imported {imported} records from {path}")
    return imported
