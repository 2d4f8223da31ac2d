"""Record storage used by the dedup and pool components."""

from .base import ImageRecord, IndexConflict, RecordOperations, RecordStore, StoreError
from .memory import MemoryRecordStore
from .sqlite import SqliteRecordStore

__all__ = [
    "ImageRecord",
    "IndexConflict",
    "RecordOperations",
    "RecordStore",
    "StoreError",
    "MemoryRecordStore",
    "SqliteRecordStore",
]
