"""
Record model and the storage contract the core depends on.

Concrete stores live beside this module: an in-memory store for tests and
embedding, and a SQLite store for persistence.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Dict, List, Mapping, Optional, Tuple, Union

RecordId = Union[int, str]

TAG_SEARCH_LIMIT = 30


class StoreError(Exception):
    """Raised when the record store cannot read or persist records."""


class IndexConflict(StoreError):
    """Raised when a write would give two records the same (pool_id, pool_index)."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ImageRecord:
    """A saved media item with its tags and optional pool position."""
    source_url: str                         # Page the media was saved from
    tags: Tuple[str, ...] = ()              # Raw tags, optionally "category:name"
    media_url: Optional[str] = None         # Direct URL of the media itself
    timestamp: str = field(default_factory=_now_iso)
    fingerprint: Optional[str] = None       # Persisted fingerprint string
    pool_id: Optional[str] = None
    pool_index: Optional[int] = None
    id: Optional[RecordId] = None           # Assigned by the store on first put

    def __post_init__(self) -> None:
        if not isinstance(self.tags, tuple):
            object.__setattr__(self, "tags", tuple(self.tags))
        if self.pool_id is not None:
            if isinstance(self.pool_index, bool) or not isinstance(self.pool_index, int):
                raise ValueError(f"Pooled record needs an integer pool_index, got {self.pool_index!r}")
            if self.pool_index < 0:
                raise ValueError(f"pool_index must be non-negative, got {self.pool_index}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["tags"] = list(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ImageRecord:
        """
        Build a record from its dictionary form.

        Accepts both this project's field names and the camelCase keys of
        the browser extension's database export (``url``, ``imageUrl``,
        ``imageHash``, ``poolId``, ``poolIndex``).
        """
        def pick(*keys: str) -> Any:
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        source_url = pick("source_url", "sourceUrl", "url")
        if not source_url:
            raise ValueError("Record is missing its source URL")

        pool_id = pick("pool_id", "poolId")
        pool_index = pick("pool_index", "poolIndex")
        if pool_id is not None:
            pool_id = str(pool_id)
            try:
                pool_index = int(pool_index) if pool_index is not None else 0
            except (TypeError, ValueError):
                pool_index = 0
        else:
            pool_index = None

        timestamp = pick("timestamp")
        return cls(
            id=pick("id"),
            source_url=str(source_url),
            tags=tuple(str(t) for t in (pick("tags") or ())),
            media_url=pick("media_url", "mediaUrl", "imageUrl"),
            timestamp=str(timestamp) if timestamp is not None else _now_iso(),
            fingerprint=pick("fingerprint", "imageHash"),
            pool_id=pool_id,
            pool_index=pool_index,
        )


class RecordOperations(ABC):
    """Reads and writes available both on a store and inside its transactions."""

    @abstractmethod
    async def scan_all(self) -> List[ImageRecord]:
        """All records, in storage iteration order."""

    @abstractmethod
    async def get(self, record_id: RecordId) -> Optional[ImageRecord]:
        ...

    @abstractmethod
    async def get_by_pool(self, pool_id: str) -> List[ImageRecord]:
        ...

    @abstractmethod
    async def get_by_pool_and_index(self, pool_id: str, pool_index: int) -> List[ImageRecord]:
        ...

    @abstractmethod
    async def put(self, record: ImageRecord) -> ImageRecord:
        """
        Insert or replace ``record`` and return it as stored (with its id).

        Raises:
            IndexConflict: If another record already holds the same pool slot
            StoreError: If the write fails
        """

    async def search_tags(self, text: str, limit: int = TAG_SEARCH_LIMIT) -> List[str]:
        """
        Distinct tags containing ``text``, case-insensitively.

        Tags are returned as stored, in the order they are first met while
        scanning records, up to ``limit`` of them.
        """
        if limit <= 0:
            return []
        needle = text.lower()
        found: Dict[str, None] = {}
        for record in await self.scan_all():
            for tag in record.tags:
                if needle in tag.lower() and tag not in found:
                    found[tag] = None
                    if len(found) >= limit:
                        return list(found)
        return list(found)


class RecordStore(RecordOperations):
    @abstractmethod
    def transaction(self) -> AsyncContextManager[RecordOperations]:
        """
        Open an atomic scope. Writes made through the yielded object commit
        together when the block exits normally and are discarded if it raises.
        """

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> RecordStore:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
