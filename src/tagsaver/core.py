"""
Entry point tying fingerprinting, duplicate lookup and pool ordering together.

``TagSaverCore`` is what the save flow talks to: it fingerprints media,
checks it against saved records and stores new records at a conflict-free
pool position.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional

from .config import Settings
from .dedup.cache import FingerprintCache
from .dedup.fingerprint import Fingerprint, FingerprintLike
from .dedup.hash import HashEngine, MediaRef
from .dedup.remote import RemoteDuplicateChecker
from .dedup.resolver import DuplicateResolver, SimilarityVerdict
from .logging import get_logger
from .pools.sequencer import PoolSequencer
from .store.base import TAG_SEARCH_LIMIT, ImageRecord, RecordStore
from .store.sqlite import SqliteRecordStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class SaveResult:
    saved: bool
    record: Optional[ImageRecord] = None
    verdict: Optional[SimilarityVerdict] = None
    fingerprint: Optional[Fingerprint] = None

    @property
    def duplicate_found(self) -> bool:
        return self.verdict is not None and self.verdict.is_duplicate


class TagSaverCore:
    def __init__(
        self,
        store: RecordStore,
        settings: Optional[Settings] = None,
        engine: Optional[HashEngine] = None,
        remote: Optional[RemoteDuplicateChecker] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        self.engine = engine or HashEngine(self.settings, FingerprintCache(self.settings.cache_max_entries))
        if remote is None and self.settings.remote_url:
            remote = RemoteDuplicateChecker(
                self.settings.remote_url,
                probe_timeout=self.settings.remote_probe_timeout,
                timeout=self.settings.remote_timeout,
            )
        self.remote = remote
        self.resolver = DuplicateResolver(store, remote)
        self.sequencer = PoolSequencer(store)

    @classmethod
    def from_settings(cls, settings: Settings) -> TagSaverCore:
        """Open the SQLite store named by ``settings.db_path``."""
        return cls(SqliteRecordStore(settings.db_path), settings)

    async def compute_fingerprint(self, media: MediaRef) -> Optional[Fingerprint]:
        return await self.engine.compute_fingerprint(media)

    async def check_duplicate(
        self, fingerprint: Optional[FingerprintLike], threshold: Optional[int] = None
    ) -> SimilarityVerdict:
        if threshold is None:
            threshold = self.settings.similarity_threshold
        return await self.resolver.check(fingerprint, threshold)

    async def assign_pool_index(self, pool_id: str, index: int) -> None:
        await self.sequencer.assign_index(pool_id, index)

    async def get_highest_pool_index(self, pool_id: str) -> Optional[int]:
        return await self.sequencer.get_highest_index(pool_id)

    async def suggest_pool_index(self, pool_id: str) -> int:
        return await self.sequencer.next_index(pool_id)

    async def search_tags(self, text: str, limit: int = TAG_SEARCH_LIMIT) -> List[str]:
        return await self.store.search_tags(text, limit)

    async def save(
        self,
        draft: ImageRecord,
        media: Optional[MediaRef] = None,
        threshold: Optional[int] = None,
    ) -> SaveResult:
        """
        Fingerprint, dedup-check and store a new record.

        ``media`` defaults to the draft's ``media_url``. A duplicate verdict
        stops the save and is returned to the caller; an unavailable
        fingerprint only skips the check.

        Raises:
            StoreError: If the record cannot be persisted
        """
        source = media if media is not None else draft.media_url
        fingerprint: Optional[Fingerprint] = None
        verdict: Optional[SimilarityVerdict] = None

        if source is not None:
            fingerprint = await self.compute_fingerprint(source)

        if fingerprint is not None and self.settings.duplicate_detection:
            verdict = await self.check_duplicate(fingerprint, threshold)
            if verdict.is_duplicate:
                matched = verdict.matched_record.id if verdict.matched_record else "unknown"
                logger.info(
                    f"Not saving {draft.source_url}: duplicate of record {matched} "
                    f"({'exact' if verdict.exact_match else f'distance {verdict.distance}'})"
                )
                return SaveResult(saved=False, verdict=verdict, fingerprint=fingerprint)

        record = replace(draft, id=None, fingerprint=str(fingerprint) if fingerprint else None)
        stored = await self.sequencer.insert(record)
        logger.info(f"Saved record {stored.id} from {stored.source_url}")
        return SaveResult(saved=True, record=stored, verdict=verdict, fingerprint=fingerprint)

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.aclose()
        await self.store.close()
