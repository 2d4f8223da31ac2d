"""Public API for duplicate lookups against saved records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..logging import get_logger
from ..store.base import ImageRecord, RecordStore
from .distance import hamming_distance
from .fingerprint import (
    Fingerprint,
    FingerprintLike,
    IncomparableFingerprintsError,
    InvalidFingerprintError,
)
from .remote import RemoteDuplicateChecker, RemoteUnavailable

logger = get_logger(__name__)


@dataclass(frozen=True)
class SimilarityVerdict:
    """Outcome of a duplicate lookup."""
    is_duplicate: bool
    exact_match: bool = False
    matched_record: Optional[ImageRecord] = None
    distance: Optional[int] = None          # Bit distance to the match, when known
    source: Optional[str] = None            # "remote" or "local"


NOT_DUPLICATE = SimilarityVerdict(is_duplicate=False)


class DuplicateResolver:
    """
    Finds a saved record whose fingerprint matches a new one.

    The remote service is tried first when configured; any remote failure
    falls back to a linear scan of the local store. The first matching
    record in storage order wins, with no search for a closer match.
    """

    def __init__(self, store: RecordStore, remote: Optional[RemoteDuplicateChecker] = None) -> None:
        self.store = store
        self.remote = remote

    async def check(self, fingerprint: Optional[FingerprintLike], threshold: int) -> SimilarityVerdict:
        """
        Look for a duplicate of ``fingerprint`` within ``threshold`` bits.

        Args:
            fingerprint: Fingerprint or its persisted string; None skips the check
            threshold: Maximum Hamming distance for a near match (inclusive)

        Returns:
            SimilarityVerdict; ``is_duplicate`` is False when nothing matches
        """
        if fingerprint is None or fingerprint == "":
            return NOT_DUPLICATE
        if threshold < 0:
            raise ValueError(f"threshold must be non-negative, got {threshold}")

        text = str(fingerprint)

        if self.remote is not None:
            try:
                await self.remote.probe()
                lookup = await self.remote.lookup(text)
            except RemoteUnavailable as exc:
                logger.warning(f"Remote duplicate check unavailable, scanning locally: {exc}")
            else:
                logger.debug(f"Remote duplicate check for {text}: exists={lookup.exists}")
                if not lookup.exists:
                    return SimilarityVerdict(is_duplicate=False, source="remote")
                return SimilarityVerdict(
                    is_duplicate=True,
                    exact_match=True,
                    matched_record=lookup.record,
                    distance=0,
                    source="remote",
                )

        return await self.check_local(fingerprint, threshold)

    async def check_local(self, fingerprint: FingerprintLike, threshold: int) -> SimilarityVerdict:
        """Linear scan of the store; the first record at or under ``threshold`` wins."""
        text = str(fingerprint).strip().lower()
        target: Optional[Fingerprint]
        try:
            target = fingerprint if isinstance(fingerprint, Fingerprint) else Fingerprint.parse(text)
        except InvalidFingerprintError as exc:
            logger.warning(f"Cannot parse fingerprint {text!r}, only exact matches possible: {exc}")
            target = None

        records = await self.store.scan_all()
        scanned = 0
        for record in records:
            candidate = record.fingerprint
            if not candidate:
                continue
            scanned += 1

            if candidate.strip().lower() == text:
                logger.info(f"Exact duplicate of record {record.id}")
                return SimilarityVerdict(
                    is_duplicate=True, exact_match=True, matched_record=record, distance=0, source="local"
                )
            if target is None:
                continue

            try:
                distance = hamming_distance(target, candidate)
            except IncomparableFingerprintsError:
                logger.debug(f"Record {record.id} uses another fingerprint scheme, skipping")
                continue
            except InvalidFingerprintError as exc:
                logger.warning(f"Record {record.id} has an unreadable fingerprint, skipping: {exc}")
                continue

            if distance <= threshold:
                logger.info(f"Near duplicate of record {record.id} (distance: {distance})")
                return SimilarityVerdict(
                    is_duplicate=True, exact_match=False, matched_record=record, distance=distance, source="local"
                )

        logger.debug(f"No duplicate among {scanned} fingerprinted records")
        return SimilarityVerdict(is_duplicate=False, source="local")
