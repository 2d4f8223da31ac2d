"""Per-source fingerprint cache shared by one hashing session."""

from collections import OrderedDict
from typing import Optional

from .fingerprint import Fingerprint


class FingerprintCache:
    """
    Maps a media source key (URL or path) to its computed fingerprint.

    Only successful fingerprints are stored, so an unavailable result is
    retried on the next request. When ``max_entries`` is set the oldest
    entry is evicted first.
    """

    def __init__(self, max_entries: Optional[int] = None) -> None:
        self._entries: "OrderedDict[str, Fingerprint]" = OrderedDict()
        self._max_entries = max_entries
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Fingerprint]:
        fingerprint = self._entries.get(key)
        if fingerprint is None:
            self.misses += 1
        else:
            self.hits += 1
        return fingerprint

    def put(self, key: str, fingerprint: Fingerprint) -> None:
        self._entries[key] = fingerprint
        self._entries.move_to_end(key)
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
