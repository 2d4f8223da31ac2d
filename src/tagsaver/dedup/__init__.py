"""Perceptual duplicate detection for saved media."""

from .fingerprint import Fingerprint, IncomparableFingerprintsError, InvalidFingerprintError
from .cache import FingerprintCache
from .hash import HashEngine, FingerprintUnavailable, dct_fingerprint, average_fingerprint
from .distance import hamming_distance, is_match
from .remote import RemoteDuplicateChecker, RemoteUnavailable
from .resolver import DuplicateResolver, SimilarityVerdict

__all__ = [
    "Fingerprint",
    "IncomparableFingerprintsError",
    "InvalidFingerprintError",
    "FingerprintCache",
    "HashEngine",
    "FingerprintUnavailable",
    "dct_fingerprint",
    "average_fingerprint",
    "hamming_distance",
    "is_match",
    "RemoteDuplicateChecker",
    "RemoteUnavailable",
    "DuplicateResolver",
    "SimilarityVerdict",
]
