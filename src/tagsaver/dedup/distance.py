"""Distance metrics for perceptual fingerprint comparison."""

from .fingerprint import (
    FingerprintLike,
    IncomparableFingerprintsError,
    coerce_fingerprint,
)


def hamming_distance(a: FingerprintLike, b: FingerprintLike) -> int:
    """
    Calculate Hamming distance between two fingerprints.

    Fingerprints from different schemes, or of different widths, are
    incomparable: the distance is undefined rather than padded by the
    width difference.

    Args:
        a: First fingerprint (object or persisted string form)
        b: Second fingerprint

    Returns:
        Hamming distance (number of differing bits)

    Raises:
        IncomparableFingerprintsError: If the fingerprints are not comparable
        InvalidFingerprintError: If a string form cannot be parsed
    """
    fa = coerce_fingerprint(a)
    fb = coerce_fingerprint(b)
    if not fa.comparable_with(fb):
        raise IncomparableFingerprintsError(
            f"Cannot compare {fa.scheme} ({fa.bits} bits) with {fb.scheme} ({fb.bits} bits)"
        )
    return bin(fa.value ^ fb.value).count("1")


def is_match(a: FingerprintLike, b: FingerprintLike, threshold: int) -> bool:
    """
    Check whether two fingerprints are within ``threshold`` bits of each other.

    The boundary is inclusive. Incomparable fingerprints never match.
    """
    try:
        return hamming_distance(a, b) <= threshold
    except IncomparableFingerprintsError:
        return False
