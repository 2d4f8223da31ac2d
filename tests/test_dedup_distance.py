"""Tests for fingerprint distance metrics."""

import pytest
from hypothesis import given, strategies as st

from tagsaver.dedup.distance import hamming_distance, is_match
from tagsaver.dedup.fingerprint import Fingerprint, IncomparableFingerprintsError

BASE = "ab12cd34ef560789"

fingerprints_63 = st.integers(min_value=0, max_value=(1 << 63) - 1).map(
    lambda v: Fingerprint(scheme="dct63", bits=63, value=v)
)


def flip_bits(text: str, positions) -> str:
    """Flip the given bit positions of a bare 64-bit hex fingerprint."""
    value = int(text, 16)
    for position in positions:
        value ^= 1 << position
    return format(value, "016x")


class TestHammingDistance:
    @given(fingerprints_63)
    def test_distance_is_reflexive(self, fp):
        """Any fingerprint is at distance 0 from itself."""
        assert hamming_distance(fp, fp) == 0

    @given(fingerprints_63, fingerprints_63)
    def test_distance_is_symmetric(self, a, b):
        assert hamming_distance(a, b) == hamming_distance(b, a)

    @given(st.sets(st.integers(min_value=0, max_value=63), max_size=64))
    def test_distance_counts_differing_bits(self, positions):
        """Fingerprints differing in exactly k positions are at distance k."""
        other = flip_bits(BASE, positions)
        assert hamming_distance(BASE, other) == len(positions)

    def test_distance_accepts_strings_and_objects(self):
        other = flip_bits(BASE, [0, 5, 9])
        assert hamming_distance(Fingerprint.parse(BASE), other) == 3

    def test_different_schemes_are_incomparable(self):
        """Same width but different schemes must not be compared."""
        dct = Fingerprint(scheme="dct64", bits=64, value=int(BASE, 16))
        with pytest.raises(IncomparableFingerprintsError):
            hamming_distance(BASE, dct)

    def test_different_widths_are_incomparable(self):
        """No padding by the width difference: unequal lengths raise."""
        with pytest.raises(IncomparableFingerprintsError):
            hamming_distance(BASE, "ab12")

    def test_incomparable_is_a_value_error(self):
        with pytest.raises(ValueError):
            hamming_distance("dct63:0000000000000000", BASE)


class TestIsMatch:
    @given(st.integers(min_value=0, max_value=60))
    def test_threshold_boundary_is_inclusive(self, threshold):
        """distance == threshold matches, distance == threshold + 1 does not."""
        at = flip_bits(BASE, range(threshold))
        beyond = flip_bits(BASE, range(threshold + 1))
        assert is_match(BASE, at, threshold)
        assert not is_match(BASE, beyond, threshold)

    def test_identical_matches_at_zero_threshold(self):
        assert is_match(BASE, BASE, 0)

    def test_incomparable_never_matches(self):
        """Even a huge threshold cannot match across schemes."""
        assert not is_match(BASE, "dct63:" + "0" * 16, 1000)
        assert not is_match(BASE, "ab12", 1000)
