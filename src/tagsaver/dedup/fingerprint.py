"""Version-tagged perceptual fingerprints.

A fingerprint is a fixed-width bit vector produced by one hashing scheme.
Its persisted form is ``"<scheme>:<hex>"`` where the scheme name ends in the
bit width (``dct63``, ``ahash64``). Untagged hex strings written by older
releases are still accepted: 16 hex digits are read as ``ahash64``, any other
length as ``raw<bits>``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Union

LEGACY_SCHEME = "ahash64"

_SCHEME_RE = re.compile(r"^([a-z]+)(\d+)$")
_HEX_RE = re.compile(r"^[0-9a-f]+$")


class InvalidFingerprintError(ValueError):
    """Raised when a fingerprint string cannot be parsed."""


class IncomparableFingerprintsError(ValueError):
    """Raised when two fingerprints come from different schemes or widths."""


def _hex_width(bits: int) -> int:
    return (bits + 3) // 4


@dataclass(frozen=True)
class Fingerprint:
    """Immutable bit vector tagged with the scheme that produced it."""
    scheme: str
    bits: int
    value: int

    def __post_init__(self) -> None:
        if self.bits <= 0:
            raise InvalidFingerprintError(f"Fingerprint width must be positive, got {self.bits}")
        if not 0 <= self.value < (1 << self.bits):
            raise InvalidFingerprintError(
                f"Value does not fit in {self.bits} bits for scheme {self.scheme}"
            )

    @property
    def hex(self) -> str:
        return format(self.value, f"0{_hex_width(self.bits)}x")

    def __str__(self) -> str:
        return f"{self.scheme}:{self.hex}"

    def comparable_with(self, other: Fingerprint) -> bool:
        return self.scheme == other.scheme and self.bits == other.bits

    @classmethod
    def from_bits(cls, scheme: str, bit_values: Iterable[object]) -> Fingerprint:
        """
        Pack an ordered sequence of truthy/falsy values, first value as the
        most significant bit.
        """
        value = 0
        count = 0
        for bit in bit_values:
            value = (value << 1) | (1 if bit else 0)
            count += 1
        return cls(scheme=scheme, bits=count, value=value)

    @classmethod
    def parse(cls, text: str) -> Fingerprint:
        """
        Parse the persisted string form.

        Raises:
            InvalidFingerprintError: If the string is empty, not hex, or does
                not fit the width its scheme declares.
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidFingerprintError("Empty fingerprint")

        raw = text.strip().lower()
        if ":" in raw:
            scheme, hex_part = raw.split(":", 1)
            match = _SCHEME_RE.match(scheme)
            if not match:
                raise InvalidFingerprintError(f"Malformed scheme tag in {text!r}")
            bits = int(match.group(2))
        else:
            hex_part = raw
            bits = len(hex_part) * 4
            scheme = LEGACY_SCHEME if bits == 64 else f"raw{bits}"

        if not _HEX_RE.match(hex_part):
            raise InvalidFingerprintError(f"Fingerprint is not hex: {text!r}")
        if len(hex_part) != _hex_width(bits):
            raise InvalidFingerprintError(
                f"Expected {_hex_width(bits)} hex digits for {scheme}, got {len(hex_part)}"
            )

        return cls(scheme=scheme, bits=bits, value=int(hex_part, 16))


FingerprintLike = Union[Fingerprint, str]


def coerce_fingerprint(value: FingerprintLike) -> Fingerprint:
    if isinstance(value, Fingerprint):
        return value
    return Fingerprint.parse(value)
