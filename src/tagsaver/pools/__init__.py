"""Conflict-free ordering of records within pools."""

from .sequencer import PoolSequencer

__all__ = ["PoolSequencer"]
