"""Perceptual duplicate detection and pool ordering for saved media."""

from .core import SaveResult, TagSaverCore

__version__ = "0.3.0"

__all__ = ["SaveResult", "TagSaverCore", "__version__"]
