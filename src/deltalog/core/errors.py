"""Exceptions surfaced by the document store."""

from __future__ import annotations


class DeltaLogError(Exception):
    """Base class for deltalog errors.

    The underlying failure is always chained (``raise ... from exc``) and is
    available as ``__cause__``.
    """


class AssemblyError(DeltaLogError):
    """Raised when the document cannot be rebuilt from snapshot + pending updates."""


class CommitError(DeltaLogError):
    """Raised when compaction fails. The transaction is aborted and prior state kept."""
