"""Compacting CRDT document store.

Usage::

    from deltalog.compaction import DocumentStore
    from deltalog.crdt.automerge_engine import AutomergeEngine
    from deltalog.storage.memory import MemoryStorage

    store = DocumentStore(MemoryStorage(), AutomergeEngine(), {"max_updates": 100})
    await store.store_update(update_bytes)
    doc = await store.get_document()
"""

from __future__ import annotations

from deltalog.compaction.store import DocumentStore, PendingStats
from deltalog.core.config import StoreOptions
from deltalog.core.errors import AssemblyError, CommitError, DeltaLogError

__all__ = [
    "AssemblyError",
    "CommitError",
    "DeltaLogError",
    "DocumentStore",
    "PendingStats",
    "StoreOptions",
]
