"""Snapshot + pending-update persistence with threshold compaction.

A document is stored as one encoded snapshot (``state/doc``) plus a log of
pending updates (``update/1`` .. ``update/<count>``).  Two counters,
``state/bytes`` and ``state/count``, track the size of the log.  When an
append would push either counter past its threshold, the log is folded into
a fresh snapshot instead, inside the same transaction as the append.

Counters and log records are only ever modified together, in one storage
transaction, so the counters always describe exactly the records on disk.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Generic, TypeVar

from deltalog.core.config import validate_options
from deltalog.core.errors import AssemblyError, CommitError
from deltalog.core.keys import (
    BYTES_KEY,
    COUNT_KEY,
    SNAPSHOT_KEY,
    UPDATE_PREFIX,
    decode_counter,
    encode_counter,
    parse_update_key,
    update_key,
)
from deltalog.crdt.engine import CrdtEngine
from deltalog.storage.interfaces import StorageTransaction, TransactionStorage

logger = logging.getLogger(__name__)

D = TypeVar("D")


@dataclass(frozen=True)
class PendingStats:
    """Counters of the current compaction epoch."""

    bytes: int
    count: int
    has_snapshot: bool


class DocumentStore(Generic[D]):
    """Append-only CRDT update log that compacts itself into a snapshot.

    Args:
        storage: Transactional key-value backend.
        engine: CRDT engine used to build, merge and encode documents.
        options: ``max_bytes`` / ``max_updates`` thresholds; missing keys use
            the defaults from :func:`deltalog.core.config.default_options`.

    Raises:
        ValueError: If *options* are invalid.
    """

    def __init__(
        self,
        storage: TransactionStorage,
        engine: CrdtEngine[D],
        options: Mapping[str, object] | None = None,
    ) -> None:
        opts = validate_options(options)
        self.storage = storage
        self.engine = engine
        self.max_bytes = opts["max_bytes"]
        self.max_updates = opts["max_updates"]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_document(self) -> D:
        """Rebuild the current document from the snapshot and every pending update.

        Raises:
            AssemblyError: If a storage read or a merge fails.
        """
        try:
            # Scan before reading the snapshot: a compaction landing between the
            # two reads then shows up in the snapshot instead of being lost.
            updates = await self.storage.list(UPDATE_PREFIX)
            snapshot = await self.storage.get(SNAPSHOT_KEY)

            doc = self.engine.create_empty()
            if snapshot is not None:
                self.engine.apply(doc, snapshot)
            for update in updates.values():
                self.engine.apply(doc, update)
        except Exception as exc:
            logger.debug("document assembly failed: %r", exc)
            raise AssemblyError("Failed to assemble document") from exc
        return doc

    async def pending_stats(self) -> PendingStats:
        """Read both counters and snapshot presence in one transaction."""

        async def _read(tx: StorageTransaction) -> PendingStats:
            return PendingStats(
                bytes=decode_counter(await tx.get(BYTES_KEY)),
                count=decode_counter(await tx.get(COUNT_KEY)),
                has_snapshot=await tx.get(SNAPSHOT_KEY) is not None,
            )

        return await self.storage.transaction(_read)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def store_update(self, update: bytes) -> None:
        """Append *update* to the pending log, compacting if a threshold is exceeded.

        When compaction triggers, *update* is merged straight into the new
        snapshot and never written as a pending record.

        Raises:
            TypeError: If *update* is not bytes-like.
            CommitError: If the triggered compaction fails.
        """
        if not isinstance(update, (bytes, bytearray, memoryview)):
            raise TypeError(f"update must be bytes, not {type(update).__name__}")
        update = bytes(update)

        async def _append(tx: StorageTransaction) -> None:
            pending_bytes = decode_counter(await tx.get(BYTES_KEY))
            pending_count = decode_counter(await tx.get(COUNT_KEY))

            new_bytes = pending_bytes + len(update)
            new_count = pending_count + 1

            if new_bytes > self.max_bytes or new_count > self.max_updates:
                await self._compact(tx, update, trigger="threshold")
                return

            await tx.put(BYTES_KEY, encode_counter(new_bytes))
            await tx.put(COUNT_KEY, encode_counter(new_count))
            await tx.put(update_key(new_count), update)
            logger.debug(
                "appended update %d (%d bytes, %d pending bytes)",
                new_count,
                len(update),
                new_bytes,
            )

        await self.storage.transaction(_append)

    async def commit(self) -> None:
        """Fold every pending update into a new snapshot.

        Raises:
            CommitError: If any read, merge, encode or write fails.  Storage
                is left as it was before the call.
        """

        async def _run(tx: StorageTransaction) -> None:
            await self._compact(tx, None, trigger="explicit")

        await self.storage.transaction(_run)

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    async def _compact(self, tx: StorageTransaction, extra: bytes | None, trigger: str) -> None:
        """Build the document from the snapshot visible to *tx*, then commit.

        The snapshot is read through the open transaction, so no pending
        update committed before the transaction started can be missed.
        """
        try:
            doc = self.engine.create_empty()
            snapshot = await tx.get(SNAPSHOT_KEY)
            if snapshot is not None:
                self.engine.apply(doc, snapshot)
            if extra is not None:
                self.engine.apply(doc, extra)
        except Exception as exc:
            logger.debug("compaction setup failed: %r", exc)
            raise CommitError("Failed to load snapshot for compaction") from exc

        await self._commit(doc, tx, trigger)

    async def _commit(self, doc: D, tx: StorageTransaction, trigger: str = "explicit") -> None:
        """Fold pending updates into *doc* in sequence order, persist it, reset counters."""
        try:
            pending = await tx.list(UPDATE_PREFIX)
            await tx.delete(list(pending))

            for key in sorted(pending, key=parse_update_key):
                self.engine.apply(doc, pending[key])

            encoded = self.engine.encode(doc)
            await tx.put(BYTES_KEY, encode_counter(0))
            await tx.put(COUNT_KEY, encode_counter(0))
            await tx.put(SNAPSHOT_KEY, encoded)
        except Exception as exc:
            logger.debug("commit failed: %r", exc)
            raise CommitError("Failed to commit document snapshot") from exc

        logger.info(
            "compacted %d pending update(s) into %d-byte snapshot (%s)",
            len(pending),
            len(encoded),
            trigger,
        )
