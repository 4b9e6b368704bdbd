"""Automerge implementation of the CRDT engine port.

Updates are saved Automerge documents (full or partial histories).  Applying
one loads it and merges its change graph into the target, which is both
commutative and idempotent.
"""

from __future__ import annotations

from automerge import Document, core


class AutomergeEngine:
    """CrdtEngine over ``automerge.Document``."""

    def create_empty(self) -> Document:
        return Document()

    def apply(self, doc: Document, update: bytes) -> None:
        doc._doc.merge(core.Document.load(bytes(update)))

    def encode(self, doc: Document) -> bytes:
        return doc._doc.save()


def make_update(doc: Document) -> bytes:
    """Return an update carrying every change made to a local *doc* so far.

    Pass the result to ``DocumentStore.store_update``.  Re-sending changes
    that were already stored is harmless because merges are idempotent.
    """
    return doc._doc.save()
