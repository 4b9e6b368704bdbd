"""CRDT engine port."""

from __future__ import annotations

from typing import Protocol, TypeVar

D = TypeVar("D")


class CrdtEngine(Protocol[D]):
    """The three document operations the store needs from a CRDT library.

    ``apply`` must be commutative and idempotent: the store applies pending
    updates in no particular order and may hand the same update to a
    document more than once.
    """

    def create_empty(self) -> D:
        ...

    def apply(self, doc: D, update: bytes) -> None:
        """Merge *update* into *doc* in place."""
        ...

    def encode(self, doc: D) -> bytes:
        """Encode the full state of *doc* so that ``apply`` on an empty doc restores it."""
        ...
