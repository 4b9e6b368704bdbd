"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from deltalog.compaction import DocumentStore
from deltalog.storage.files import FileStorage
from deltalog.storage.memory import MemoryStorage


class SetEngine:
    """Grow-only set of byte strings: the simplest commutative, idempotent CRDT.

    An update is newline-separated members; ``encode`` emits the members in
    sorted order so equal sets always encode to equal bytes.
    """

    def create_empty(self) -> set[bytes]:
        return set()

    def apply(self, doc: set[bytes], update: bytes) -> None:
        doc.update(member for member in update.split(b"\n") if member)

    def encode(self, doc: set[bytes]) -> bytes:
        return b"\n".join(sorted(doc))


def decode_set(data: bytes | None) -> set[bytes]:
    """Decode bytes written by :meth:`SetEngine.encode`."""
    doc: set[bytes] = set()
    if data is not None:
        SetEngine().apply(doc, data)
    return doc


@pytest.fixture()
def engine() -> SetEngine:
    return SetEngine()


@pytest.fixture()
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def file_storage(tmp_path: Path) -> FileStorage:
    return FileStorage(tmp_path / "store", lock_timeout=5)


@pytest.fixture(params=["memory", "files"])
def storage(request: pytest.FixtureRequest, tmp_path: Path):
    """Each bundled adapter in turn."""
    if request.param == "memory":
        return MemoryStorage()
    return FileStorage(tmp_path / "store", lock_timeout=5)


@pytest.fixture()
def make_store(storage, engine: SetEngine):
    """Return a factory building a DocumentStore over the parametrized storage.

    Usage::

        store = make_store(max_bytes=10, max_updates=100)
    """

    def _make(**options) -> DocumentStore:
        return DocumentStore(storage, engine, options or None)

    return _make
