"""In-process transactional storage."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from deltalog.storage.interfaces import StorageTransaction
from deltalog.storage.transactions import BufferedTransaction

T = TypeVar("T")


class MemoryStorage:
    """Dict-backed storage with serialized, all-or-nothing transactions.

    Readers outside a transaction only ever see committed values.
    """

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self._data: dict[str, bytes] = dict(initial or {})
        self._write_lock = asyncio.Lock()

    async def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    async def list(self, prefix: str) -> dict[str, bytes]:
        return {k: v for k, v in self._data.items() if k.startswith(prefix)}

    async def put(self, key: str, value: bytes) -> None:
        async with self._write_lock:
            self._data[key] = bytes(value)

    async def delete(self, keys: Iterable[str]) -> None:
        async with self._write_lock:
            for key in keys:
                self._data.pop(key, None)

    async def transaction(self, fn: Callable[[StorageTransaction], Awaitable[T]]) -> T:
        async with self._write_lock:
            tx = BufferedTransaction(self)
            result = await fn(tx)
            puts, deletes = tx.pending_writes()
            self._data.update(puts)
            for key in deletes:
                self._data.pop(key, None)
            return result

    def snapshot(self) -> dict[str, bytes]:
        """Return a copy of the committed contents."""
        return dict(self._data)
