"""Write-buffering transaction shared by the bundled adapters."""

from __future__ import annotations

from collections.abc import Iterable

from deltalog.storage.interfaces import StorageTransaction


class BufferedTransaction:
    """Reads through to *base*, buffers writes until the owner applies them.

    Reads see the transaction's own writes first.  The owning adapter must
    hold its write lock for the transaction's lifetime and apply
    :meth:`pending_writes` only after the transaction body returns.
    """

    def __init__(self, base: StorageTransaction) -> None:
        self._base = base
        self._writes: dict[str, bytes | None] = {}

    async def get(self, key: str) -> bytes | None:
        if key in self._writes:
            return self._writes[key]
        return await self._base.get(key)

    async def list(self, prefix: str) -> dict[str, bytes]:
        result = await self._base.list(prefix)
        for key, value in self._writes.items():
            if not key.startswith(prefix):
                continue
            if value is None:
                result.pop(key, None)
            else:
                result[key] = value
        return result

    async def put(self, key: str, value: bytes) -> None:
        self._writes[key] = bytes(value)

    async def delete(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._writes[key] = None

    def pending_writes(self) -> tuple[dict[str, bytes], list[str]]:
        """Split buffered writes into ``(puts, deletes)``."""
        puts = {k: v for k, v in self._writes.items() if v is not None}
        deletes = sorted(k for k, v in self._writes.items() if v is None)
        return puts, deletes
