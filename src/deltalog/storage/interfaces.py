"""Transactional key-value storage port.

Any backend that satisfies :class:`TransactionStorage` can sit under a
``DocumentStore``.  Keys are ``str``; values are opaque ``bytes``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import Protocol, TypeVar

T = TypeVar("T")


class StorageTransaction(Protocol):
    """Key-value operations available inside a transaction.

    Has no ``transaction()`` method: transactions do not nest.
    """

    async def get(self, key: str) -> bytes | None:
        """Return the value stored at *key*, or ``None`` if absent."""
        ...

    async def list(self, prefix: str) -> dict[str, bytes]:
        """Return every key starting with *prefix* mapped to its value. Order is unspecified."""
        ...

    async def put(self, key: str, value: bytes) -> None:
        ...

    async def delete(self, keys: Iterable[str]) -> None:
        """Delete *keys*. Missing keys are ignored."""
        ...


class TransactionStorage(StorageTransaction, Protocol):
    async def transaction(self, fn: Callable[[StorageTransaction], Awaitable[T]]) -> T:
        """Run *fn* against a scoped transaction and commit its writes atomically.

        If *fn* raises, nothing it wrote becomes visible and the exception
        propagates unchanged.
        """
        ...
