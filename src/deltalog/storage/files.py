"""Directory-backed transactional storage.

Layout under the store root::

    data/<kind>/<name>   one file per key, raw bytes
    locks/store.lock     cross-process transaction lock
    journal.json         buffered writes of an in-flight commit

A transaction buffers its writes in memory.  On commit the writes are first
persisted as a single atomically-written journal, then applied (puts before
deletes, so concurrent readers only ever see a superset of the committed
state), then the journal is removed.  A journal left behind by a crash is
replayed when the store is opened and before every transaction.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import TypeVar

from deltalog.storage.fs import (
    DATA_DIR,
    JOURNAL_FILE,
    LOCKS_DIR,
    TMP_PREFIX,
    atomic_write,
    ensure_store_dirs,
    remove_files,
)
from deltalog.storage.interfaces import StorageTransaction
from deltalog.storage.locks import acquire_lock
from deltalog.storage.transactions import BufferedTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

_KEY_RE = re.compile(r"^[A-Za-z0-9_-]+(?:/[A-Za-z0-9_-]+)*$")

LOCK_KEY = "store"


def _validate_key(key: str) -> str:
    if not _KEY_RE.match(key):
        raise ValueError(f"Invalid storage key: '{key}'")
    return key


class FileStorage:
    """Transactional key-value storage persisted as one file per key.

    Construction takes the store lock and replays any leftover journal
    synchronously, which may block for up to *lock_timeout* seconds.  From a
    coroutine, use ``await FileStorage.open(root)`` instead.
    """

    def __init__(self, root: Path, lock_timeout: float = 10) -> None:
        self.root = root
        self.lock_timeout = lock_timeout
        ensure_store_dirs(root)
        self._data_dir = root / DATA_DIR
        self._locks_dir = root / LOCKS_DIR
        self._journal_path = root / JOURNAL_FILE
        self._guard = asyncio.Lock()

        lock = acquire_lock(self._locks_dir, LOCK_KEY, lock_timeout)
        try:
            self._replay_journal()
        finally:
            lock.release()

    @classmethod
    async def open(cls, root: Path, lock_timeout: float = 10) -> FileStorage:
        """Build a store without blocking the event loop."""
        return await asyncio.to_thread(cls, root, lock_timeout)

    # -- reads ---------------------------------------------------------------

    async def get(self, key: str) -> bytes | None:
        return await asyncio.to_thread(self._read, _validate_key(key))

    async def list(self, prefix: str) -> dict[str, bytes]:
        return await asyncio.to_thread(self._scan, prefix)

    # -- single writes -------------------------------------------------------

    async def put(self, key: str, value: bytes) -> None:
        async def _put(tx: StorageTransaction) -> None:
            await tx.put(key, value)

        await self.transaction(_put)

    async def delete(self, keys: Iterable[str]) -> None:
        keys = list(keys)

        async def _delete(tx: StorageTransaction) -> None:
            await tx.delete(keys)

        await self.transaction(_delete)

    # -- transactions --------------------------------------------------------

    async def transaction(self, fn: Callable[[StorageTransaction], Awaitable[T]]) -> T:
        async with self._guard:
            lock = await asyncio.to_thread(
                acquire_lock, self._locks_dir, LOCK_KEY, self.lock_timeout
            )
            try:
                await asyncio.to_thread(self._replay_journal)
                tx = BufferedTransaction(self)
                result = await fn(tx)
                puts, deletes = tx.pending_writes()
                if puts or deletes:
                    await asyncio.to_thread(self._commit, puts, deletes)
                return result
            finally:
                lock.release()

    # -- blocking helpers (run in worker threads) ----------------------------

    def _path(self, key: str) -> Path:
        return self._data_dir.joinpath(*key.split("/"))

    def _read(self, key: str) -> bytes | None:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            return None

    def _scan(self, prefix: str) -> dict[str, bytes]:
        """Return every stored key starting with *prefix*, at any depth."""
        # Only the directory holding the prefix's complete segments can match.
        dir_part = prefix.rpartition("/")[0]
        if dir_part and not _KEY_RE.match(dir_part):
            # No valid key has these leading segments (e.g. "..", empty).
            return {}
        base = self._data_dir.joinpath(*dir_part.split("/")) if dir_part else self._data_dir
        if not base.is_dir():
            return {}

        result: dict[str, bytes] = {}
        for path in base.rglob("*"):
            if path.name.startswith(TMP_PREFIX) or not path.is_file():
                continue
            key = "/".join(path.relative_to(self._data_dir).parts)
            if not key.startswith(prefix):
                continue
            try:
                result[key] = path.read_bytes()
            except FileNotFoundError:
                # Deleted by a concurrent commit between the walk and the read.
                continue
        return result

    def _commit(self, puts: dict[str, bytes], deletes: list[str]) -> None:
        for key in [*puts, *deletes]:
            _validate_key(key)
        journal = {
            "puts": {key: value.hex() for key, value in sorted(puts.items())},
            "deletes": deletes,
        }
        atomic_write(self._journal_path, json.dumps(journal, sort_keys=True) + "\n")
        self._apply(puts, deletes)
        remove_files([self._journal_path])

    def _apply(self, puts: dict[str, bytes], deletes: list[str]) -> None:
        for key, value in puts.items():
            atomic_write(self._path(key), value)
        remove_files([self._path(key) for key in deletes])

    def _replay_journal(self) -> None:
        if not self._journal_path.exists():
            return
        raw = self._journal_path.read_text(encoding="utf-8")
        journal = json.loads(raw)
        puts = {key: bytes.fromhex(value) for key, value in journal.get("puts", {}).items()}
        deletes = list(journal.get("deletes", []))
        logger.warning(
            "replaying interrupted commit in %s (%d put(s), %d delete(s))",
            self.root,
            len(puts),
            len(deletes),
        )
        self._apply(puts, deletes)
        remove_files([self._journal_path])
