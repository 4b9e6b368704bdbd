"""Cross-process file locking for the directory store."""

from __future__ import annotations

from pathlib import Path

from filelock import FileLock, Timeout


class LockTimeout(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""


def acquire_lock(locks_dir: Path, key: str, timeout: float = 10) -> FileLock:
    """Acquire ``locks_dir/<key>.lock`` and return the held lock.

    The lock is not thread-local, so it may be acquired in a worker thread
    (``asyncio.to_thread``) and released from the event loop thread.  The
    caller must ``release()`` it.

    Raises:
        LockTimeout: If the lock cannot be acquired within *timeout* seconds.
    """
    lock = FileLock(locks_dir / f"{key}.lock", timeout=timeout, thread_local=False)
    try:
        lock.acquire()
    except Timeout:
        raise LockTimeout(f"Could not acquire lock '{key}' within {timeout}s") from None
    return lock
