"""Atomic file writes and store directory management."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

DATA_DIR = "data"
LOCKS_DIR = "locks"
JOURNAL_FILE = "journal.json"

TMP_PREFIX = ".tmp."


def _fsync_directory(path: Path) -> None:
    """Flush directory metadata (renames, unlinks) to disk.

    Not every platform can fsync a directory descriptor; ``OSError`` is ignored.
    """
    try:
        fd = os.open(str(path), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def atomic_write(path: Path, content: str | bytes) -> None:
    """Replace *path* with *content* so readers see either the old or the new bytes.

    Missing parent directories are created.  The data goes to a sibling
    ``.tmp.*`` file first (skipped by key scans), is fsynced, then renamed
    over *path*.
    """
    parent = path.parent
    if not parent.is_dir():
        parent.mkdir(parents=True, exist_ok=True)
        _fsync_directory(parent.parent)

    payload = memoryview(content.encode("utf-8") if isinstance(content, str) else content)

    fd, tmp_name = tempfile.mkstemp(dir=parent, prefix=TMP_PREFIX)
    try:
        try:
            # os.write() may write fewer bytes than asked.
            while payload:
                payload = payload[os.write(fd, payload) :]
            os.fsync(fd)
        finally:
            os.close(fd)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    _fsync_directory(parent)


def remove_files(paths: list[Path]) -> None:
    """Unlink *paths* (missing ones are skipped) and fsync their directories."""
    parents: set[Path] = set()
    for path in paths:
        path.unlink(missing_ok=True)
        parents.add(path.parent)
    for parent in sorted(parents):
        if parent.is_dir():
            _fsync_directory(parent)


def ensure_store_dirs(root: Path) -> None:
    """Create the store layout under *root*.

    ``data/`` holds one file per key, ``locks/`` the cross-process lock and
    the journal sits at the top level.
    """
    for subdir in (DATA_DIR, LOCKS_DIR):
        (root / subdir).mkdir(parents=True, exist_ok=True)
