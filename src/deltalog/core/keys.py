"""Storage key scheme and counter encoding.

Every value deltalog writes lives under a composite ``<kind>/<name>`` key:

- ``state/doc``    the encoded snapshot
- ``state/bytes``  sum of pending update sizes
- ``state/count``  number of pending updates
- ``update/<n>``   pending update ``n`` (1-based, reset after each compaction)
"""

from __future__ import annotations

STATE = "state"
UPDATE = "update"

KINDS: frozenset[str] = frozenset({STATE, UPDATE})


def storage_key(kind: str, name: str | int | None = None) -> str:
    """Build a key for *kind*, or the ``<kind>/`` scan prefix when *name* is None.

    Raises:
        ValueError: If *kind* is not a known key kind or *name* is empty.
    """
    if kind not in KINDS:
        raise ValueError(f"Unknown storage key kind: '{kind}'")
    if name is None:
        return f"{kind}/"
    name = str(name)
    if not name or "/" in name:
        raise ValueError(f"Invalid storage key name: '{name}'")
    return f"{kind}/{name}"


SNAPSHOT_KEY = storage_key(STATE, "doc")
BYTES_KEY = storage_key(STATE, "bytes")
COUNT_KEY = storage_key(STATE, "count")
UPDATE_PREFIX = storage_key(UPDATE)


def update_key(sequence: int) -> str:
    """Return the key for pending update number *sequence* (must be >= 1)."""
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 1:
        raise ValueError(f"Update sequence must be a positive integer, got {sequence!r}")
    return storage_key(UPDATE, sequence)


def parse_update_key(key: str) -> int:
    """Parse ``update/<n>`` into ``n``. Raises ValueError if *key* is not an update key."""
    if not key.startswith(UPDATE_PREFIX):
        raise ValueError(f"Not an update key: '{key}'")
    suffix = key[len(UPDATE_PREFIX) :]
    if not suffix.isdigit():
        raise ValueError(f"Not an update key: '{key}'")
    return int(suffix)


def encode_counter(value: int) -> bytes:
    """Counters are stored as ASCII decimal so storage stays bytes-only."""
    if value < 0:
        raise ValueError(f"Counter cannot be negative: {value}")
    return str(value).encode("ascii")


def decode_counter(raw: bytes | None) -> int:
    """Decode a stored counter. Absent counters read as 0."""
    if raw is None:
        return 0
    text = bytes(raw).decode("ascii")
    if not text.isdigit():
        raise ValueError(f"Corrupt counter value: {raw!r}")
    return int(text)
