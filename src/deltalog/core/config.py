"""Store options: defaults, validation, serialization and env overrides."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from typing import TypedDict

DEFAULT_MAX_BYTES = 1024 * 1024
DEFAULT_MAX_UPDATES = 500

ENV_MAX_BYTES = "DELTALOG_MAX_BYTES"
ENV_MAX_UPDATES = "DELTALOG_MAX_UPDATES"

_ENV_KEYS: dict[str, str] = {
    ENV_MAX_BYTES: "max_bytes",
    ENV_MAX_UPDATES: "max_updates",
}


class StoreOptions(TypedDict, total=False):
    max_bytes: int
    max_updates: int


def default_options() -> StoreOptions:
    """Return the default compaction thresholds (1 MiB / 500 updates)."""
    return {
        "max_bytes": DEFAULT_MAX_BYTES,
        "max_updates": DEFAULT_MAX_UPDATES,
    }


def validate_options(options: Mapping[str, object] | None = None) -> StoreOptions:
    """Merge *options* over the defaults and validate the result.

    Keys left out (or set to ``None``) fall back to their defaults.

    Raises:
        ValueError: On an unknown key or a value that is not a positive int.
    """
    merged = default_options()
    if not options:
        return merged

    unknown = sorted(set(options) - set(merged))
    if unknown:
        raise ValueError(f"Unknown store option(s): {', '.join(unknown)}")

    for key, value in options.items():
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValueError(f"Store option '{key}' must be a positive integer, got {value!r}")
        merged[key] = value  # type: ignore[literal-required]
    return merged


def serialize_options(options: StoreOptions | dict[str, object]) -> str:
    """Serialize options to the canonical JSON format."""
    return json.dumps(options, sort_keys=True, indent=2) + "\n"


def load_options(raw: str) -> StoreOptions:
    """Parse and validate options from a JSON string."""
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Store options must be a JSON object")
    return validate_options(data)


def options_from_env(environ: Mapping[str, str] | None = None) -> StoreOptions:
    """Build validated options from ``DELTALOG_MAX_BYTES`` / ``DELTALOG_MAX_UPDATES``.

    Unset or empty variables keep their defaults.
    """
    env = os.environ if environ is None else environ
    overrides: dict[str, object] = {}
    for var, key in _ENV_KEYS.items():
        raw = env.get(var, "").strip()
        if not raw:
            continue
        try:
            overrides[key] = int(raw)
        except ValueError:
            raise ValueError(f"{var} must be an integer, got '{raw}'") from None
    return validate_options(overrides)
