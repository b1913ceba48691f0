"""Query key encoding and utilities."""

import json
import math
from collections.abc import Mapping
from typing import Any

from querysync.types import QueryKey

_SEPARATORS = (",", ":")


def _check_part(part: Any) -> None:
    """Reject values that JSON would coerce or silently accept."""
    if part is None or isinstance(part, (str, bool, int)):
        return
    if isinstance(part, float):
        if not math.isfinite(part):
            raise TypeError(f"Query key values must be finite numbers, got {part!r}")
        return
    if isinstance(part, (list, tuple)):
        for item in part:
            _check_part(item)
        return
    if isinstance(part, Mapping):
        for name, value in part.items():
            if not isinstance(name, str):
                raise TypeError(
                    f"Query key mappings must have string keys, got {name!r}"
                )
            _check_part(value)
        return
    raise TypeError(f"Unsupported query key value: {type(part).__name__}")


def _check_key(key: QueryKey) -> None:
    if not isinstance(key, (list, tuple)):
        raise TypeError(f"Query key must be a list or tuple, got {type(key).__name__}")
    for part in key:
        _check_part(part)


def hash_query_key(key: QueryKey) -> str:
    """Encode a query key to its canonical identity string.

    Sequences keep their order; mapping fields are sorted by name so that
    two mappings with the same content encode identically. Tuples and lists
    are interchangeable.

    Example:
        hash_query_key(("bookings", {"day": 3, "barber": "b1"}))
        # '["bookings",{"barber":"b1","day":3}]'
    """
    _check_key(key)
    return json.dumps(
        list(key),
        sort_keys=True,
        separators=_SEPARATORS,
        ensure_ascii=False,
        allow_nan=False,
    )


def normalize_query_key(key: QueryKey) -> tuple[Any, ...]:
    """Return the key as a tuple, converting nested lists to tuples."""
    _check_key(key)

    def freeze(part: Any) -> Any:
        if isinstance(part, (list, tuple)):
            return tuple(freeze(item) for item in part)
        return part

    return tuple(freeze(part) for part in key)


def is_query_key_prefix(prefix: QueryKey, key: QueryKey) -> bool:
    """Check if prefix matches the leading elements of key."""
    if len(prefix) > len(key):
        return False
    return hash_query_key(prefix) == hash_query_key(key[: len(prefix)])
