"""Duration parsing utilities."""

import math
import re

from querysync.types import Duration

_DURATION_PATTERN = re.compile(r"^(\d+)(ms|s|m|h|d)$")
_UNITS: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}


def parse_duration(duration: Duration) -> float:
    """Parse a duration to milliseconds.

    Numbers pass through unchanged, so ``float("inf")`` can be used for
    windows that never elapse. Strings use a single unit suffix: ``"250ms"``,
    ``"30s"``, ``"5m"``, ``"2h"``, ``"1d"``.
    """
    if isinstance(duration, bool):
        raise ValueError(f"Invalid duration: {duration!r}")

    if isinstance(duration, (int, float)):
        if math.isnan(duration) or duration < 0:
            raise ValueError(f"Invalid duration: {duration!r}")
        return duration

    match = _DURATION_PATTERN.match(duration)
    if not match:
        raise ValueError(f"Invalid duration: {duration!r}")

    value, unit = match.groups()
    return int(value) * _UNITS[unit]


def is_finite_window(window: float) -> bool:
    """True when a window is positive and finite, i.e. a timer should run."""
    return math.isfinite(window) and window > 0
