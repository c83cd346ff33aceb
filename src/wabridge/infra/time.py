"""Time utilities for consistent timestamp handling."""

import math
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def parse_epoch_seconds(value: object) -> datetime:
    """Parse a decimal seconds-since-epoch string into an aware UTC datetime.

    Meta sends timestamps as strings ("1704067200"). Integers are accepted
    too; booleans, empty strings, non-finite and negative values are not.

    Raises:
        ValueError: If the value cannot be interpreted as epoch seconds.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"not an epoch timestamp: {value!r}")

    if isinstance(value, (int, float)):
        seconds = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty timestamp")
        try:
            seconds = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"not an epoch timestamp: {value!r}")
    else:
        raise ValueError(f"not an epoch timestamp: {value!r}")

    if not seconds.is_finite() or seconds < 0:
        raise ValueError(f"not an epoch timestamp: {value!r}")

    as_float = float(seconds)
    if not math.isfinite(as_float):
        raise ValueError(f"not an epoch timestamp: {value!r}")

    try:
        return datetime.fromtimestamp(as_float, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise ValueError(f"epoch timestamp out of range: {value!r}")
