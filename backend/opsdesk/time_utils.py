from __future__ import annotations

import math
import time
from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.utcnow()


def now_ms() -> int:
    """Wall-clock epoch milliseconds; the unit order timestamps are stored in."""
    return int(time.time() * 1000)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_epoch_ms(value: Any) -> Optional[int]:
    """
    Coerce a stored timestamp to epoch milliseconds.

    Accepts:
    - int / float epoch milliseconds (values below 1e11 are taken as seconds)
    - ISO-8601 strings (naive is UTC)
    - numeric strings

    Returns None for anything unparseable (including bools, NaN and infinities).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            number = float(s)
        except ValueError:
            try:
                dt = parse_iso_datetime(s)
            except ValueError:
                return None
            if dt is None:
                return None
            return int(dt.replace(tzinfo=timezone.utc).timestamp() * 1000)
    else:
        return None

    if not math.isfinite(number):
        return None
    # Seconds-based epochs are ~1.7e9, millisecond epochs ~1.7e12
    if abs(number) < 1e11:
        number *= 1000
    return int(number)


def ms_to_utc_z(value: Optional[int]) -> Optional[str]:
    """Serialize epoch milliseconds to ISO-8601 with trailing 'Z'."""
    if value is None:
        return None
    try:
        dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return to_utc_z(dt)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
