from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical for every ledger timestamp)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_timestamp(value) -> Optional[datetime]:
    """
    Normalize a caller-supplied receipt time to UTC-naive.

    - None -> None (caller decides the default)
    - aware datetime -> converted to UTC, tzinfo stripped
    - naive datetime -> treated as UTC
    - str -> ISO-8601, trailing 'Z' or offsets accepted
    """
    if value is None:
        return None

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        value = datetime.fromisoformat(s)

    if not isinstance(value, datetime):
        raise ValueError("timestamp must be a datetime or ISO-8601 string")

    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


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
