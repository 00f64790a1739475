from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional


_clock: Optional[Callable[[], datetime]] = None


def set_clock(clock: Optional[Callable[[], datetime]]) -> None:
    """
    Replace the wall clock used by utcnow().

    Pass None to restore the real clock. Tests use this to pin "now".
    """
    global _clock
    _clock = clock


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    if _clock is not None:
        return _clock()
    return datetime.now(timezone.utc).replace(tzinfo=None)


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
