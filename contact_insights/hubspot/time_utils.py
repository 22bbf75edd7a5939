from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from .constants import DAYS_PER_MONTH, MS_PER_DAY


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return datetime_to_ms(utc_now())


def datetime_to_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def parse_iso(s: Optional[str]) -> Optional[datetime]:
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except Exception:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_submitted_at(val: Any) -> Optional[int]:
    """
    Submission timestamps arrive as epoch ms (int or digit string) or ISO strings.
    Returns None when unparseable.
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        return int(val)
    if isinstance(val, str):
        s = val.strip()
        if not s:
            return None
        if s.lstrip("-").isdigit():
            return int(s)
        dt = parse_iso(s)
        return datetime_to_ms(dt) if dt is not None else None
    return None


def cutoff_ms(max_age_months: int, *, now: Optional[int] = None) -> int:
    """Oldest submission time to keep; 0 disables the cutoff."""
    if not max_age_months or max_age_months <= 0:
        return 0
    base = now if now is not None else now_ms()
    return base - int(max_age_months) * DAYS_PER_MONTH * MS_PER_DAY


def utc_midnight_ms(dt: Optional[datetime] = None) -> int:
    """HubSpot date properties require midnight UTC, not a timestamp with time."""
    d = (dt or utc_now()).astimezone(timezone.utc)
    return datetime_to_ms(datetime(d.year, d.month, d.day, tzinfo=timezone.utc))


def format_ms(val: Any) -> str:
    ms = parse_submitted_at(val)
    if ms is None:
        return str(val) if val not in (None, "") else "(no date)"
    try:
        return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).isoformat().replace("+00:00", "Z")
    except (OverflowError, OSError, ValueError):
        return str(val)
