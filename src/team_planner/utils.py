"""Provide utility helpers for timestamps and calendar days."""

from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from typing import Any, Optional


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        if not isinstance(value, str):
            value = str(value)
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
        # If a naive timestamp slips in, assume UTC to avoid crashes.
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        return None


def parse_day(value: Any, tz: Optional[tzinfo] = None) -> Optional[date]:
    """Coerce *value* to a calendar day.

    Accepts ``date``, ``datetime`` and ISO-8601 strings (date-only or full
    timestamps). Aware timestamps are converted to *tz* before the date is
    taken. Returns ``None`` for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            try:
                return date.fromisoformat(text)
            except ValueError:
                return None
        dt = _parse_iso(text)
        if dt is None:
            return None
    else:
        return None
    if tz is not None and dt.tzinfo is not None:
        dt = dt.astimezone(tz)
    return dt.date()
