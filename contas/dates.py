"""Calendar helpers.

Every due date in the system is a plain ``datetime.date``. Nothing here
interprets a string as UTC: ``YYYY-MM-DD`` always means that local calendar
day, which keeps due dates from sliding a day when the process timezone
differs from the one the date was entered in.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime

from contas.constants import SP_TZ

_YMD_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$", re.ASCII)
_DMY_RE = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$", re.ASCII)
_YM_RE = re.compile(r"^(\d{4})-(\d{2})$", re.ASCII)


def _normalize_month(year: int, month: int) -> tuple[int, int]:
    index = year * 12 + (month - 1)
    return index // 12, index % 12 + 1


def last_day_of_month(year: int, month: int) -> int:
    year, month = _normalize_month(year, month)
    return calendar.monthrange(year, month)[1]


def clamped_date_for_day(year: int, month: int, day: int) -> date:
    """Return ``day`` within the given month, or the month's last day if shorter.

    ``month`` is 1-based; values outside 1..12 roll into neighbouring years so
    ``clamped_date_for_day(2024, 13, 31)`` is 2025-01-31.
    """
    year, month = _normalize_month(year, month)
    return date(year, month, max(1, min(day, last_day_of_month(year, month))))


def _build_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_local_date(value: str | None) -> date | None:
    """Parse ``YYYY-MM-DD`` as a local calendar date. Returns None on malformed input."""
    if not value:
        return None
    match = _YMD_RE.match(value.strip())
    if match is None:
        return None
    year, month, day = (int(g) for g in match.groups())
    return _build_date(year, month, day)


def parse_external_date(value: object) -> date | None:
    """Parse a date coming from an external store.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD``, ``DD-MM-YYYY`` and
    ISO 8601 timestamps. Aware timestamps are converted to São Paulo time
    before the date is taken.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(SP_TZ)
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text or not text.isascii():
        return None

    match = _DMY_RE.match(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        return _build_date(year, month, day)

    parsed = parse_local_date(text)
    if parsed is not None:
        return parsed

    try:
        return parse_external_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        return None


def parse_competency(value: str | None) -> date | None:
    """Parse a billing period stored as ``YYYY-MM`` or ``YYYY-MM-DD``."""
    text = (value or "").strip()
    if not text:
        return None
    match = _YM_RE.match(text)
    if match:
        year, month = (int(g) for g in match.groups())
        return _build_date(year, month, 1)
    return parse_external_date(text)


def format_local_date(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def format_br_date(d: date | None) -> str:
    return d.strftime("%d/%m/%Y") if d else "-"


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def add_calendar_months(d: date, n: int) -> date:
    return clamped_date_for_day(d.year, d.month + n, d.day)


def to_local_date(value: date | datetime) -> date:
    """Truncate ``value`` to its São Paulo calendar date."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(SP_TZ)
        return value.date()
    return value


def days_between(start: date, end: date) -> int:
    """Whole days from ``start`` to ``end`` (negative when ``end`` is earlier)."""
    return (end - start).days
