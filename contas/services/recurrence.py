"""Calendar-month recurrence.

Occurrences are computed from the start month plus ``i * interval`` months,
each clamped independently, so a day-31 series yields 31, 29/28, 31, 30, ...
and never drifts to the clamped day of an earlier short month.
"""

from __future__ import annotations

from datetime import date

from ulid import ULID

from contas.constants import frequency_for_months
from contas.dates import clamped_date_for_day, month_key
from contas.exceptions import InvalidRecurrence
from contas.models.bill import Recurrence, RecurrenceSeries


def validate_recurrence(interval_months: int, count: int) -> None:
    if count < 1:
        raise InvalidRecurrence(f"Recurrence count must be at least 1 (got {count})")
    if interval_months < 1:
        raise InvalidRecurrence(f"Recurrence interval must be at least 1 month (got {interval_months})")


def generate_due_dates(
    start: date,
    interval_months: int,
    count: int,
    anchor_day: int | None = None,
) -> list[date]:
    validate_recurrence(interval_months, count)
    day = anchor_day if anchor_day is not None else start.day
    dates = [start]
    for i in range(1, count):
        dates.append(clamped_date_for_day(start.year, start.month + i * interval_months, day))
    return dates


def generate_competencies(start: date, interval_months: int, count: int) -> list[str]:
    """Month keys ('YYYY-MM') of every period in the series."""
    validate_recurrence(interval_months, count)
    return [month_key(clamped_date_for_day(start.year, start.month + i * interval_months, 1)) for i in range(count)]


def next_due_for_day(today: date, day: int) -> date:
    """First date strictly after ``today`` falling on ``day`` (clamped to short months)."""
    candidate = clamped_date_for_day(today.year, today.month, day)
    if candidate <= today:
        candidate = clamped_date_for_day(today.year, today.month + 1, day)
    return candidate


def build_series(start: date, recurrence: Recurrence, anchor_day: int | None = None) -> RecurrenceSeries:
    dates = generate_due_dates(start, recurrence.interval_months, recurrence.count, anchor_day)
    return RecurrenceSeries(
        id=str(ULID()),
        start_date=dates[0],
        end_date=dates[-1],
        interval_months=recurrence.interval_months,
        count=recurrence.count,
        frequency=frequency_for_months(recurrence.interval_months),
        anchor_day=anchor_day if anchor_day is not None else start.day,
    )
