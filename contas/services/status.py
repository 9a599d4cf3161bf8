from __future__ import annotations

from datetime import date, datetime

from contas.constants import DUE_SOON_DAYS
from contas.dates import days_between, to_local_date
from contas.models.bill import Bill, BillStatus


def bill_status(bill: Bill, now: date | datetime) -> BillStatus:
    """Classify a bill relative to ``now``.

    Protocoled wins over any date. A bill whose due date could not be parsed
    is reported as pending.
    """
    if bill.is_protocoled:
        return BillStatus.PROTOCOLED
    if bill.due_date is None:
        return BillStatus.PENDING

    diff = days_between(to_local_date(now), bill.due_date)
    if diff < 0:
        return BillStatus.OVERDUE
    if diff <= DUE_SOON_DAYS:
        return BillStatus.DUE_SOON
    return BillStatus.PENDING


def is_open_pending(status: BillStatus) -> bool:
    """Pending and due-soon share one bucket in dashboard counts and filters."""
    return status in (BillStatus.PENDING, BillStatus.DUE_SOON)
