from __future__ import annotations

import logging
from datetime import timedelta

from contas.constants import STATUS_LABELS, TIMELINE_MONTHS, UPCOMING_WINDOW_DAYS, format_month_short
from contas.models.analytics import AnalyticsReport, GroupTotal, MonthlyBucket, StatusSlice
from contas.models.bill import Bill, BillStatus
from contas.services.session import SessionContext
from contas.services.status import bill_status

logger = logging.getLogger(__name__)

GROUP_BY_CATEGORY = "category"
GROUP_BY_COUNTERPARTY = "counterparty"

_STATUS_ORDER = [BillStatus.PENDING, BillStatus.DUE_SOON, BillStatus.OVERDUE, BillStatus.PROTOCOLED]


class AnalyticsService:
    def __init__(self, context: SessionContext) -> None:
        self.context = context

    def status_distribution(self, bills: list[Bill]) -> list[StatusSlice]:
        now = self.context.clock.now()
        counts = dict.fromkeys(_STATUS_ORDER, 0)
        for bill in bills:
            counts[bill_status(bill, now)] += 1
        return [
            StatusSlice(status=status, label=STATUS_LABELS[status.value], count=count)
            for status, count in counts.items()
            if count > 0
        ]

    def group_totals(self, bills: list[Bill], group_by: str = GROUP_BY_CATEGORY) -> list[GroupTotal]:
        """Total and still-open amounts per category or counterparty, in first-seen order."""
        groups: dict[str, GroupTotal] = {}
        for bill in bills:
            name = bill.counterparty_label if group_by == GROUP_BY_COUNTERPARTY else bill.category_label
            group = groups.setdefault(name, GroupTotal(name=name))
            group.total += bill.amount
            if not bill.is_protocoled:
                group.pending += bill.amount
        return list(groups.values())

    def monthly_timeline(self, bills: list[Bill]) -> list[MonthlyBucket]:
        """The last months that have data, oldest first. Bills without a due date are left out."""
        buckets: dict[str, MonthlyBucket] = {}
        for bill in bills:
            key = bill.month_key
            if key is None:
                continue
            bucket = buckets.setdefault(key, MonthlyBucket(key=key, label=format_month_short(key)))
            bucket.total += bill.amount
            if bill.is_protocoled:
                bucket.paid += bill.amount
            else:
                bucket.pending += bill.amount
        return [buckets[key] for key in sorted(buckets)][-TIMELINE_MONTHS:]

    def upcoming(self, bills: list[Bill]) -> list[Bill]:
        today = self.context.today()
        limit = today + timedelta(days=UPCOMING_WINDOW_DAYS)
        result = [b for b in bills if not b.is_protocoled and b.due_date and today <= b.due_date <= limit]
        return sorted(result, key=lambda b: b.due_date)

    def overdue(self, bills: list[Bill]) -> list[Bill]:
        today = self.context.today()
        result = [b for b in bills if not b.is_protocoled and b.due_date and b.due_date < today]
        return sorted(result, key=lambda b: b.due_date)

    def report(self, bills: list[Bill], group_by: str = GROUP_BY_CATEGORY) -> AnalyticsReport:
        upcoming = self.upcoming(bills)
        overdue = self.overdue(bills)
        report = AnalyticsReport(
            status_distribution=self.status_distribution(bills),
            group_totals=self.group_totals(bills, group_by),
            monthly_timeline=self.monthly_timeline(bills),
            upcoming=upcoming,
            overdue=overdue,
            overdue_amount=sum(b.amount for b in overdue),
            upcoming_amount=sum(b.amount for b in upcoming),
            protocoled_amount=sum(b.amount for b in bills if b.is_protocoled),
        )
        logger.debug("Analytics report built from %d bills (group_by=%s)", len(bills), group_by)
        return report
