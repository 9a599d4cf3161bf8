"""Dashboard filtering pipeline.

Stages run in order: month scope, counterparty scope, search, counts, status
filter, sort. Counts are taken after search and before the status filter so
the status tabs always show how many bills each one would reveal.
"""

from __future__ import annotations

import logging
import unicodedata
from datetime import date

from contas.dates import month_key
from contas.models.bill import Bill, BillStatus
from contas.models.query import (
    ALL,
    AUTO,
    CounterpartyOption,
    FilterCounts,
    FilterState,
    QueryResult,
    SearchMode,
    StatusFilter,
)
from contas.services.session import SessionContext
from contas.services.status import bill_status, is_open_pending

logger = logging.getLogger(__name__)


def normalize_key(text: str | None) -> str:
    """Trim, lowercase and strip diacritics: ' Vívo' -> 'vivo'."""
    nfkd = unicodedata.normalize("NFKD", (text or "").strip().lower())
    return "".join(c for c in nfkd if not unicodedata.combining(c))


def general_text(bill: Bill) -> str:
    return f"{bill.counterparty_label} {bill.name} {bill.description}"


def matches_search(bill: Bill, query: str, mode: SearchMode) -> bool:
    """``query`` must already be normalized."""
    company = normalize_key(bill.counterparty_label)
    general = normalize_key(general_text(bill))
    boleto = normalize_key(bill.boleto_number)
    invoice = normalize_key(bill.invoice_number)

    if mode == SearchMode.COMPANY:
        return query in company or query in general
    if mode == SearchMode.BOLETO:
        return query in boleto
    if mode == SearchMode.INVOICE:
        return query in invoice
    return query in company or query in boleto or query in invoice or query in general


class QueryService:
    def __init__(self, context: SessionContext) -> None:
        self.context = context

    def month_options(self, bills: list[Bill]) -> list[str]:
        return sorted({b.month_key for b in bills if b.month_key})

    def resolve_month(self, requested: str, month_options: list[str]) -> str:
        if requested != AUTO:
            return requested
        current = month_key(self.context.today())
        return current if current in month_options else ALL

    def counterparty_options(self, bills: list[Bill]) -> list[CounterpartyOption]:
        options: dict[str, CounterpartyOption] = {}
        for bill in bills:
            label = bill.counterparty_label
            key = normalize_key(label)
            if key in options:
                options[key].count += 1
            else:
                options[key] = CounterpartyOption(key=key, label=label, count=1)
        return sorted(options.values(), key=lambda o: (normalize_key(o.label), o.label))

    def _sort_key(self, bill: Bill, status: BillStatus) -> tuple:
        due = bill.due_date
        return (
            bill.is_protocoled,
            status != BillStatus.OVERDUE,
            due is None,
            due or date.max,
        )

    def run(self, bills: list[Bill], state: FilterState) -> QueryResult:
        now = self.context.clock.now()

        month_options = self.month_options(bills)
        resolved_month = self.resolve_month(state.month_filter, month_options)
        in_month = [b for b in bills if resolved_month == ALL or b.month_key == resolved_month]

        options = self.counterparty_options(in_month)
        resolved_counterparty = state.counterparty_filter
        if resolved_counterparty != ALL and not any(o.key == resolved_counterparty for o in options):
            logger.debug("Counterparty %s not in month %s, showing all", resolved_counterparty, resolved_month)
            resolved_counterparty = ALL
        scoped = [
            b
            for b in in_month
            if resolved_counterparty == ALL or normalize_key(b.counterparty_label) == resolved_counterparty
        ]

        query = normalize_key(state.search_text)
        searched = [b for b in scoped if matches_search(b, query, state.search_mode)] if query else scoped

        statuses = {id(b): bill_status(b, now) for b in searched}
        counts = FilterCounts(
            all=len(searched),
            pending=sum(1 for b in searched if not b.is_protocoled and is_open_pending(statuses[id(b)])),
            overdue=sum(1 for b in searched if not b.is_protocoled and statuses[id(b)] == BillStatus.OVERDUE),
            protocoled=sum(1 for b in searched if b.is_protocoled),
        )

        visible = [b for b in searched if self._keep(b, statuses[id(b)], state.status_filter)]
        visible.sort(key=lambda b: self._sort_key(b, statuses[id(b)]))

        return QueryResult(
            visible=visible,
            counts=counts,
            month_options=month_options,
            counterparty_options=options,
            resolved_month=resolved_month,
            resolved_counterparty=resolved_counterparty,
        )

    @staticmethod
    def _keep(bill: Bill, status: BillStatus, status_filter: StatusFilter) -> bool:
        if status_filter == StatusFilter.PENDING:
            return not bill.is_protocoled and is_open_pending(status)
        if status_filter == StatusFilter.OVERDUE:
            return not bill.is_protocoled and status == BillStatus.OVERDUE
        if status_filter == StatusFilter.PROTOCOLED:
            return bill.is_protocoled
        return True
