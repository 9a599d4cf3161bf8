from __future__ import annotations

import logging
import math

from ulid import ULID

from contas.exceptions import NotFoundError, PersistenceError, ValidationError
from contas.models.bill import (
    Bill,
    BillDraft,
    BillPatch,
    BillStats,
    BillStatus,
    EntityRef,
    ProtocolPayload,
    Recurrence,
)
from contas.repositories.base import EntityKind
from contas.services.recurrence import (
    build_series,
    generate_competencies,
    generate_due_dates,
    next_due_for_day,
    validate_recurrence,
)
from contas.services.session import SessionContext
from contas.services.status import bill_status

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def validate_draft(draft: BillDraft) -> None:
    if not draft.name.strip():
        raise ValidationError("Bill name is required")
    if not math.isfinite(draft.amount) or draft.amount <= 0:
        raise ValidationError("Amount must be a number greater than zero")
    if draft.due_day is not None:
        if not 1 <= draft.due_day <= 31:
            raise ValidationError(f"Due day must be between 1 and 31 (got {draft.due_day})")
    elif draft.due_date is None:
        raise ValidationError("A valid due date is required")


class BillService:
    """Owns the session's bill list and writes every mutation through to the store.

    Memory is updated first. When the store write fails the error is raised
    as ``PersistenceError`` and the in-memory change is kept; the caller
    decides whether to reload.
    """

    def __init__(self, context: SessionContext) -> None:
        self.context = context
        self.store = context.store
        self._bills: list[Bill] = []

    @property
    def bills(self) -> list[Bill]:
        return list(self._bills)

    def load(self) -> list[Bill]:
        try:
            bills = self.store.list_bills(self.context.scope_id)
        except PersistenceError:
            logger.exception("Failed to load bills, keeping %d cached", len(self._bills))
            raise
        self._bills = bills
        logger.debug("Loaded %d bills", len(bills))
        return self.bills

    def _find(self, bill_id: str) -> Bill:
        for bill in self._bills:
            if bill.id == bill_id:
                return bill
        raise NotFoundError(f"Bill {bill_id} not found")

    def get(self, bill_id: str) -> Bill:
        return self._find(bill_id).model_copy()

    def list_entities(self, kind: EntityKind) -> list[EntityRef]:
        return self.store.list_entities(self.context.scope_id, kind)

    def add(self, draft: BillDraft, recurrence: Recurrence | None = None) -> list[Bill]:
        validate_draft(draft)
        if recurrence is not None:
            validate_recurrence(recurrence.interval_months, recurrence.count)
        scope = self.context.scope_id

        anchor_day = None
        if draft.due_day is not None:
            start = next_due_for_day(self.context.today(), draft.due_day)
            anchor_day = draft.due_day
        else:
            start = draft.due_date

        series = None
        due_dates = [start]
        competencies: list[str | None] = [None]
        if recurrence is not None:
            series = build_series(start, recurrence, anchor_day)
            due_dates = generate_due_dates(start, recurrence.interval_months, recurrence.count, anchor_day)
            competencies = generate_competencies(start, recurrence.interval_months, recurrence.count)

        created_at = self.context.clock.now()
        bills = [
            Bill(
                id=str(ULID()),
                name=draft.name.strip(),
                description=draft.description.strip(),
                amount=draft.amount,
                due_date=due,
                category=draft.category,
                category_ref=draft.category_ref,
                counterparty=draft.counterparty,
                invoice_number=_clean(draft.invoice_number),
                boleto_number=_clean(draft.boleto_number),
                series_id=series.id if series else None,
                competency=competency,
                created_at=created_at,
            )
            for due, competency in zip(due_dates, competencies)
        ]
        self._bills.extend(bills)
        logger.info("Added %d bill(s) '%s' starting %s", len(bills), draft.name, start)

        try:
            ids = self.store.create_bill_batch(scope, bills, series)
        except PersistenceError:
            logger.exception("Failed to persist new bill(s) '%s'", draft.name)
            raise

        if len(ids) == len(bills):
            for bill, stored_id in zip(bills, ids):
                bill.id = stored_id
        else:
            logger.warning("Store returned %d ids for %d bills, keeping local ids", len(ids), len(bills))
        return [b.model_copy() for b in bills]

    def mark_protocoled(self, bill_id: str, payload: ProtocolPayload | None = None) -> Bill:
        bill = self._find(bill_id)
        payload = payload or ProtocolPayload()

        patch = BillPatch(is_protocoled=True)
        if not bill.is_protocoled:
            patch.protocoled_at = self.context.clock.now()
        invoice = _clean(payload.invoice_number)
        if invoice:
            patch.invoice_number = invoice
        boleto = _clean(payload.boleto_number)
        if boleto:
            patch.boleto_number = boleto

        for field, value in patch.changes().items():
            setattr(bill, field, value)
        logger.info("Bill %s protocoled", bill_id)

        try:
            self.store.update_bill(bill_id, patch)
        except PersistenceError:
            logger.exception("Failed to persist protocol of bill %s", bill_id)
            raise
        return bill.model_copy()

    def remove(self, bill_id: str) -> None:
        bill = self._find(bill_id)
        self._bills.remove(bill)
        logger.info("Bill %s removed", bill_id)

        try:
            self.store.delete_bill(bill_id)
        except PersistenceError:
            logger.exception("Failed to persist removal of bill %s", bill_id)
            raise

    def stats(self) -> BillStats:
        now = self.context.clock.now()
        stats = BillStats(total=len(self._bills))
        for bill in self._bills:
            status = bill_status(bill, now)
            if status == BillStatus.PROTOCOLED:
                stats.protocoled += 1
                continue
            stats.total_outstanding_amount += bill.amount
            if status == BillStatus.OVERDUE:
                stats.overdue += 1
            elif status == BillStatus.DUE_SOON:
                stats.due_soon += 1
            else:
                stats.pending += 1
        return stats
