from __future__ import annotations

import logging

from contas.constants import CATEGORY_LABELS
from contas.exceptions import NotFoundError
from contas.models.bill import Bill, BillPatch, Category, EntityRef, RecurrenceSeries
from contas.repositories.base import DEFAULT_SCOPE, BillStore, EntityKind, RelationKind

logger = logging.getLogger(__name__)


def local_scope_for(owner: str) -> str:
    return owner.strip().lower() or DEFAULT_SCOPE


def category_refs() -> list[EntityRef]:
    return [EntityRef(id=c.value, label=CATEGORY_LABELS[c.value]) for c in Category]


def counterparty_refs(bills: list[Bill]) -> list[EntityRef]:
    seen: dict[str, EntityRef] = {}
    for bill in bills:
        ref = bill.counterparty
        if ref is None or not ref.label:
            continue
        seen.setdefault(ref.id or ref.label, ref)
    return sorted(seen.values(), key=lambda r: r.label.lower())


class InMemoryBillStore(BillStore):
    def __init__(self) -> None:
        self.bills: dict[str, Bill] = {}
        self.scopes: dict[str, str] = {}
        self.series: dict[str, RecurrenceSeries] = {}
        self.links: set[tuple[str, str, str]] = set()

    def resolve_scope(self, owner: str) -> str | None:
        return local_scope_for(owner)

    def list_bills(self, scope: str) -> list[Bill]:
        result = [b.model_copy(deep=True) for bid, b in self.bills.items() if self.scopes.get(bid) == scope]
        logger.debug("Listed %d bills for scope=%s", len(result), scope)
        return result

    def _put(self, scope: str, bill: Bill) -> str:
        self.bills[bill.id] = bill.model_copy(deep=True)
        self.scopes[bill.id] = scope
        return bill.id

    def _link(self, parent_id: str, kind: RelationKind, child_ids: list[str]) -> None:
        for child_id in child_ids:
            self.links.add((parent_id, kind.value, child_id))

    def create_bill(self, scope: str, bill: Bill) -> str:
        return self._put(scope, bill)

    def create_bill_batch(
        self,
        scope: str,
        bills: list[Bill],
        series: RecurrenceSeries | None = None,
    ) -> list[str]:
        ids = [self._put(scope, bill) for bill in bills]
        if series is not None:
            self.series[series.id] = series.model_copy()
            self._link(series.id, RelationKind.SERIES_PERIODS, ids)
        return ids

    def update_bill(self, bill_id: str, patch: BillPatch) -> None:
        bill = self.bills.get(bill_id)
        if bill is None:
            raise NotFoundError(f"Bill {bill_id} not found")
        self.bills[bill_id] = bill.model_copy(update=patch.changes())

    def delete_bill(self, bill_id: str) -> None:
        if self.bills.pop(bill_id, None) is None:
            raise NotFoundError(f"Bill {bill_id} not found")
        self.scopes.pop(bill_id, None)
        self.links = {link for link in self.links if link[2] != bill_id}

    def link_entities(self, parent_id: str, kind: RelationKind, child_ids: list[str]) -> None:
        self._link(parent_id, kind, child_ids)

    def linked_ids(self, parent_id: str, kind: RelationKind) -> list[str]:
        return sorted(c for p, k, c in self.links if p == parent_id and k == kind.value)

    def list_entities(self, scope: str, kind: EntityKind) -> list[EntityRef]:
        if kind == EntityKind.CATEGORY:
            return category_refs()
        return counterparty_refs(self.list_bills(scope))
