from __future__ import annotations

from datetime import datetime

from sqlalchemy import Connection, text
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import SQLAlchemyError

from contas.constants import SP_TZ
from contas.dates import format_local_date
from contas.exceptions import NotFoundError, PersistenceError
from contas.models.bill import Bill, BillPatch, Category, EntityRef, RecurrenceSeries
from contas.repositories.base import BillStore, EntityKind, RelationKind
from contas.repositories.memory import category_refs, counterparty_refs, local_scope_for

_INSERT_BILL = text(
    "INSERT INTO bills (id, scope, name, description, amount, due_date, category, "
    "category_ref_id, category_ref_label, counterparty_id, counterparty_label, is_protocoled, "
    "protocoled_at, invoice_number, boleto_number, series_id, competency, created_at) "
    "VALUES (:id, :scope, :name, :description, :amount, :due_date, :category, "
    ":category_ref_id, :category_ref_label, :counterparty_id, :counterparty_label, :is_protocoled, "
    ":protocoled_at, :invoice_number, :boleto_number, :series_id, :competency, :created_at)"
)

_PATCH_COLUMNS = ("is_protocoled", "protocoled_at", "invoice_number", "boleto_number")


def _now() -> datetime:
    return datetime.now(SP_TZ)


class SQLAlchemyBillStore(BillStore):
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    def _rollback_and_raise(self, message: str, error: SQLAlchemyError) -> None:
        self.conn.rollback()
        raise PersistenceError(message) from error

    @staticmethod
    def _bill_params(scope: str, bill: Bill) -> dict:
        return {
            "id": bill.id,
            "scope": scope,
            "name": bill.name,
            "description": bill.description,
            "amount": bill.amount,
            "due_date": format_local_date(bill.due_date) if bill.due_date else None,
            "category": bill.category.value if bill.category else None,
            "category_ref_id": bill.category_ref.id if bill.category_ref else None,
            "category_ref_label": bill.category_ref.label if bill.category_ref else None,
            "counterparty_id": bill.counterparty.id if bill.counterparty else None,
            "counterparty_label": bill.counterparty.label if bill.counterparty else None,
            "is_protocoled": bill.is_protocoled,
            "protocoled_at": bill.protocoled_at,
            "invoice_number": bill.invoice_number,
            "boleto_number": bill.boleto_number,
            "series_id": bill.series_id,
            "competency": bill.competency,
            "created_at": bill.created_at or _now(),
        }

    @staticmethod
    def _row_to_bill(row: RowMapping) -> Bill:
        category_ref = None
        if row["category_ref_id"] or row["category_ref_label"]:
            category_ref = EntityRef(id=row["category_ref_id"], label=row["category_ref_label"] or "")
        counterparty = None
        if row["counterparty_id"] or row["counterparty_label"]:
            counterparty = EntityRef(id=row["counterparty_id"], label=row["counterparty_label"] or "")
        return Bill(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            amount=float(row["amount"]),
            due_date=row["due_date"],
            category=Category(row["category"]) if row["category"] else None,
            category_ref=category_ref,
            counterparty=counterparty,
            is_protocoled=bool(row["is_protocoled"]),
            protocoled_at=row["protocoled_at"],
            invoice_number=row["invoice_number"],
            boleto_number=row["boleto_number"],
            series_id=row["series_id"],
            competency=row["competency"],
            created_at=row["created_at"],
        )

    def resolve_scope(self, owner: str) -> str | None:
        return local_scope_for(owner)

    def list_bills(self, scope: str) -> list[Bill]:
        try:
            rows = (
                self.conn.execute(
                    text("SELECT * FROM bills WHERE scope = :scope ORDER BY due_date, created_at"),
                    {"scope": scope},
                )
                .mappings()
                .fetchall()
            )
        except SQLAlchemyError as e:
            self._rollback_and_raise("Could not load bills from the database", e)
        return [self._row_to_bill(row) for row in rows]

    def create_bill(self, scope: str, bill: Bill) -> str:
        return self.create_bill_batch(scope, [bill])[0]

    def create_bill_batch(
        self,
        scope: str,
        bills: list[Bill],
        series: RecurrenceSeries | None = None,
    ) -> list[str]:
        try:
            if series is not None:
                self.conn.execute(
                    text(
                        "INSERT INTO recurrence_series "
                        "(id, scope, start_date, end_date, interval_months, count, frequency, anchor_day, created_at) "
                        "VALUES (:id, :scope, :start_date, :end_date, :interval_months, :count, :frequency, :anchor_day, :created_at)"
                    ),
                    {
                        "id": series.id,
                        "scope": scope,
                        "start_date": format_local_date(series.start_date),
                        "end_date": format_local_date(series.end_date),
                        "interval_months": series.interval_months,
                        "count": series.count,
                        "frequency": series.frequency,
                        "anchor_day": series.anchor_day,
                        "created_at": _now(),
                    },
                )
            for bill in bills:
                self.conn.execute(_INSERT_BILL, self._bill_params(scope, bill))
            ids = [bill.id for bill in bills]
            if series is not None:
                self._insert_links(series.id, RelationKind.SERIES_PERIODS, ids)
            self.conn.commit()
        except SQLAlchemyError as e:
            self._rollback_and_raise("Could not save bills to the database", e)
        return ids

    def update_bill(self, bill_id: str, patch: BillPatch) -> None:
        changes = {k: v for k, v in patch.changes().items() if k in _PATCH_COLUMNS}
        if not changes:
            return
        assignments = ", ".join(f"{column} = :{column}" for column in changes)
        try:
            result = self.conn.execute(
                text(f"UPDATE bills SET {assignments} WHERE id = :id"),
                {**changes, "id": bill_id},
            )
            self.conn.commit()
        except SQLAlchemyError as e:
            self._rollback_and_raise(f"Could not update bill {bill_id}", e)
        if result.rowcount == 0:
            raise NotFoundError(f"Bill {bill_id} not found")

    def delete_bill(self, bill_id: str) -> None:
        try:
            self.conn.execute(text("DELETE FROM bill_links WHERE child_id = :id"), {"id": bill_id})
            result = self.conn.execute(text("DELETE FROM bills WHERE id = :id"), {"id": bill_id})
            self.conn.commit()
        except SQLAlchemyError as e:
            self._rollback_and_raise(f"Could not delete bill {bill_id}", e)
        if result.rowcount == 0:
            raise NotFoundError(f"Bill {bill_id} not found")

    def _insert_links(self, parent_id: str, kind: RelationKind, child_ids: list[str]) -> None:
        existing = {
            row[0]
            for row in self.conn.execute(
                text("SELECT child_id FROM bill_links WHERE parent_id = :parent_id AND kind = :kind"),
                {"parent_id": parent_id, "kind": kind.value},
            ).fetchall()
        }
        for child_id in child_ids:
            if child_id in existing:
                continue
            self.conn.execute(
                text(
                    "INSERT INTO bill_links (parent_id, kind, child_id, created_at) "
                    "VALUES (:parent_id, :kind, :child_id, :created_at)"
                ),
                {"parent_id": parent_id, "kind": kind.value, "child_id": child_id, "created_at": _now()},
            )
            existing.add(child_id)

    def link_entities(self, parent_id: str, kind: RelationKind, child_ids: list[str]) -> None:
        try:
            self._insert_links(parent_id, kind, child_ids)
            self.conn.commit()
        except SQLAlchemyError as e:
            self._rollback_and_raise(f"Could not link entities to {parent_id}", e)

    def linked_ids(self, parent_id: str, kind: RelationKind) -> list[str]:
        rows = self.conn.execute(
            text("SELECT child_id FROM bill_links WHERE parent_id = :parent_id AND kind = :kind ORDER BY child_id"),
            {"parent_id": parent_id, "kind": kind.value},
        ).fetchall()
        return [row[0] for row in rows]

    def get_series(self, series_id: str) -> RecurrenceSeries | None:
        row = (
            self.conn.execute(text("SELECT * FROM recurrence_series WHERE id = :id"), {"id": series_id})
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return RecurrenceSeries(
            id=row["id"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            interval_months=row["interval_months"],
            count=row["count"],
            frequency=row["frequency"],
            anchor_day=row["anchor_day"],
        )

    def list_entities(self, scope: str, kind: EntityKind) -> list[EntityRef]:
        if kind == EntityKind.CATEGORY:
            return category_refs()
        return counterparty_refs(self.list_bills(scope))
