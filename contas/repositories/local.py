"""Local-only persistence: the whole store is one JSON document in a key-value store."""

from __future__ import annotations

import json
import logging

from pydantic import TypeAdapter, ValidationError

from contas.exceptions import PersistenceError
from contas.models.bill import Bill, BillPatch, RecurrenceSeries
from contas.repositories.base import RelationKind
from contas.repositories.memory import InMemoryBillStore
from contas.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

_series_adapter = TypeAdapter(list[RecurrenceSeries])


class LocalBillStore(InMemoryBillStore):
    def __init__(self, kv: KeyValueStore, key: str) -> None:
        super().__init__()
        self.kv = kv
        self.key = key
        self._restore()

    def _restore(self) -> None:
        raw = self.kv.get(self.key)
        if not raw:
            logger.info("No local data under %s, starting empty", self.key)
            return
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Local data under '{self.key}' is corrupted") from e

        try:
            for entry in doc.get("bills", []):
                bill = Bill.model_validate(entry["bill"])
                self.bills[bill.id] = bill
                self.scopes[bill.id] = entry["scope"]
            for series in _series_adapter.validate_python(doc.get("series", [])):
                self.series[series.id] = series
            self.links = {tuple(link) for link in doc.get("links", [])}
        except (AttributeError, KeyError, TypeError, ValidationError) as e:
            raise PersistenceError(f"Local data under '{self.key}' is corrupted") from e
        logger.debug("Restored %d bills from %s", len(self.bills), self.key)

    def _flush(self) -> None:
        doc = {
            "bills": [
                {"scope": self.scopes[bid], "bill": bill.model_dump(mode="json")} for bid, bill in self.bills.items()
            ],
            "series": _series_adapter.dump_python(list(self.series.values()), mode="json"),
            "links": sorted(list(link) for link in self.links),
        }
        self.kv.set(self.key, json.dumps(doc, ensure_ascii=False))

    def create_bill(self, scope: str, bill: Bill) -> str:
        bill_id = super().create_bill(scope, bill)
        self._flush()
        return bill_id

    def create_bill_batch(
        self,
        scope: str,
        bills: list[Bill],
        series: RecurrenceSeries | None = None,
    ) -> list[str]:
        ids = super().create_bill_batch(scope, bills, series)
        self._flush()
        return ids

    def update_bill(self, bill_id: str, patch: BillPatch) -> None:
        super().update_bill(bill_id, patch)
        self._flush()

    def delete_bill(self, bill_id: str) -> None:
        super().delete_bill(bill_id)
        self._flush()

    def link_entities(self, parent_id: str, kind: RelationKind, child_ids: list[str]) -> None:
        super().link_entities(parent_id, kind, child_ids)
        self._flush()
