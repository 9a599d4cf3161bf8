"""NocoDB-backed store.

A bill definition lives in the CONTAS table. Single-date definitions carry
DATA_VENCIMENTO and surface as one bill; recurring definitions carry only
DIA_VENCIMENTO and own one GERACOES_RECORRENCIA record per billing period,
each surfacing as its own bill. Categories, counterparties, the owning sector
and the RECORRENCIA record are attached through link fields.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

import requests
from pydantic import BaseModel

from contas.dates import clamped_date_for_day, format_local_date, parse_competency, parse_external_date
from contas.exceptions import NocoDBError, ValidationError
from contas.models import parse_money
from contas.models.bill import Bill, BillPatch, EntityRef, RecurrenceSeries
from contas.repositories.base import BillStore, EntityKind, RelationKind
from contas.settings import Settings

logger = logging.getLogger(__name__)

SINGLE_SUFFIX = "-single"


class FieldMapping(BaseModel):
    """Physical column names for each logical field."""

    scope_email: str = "EMAIL"
    bill_name: str = "NOME"
    bill_description: str = "DESCRIÇÃO"
    bill_amount: str = "VALOR"
    bill_due_day: str = "DIA_VENCIMENTO"
    bill_due_date: str = "DATA_VENCIMENTO"
    category_label: str = "CATEGORIA"
    counterparty_label: str = "EMPRESA_FORNECEDOR"
    period_competency: str = "COMPETENCIA"
    series_start: str = "INICIO_EM"
    series_end: str = "FIM_EM"
    series_frequency: str = "FREQUENCIA"
    protocoled: str = "PROTOCOLADO"
    protocoled_at: str = "PROTOCOLADO_EM"
    invoice_number: str = "NUMERO_NF"
    boleto_number: str = "NUMERO_BOLETO"
    created_at: str = "CreatedAt"


class NocoDBTables(BaseModel):
    scopes: str
    bills: str
    categories: str
    counterparties: str
    recurrences: str
    periods: str


# RelationKind -> (NocoDBTables attribute owning the link field, settings attribute holding its id)
LINK_FIELDS: dict[RelationKind, tuple[str, str]] = {
    RelationKind.SCOPE_BILLS: ("scopes", "nocodb_link_setor_contas"),
    RelationKind.SCOPE_CATEGORIES: ("scopes", "nocodb_link_setores_categorias"),
    RelationKind.SCOPE_COUNTERPARTIES: ("scopes", "nocodb_link_setores_empresas_fornecedores"),
    RelationKind.BILL_SCOPE: ("bills", "nocodb_link_conta_setor"),
    RelationKind.BILL_CATEGORY: ("bills", "nocodb_link_conta_categoria"),
    RelationKind.BILL_COUNTERPARTY: ("bills", "nocodb_link_conta_empresa"),
    RelationKind.BILL_PERIODS: ("bills", "nocodb_link_conta_geracoes_recorrencia"),
    RelationKind.SERIES_COUNTERPARTY: ("recurrences", "nocodb_link_recorrencia_empresa"),
    RelationKind.SERIES_BILL: ("recurrences", "nocodb_link_recorrencia_conta"),
    RelationKind.SERIES_CATEGORY: ("recurrences", "nocodb_link_recorrencia_categoria"),
    RelationKind.SERIES_PERIODS: ("recurrences", "nocodb_link_recorrencia_geracoes"),
    RelationKind.PERIOD_SERIES: ("periods", "nocodb_link_geracao_recorrencia"),
}


class NocoDBConfig(BaseModel):
    tables: NocoDBTables
    links: dict[RelationKind, str]

    @classmethod
    def from_settings(cls, s: Settings) -> NocoDBConfig:
        tables = NocoDBTables(
            scopes=s.require("nocodb_table_setores"),
            bills=s.require("nocodb_table_contas"),
            categories=s.require("nocodb_table_categorias"),
            counterparties=s.require("nocodb_table_empresas_fornecedores"),
            recurrences=s.require("nocodb_table_recorrencia"),
            periods=s.require("nocodb_table_geracoes_recorrencia"),
        )
        links = {kind: s.require(attr) for kind, (_, attr) in LINK_FIELDS.items()}
        return cls(tables=tables, links=links)


def _link_payload(ids: list[str]) -> dict | list[dict]:
    if not ids:
        raise ValidationError("No record ids to link")
    payload = [{"id": str(i)} for i in ids]
    return payload[0] if len(payload) == 1 else payload


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _clean(value: Any) -> str | None:
    text = str(value).strip() if value is not None else ""
    return text or None


class NocoDBClient:
    """Thin wrapper over the NocoDB v3 data API. Every call is attempted once."""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        project_id: str,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.project_id = project_id
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"xc-token": api_token, "Content-Type": "application/json"})

    def _data_path(self, table_id: str, suffix: str = "records") -> str:
        return f"/api/v3/data/{self.project_id}/{table_id}/{suffix}"

    def request(self, method: str, path: str, params: Any = None, body: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug("NocoDB %s %s", method, path)
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                data=json.dumps(body) if body is not None else None,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NocoDBError(f"NocoDB unreachable at {path}") from e

        text = response.text
        try:
            payload = json.loads(text) if text else None
        except ValueError:
            payload = None

        if not response.ok:
            message = None
            if isinstance(payload, dict):
                message = payload.get("msg") or payload.get("message")
            raise NocoDBError(
                message or f"NocoDB error ({response.status_code}) at {path}",
                status=response.status_code,
                details=payload if payload is not None else text,
            )
        return payload if payload is not None else text

    def list_records(
        self,
        table_id: str,
        where: str | None = None,
        fields: list[str] | None = None,
        page_size: int | None = None,
    ) -> list[dict]:
        params: list[tuple[str, str]] = [("fields", f) for f in fields or []]
        if where:
            params.append(("where", where))
        if page_size is not None:
            params.append(("pageSize", str(page_size)))
        result = self.request("GET", self._data_path(table_id), params=params or None)
        return (result or {}).get("records") or []

    def create_records(self, table_id: str, fields_list: list[dict]) -> list[str]:
        if len(fields_list) == 1:
            body: dict = {"fields": fields_list[0]}
        else:
            body = {"records": [{"fields": f} for f in fields_list]}
        result = self.request("POST", self._data_path(table_id), body=body)
        ids = [str(r["id"]) for r in (result or {}).get("records") or [] if r.get("id") is not None]
        if len(ids) != len(fields_list):
            raise NocoDBError(f"NocoDB created {len(ids)} of {len(fields_list)} records in {table_id}")
        return ids

    def update_records(self, table_id: str, updates: list[tuple[str, dict]]) -> None:
        if len(updates) == 1:
            record_id, fields = updates[0]
            body: dict = {"id": record_id, "fields": fields}
        else:
            body = {"records": [{"id": rid, "fields": f} for rid, f in updates]}
        self.request("PATCH", self._data_path(table_id), body=body)

    def delete_record(self, table_id: str, record_id: str) -> None:
        self.request("DELETE", self._data_path(table_id), body={"id": record_id})

    def list_links(self, table_id: str, link_field_id: str, record_id: str, page_size: int = 200) -> list[dict]:
        path = self._data_path(table_id, f"links/{link_field_id}/{quote(str(record_id), safe='')}")
        result = self.request("GET", path, params=[("pageSize", str(page_size))])
        return (result or {}).get("records") or []

    def link_records(self, table_id: str, link_field_id: str, record_id: str, ids: list[str]) -> bool:
        """Link ``ids`` to ``record_id``. Returns False when the link already existed."""
        path = self._data_path(table_id, f"links/{link_field_id}/{quote(str(record_id), safe='')}")
        try:
            self.request("POST", path, body=_link_payload(ids))
        except NocoDBError as e:
            if e.already_exists:
                logger.debug("Link %s -> %s already exists, ignoring", record_id, ids)
                return False
            raise
        return True

    def unlink_records(self, table_id: str, link_field_id: str, record_id: str, ids: list[str]) -> bool:
        """Unlink ``ids`` from ``record_id``. Returns False when there was nothing to unlink."""
        path = self._data_path(table_id, f"links/{link_field_id}/{quote(str(record_id), safe='')}")
        try:
            self.request("DELETE", path, body=_link_payload(ids))
        except NocoDBError as e:
            if e.not_linked:
                logger.debug("Link %s -> %s not present, ignoring", record_id, ids)
                return False
            raise
        return True


class NocoDBBillStore(BillStore):
    def __init__(
        self,
        client: NocoDBClient,
        config: NocoDBConfig,
        fields: FieldMapping | None = None,
        page_size: int = 200,
    ) -> None:
        self.client = client
        self.config = config
        self.fields = fields or FieldMapping()
        self.page_size = page_size

    @property
    def tables(self) -> NocoDBTables:
        return self.config.tables

    def _link_target(self, kind: RelationKind) -> tuple[str, str]:
        table_attr, _ = LINK_FIELDS[kind]
        return getattr(self.tables, table_attr), self.config.links[kind]

    def _linked(self, kind: RelationKind, record_id: str) -> list[dict]:
        table_id, link_field_id = self._link_target(kind)
        return self.client.list_links(table_id, link_field_id, record_id, page_size=self.page_size)

    def _record_target(self, bill_id: str) -> tuple[str, str]:
        if bill_id.endswith(SINGLE_SUFFIX):
            return self.tables.bills, bill_id[: -len(SINGLE_SUFFIX)]
        return self.tables.periods, bill_id

    def _first_ref(
        self,
        kind: RelationKind,
        record_id: str,
        label_field: str,
        cache: dict[str, str],
    ) -> EntityRef | None:
        try:
            records = self._linked(kind, record_id)
        except NocoDBError:
            logger.exception("Failed to load %s for bill definition %s, skipping", kind.value, record_id)
            return None
        if not records or records[0].get("id") is None:
            return None
        ref_id = str(records[0]["id"])
        if ref_id not in cache:
            cache[ref_id] = str((records[0].get("fields") or {}).get(label_field) or "")
        return EntityRef(id=ref_id, label=cache[ref_id])

    def _protocol_fields(self, fields: dict) -> dict:
        return {
            "is_protocoled": bool(fields.get(self.fields.protocoled)),
            "protocoled_at": _parse_timestamp(fields.get(self.fields.protocoled_at)),
            "invoice_number": _clean(fields.get(self.fields.invoice_number)),
            "boleto_number": _clean(fields.get(self.fields.boleto_number)),
        }

    def resolve_scope(self, owner: str) -> str | None:
        if not owner:
            raise ValidationError("Session has no e-mail; log in again")
        records = self.client.list_records(
            self.tables.scopes,
            where=f"({self.fields.scope_email},eq,{owner})",
            page_size=1,
        )
        if not records or records[0].get("id") is None:
            return None
        return str(records[0]["id"])

    def list_bills(self, scope: str) -> list[Bill]:
        definitions = self._linked(RelationKind.SCOPE_BILLS, scope)
        counterparty_cache: dict[str, str] = {}
        category_cache: dict[str, str] = {}
        bills: list[Bill] = []

        for record in definitions:
            conta_id = str(record["id"])
            f = record.get("fields") or {}
            common = {
                "name": str(f.get(self.fields.bill_name) or ""),
                "description": str(f.get(self.fields.bill_description) or ""),
                "amount": parse_money(f.get(self.fields.bill_amount)),
                "counterparty": self._first_ref(
                    RelationKind.BILL_COUNTERPARTY, conta_id, self.fields.counterparty_label, counterparty_cache
                ),
                "category_ref": self._first_ref(
                    RelationKind.BILL_CATEGORY, conta_id, self.fields.category_label, category_cache
                ),
                # periods share the creation time of their definition
                "created_at": _parse_timestamp(f.get(self.fields.created_at)),
            }

            due_date = parse_external_date(f.get(self.fields.bill_due_date))
            if due_date is not None:
                bills.append(
                    Bill(id=f"{conta_id}{SINGLE_SUFFIX}", due_date=due_date, **common, **self._protocol_fields(f))
                )
                continue

            day = int(parse_money(f.get(self.fields.bill_due_day))) or 1
            for period in self._linked(RelationKind.BILL_PERIODS, conta_id):
                pf = period.get("fields") or {}
                competency = str(pf.get(self.fields.period_competency) or "").strip()
                base = parse_competency(competency)
                bills.append(
                    Bill(
                        id=str(period["id"]),
                        due_date=clamped_date_for_day(base.year, base.month, day) if base else None,
                        competency=competency[:7] or None,
                        **common,
                        **self._protocol_fields(pf),
                    )
                )

        logger.debug("Loaded %d bills from %d definitions for scope=%s", len(bills), len(definitions), scope)
        return bills

    def _reference_fields(self, bill: Bill) -> dict:
        fields: dict[str, Any] = {}
        if bill.invoice_number:
            fields[self.fields.invoice_number] = bill.invoice_number
        if bill.boleto_number:
            fields[self.fields.boleto_number] = bill.boleto_number
        return fields

    def create_bill(self, scope: str, bill: Bill) -> str:
        return self.create_bill_batch(scope, [bill])[0]

    def create_bill_batch(
        self,
        scope: str,
        bills: list[Bill],
        series: RecurrenceSeries | None = None,
    ) -> list[str]:
        if not bills:
            return []
        first = bills[0]
        if first.due_date is None:
            raise ValidationError("Cannot save a bill without a due date")

        definition: dict[str, Any] = {
            self.fields.bill_name: first.name,
            self.fields.bill_amount: first.amount,
            self.fields.bill_due_day: series.anchor_day if series else first.due_date.day,
        }
        if first.description:
            definition[self.fields.bill_description] = first.description
        if series is None:
            definition[self.fields.bill_due_date] = format_local_date(first.due_date)
            definition.update(self._reference_fields(first))

        conta_id = self.client.create_records(self.tables.bills, [definition])[0]
        self.link_entities(conta_id, RelationKind.BILL_SCOPE, [scope])
        category_id = first.category_ref.id if first.category_ref else None
        counterparty_id = first.counterparty.id if first.counterparty else None
        if category_id:
            self.link_entities(conta_id, RelationKind.BILL_CATEGORY, [category_id])
        if counterparty_id:
            self.link_entities(conta_id, RelationKind.BILL_COUNTERPARTY, [counterparty_id])

        if series is None:
            logger.info("NocoDB bill definition %s created (single)", conta_id)
            return [f"{conta_id}{SINGLE_SUFFIX}"]

        period_ids = self.client.create_records(
            self.tables.periods,
            [{self.fields.period_competency: b.competency, **self._reference_fields(b)} for b in bills],
        )
        self.link_entities(conta_id, RelationKind.BILL_PERIODS, period_ids)

        series_id = self.client.create_records(
            self.tables.recurrences,
            [
                {
                    self.fields.series_start: format_local_date(series.start_date),
                    self.fields.series_end: format_local_date(series.end_date),
                    self.fields.series_frequency: series.frequency,
                }
            ],
        )[0]
        self.link_entities(series_id, RelationKind.SERIES_BILL, [conta_id])
        self.link_entities(series_id, RelationKind.SERIES_PERIODS, period_ids)
        if category_id:
            self.link_entities(series_id, RelationKind.SERIES_CATEGORY, [category_id])
        if counterparty_id:
            self.link_entities(series_id, RelationKind.SERIES_COUNTERPARTY, [counterparty_id])
        for period_id in period_ids:
            self.link_entities(period_id, RelationKind.PERIOD_SERIES, [series_id])

        logger.info(
            "NocoDB bill definition %s created with %d periods (series %s)", conta_id, len(period_ids), series_id
        )
        return period_ids

    def update_bill(self, bill_id: str, patch: BillPatch) -> None:
        changes = patch.changes()
        fields: dict[str, Any] = {}
        if "is_protocoled" in changes:
            fields[self.fields.protocoled] = changes["is_protocoled"]
        if "protocoled_at" in changes:
            fields[self.fields.protocoled_at] = changes["protocoled_at"].isoformat()
        if "invoice_number" in changes:
            fields[self.fields.invoice_number] = changes["invoice_number"]
        if "boleto_number" in changes:
            fields[self.fields.boleto_number] = changes["boleto_number"]
        if not fields:
            return
        table_id, record_id = self._record_target(bill_id)
        self.client.update_records(table_id, [(record_id, fields)])

    def delete_bill(self, bill_id: str) -> None:
        table_id, record_id = self._record_target(bill_id)
        self.client.delete_record(table_id, record_id)

    def link_entities(self, parent_id: str, kind: RelationKind, child_ids: list[str]) -> None:
        table_id, link_field_id = self._link_target(kind)
        self.client.link_records(table_id, link_field_id, parent_id, child_ids)

    def list_entities(self, scope: str, kind: EntityKind) -> list[EntityRef]:
        if kind == EntityKind.CATEGORY:
            relation, label_field = RelationKind.SCOPE_CATEGORIES, self.fields.category_label
        else:
            relation, label_field = RelationKind.SCOPE_COUNTERPARTIES, self.fields.counterparty_label
        return [
            EntityRef(id=str(r["id"]), label=str((r.get("fields") or {}).get(label_field) or ""))
            for r in self._linked(relation, scope)
            if r.get("id") is not None
        ]
