import json
from datetime import date, datetime
from unittest.mock import MagicMock

import pytest
import requests

from contas.constants import SP_TZ
from contas.exceptions import ConfigurationError, NocoDBError, ValidationError
from contas.models.bill import Bill, BillPatch, EntityRef, Recurrence
from contas.repositories.base import EntityKind, RelationKind
from contas.repositories.nocodb import (
    LINK_FIELDS,
    FieldMapping,
    NocoDBBillStore,
    NocoDBClient,
    NocoDBConfig,
    NocoDBTables,
)
from contas.services.recurrence import build_series
from contas.settings import Settings


def _response(payload=None, status=200, text=None):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.text = text if text is not None else (json.dumps(payload) if payload is not None else "")
    return response


def _client(*responses):
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return NocoDBClient("https://nocodb.example.com/", "tok", "proj", timeout=5, session=session), session


def _config() -> NocoDBConfig:
    return NocoDBConfig(
        tables=NocoDBTables(
            scopes="t_setores",
            bills="t_contas",
            categories="t_categorias",
            counterparties="t_empresas",
            recurrences="t_recorrencia",
            periods="t_geracoes",
        ),
        links={kind: f"l_{kind.value}" for kind in RelationKind},
    )


class TestNocoDBClient:
    def test_auth_header(self):
        _, session = _client()
        assert session.headers["xc-token"] == "tok"

    def test_list_records(self):
        client, session = _client(_response({"records": [{"id": 1, "fields": {"EMAIL": "a@b.c"}}]}))

        records = client.list_records("t1", where="(EMAIL,eq,a@b.c)", page_size=1)

        assert records == [{"id": 1, "fields": {"EMAIL": "a@b.c"}}]
        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == "https://nocodb.example.com/api/v3/data/proj/t1/records"
        params = session.request.call_args.kwargs["params"]
        assert ("where", "(EMAIL,eq,a@b.c)") in params
        assert ("pageSize", "1") in params
        assert session.request.call_args.kwargs["timeout"] == 5

    def test_create_single_record(self):
        client, session = _client(_response({"records": [{"id": 10}]}))

        assert client.create_records("t1", [{"NOME": "x"}]) == ["10"]
        body = json.loads(session.request.call_args.kwargs["data"])
        assert body == {"fields": {"NOME": "x"}}

    def test_create_many_records(self):
        client, session = _client(_response({"records": [{"id": 1}, {"id": 2}]}))

        assert client.create_records("t1", [{"A": 1}, {"A": 2}]) == ["1", "2"]
        body = json.loads(session.request.call_args.kwargs["data"])
        assert body == {"records": [{"fields": {"A": 1}}, {"fields": {"A": 2}}]}

    def test_create_missing_ids(self):
        client, _ = _client(_response({"records": [{"id": 1}]}))
        with pytest.raises(NocoDBError, match="created 1 of 2"):
            client.create_records("t1", [{"A": 1}, {"A": 2}])

    def test_update_single(self):
        client, session = _client(_response({"records": [{"id": 5}]}))
        client.update_records("t1", [("5", {"PROTOCOLADO": True})])
        assert session.request.call_args.args[0] == "PATCH"
        assert json.loads(session.request.call_args.kwargs["data"]) == {"id": "5", "fields": {"PROTOCOLADO": True}}

    def test_delete(self):
        client, session = _client(_response({}))
        client.delete_record("t1", "5")
        assert session.request.call_args.args[0] == "DELETE"
        assert json.loads(session.request.call_args.kwargs["data"]) == {"id": "5"}

    def test_error_message_from_payload(self):
        client, _ = _client(_response({"msg": "Table not found"}, status=404))
        with pytest.raises(NocoDBError, match="Table not found") as exc:
            client.list_records("t1")
        assert exc.value.status == 404
        assert exc.value.details == {"msg": "Table not found"}

    def test_error_without_json(self):
        client, _ = _client(_response(status=502, text="Bad Gateway"))
        with pytest.raises(NocoDBError, match="502") as exc:
            client.list_records("t1")
        assert exc.value.details == "Bad Gateway"

    def test_network_failure(self):
        session = MagicMock()
        session.headers = {}
        session.request.side_effect = requests.ConnectionError("refused")
        client = NocoDBClient("https://nocodb.example.com", "tok", "proj", session=session)

        with pytest.raises(NocoDBError, match="unreachable"):
            client.list_records("t1")

    def test_link_records(self):
        client, session = _client(_response(True))
        assert client.link_records("t1", "lf", "7", ["1", "2"]) is True
        method, url = session.request.call_args.args
        assert method == "POST"
        assert url.endswith("/t1/links/lf/7")
        assert json.loads(session.request.call_args.kwargs["data"]) == [{"id": "1"}, {"id": "2"}]

    def test_link_single_id_is_object(self):
        client, session = _client(_response(True))
        client.link_records("t1", "lf", "7", ["1"])
        assert json.loads(session.request.call_args.kwargs["data"]) == {"id": "1"}

    def test_link_already_exists_is_success(self):
        client, _ = _client(_response({"msg": "Link already exists"}, status=422))
        assert client.link_records("t1", "lf", "7", ["1"]) is False

    def test_link_other_error_raises(self):
        client, _ = _client(_response({"msg": "Invalid link field"}, status=400))
        with pytest.raises(NocoDBError):
            client.link_records("t1", "lf", "7", ["1"])

    def test_link_requires_ids(self):
        client, _ = _client()
        with pytest.raises(ValidationError):
            client.link_records("t1", "lf", "7", [])

    def test_unlink_not_linked_is_success(self):
        client, _ = _client(_response({"msg": "Record not found"}, status=404))
        assert client.unlink_records("t1", "lf", "7", ["1"]) is False

    def test_unlink(self):
        client, session = _client(_response(True))
        assert client.unlink_records("t1", "lf", "7", ["1"]) is True
        assert session.request.call_args.args[0] == "DELETE"

    def test_list_links_quotes_record_id(self):
        client, session = _client(_response({"records": []}))
        client.list_links("t1", "lf", "a/b")
        assert session.request.call_args.args[1].endswith("/links/lf/a%2Fb")


class TestNocoDBConfig:
    def test_from_settings(self):
        values = {f"nocodb_table_{name}": f"t_{name}" for name in (
            "setores",
            "contas",
            "categorias",
            "empresas_fornecedores",
            "recorrencia",
            "geracoes_recorrencia",
        )}
        values.update({attr: f"l_{attr}" for _, attr in LINK_FIELDS.values()})

        config = NocoDBConfig.from_settings(Settings(_env_file=None, **values))

        assert config.tables.bills == "t_contas"
        assert config.tables.periods == "t_geracoes_recorrencia"
        assert config.links[RelationKind.BILL_SCOPE] == "l_nocodb_link_conta_setor"
        assert len(config.links) == len(RelationKind)

    def test_missing_table_names_env_var(self, monkeypatch):
        monkeypatch.delenv("CONTAS_NOCODB_TABLE_SETORES", raising=False)
        with pytest.raises(ConfigurationError, match="CONTAS_NOCODB_TABLE_SETORES"):
            NocoDBConfig.from_settings(Settings(_env_file=None))


class TestFieldMapping:
    def test_defaults(self):
        fields = FieldMapping()
        assert fields.bill_description == "DESCRIÇÃO"
        assert fields.bill_due_day == "DIA_VENCIMENTO"

    def test_override(self):
        assert FieldMapping(bill_description="DESCRICAO").bill_description == "DESCRICAO"


def _links_router(data: dict):
    def list_links(table_id, link_field_id, record_id, page_size=200):
        return data.get((link_field_id, str(record_id)), [])

    return list_links


class TestNocoDBBillStoreRead:
    def setup_method(self):
        self.client = MagicMock(spec=NocoDBClient)
        self.store = NocoDBBillStore(self.client, _config())

    def test_resolve_scope(self):
        self.client.list_records.return_value = [{"id": 42, "fields": {"EMAIL": "ti@x.com"}}]

        assert self.store.resolve_scope("ti@x.com") == "42"
        self.client.list_records.assert_called_once_with("t_setores", where="(EMAIL,eq,ti@x.com)", page_size=1)

    def test_resolve_scope_unknown(self):
        self.client.list_records.return_value = []
        assert self.store.resolve_scope("ti@x.com") is None

    def test_resolve_scope_requires_owner(self):
        with pytest.raises(ValidationError):
            self.store.resolve_scope("")

    def test_single_and_recurring_definitions(self):
        self.client.list_links.side_effect = _links_router(
            {
                ("l_scope_bills", "42"): [
                    {
                        "id": 1,
                        "fields": {
                            "NOME": "Internet",
                            "DESCRIÇÃO": "Link",
                            "VALOR": "1.299,90",
                            "DATA_VENCIMENTO": "2025-03-15",
                            "PROTOCOLADO": True,
                            "PROTOCOLADO_EM": "2025-03-10T12:00:00Z",
                            "NUMERO_NF": " 778 ",
                        },
                    },
                    {
                        "id": 2,
                        "fields": {
                            "NOME": "Office",
                            "VALOR": 2500,
                            "DIA_VENCIMENTO": 31,
                            "CreatedAt": "2025-01-20 13:00:00+00:00",
                        },
                    },
                ],
                ("l_bill_counterparty", "1"): [{"id": 9, "fields": {"EMPRESA_FORNECEDOR": "Vivo"}}],
                ("l_bill_category", "2"): [{"id": 3, "fields": {"CATEGORIA": "Software"}}],
                ("l_bill_periods", "2"): [
                    {"id": 20, "fields": {"COMPETENCIA": "2025-02"}},
                    {"id": 21, "fields": {"COMPETENCIA": "2025-03", "NUMERO_BOLETO": "341"}},
                    {"id": 22, "fields": {"COMPETENCIA": "lixo"}},
                ],
            }
        )

        bills = self.store.list_bills("42")

        assert [b.id for b in bills] == ["1-single", "20", "21", "22"]
        single = bills[0]
        assert single.amount == pytest.approx(1299.9)
        assert single.due_date == date(2025, 3, 15)
        assert single.counterparty == EntityRef(id="9", label="Vivo")
        assert single.is_protocoled is True
        assert single.protocoled_at == datetime(2025, 3, 10, 9, 0, tzinfo=SP_TZ)
        assert single.invoice_number == "778"
        assert single.boleto_number is None

        assert [b.due_date for b in bills[1:]] == [date(2025, 2, 28), date(2025, 3, 31), None]
        assert [b.competency for b in bills[1:]] == ["2025-02", "2025-03", "lixo"]
        assert bills[2].boleto_number == "341"
        assert bills[1].category_label == "Software"
        assert bills[1].counterparty_label == "Office"
        assert single.created_at is None
        assert {b.created_at for b in bills[1:]} == {datetime(2025, 1, 20, 10, 0, tzinfo=SP_TZ)}

    def test_label_lookup_failure_is_skipped(self):
        def list_links(table_id, link_field_id, record_id, page_size=200):
            if link_field_id == "l_scope_bills":
                return [{"id": 1, "fields": {"NOME": "Internet", "VALOR": 10, "DATA_VENCIMENTO": "2025-03-15"}}]
            if link_field_id == "l_bill_counterparty":
                raise NocoDBError("boom", status=500)
            return []

        self.client.list_links.side_effect = list_links

        bills = self.store.list_bills("42")

        assert len(bills) == 1
        assert bills[0].counterparty is None

    def test_list_entities(self):
        self.client.list_links.side_effect = _links_router(
            {
                ("l_scope_counterparties", "42"): [{"id": 9, "fields": {"EMPRESA_FORNECEDOR": "Vivo"}}],
                ("l_scope_categories", "42"): [{"id": 3, "fields": {"CATEGORIA": "Software"}}],
            }
        )
        assert self.store.list_entities("42", EntityKind.COUNTERPARTY) == [EntityRef(id="9", label="Vivo")]
        assert self.store.list_entities("42", EntityKind.CATEGORY) == [EntityRef(id="3", label="Software")]


class TestNocoDBBillStoreWrite:
    def setup_method(self):
        self.client = MagicMock(spec=NocoDBClient)
        self.store = NocoDBBillStore(self.client, _config())

    def _links(self):
        return [(c.args[1], c.args[2], c.args[3]) for c in self.client.link_records.call_args_list]

    def test_create_single(self):
        self.client.create_records.return_value = ["100"]
        bill = Bill(
            id="local",
            name="Internet",
            amount=450.0,
            due_date=date(2025, 3, 15),
            category_ref=EntityRef(id="3", label="Internet"),
            counterparty=EntityRef(id="9", label="Vivo"),
            boleto_number="111",
        )

        assert self.store.create_bill("42", bill) == "100-single"

        table, records = self.client.create_records.call_args.args
        assert table == "t_contas"
        assert records == [
            {
                "NOME": "Internet",
                "VALOR": 450.0,
                "DIA_VENCIMENTO": 15,
                "DATA_VENCIMENTO": "2025-03-15",
                "NUMERO_BOLETO": "111",
            }
        ]
        assert self._links() == [
            ("l_bill_scope", "100", ["42"]),
            ("l_bill_category", "100", ["3"]),
            ("l_bill_counterparty", "100", ["9"]),
        ]

    def test_create_recurring(self):
        self.client.create_records.side_effect = [["100"], ["p1", "p2"], ["s1"]]
        series = build_series(date(2025, 2, 28), Recurrence(interval_months=1, count=2), anchor_day=31)
        bills = [
            Bill(id="a", name="Office", description="M365", amount=2500.0, due_date=date(2025, 2, 28), competency="2025-02"),
            Bill(id="b", name="Office", description="M365", amount=2500.0, due_date=date(2025, 3, 31), competency="2025-03"),
        ]

        ids = self.store.create_bill_batch("42", bills, series)

        assert ids == ["p1", "p2"]
        calls = self.client.create_records.call_args_list
        assert calls[0].args == (
            "t_contas",
            [{"NOME": "Office", "VALOR": 2500.0, "DIA_VENCIMENTO": 31, "DESCRIÇÃO": "M365"}],
        )
        assert calls[1].args == ("t_geracoes", [{"COMPETENCIA": "2025-02"}, {"COMPETENCIA": "2025-03"}])
        assert calls[2].args == (
            "t_recorrencia",
            [{"INICIO_EM": "2025-02-28", "FIM_EM": "2025-03-31", "FREQUENCIA": "30"}],
        )
        assert self._links() == [
            ("l_bill_scope", "100", ["42"]),
            ("l_bill_periods", "100", ["p1", "p2"]),
            ("l_series_bill", "s1", ["100"]),
            ("l_series_periods", "s1", ["p1", "p2"]),
            ("l_period_series", "p1", ["s1"]),
            ("l_period_series", "p2", ["s1"]),
        ]

    def test_create_requires_due_date(self):
        with pytest.raises(ValidationError):
            self.store.create_bill("42", Bill(id="x", name="x", amount=1))

    def test_create_empty_batch(self):
        assert self.store.create_bill_batch("42", []) == []
        self.client.create_records.assert_not_called()

    def test_update_single_targets_definition(self):
        moment = datetime(2025, 3, 10, 9, 0, tzinfo=SP_TZ)
        self.store.update_bill("100-single", BillPatch(is_protocoled=True, protocoled_at=moment, boleto_number="2"))

        table, updates = self.client.update_records.call_args.args
        assert table == "t_contas"
        assert updates == [
            ("100", {"PROTOCOLADO": True, "PROTOCOLADO_EM": moment.isoformat(), "NUMERO_BOLETO": "2"})
        ]

    def test_update_period(self):
        self.store.update_bill("p1", BillPatch(is_protocoled=True))
        assert self.client.update_records.call_args.args == ("t_geracoes", [("p1", {"PROTOCOLADO": True})])

    def test_empty_update_skips_request(self):
        self.store.update_bill("p1", BillPatch())
        self.client.update_records.assert_not_called()

    def test_delete(self):
        self.store.delete_bill("100-single")
        self.store.delete_bill("p1")
        assert [c.args for c in self.client.delete_record.call_args_list] == [("t_contas", "100"), ("t_geracoes", "p1")]

    def test_write_failure_propagates(self):
        self.client.delete_record.side_effect = NocoDBError("NocoDB unreachable")
        with pytest.raises(NocoDBError):
            self.store.delete_bill("p1")
