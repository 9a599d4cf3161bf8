from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from contas.cli.bill_menu import DAY_OF_MONTH, SINGLE_DATE, _bill_choice
from contas.constants import format_month
from contas.exceptions import PersistenceError, ValidationError
from contas.models.bill import Bill, Category, EntityRef, ProtocolPayload
from contas.models.query import ALL, SearchMode, StatusFilter
from contas.services.bill_service import BillService
from contas.services.query_service import QueryService


@pytest.fixture()
def bill_service(context) -> BillService:
    return BillService(context)


class TestBillChoice:
    def test_label(self, sample_bill):
        assert _bill_choice(sample_bill()) == "Vivo - Internet Fibra - 15/03/2025 - R$ 450,00"

    def test_unknown_due_date(self, sample_bill):
        assert _bill_choice(sample_bill(due_date="garbage")) == "Vivo - Internet Fibra - - - R$ 450,00"


class TestNewBillMenu:
    @patch("contas.cli.bill_menu.questionary")
    def test_single_date(self, mock_q, bill_service):
        mock_q.text.return_value.ask.side_effect = [
            "Internet Fibra",  # name
            "",                # description
            "abc",             # invalid amount
            "450,00",          # amount
            "Vivo",            # new counterparty name
            "15/03/2025",      # due date
            "",                # NF
            "",                # boleto
        ]
        mock_q.select.return_value.ask.side_effect = ["Internet", "Outra", SINGLE_DATE]
        mock_q.confirm.return_value.ask.return_value = False

        from contas.cli.bill_menu import new_bill_menu

        new_bill_menu(bill_service)

        [bill] = bill_service.bills
        assert bill.amount == 450.0
        assert bill.due_date == date(2025, 3, 15)
        assert bill.category == Category.INTERNET
        assert bill.counterparty_label == "Vivo"
        assert bill.series_id is None

    @patch("contas.cli.bill_menu.questionary")
    def test_monthly_series(self, mock_q, bill_service):
        mock_q.text.return_value.ask.side_effect = [
            "Link dedicado",
            "Embratel",
            "1.299,90",
            "40",       # invalid day
            "31",
            "",
            "",
        ]
        mock_q.select.return_value.ask.side_effect = ["Internet", "Nenhuma", DAY_OF_MONTH, "Mensal", "3"]
        mock_q.confirm.return_value.ask.return_value = True

        from contas.cli.bill_menu import new_bill_menu

        new_bill_menu(bill_service)

        bills = bill_service.bills
        assert [b.due_date for b in bills] == [date(2025, 3, 31), date(2025, 4, 30), date(2025, 5, 31)]
        assert len({b.series_id for b in bills}) == 1
        assert bills[0].amount == pytest.approx(1299.9)

    @patch("contas.cli.bill_menu.questionary")
    def test_cancel_on_empty_name(self, mock_q):
        from contas.cli.bill_menu import new_bill_menu

        mock_q.text.return_value.ask.return_value = ""
        service = MagicMock()

        new_bill_menu(service)

        service.add.assert_not_called()

    @patch("contas.cli.bill_menu.questionary")
    def test_cancel_on_amount(self, mock_q):
        from contas.cli.bill_menu import new_bill_menu

        mock_q.text.return_value.ask.side_effect = ["ISP", "", None]
        service = MagicMock()

        new_bill_menu(service)

        service.add.assert_not_called()

    @patch("contas.cli.bill_menu.questionary")
    def test_service_error_is_shown(self, mock_q):
        from contas.cli.bill_menu import new_bill_menu

        mock_q.text.return_value.ask.side_effect = ["ISP", "", "450", "12/03/2025", "", ""]
        mock_q.select.return_value.ask.side_effect = ["Nenhuma", SINGLE_DATE]
        mock_q.confirm.return_value.ask.return_value = False
        service = MagicMock()
        service.list_entities.return_value = []
        service.add.side_effect = PersistenceError("Could not save bill")

        new_bill_menu(service)

        draft = service.add.call_args.args[0]
        assert draft.due_date == date(2025, 3, 12)
        assert draft.category is None
        assert service.add.call_args.args[1] is None

    @patch("contas.cli.bill_menu.questionary")
    def test_lookup_failure_skips_category(self, mock_q):
        from contas.cli.bill_menu import _ask_category

        service = MagicMock()
        service.list_entities.side_effect = PersistenceError("NocoDB unreachable")

        assert _ask_category(service) == (None, None)
        mock_q.select.assert_not_called()


class TestProtocolBillMenu:
    @patch("contas.cli.bill_menu.questionary")
    def test_protocol(self, mock_q, sample_bill):
        from contas.cli.bill_menu import protocol_bill_menu

        bill = sample_bill(boleto_number="123")
        mock_q.select.return_value.ask.return_value = _bill_choice(bill)
        mock_q.text.return_value.ask.side_effect = ["NF-1", "123"]
        service = MagicMock()

        protocol_bill_menu([bill], service)

        service.mark_protocoled.assert_called_once_with(
            "bill-1", ProtocolPayload(invoice_number="NF-1", boleto_number="123")
        )

    @patch("contas.cli.bill_menu.questionary")
    def test_only_open_bills_offered(self, mock_q, sample_bill):
        from contas.cli.bill_menu import protocol_bill_menu

        service = MagicMock()
        protocol_bill_menu([sample_bill(is_protocoled=True)], service)

        mock_q.select.assert_not_called()
        service.mark_protocoled.assert_not_called()

    @patch("contas.cli.bill_menu.questionary")
    def test_back(self, mock_q, sample_bill):
        from contas.cli.bill_menu import protocol_bill_menu

        mock_q.select.return_value.ask.return_value = "Voltar"
        service = MagicMock()
        protocol_bill_menu([sample_bill()], service)
        service.mark_protocoled.assert_not_called()

    @patch("contas.cli.bill_menu.questionary")
    def test_error_is_shown(self, mock_q, sample_bill):
        from contas.cli.bill_menu import protocol_bill_menu

        bill = sample_bill()
        mock_q.select.return_value.ask.return_value = _bill_choice(bill)
        mock_q.text.return_value.ask.return_value = ""
        service = MagicMock()
        service.mark_protocoled.side_effect = ValidationError("nope")

        protocol_bill_menu([bill], service)


class TestDeleteBillMenu:
    @patch("contas.cli.bill_menu.questionary")
    def test_confirmed(self, mock_q, sample_bill):
        from contas.cli.bill_menu import delete_bill_menu

        bill = sample_bill()
        mock_q.select.return_value.ask.return_value = _bill_choice(bill)
        mock_q.confirm.return_value.ask.return_value = True
        service = MagicMock()

        delete_bill_menu([bill], service)

        service.remove.assert_called_once_with("bill-1")

    @patch("contas.cli.bill_menu.questionary")
    def test_declined(self, mock_q, sample_bill):
        from contas.cli.bill_menu import delete_bill_menu

        bill = sample_bill()
        mock_q.select.return_value.ask.return_value = _bill_choice(bill)
        mock_q.confirm.return_value.ask.return_value = False
        service = MagicMock()

        delete_bill_menu([bill], service)

        service.remove.assert_not_called()


class TestDashboardMenu:
    def _seed(self, context, sample_bill):
        scope = context.scope_id
        context.store.create_bill(scope, sample_bill(id="1"))
        context.store.create_bill(scope, sample_bill(id="2", due_date=date(2025, 3, 1), counterparty=EntityRef(label="Claro")))
        context.store.create_bill(scope, sample_bill(id="3", due_date=date(2025, 4, 20)))

    def _services(self, context):
        query_service = QueryService(context)
        query_service.run = MagicMock(side_effect=query_service.run)
        return BillService(context), query_service

    @patch("contas.cli.bill_menu.questionary")
    def test_filters_update_state(self, mock_q, context, sample_bill):
        from contas.cli.bill_menu import dashboard_menu

        self._seed(context, sample_bill)
        bill_service, query_service = self._services(context)
        mock_q.select.return_value.ask.side_effect = [
            "Filtrar por status",
            "Vencidas",
            "Filtrar por mês",
            format_month("2025-04"),
            "Filtrar por empresa",
            "Vivo (1)",
            "Buscar",
            "Boleto",
            "Voltar",
        ]
        mock_q.text.return_value.ask.return_value = "123"

        dashboard_menu(bill_service, query_service)

        state = query_service.run.call_args.args[1]
        assert state.status_filter == StatusFilter.OVERDUE
        assert state.month_filter == "2025-04"
        assert state.counterparty_filter == "vivo"
        assert state.search_mode == SearchMode.BOLETO
        assert state.search_text == "123"
        assert len(bill_service.bills) == 3

    @patch("contas.cli.bill_menu.questionary")
    def test_all_months_and_clear_search(self, mock_q, context, sample_bill):
        from contas.cli.bill_menu import dashboard_menu

        self._seed(context, sample_bill)
        bill_service, query_service = self._services(context)
        mock_q.select.return_value.ask.side_effect = [
            "Buscar",
            "Empresa",
            "Filtrar por mês",
            "Todos",
            "Limpar busca",
            "Recarregar",
            None,
        ]
        mock_q.text.return_value.ask.return_value = "claro"

        dashboard_menu(bill_service, query_service)

        state = query_service.run.call_args.args[1]
        assert state.month_filter == ALL
        assert state.search_text == ""
        assert state.search_mode == SearchMode.ALL

    @patch("contas.cli.bill_menu.protocol_bill_menu")
    @patch("contas.cli.bill_menu.questionary")
    def test_protocol_receives_visible_bills(self, mock_q, mock_protocol, context, sample_bill):
        from contas.cli.bill_menu import dashboard_menu

        self._seed(context, sample_bill)
        bill_service, query_service = self._services(context)
        mock_q.select.return_value.ask.side_effect = ["Protocolar conta", "Voltar"]

        dashboard_menu(bill_service, query_service)

        # Current month (2025-03) is selected automatically.
        visible = mock_protocol.call_args.args[0]
        assert [b.id for b in visible] == ["2", "1"]

    @patch("contas.cli.bill_menu.questionary")
    def test_load_failure_is_shown(self, mock_q, context):
        from contas.cli.bill_menu import dashboard_menu

        context.store.list_bills = MagicMock(side_effect=PersistenceError("NocoDB unreachable"))
        mock_q.select.return_value.ask.return_value = "Voltar"

        dashboard_menu(BillService(context), QueryService(context))
