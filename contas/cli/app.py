import questionary
from rich.console import Console

from contas.cli.analytics_menu import analytics_menu
from contas.cli.bill_menu import dashboard_menu, new_bill_menu
from contas.exceptions import ContasError
from contas.repositories.factory import get_bill_store
from contas.services.analytics_service import AnalyticsService
from contas.services.bill_service import BillService
from contas.services.query_service import QueryService
from contas.services.session import SessionContext
from contas.settings import settings
from contas.storage.factory import get_kv_store

console = Console()


def _build_services() -> tuple[BillService, QueryService, AnalyticsService]:
    context = SessionContext(get_bill_store(), get_kv_store(), settings.owner_email)
    return (
        BillService(context),
        QueryService(context),
        AnalyticsService(context),
    )


def main_menu() -> None:
    try:
        bill_service, query_service, analytics_service = _build_services()
    except ContasError as e:
        console.print(f"[red]{e}[/red]")
        return

    console.print()
    console.print("[bold]Contas de TI[/bold]", style="cyan")
    console.print()

    while True:
        choice = questionary.select(
            "Menu Principal",
            choices=[
                "Painel de Contas",
                "Nova Conta",
                "Analytics",
                "Sair",
            ],
        ).ask()

        if choice is None or choice == "Sair":
            console.print("[bold]Até logo![/bold]")
            break
        elif choice == "Painel de Contas":
            dashboard_menu(bill_service, query_service)
        elif choice == "Nova Conta":
            new_bill_menu(bill_service)
        elif choice == "Analytics":
            analytics_menu(bill_service, analytics_service)
