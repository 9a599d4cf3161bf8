from __future__ import annotations

import questionary
from rich.console import Console
from rich.table import Table

from contas.dates import format_br_date
from contas.exceptions import ContasError
from contas.models import format_brl
from contas.models.analytics import AnalyticsReport
from contas.models.bill import Bill
from contas.services.analytics_service import GROUP_BY_CATEGORY, GROUP_BY_COUNTERPARTY, AnalyticsService
from contas.services.bill_service import BillService

console = Console()

GROUP_CHOICES = {
    "Por categoria": GROUP_BY_CATEGORY,
    "Por empresa": GROUP_BY_COUNTERPARTY,
}

MAX_LISTED = 8


def _bill_list_table(title: str, bills: list[Bill]) -> Table:
    table = Table(title=title)
    table.add_column("Empresa", style="bold")
    table.add_column("Vencimento", justify="center")
    table.add_column("Valor", justify="right")
    for bill in bills[:MAX_LISTED]:
        table.add_row(bill.counterparty_label, format_br_date(bill.due_date), format_brl(bill.amount))
    if len(bills) > MAX_LISTED:
        table.caption = f"+ {len(bills) - MAX_LISTED} mais contas"
    return table


def print_report(report: AnalyticsReport) -> None:
    console.print(
        f"  [red]Vencidas: {len(report.overdue)} ({format_brl(report.overdue_amount)})[/red]  "
        f"[yellow]Próximos 30 dias: {len(report.upcoming)} ({format_brl(report.upcoming_amount)})[/yellow]  "
        f"[green]Protocolado: {format_brl(report.protocoled_amount)}[/green]"
    )

    status_table = Table(title="Distribuição por status")
    status_table.add_column("Status")
    status_table.add_column("Contas", justify="right")
    for slice_ in report.status_distribution:
        status_table.add_row(slice_.label, str(slice_.count))
    console.print(status_table)

    group_table = Table(title="Totais")
    group_table.add_column("Grupo", style="bold")
    group_table.add_column("Total", justify="right")
    group_table.add_column("Pendente", justify="right")
    for group in report.group_totals:
        group_table.add_row(group.name, format_brl(group.total), format_brl(group.pending))
    console.print(group_table)

    timeline = Table(title="Evolução mensal")
    timeline.add_column("Mês")
    timeline.add_column("Total", justify="right")
    timeline.add_column("Protocolado", justify="right")
    timeline.add_column("Pendente", justify="right")
    for bucket in report.monthly_timeline:
        timeline.add_row(bucket.label, format_brl(bucket.total), format_brl(bucket.paid), format_brl(bucket.pending))
    console.print(timeline)

    if report.upcoming:
        console.print(_bill_list_table("Próximos vencimentos", report.upcoming))
    if report.overdue:
        console.print(_bill_list_table("Contas vencidas", report.overdue))


def analytics_menu(bill_service: BillService, analytics_service: AnalyticsService) -> None:
    try:
        bills = bill_service.load()
    except ContasError as e:
        console.print(f"[red]{e}[/red]")
        bills = bill_service.bills

    if not bills:
        console.print("[yellow]Nenhuma conta cadastrada.[/yellow]")
        return

    group_by = GROUP_BY_CATEGORY
    while True:
        console.print()
        console.print("[bold]Analytics[/bold]", style="cyan")
        print_report(analytics_service.report(bills, group_by))
        console.print()

        choice = questionary.select("Agrupar totais:", choices=list(GROUP_CHOICES) + ["Voltar"]).ask()
        if choice is None or choice == "Voltar":
            break
        group_by = GROUP_CHOICES[choice]
