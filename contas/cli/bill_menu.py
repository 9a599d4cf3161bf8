from __future__ import annotations

import questionary
from rich.console import Console
from rich.table import Table

from contas.constants import format_month
from contas.dates import format_br_date, parse_external_date
from contas.exceptions import ContasError
from contas.models import format_brl, parse_brl
from contas.models.bill import Bill, BillDraft, BillStatus, Category, EntityRef, ProtocolPayload, Recurrence
from contas.models.query import ALL, FilterState, QueryResult, SearchMode, StatusFilter
from contas.repositories.base import EntityKind
from contas.services.bill_service import BillService
from contas.services.query_service import QueryService
from contas.services.status import bill_status

console = Console()

STATUS_DISPLAY = {
    BillStatus.PENDING: ("Pendente", "blue"),
    BillStatus.DUE_SOON: ("Vence em breve", "yellow"),
    BillStatus.OVERDUE: ("Vencida", "red"),
    BillStatus.PROTOCOLED: ("Protocolada", "green"),
}

STATUS_FILTER_CHOICES = {
    "Todas": StatusFilter.ALL,
    "Pendentes": StatusFilter.PENDING,
    "Vencidas": StatusFilter.OVERDUE,
    "Protocoladas": StatusFilter.PROTOCOLED,
}

SEARCH_MODE_CHOICES = {
    "Tudo": SearchMode.ALL,
    "Empresa": SearchMode.COMPANY,
    "Boleto": SearchMode.BOLETO,
    "Nota fiscal": SearchMode.INVOICE,
}

INTERVAL_CHOICES = {
    "Mensal": 1,
    "Bimestral": 2,
    "Trimestral": 3,
    "Semestral": 6,
    "Anual": 12,
}

SINGLE_DATE = "Data única"
DAY_OF_MONTH = "Todo mês no dia"


def _bill_choice(bill: Bill) -> str:
    return f"{bill.counterparty_label} - {bill.name} - {format_br_date(bill.due_date)} - {format_brl(bill.amount)}"


def _print_stats(bill_service: BillService) -> None:
    stats = bill_service.stats()
    console.print(
        f"  Total: [bold]{stats.total}[/bold]  "
        f"[blue]Pendentes: {stats.pending + stats.due_soon}[/blue]"
        + (f" [dim]({stats.due_soon} vencem em breve)[/dim]" if stats.due_soon else "")
        + f"  [red]Vencidas: {stats.overdue}[/red]"
        f"  [green]Protocoladas: {stats.protocoled}[/green]"
    )
    console.print(f"  Em aberto: [bold]{format_brl(stats.total_outstanding_amount)}[/bold]")


def _print_bills(result: QueryResult, query_service: QueryService) -> None:
    month = "Todos os meses" if result.resolved_month == ALL else format_month(result.resolved_month)
    table = Table(title=f"Contas ({month})")
    table.add_column("Empresa", style="bold")
    table.add_column("Conta")
    table.add_column("Categoria")
    table.add_column("Vencimento", justify="center")
    table.add_column("Valor", justify="right")
    table.add_column("Status", justify="center")
    table.add_column("NF")
    table.add_column("Boleto")

    now = query_service.context.clock.now()
    for bill in result.visible:
        label, color = STATUS_DISPLAY[bill_status(bill, now)]
        table.add_row(
            bill.counterparty_label,
            bill.name,
            bill.category_label,
            format_br_date(bill.due_date),
            format_brl(bill.amount),
            f"[{color}]{label}[/{color}]",
            bill.invoice_number or "-",
            bill.boleto_number or "-",
        )

    console.print()
    console.print(table)
    counts = result.counts
    console.print(
        f"  [dim]Todas: {counts.all} | Pendentes: {counts.pending} | "
        f"Vencidas: {counts.overdue} | Protocoladas: {counts.protocoled}[/dim]"
    )


def _load(bill_service: BillService) -> None:
    try:
        bill_service.load()
    except ContasError as e:
        console.print(f"[red]{e}[/red]")


def dashboard_menu(bill_service: BillService, query_service: QueryService) -> None:
    _load(bill_service)
    state = FilterState()

    while True:
        result = query_service.run(bill_service.bills, state)
        console.print()
        console.print("[bold]Painel de Contas[/bold]", style="cyan")
        _print_stats(bill_service)
        _print_bills(result, query_service)
        if state.search_text:
            console.print(f"  [dim]Busca: '{state.search_text}'[/dim]")
        console.print()

        choice = questionary.select(
            "Ações:",
            choices=[
                "Filtrar por status",
                "Filtrar por mês",
                "Filtrar por empresa",
                "Buscar",
                "Limpar busca",
                "Protocolar conta",
                "Excluir conta",
                "Recarregar",
                "Voltar",
            ],
        ).ask()

        if choice is None or choice == "Voltar":
            break
        elif choice == "Filtrar por status":
            picked = questionary.select("Status:", choices=list(STATUS_FILTER_CHOICES)).ask()
            if picked:
                state.status_filter = STATUS_FILTER_CHOICES[picked]
        elif choice == "Filtrar por mês":
            months = {format_month(m): m for m in result.month_options}
            picked = questionary.select("Mês:", choices=["Todos"] + list(months)).ask()
            if picked:
                state.month_filter = months.get(picked, ALL)
                state.counterparty_filter = ALL
        elif choice == "Filtrar por empresa":
            options = {f"{o.label} ({o.count})": o.key for o in result.counterparty_options}
            picked = questionary.select("Empresa:", choices=["Todas"] + list(options)).ask()
            if picked:
                state.counterparty_filter = options.get(picked, ALL)
        elif choice == "Buscar":
            mode = questionary.select("Buscar em:", choices=list(SEARCH_MODE_CHOICES)).ask()
            text = questionary.text("Texto:").ask()
            if mode and text is not None:
                state.search_mode = SEARCH_MODE_CHOICES[mode]
                state.search_text = text
        elif choice == "Limpar busca":
            state.search_text = ""
            state.search_mode = SearchMode.ALL
        elif choice == "Protocolar conta":
            protocol_bill_menu(result.visible, bill_service)
        elif choice == "Excluir conta":
            delete_bill_menu(result.visible, bill_service)
        elif choice == "Recarregar":
            _load(bill_service)


def _select_bill(bills: list[Bill], prompt: str) -> Bill | None:
    if not bills:
        console.print("[yellow]Nenhuma conta na lista.[/yellow]")
        return None
    choices = {_bill_choice(b): b for b in bills}
    picked = questionary.select(prompt, choices=list(choices) + ["Voltar"]).ask()
    if picked is None or picked == "Voltar":
        return None
    return choices[picked]


def protocol_bill_menu(bills: list[Bill], bill_service: BillService) -> None:
    open_bills = [b for b in bills if not b.is_protocoled]
    bill = _select_bill(open_bills, "Conta a protocolar:")
    if bill is None:
        return

    invoice = questionary.text("Número da NF (opcional):", default=bill.invoice_number or "").ask()
    boleto = questionary.text("Número do boleto (opcional):", default=bill.boleto_number or "").ask()

    try:
        bill_service.mark_protocoled(bill.id, ProtocolPayload(invoice_number=invoice, boleto_number=boleto))
    except ContasError as e:
        console.print(f"[red]{e}[/red]")
        return
    console.print(f"[green]Conta '{bill.display_name}' protocolada.[/green]")


def delete_bill_menu(bills: list[Bill], bill_service: BillService) -> None:
    bill = _select_bill(bills, "Conta a excluir:")
    if bill is None:
        return

    confirm = questionary.confirm(f"Tem certeza que deseja excluir '{bill.display_name}'?", default=False).ask()
    if not confirm:
        return

    try:
        bill_service.remove(bill.id)
    except ContasError as e:
        console.print(f"[red]{e}[/red]")
        return
    console.print("[green]Conta excluída.[/green]")


def _lookup(bill_service: BillService, kind: EntityKind) -> list[EntityRef]:
    try:
        return bill_service.list_entities(kind)
    except ContasError as e:
        console.print(f"[yellow]{e}[/yellow]")
        return []


def _ask_category(bill_service: BillService) -> tuple[Category | None, EntityRef | None]:
    refs = {r.label: r for r in _lookup(bill_service, EntityKind.CATEGORY) if r.label}
    if not refs:
        return None, None
    picked = questionary.select("Categoria:", choices=list(refs)).ask()
    ref = refs.get(picked)
    if ref is None:
        return None, None
    category = Category(ref.id) if ref.id in {c.value for c in Category} else None
    return category, ref


def _ask_counterparty(bill_service: BillService) -> EntityRef | None:
    refs = {r.label: r for r in _lookup(bill_service, EntityKind.COUNTERPARTY) if r.label}
    picked = questionary.select("Empresa / fornecedor:", choices=list(refs) + ["Outra", "Nenhuma"]).ask()
    if picked is None or picked == "Nenhuma":
        return None
    if picked == "Outra":
        label = (questionary.text("Nome da empresa:").ask() or "").strip()
        return EntityRef(label=label) if label else None
    return refs[picked]


def new_bill_menu(bill_service: BillService) -> None:
    console.print()
    console.print("[bold]Nova Conta[/bold]", style="cyan")

    name = questionary.text("Nome da conta:").ask()
    if not name:
        console.print("[yellow]Operação cancelada.[/yellow]")
        return

    description = questionary.text("Descrição (opcional):").ask() or ""

    while True:
        amount_str = questionary.text("Valor (ex: 450,00):").ask()
        if amount_str is None:
            console.print("[yellow]Operação cancelada.[/yellow]")
            return
        amount = parse_brl(amount_str)
        if amount is not None and amount > 0:
            break
        console.print("[red]Valor inválido. Tente novamente.[/red]")

    category, category_ref = _ask_category(bill_service)
    counterparty = _ask_counterparty(bill_service)

    mode = questionary.select("Vencimento:", choices=[SINGLE_DATE, DAY_OF_MONTH]).ask()
    if mode is None:
        console.print("[yellow]Operação cancelada.[/yellow]")
        return

    due_date = None
    due_day = None
    if mode == SINGLE_DATE:
        while True:
            raw = questionary.text("Data de vencimento (DD/MM/AAAA):").ask()
            due_date = parse_external_date((raw or "").replace("/", "-"))
            if due_date is not None:
                break
            console.print("[red]Data inválida. Use DD/MM/AAAA.[/red]")
    else:
        while True:
            raw = questionary.text("Dia do vencimento (1-31):").ask()
            if raw and raw.strip().isdigit() and 1 <= int(raw) <= 31:
                due_day = int(raw)
                break
            console.print("[red]Dia inválido. Informe um número de 1 a 31.[/red]")

    recurrence = None
    if questionary.confirm("Repetir esta conta?", default=mode == DAY_OF_MONTH).ask():
        interval = questionary.select("Frequência:", choices=list(INTERVAL_CHOICES)).ask()
        count = questionary.select("Quantidade de vencimentos:", choices=[str(n) for n in range(1, 13)]).ask()
        if interval and count:
            recurrence = Recurrence(interval_months=INTERVAL_CHOICES[interval], count=int(count))

    invoice = questionary.text("Número da NF (opcional):").ask() or None
    boleto = questionary.text("Número do boleto (opcional):").ask() or None

    draft = BillDraft(
        name=name,
        description=description,
        amount=amount,
        due_date=due_date,
        due_day=due_day,
        category=category,
        category_ref=category_ref,
        counterparty=counterparty,
        invoice_number=invoice,
        boleto_number=boleto,
    )

    try:
        created = bill_service.add(draft, recurrence)
    except ContasError as e:
        console.print(f"[red]{e}[/red]")
        return

    console.print()
    if len(created) == 1:
        console.print(f"[green bold]Conta '{name}' criada para {format_br_date(created[0].due_date)}.[/green bold]")
    else:
        console.print(
            f"[green bold]{len(created)} contas '{name}' criadas de "
            f"{format_br_date(created[0].due_date)} a {format_br_date(created[-1].due_date)}.[/green bold]"
        )
