"""Seed the configured store with demo bills for local development.

Usage:
    python -m contas.scripts.seed
"""

from __future__ import annotations

import random
from datetime import timedelta

from faker import Faker
from rich.console import Console
from rich.table import Table

from contas.dates import format_br_date
from contas.db import initialize_db
from contas.logging import configure_logging
from contas.models import format_brl
from contas.models.bill import Bill, BillDraft, Category, EntityRef, ProtocolPayload, Recurrence
from contas.repositories.factory import get_bill_store
from contas.services.bill_service import BillService
from contas.services.session import SessionContext
from contas.settings import settings
from contas.storage.factory import get_kv_store

console = Console()
fake = Faker("pt_BR")

# (name, counterparty, amount, days from today, category, protocoled)
SINGLE_BILLS = [
    ("Internet Fibra 500MB", "Vivo Fibra", 450.00, 2, Category.INTERNET, False),
    ("Licenças Office", "Microsoft 365", 2500.00, -3, Category.SOFTWARE, False),
    ("Plano corporativo", "Claro Móvel", 890.00, 10, Category.TELEFONE, False),
    ("Servidores cloud", "AWS", 3200.00, -1, Category.SOFTWARE, True),
]

# (name, counterparty, amount, due day, category, interval months, count)
RECURRING_BILLS = [
    ("Link dedicado", "Embratel", 1299.90, 31, Category.INTERNET, 1, 6),
    ("Suporte impressoras", "Simpress", 780.00, 15, Category.HARDWARE, 1, 6),
    ("Antivírus", "Kaspersky", 2400.00, 5, Category.SOFTWARE, 12, 2),
    ("Manutenção nobreaks", fake.company(), 960.00, 20, Category.HARDWARE, 3, 4),
]


def _boleto_number() -> str:
    return fake.numerify("#####.##### #####.###### #####.###### # ##############")


def _create_single_bills(bill_service: BillService) -> list[Bill]:
    console.print("[cyan]Creating single bills...[/cyan]")
    today = bill_service.context.today()
    created: list[Bill] = []

    for name, company, amount, offset, category, protocoled in SINGLE_BILLS:
        draft = BillDraft(
            name=name,
            description=f"Conta de {category.value}",
            amount=amount,
            due_date=today + timedelta(days=offset),
            category=category,
            counterparty=EntityRef(label=company),
        )
        bill = bill_service.add(draft)[0]
        if protocoled:
            bill = bill_service.mark_protocoled(
                bill.id,
                ProtocolPayload(invoice_number=fake.numerify("######"), boleto_number=_boleto_number()),
            )
        created.append(bill)

    console.print(f"[green]{len(created)} single bills created.[/green]\n")
    return created


def _create_recurring_bills(bill_service: BillService) -> list[Bill]:
    console.print("[cyan]Creating recurring bills...[/cyan]")
    created: list[Bill] = []

    for name, company, amount, day, category, interval, count in RECURRING_BILLS:
        draft = BillDraft(
            name=name,
            amount=amount,
            due_day=day,
            category=category,
            counterparty=EntityRef(label=company),
            boleto_number=_boleto_number() if random.random() > 0.5 else None,
        )
        bills = bill_service.add(draft, Recurrence(interval_months=interval, count=count))
        console.print(f"  [bold]{name}[/bold] - {len(bills)} occurrences, day {day}")
        created.extend(bills)

    console.print(f"[green]{len(created)} recurring occurrences created.[/green]\n")
    return created


def _print_summary(bills: list[Bill]) -> None:
    table = Table(title="Bills seeded")
    table.add_column("Company", style="bold")
    table.add_column("Bill")
    table.add_column("Due date")
    table.add_column("Amount", justify="right")
    table.add_column("Protocoled")

    for bill in sorted(bills, key=lambda b: b.due_date):
        table.add_row(
            bill.counterparty_label,
            bill.name,
            format_br_date(bill.due_date),
            format_brl(bill.amount),
            "[green]yes[/green]" if bill.is_protocoled else "-",
        )
    console.print(table)


def seed() -> None:
    context = SessionContext(get_bill_store(), get_kv_store(), settings.owner_email)
    bill_service = BillService(context)

    console.print(f"[bold]Seeding store '{settings.store_backend}' for scope {context.scope_id}[/bold]\n")
    bills = _create_single_bills(bill_service) + _create_recurring_bills(bill_service)
    _print_summary(bills)

    stats = bill_service.stats()
    console.print(
        f"\n[bold green]Done:[/bold green] {stats.total} bills, "
        f"{stats.overdue} overdue, outstanding {format_brl(stats.total_outstanding_amount)}"
    )


if __name__ == "__main__":
    configure_logging()
    if settings.store_backend == "sqlalchemy":
        initialize_db()
    seed()
