from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, field_validator

from contas.constants import CATEGORY_LABELS
from contas.dates import month_key, parse_external_date


class Category(str, Enum):
    INTERNET = "internet"
    TELEFONE = "telefone"
    SOFTWARE = "software"
    HARDWARE = "hardware"
    OUTROS = "outros"


class BillStatus(str, Enum):
    PENDING = "pending"
    DUE_SOON = "due-soon"
    OVERDUE = "overdue"
    PROTOCOLED = "protocoled"


class EntityRef(BaseModel):
    """A linked category or counterparty record, as shown to the user."""

    id: str | None = None
    label: str = ""


class Bill(BaseModel):
    id: str = ""
    name: str = ""
    description: str = ""
    amount: float = 0.0
    due_date: date | None = None  # None when the stored value could not be parsed
    category: Category | None = None
    category_ref: EntityRef | None = None
    counterparty: EntityRef | None = None
    is_protocoled: bool = False
    protocoled_at: datetime | None = None
    invoice_number: str | None = None
    boleto_number: str | None = None
    series_id: str | None = None
    competency: str | None = None  # 'YYYY-MM'
    created_at: datetime | None = None

    @field_validator("due_date", mode="before")
    @classmethod
    def _lenient_due_date(cls, value: object) -> date | None:
        return parse_external_date(value)

    @property
    def month_key(self) -> str | None:
        return month_key(self.due_date) if self.due_date else None

    @property
    def display_name(self) -> str:
        return self.name or self.counterparty_label

    @property
    def counterparty_label(self) -> str:
        if self.counterparty and self.counterparty.label:
            return self.counterparty.label
        return self.name or self.description or f"Conta {self.id[:6]}"

    @property
    def category_label(self) -> str:
        if self.category_ref and self.category_ref.label:
            return self.category_ref.label
        if self.category is not None:
            return CATEGORY_LABELS[self.category.value]
        return CATEGORY_LABELS["outros"]


class BillDraft(BaseModel):
    """User input for a new bill: either a single ``due_date`` or a monthly ``due_day``."""

    name: str
    description: str = ""
    amount: float
    due_date: date | None = None
    due_day: int | None = None
    category: Category | None = None
    category_ref: EntityRef | None = None
    counterparty: EntityRef | None = None
    invoice_number: str | None = None
    boleto_number: str | None = None


class Recurrence(BaseModel):
    interval_months: int = 1
    count: int = 1


class RecurrenceSeries(BaseModel):
    id: str
    start_date: date
    end_date: date
    interval_months: int
    count: int
    frequency: str
    anchor_day: int


class ProtocolPayload(BaseModel):
    invoice_number: str | None = None
    boleto_number: str | None = None


class BillPatch(BaseModel):
    """Fields changed by a protocol action; unset fields are left untouched by stores."""

    is_protocoled: bool | None = None
    protocoled_at: datetime | None = None
    invoice_number: str | None = None
    boleto_number: str | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class BillStats(BaseModel):
    total: int = 0
    pending: int = 0
    due_soon: int = 0
    overdue: int = 0
    protocoled: int = 0
    total_outstanding_amount: float = 0.0
