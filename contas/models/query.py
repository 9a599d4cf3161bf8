from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from contas.models.bill import Bill

ALL = "all"
AUTO = "auto"


class StatusFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"
    OVERDUE = "overdue"
    PROTOCOLED = "protocoled"


class SearchMode(str, Enum):
    ALL = "all"
    COMPANY = "company"
    BOLETO = "boleto"
    INVOICE = "invoice"


class FilterState(BaseModel):
    status_filter: StatusFilter = StatusFilter.ALL
    month_filter: str = AUTO  # 'auto', 'all' or 'YYYY-MM'
    counterparty_filter: str = ALL  # 'all' or a normalized counterparty key
    search_text: str = ""
    search_mode: SearchMode = SearchMode.ALL


class FilterCounts(BaseModel):
    all: int = 0
    pending: int = 0
    overdue: int = 0
    protocoled: int = 0


class CounterpartyOption(BaseModel):
    key: str
    label: str
    count: int


class QueryResult(BaseModel):
    visible: list[Bill] = []
    counts: FilterCounts = FilterCounts()
    month_options: list[str] = []
    counterparty_options: list[CounterpartyOption] = []
    resolved_month: str = ALL
    resolved_counterparty: str = ALL
