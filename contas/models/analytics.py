from __future__ import annotations

from pydantic import BaseModel

from contas.models.bill import Bill, BillStatus


class StatusSlice(BaseModel):
    status: BillStatus
    label: str
    count: int


class GroupTotal(BaseModel):
    name: str
    total: float = 0.0
    pending: float = 0.0


class MonthlyBucket(BaseModel):
    key: str  # 'YYYY-MM'
    label: str
    total: float = 0.0
    paid: float = 0.0
    pending: float = 0.0


class AnalyticsReport(BaseModel):
    status_distribution: list[StatusSlice] = []
    group_totals: list[GroupTotal] = []
    monthly_timeline: list[MonthlyBucket] = []
    upcoming: list[Bill] = []
    overdue: list[Bill] = []
    overdue_amount: float = 0.0
    upcoming_amount: float = 0.0
    protocoled_amount: float = 0.0
