from abc import ABC, abstractmethod
from enum import Enum

from contas.models.bill import Bill, BillPatch, EntityRef, RecurrenceSeries

DEFAULT_SCOPE = "default"


class RelationKind(str, Enum):
    SCOPE_BILLS = "scope_bills"
    SCOPE_CATEGORIES = "scope_categories"
    SCOPE_COUNTERPARTIES = "scope_counterparties"
    BILL_SCOPE = "bill_scope"
    BILL_CATEGORY = "bill_category"
    BILL_COUNTERPARTY = "bill_counterparty"
    BILL_PERIODS = "bill_periods"
    SERIES_BILL = "series_bill"
    SERIES_CATEGORY = "series_category"
    SERIES_COUNTERPARTY = "series_counterparty"
    SERIES_PERIODS = "series_periods"
    PERIOD_SERIES = "period_series"


class EntityKind(str, Enum):
    CATEGORY = "category"
    COUNTERPARTY = "counterparty"


class BillStore(ABC):
    """Capability set every backing store implements.

    Failures talking to the backend are raised as ``PersistenceError``.
    """

    @abstractmethod
    def resolve_scope(self, owner: str) -> str | None:
        """Return the scope id owning ``owner``'s bills, or None if there is none."""
        ...

    @abstractmethod
    def list_bills(self, scope: str) -> list[Bill]: ...

    @abstractmethod
    def create_bill(self, scope: str, bill: Bill) -> str: ...

    @abstractmethod
    def create_bill_batch(
        self,
        scope: str,
        bills: list[Bill],
        series: RecurrenceSeries | None = None,
    ) -> list[str]:
        """Persist ``bills`` and return their ids in the same order."""
        ...

    @abstractmethod
    def update_bill(self, bill_id: str, patch: BillPatch) -> None: ...

    @abstractmethod
    def delete_bill(self, bill_id: str) -> None: ...

    @abstractmethod
    def link_entities(self, parent_id: str, kind: RelationKind, child_ids: list[str]) -> None:
        """Link children to a parent; re-linking an existing pair is a no-op."""
        ...

    @abstractmethod
    def list_entities(self, scope: str, kind: EntityKind) -> list[EntityRef]: ...
