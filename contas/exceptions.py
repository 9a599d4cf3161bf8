"""Error taxonomy shared by the services, the stores and the CLI."""

from __future__ import annotations

from typing import Any


class ContasError(Exception):
    """Base exception; ``str(exc)`` is always safe to show to a user."""


class ValidationError(ContasError):
    """Raised when input to a mutation is invalid."""


class InvalidRecurrence(ValidationError):
    """Raised when a recurrence has ``count < 1`` or ``interval_months < 1``."""


class NotFoundError(ContasError):
    """Raised when an operation references an unknown bill or scope."""


class ConfigurationError(ContasError):
    """Raised when a required setting is missing."""


class PersistenceError(ContasError):
    """Raised when the backing store is unreachable or rejects a write."""

    def __init__(self, message: str, status: int | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.details = details

    def _haystack(self) -> str:
        parts = [str(self)]
        if isinstance(self.details, dict):
            parts.append(str(self.details.get("msg") or self.details.get("message") or ""))
        elif self.details is not None:
            parts.append(str(self.details))
        return " ".join(parts).lower()

    @property
    def already_exists(self) -> bool:
        return self.status == 422 and "already exists" in self._haystack()

    @property
    def not_linked(self) -> bool:
        hay = self._haystack()
        return self.status in (404, 422) and ("not found" in hay or "does not exist" in hay)


class NocoDBError(PersistenceError):
    """Raised for non-success responses from the NocoDB data API."""
