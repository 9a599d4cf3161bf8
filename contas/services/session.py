from __future__ import annotations

import logging
from datetime import date

from contas.clock import Clock
from contas.dates import to_local_date
from contas.exceptions import NotFoundError
from contas.repositories.base import BillStore
from contas.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

SCOPE_CACHE_PREFIX = "scope-id"


def _cache_key(owner: str) -> str:
    return f"{SCOPE_CACHE_PREFIX}:{owner.strip().lower()}"


class SessionContext:
    """Per-session state shared by the services: the owner, their scope and the clock."""

    def __init__(self, store: BillStore, kv: KeyValueStore, owner: str, clock: Clock | None = None) -> None:
        self.store = store
        self.kv = kv
        self.owner = owner
        self.clock = clock or Clock()
        self._scope_id: str | None = None

    @property
    def scope_id(self) -> str:
        if self._scope_id is not None:
            return self._scope_id

        cached = self.kv.get(_cache_key(self.owner))
        if cached:
            logger.debug("Scope for %s restored from cache", self.owner)
            self._scope_id = cached
            return cached

        scope = self.store.resolve_scope(self.owner)
        if not scope:
            raise NotFoundError(f"No sector registered for {self.owner}")
        self.kv.set(_cache_key(self.owner), scope)
        self._scope_id = scope
        logger.info("Resolved scope %s for %s", scope, self.owner)
        return scope

    def invalidate(self) -> None:
        self._scope_id = None
        self.kv.delete(_cache_key(self.owner))
        logger.debug("Scope cache cleared for %s", self.owner)

    def today(self) -> date:
        return to_local_date(self.clock.now())
