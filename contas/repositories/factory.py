import logging

from contas.exceptions import ConfigurationError
from contas.repositories.base import BillStore
from contas.settings import settings

logger = logging.getLogger(__name__)


def get_bill_store() -> BillStore:
    backend = settings.store_backend

    if backend == "memory":
        from contas.repositories.memory import InMemoryBillStore

        logger.info("Using bill store: memory")
        return InMemoryBillStore()

    if backend == "local":
        from contas.repositories.local import LocalBillStore
        from contas.storage.factory import get_kv_store

        logger.info("Using bill store: local key=%s", settings.local_store_key)
        return LocalBillStore(get_kv_store(), settings.local_store_key)

    if backend == "sqlalchemy":
        from contas.db import get_connection
        from contas.repositories.sqlalchemy import SQLAlchemyBillStore

        logger.info("Using bill store: sqlalchemy")
        return SQLAlchemyBillStore(get_connection())

    if backend == "nocodb":
        from contas.repositories.nocodb import NocoDBBillStore, NocoDBClient, NocoDBConfig

        client = NocoDBClient(
            base_url=settings.require("nocodb_base_url"),
            api_token=settings.require("nocodb_api_token"),
            project_id=settings.require("nocodb_project_id"),
            timeout=settings.nocodb_timeout,
        )
        logger.info("Using bill store: nocodb base_url=%s", settings.nocodb_base_url)
        return NocoDBBillStore(client, NocoDBConfig.from_settings(settings), page_size=settings.nocodb_page_size)

    raise ConfigurationError(f"Unknown store backend: {backend} (CONTAS_STORE_BACKEND)")
