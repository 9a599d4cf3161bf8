import logging

from contas.settings import settings
from contas.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


def get_kv_store() -> KeyValueStore:
    if settings.store_backend == "memory":
        from contas.storage.memory import MemoryKeyValueStore

        logger.info("Using key-value store: memory")
        return MemoryKeyValueStore()

    from contas.storage.local import LocalKeyValueStore

    logger.info("Using key-value store: local path=%s", settings.local_store_path)
    return LocalKeyValueStore(settings.local_store_path)
