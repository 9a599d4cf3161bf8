import logging
from pathlib import Path
from urllib.parse import quote

from contas.exceptions import PersistenceError
from contas.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


class LocalKeyValueStore(KeyValueStore):
    """One file per key under ``base_dir``, named by the percent-encoded key."""

    def __init__(self, base_dir: str) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            logger.debug("Key %s not found in %s", key, self.base_dir)
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Could not read '{key}' from local storage") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            path.write_text(value, encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Could not write '{key}' to local storage") from e
        logger.debug("Saved %s (%d chars) to %s", key, len(value), path.resolve())

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Could not delete '{key}' from local storage") from e
        logger.debug("Deleted %s from %s", key, self.base_dir)
