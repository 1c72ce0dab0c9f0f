"""
JSON File Storage Implementation

One file per collection under a data directory (``transactions.json``,
``expenses.json``...). Files are human-readable and can be inspected or
backed up with ordinary tools.

Writes go to a sibling ``.tmp`` file which then replaces the target, so a
crash mid-write never leaves a truncated collection.
"""

import re
from pathlib import Path
from typing import Optional

import structlog

from partnerledger.services.storage.interface import (
    KeyValueStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


class JsonFileKeyValueStore(KeyValueStoreInterface):
    """File-backed key-value store."""

    def __init__(self, data_dir: Path):
        self._data_dir = Path(data_dir)

    def _path(self, name: str) -> Path:
        if not _SAFE_NAME.match(name):
            raise StorageError(f"Invalid collection name: {name!r}")
        return self._data_dir / f"{name}.json"

    async def load(self, name: str) -> Optional[str]:
        path = self._path(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    async def save(self, name: str, blob: str) -> None:
        path = self._path(name)
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(blob, encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

        logger.debug("collection_saved", name=name, path=str(path), size=len(blob))

    async def delete(self, name: str) -> bool:
        path = self._path(name)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e
