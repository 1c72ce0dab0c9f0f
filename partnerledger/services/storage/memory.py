"""In-memory key-value store, used by tests and throwaway sessions."""

from typing import Optional

from partnerledger.services.storage.interface import KeyValueStoreInterface


class InMemoryKeyValueStore(KeyValueStoreInterface):
    """Keeps blobs in a dict. Nothing survives the process."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._blobs: dict[str, str] = dict(initial or {})

    async def load(self, name: str) -> Optional[str]:
        return self._blobs.get(name)

    async def save(self, name: str, blob: str) -> None:
        self._blobs[name] = blob

    async def delete(self, name: str) -> bool:
        return self._blobs.pop(name, None) is not None

    def snapshot(self) -> dict[str, str]:
        """Copy of everything stored (for assertions)."""
        return dict(self._blobs)
