"""
Audit log storage on top of the key-value store.

All events live in the ``auditLog`` collection as a JSON array, appended
in arrival order. Suitable for a personal ledger's volume; the whole log
is read and rewritten on each append.
"""

import json
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from partnerledger.models.audit import AuditEvent
from partnerledger.services.storage.interface import (
    AUDIT_LOG,
    AuditStorageInterface,
    KeyValueStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class KeyValueAuditStorage(AuditStorageInterface):
    """Append-only audit log persisted as one collection."""

    def __init__(
        self,
        store: KeyValueStoreInterface,
        collection: str = AUDIT_LOG,
        max_events: Optional[int] = 5000,
    ):
        """
        Args:
            store: Key-value store to persist into
            collection: Collection name for the log
            max_events: Oldest events beyond this count are dropped on append
                (None keeps everything)
        """
        self._store = store
        self._collection = collection
        self._max_events = max_events

    async def _load_raw(self) -> list[dict]:
        blob = await self._store.load(self._collection)
        if not blob:
            return []
        try:
            data = json.loads(blob)
        except json.JSONDecodeError as e:
            raise StorageError(f"Audit log is not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise StorageError("Audit log must be a JSON array")
        return data

    async def _load_events(self) -> list[AuditEvent]:
        events = []
        for raw in await self._load_raw():
            try:
                events.append(AuditEvent.model_validate(raw))
            except ValidationError:
                logger.warning("audit_event_unreadable", event=raw)
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        raw_events = await self._load_raw()
        raw_events.append(event.model_dump(mode="json"))
        if self._max_events is not None and len(raw_events) > self._max_events:
            raw_events = raw_events[-self._max_events:]
        await self._store.save(self._collection, json.dumps(raw_events))
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in await self._load_events()
            if e.correlation_id == correlation_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in await self._load_events()
            if e.entity_type == entity_type and e.entity_id == str(entity_id)
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = await self._load_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
