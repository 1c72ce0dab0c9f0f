"""
Abstract Storage Interface

DESIGN DECISION: The ledger persists each collection as one named blob
(a JSON document) in a key-value store. This allows us to:
1. Keep the local JSON-file store, Google Sheets and in-memory tests
   behind the same two calls
2. Replace a whole collection atomically from the ledger's point of view
3. Keep business logic decoupled from storage implementation

The interface is intentionally tiny - load and save a named blob.
Collection names used by the ledger are listed in COLLECTIONS.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from partnerledger.models.audit import AuditEvent


TRANSACTIONS = "transactions"
EXPENSES = "expenses"
DONATION_PAYOUTS = "donationPayouts"
LEDGER_CONFIG = "ledgerConfig"
AUDIT_LOG = "auditLog"

COLLECTIONS = (TRANSACTIONS, EXPENSES, DONATION_PAYOUTS, LEDGER_CONFIG)


class KeyValueStoreInterface(ABC):
    """
    Abstract interface for the persistent key-value store.

    Any storage implementation (JSON files, Google Sheets, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def load(self, name: str) -> Optional[str]:
        """
        Load a named blob.

        Args:
            name: Collection name (e.g. 'transactions')

        Returns:
            The stored blob, or None if nothing was ever saved under name

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def save(self, name: str, blob: str) -> None:
        """
        Save a named blob, replacing any previous value.

        Args:
            name: Collection name
            blob: Serialized collection (JSON text)

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """
        Delete a named blob.

        Returns:
            True if something was deleted
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one import).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'income', 'payout')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class StoreConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
