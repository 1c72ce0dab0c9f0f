"""
Storage Services Package

Provides the abstract key-value store interface and its implementations
(in-memory, JSON files, Google Sheets), plus the audit log store.
"""

from partnerledger.services.storage.interface import (
    AUDIT_LOG,
    COLLECTIONS,
    DONATION_PAYOUTS,
    EXPENSES,
    LEDGER_CONFIG,
    TRANSACTIONS,
    AuditStorageInterface,
    KeyValueStoreInterface,
    NotFoundError,
    StorageError,
    StoreConnectionError,
)
from partnerledger.services.storage.memory import InMemoryKeyValueStore
from partnerledger.services.storage.json_file import JsonFileKeyValueStore
from partnerledger.services.storage.audit_store import KeyValueAuditStorage
from partnerledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
)

__all__ = [
    # Collection names
    "AUDIT_LOG",
    "COLLECTIONS",
    "DONATION_PAYOUTS",
    "EXPENSES",
    "LEDGER_CONFIG",
    "TRANSACTIONS",
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStoreInterface",
    # Exceptions
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
    # Implementations
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueAuditStorage",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsKeyValueStore",
]
