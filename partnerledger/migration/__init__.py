"""Schema migration for persisted ledger collections."""

from partnerledger.migration.migrator import (
    MIGRATED_MARKERS,
    LedgerMigrator,
    MigrationReport,
    MigrationResult,
    RecordState,
    SkippedRecord,
    detect_state,
    dump_records,
)

__all__ = [
    "MIGRATED_MARKERS",
    "LedgerMigrator",
    "MigrationReport",
    "MigrationResult",
    "RecordState",
    "SkippedRecord",
    "detect_state",
    "dump_records",
]
