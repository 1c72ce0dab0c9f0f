"""
Audit Models for partnerledger

Every significant ledger action is logged for audit purposes.
This provides:
1. Complete traceability of all mutations
2. Debugging information when a derived figure looks wrong
3. A record of which policy and equity settings were in force, and when

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every public ledger operation has its own event type.
    """
    # Income
    INCOME_RECORDED = "income_recorded"
    INCOME_RECALCULATED = "income_recalculated"
    INCOME_DELETED = "income_deleted"
    POLICY_SNAPSHOT_BACKFILLED = "policy_snapshot_backfilled"

    # Expenses
    EXPENSE_RECORDED = "expense_recorded"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"

    # Donations
    PAYOUT_RECORDED = "payout_recorded"
    PAYOUT_UPDATED = "payout_updated"
    PAYOUT_DELETED = "payout_deleted"
    PAYOUT_REJECTED = "payout_rejected"

    # Configuration
    DONATION_POLICY_CHANGED = "donation_policy_changed"
    EQUITY_CONFIG_CHANGED = "equity_config_changed"
    EQUITY_CONFIG_REJECTED = "equity_config_rejected"

    # Bulk operations
    LEDGER_LOADED = "ledger_loaded"
    DATA_IMPORTED = "data_imported"
    IMPORT_REJECTED = "import_rejected"
    DATA_EXPORTED = "data_exported"
    RECORDS_MIGRATED = "records_migrated"
    RECORD_SKIPPED = "record_skipped"

    # Data quality
    DATA_QUALITY_WARNING = "data_quality_warning"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'income', 'expense', 'payout')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., everything done by one import)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.income_recorded(entry_id, source_id, gross, net)
        event = AuditEventBuilder.payout_rejected(amount, available)
    """

    @staticmethod
    def income_recorded(
        entry_id: int,
        source_id: str,
        gross: float,
        net_profit: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_RECORDED,
            entity_type="income",
            entity_id=str(entry_id),
            correlation_id=correlation_id,
            description=f"Income recorded from {source_id}: gross {gross:,.2f}",
            details={
                "source_id": source_id,
                "gross": gross,
                "net_profit": net_profit,
            },
            is_user_action=True,
        )

    @staticmethod
    def income_recalculated(
        entry_id: int,
        backfilled: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.POLICY_SNAPSHOT_BACKFILLED
                if backfilled
                else AuditEventType.INCOME_RECALCULATED
            ),
            entity_type="income",
            entity_id=str(entry_id),
            correlation_id=correlation_id,
            description=(
                "Income edited; live policy saved as its snapshot"
                if backfilled
                else "Income edited and recalculated with its own snapshot"
            ),
            details={"backfilled": backfilled},
            is_user_action=True,
        )

    @staticmethod
    def entry_deleted(
        entity_type: str,
        entry_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = {
            "income": AuditEventType.INCOME_DELETED,
            "expense": AuditEventType.EXPENSE_DELETED,
            "payout": AuditEventType.PAYOUT_DELETED,
        }[entity_type]
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=str(entry_id),
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {entry_id} deleted",
            is_user_action=True,
        )

    @staticmethod
    def expense_recorded(
        entry_id: int,
        amount: float,
        by_whom: str,
        expense_type: str,
        updated: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.EXPENSE_UPDATED if updated
                else AuditEventType.EXPENSE_RECORDED
            ),
            entity_type="expense",
            entity_id=str(entry_id),
            correlation_id=correlation_id,
            description=f"{expense_type.capitalize()} expense of {amount:,.2f} by {by_whom}",
            details={
                "amount": amount,
                "by_whom": by_whom,
                "type": expense_type,
            },
            is_user_action=True,
        )

    @staticmethod
    def payout_recorded(
        entry_id: int,
        amount: float,
        paid_to: str,
        updated: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.PAYOUT_UPDATED if updated
                else AuditEventType.PAYOUT_RECORDED
            ),
            entity_type="payout",
            entity_id=str(entry_id),
            correlation_id=correlation_id,
            description=f"Donation payout of {amount:,.2f} to {paid_to or 'unspecified'}",
            details={"amount": amount, "paid_to": paid_to},
            is_user_action=True,
        )

    @staticmethod
    def payout_rejected(
        amount: float,
        available: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYOUT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="payout",
            correlation_id=correlation_id,
            description="Donation payout exceeds the available fund",
            details={"amount": amount, "available": available},
            error_code="insufficient_donation_fund",
            is_user_action=True,
        )

    @staticmethod
    def donation_policy_changed(
        previous: dict,
        current: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DONATION_POLICY_CHANGED,
            entity_type="config",
            correlation_id=correlation_id,
            description="Live donation policy changed (existing entries keep their snapshots)",
            details={"previous": previous, "current": current},
            is_user_action=True,
        )

    @staticmethod
    def equity_config_changed(
        partners: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EQUITY_CONFIG_CHANGED,
            entity_type="config",
            correlation_id=correlation_id,
            description=f"Equity configuration applied for {len(partners)} partners",
            details={"partners": partners},
            is_user_action=True,
        )

    @staticmethod
    def equity_config_rejected(
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EQUITY_CONFIG_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="config",
            correlation_id=correlation_id,
            description="Equity configuration rejected",
            error_code="invalid_equity_config",
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def ledger_loaded(
        counts: dict[str, int],
        migrated: int,
        skipped: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.RECORDS_MIGRATED if migrated
                else AuditEventType.LEDGER_LOADED
            ),
            severity=AuditSeverity.WARNING if skipped else AuditSeverity.INFO,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Ledger loaded: {migrated} records migrated, {skipped} skipped",
            details={"counts": counts, "migrated": migrated, "skipped": skipped},
        )

    @staticmethod
    def record_skipped(
        collection: str,
        index: int,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type=collection,
            correlation_id=correlation_id,
            description=f"Unreadable record #{index} in {collection} skipped",
            error_code="malformed_record",
            error_message=reason,
        )

    @staticmethod
    def data_imported(
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_IMPORTED,
            entity_type="ledger",
            correlation_id=correlation_id,
            description="Ledger replaced by bulk import",
            details={"counts": counts},
            is_user_action=True,
        )

    @staticmethod
    def import_rejected(
        errors: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Import rejected with {len(errors)} issues",
            details={"errors": errors},
            error_code="import_rejected",
            is_user_action=True,
        )

    @staticmethod
    def data_exported(
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_EXPORTED,
            entity_type="ledger",
            correlation_id=correlation_id,
            description="Ledger exported",
            details={"counts": counts},
            is_user_action=True,
        )

    @staticmethod
    def data_quality_warning(
        entity_type: str,
        entity_id: Optional[str],
        warnings: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_QUALITY_WARNING,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{len(warnings)} data-quality warnings",
            details={"warnings": warnings},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
