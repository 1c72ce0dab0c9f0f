"""
Migration State Machine

Persisted income records are in one of two states:

    LEGACY_FLAT ──migrate──▶ MIGRATED

A record is MIGRATED when it carries all of the marker fields
(``sourceId``, ``policySnapshot``, ``derived``). Anything else is
LEGACY_FLAT and is upgraded field by field:

- ``source`` / ``incomeSourceId`` → ``sourceId``; a full inline source
  object is kept as ``sourceSnapshot``
- ``amountUSD`` → ``rawAmount``; domestic ``amount`` → ``rawAmount`` at rate 1
- ``calculations`` → ``derived``; the stored figures are kept exactly, and
  the scalar ``partnerShare`` becomes a share map using the equity config
  given to the migrator
- ``donationConfigSnapshot`` → ``policySnapshot``; missing snapshots get
  LEGACY_DEFAULT_POLICY, never the live policy

Expenses saved before expense types existed become ``personal``.

DESIGN DECISION: Migration is idempotent. MIGRATED records are only
parsed, never rewritten, so migrating already-migrated data produces
byte-identical JSON. Records that cannot be read in any known shape are
skipped and reported, and loading continues.
"""

from enum import Enum
from typing import Any, Callable, Optional, TypeVar

import structlog
from pydantic import BaseModel, Field, ValidationError

from partnerledger.engine import equity as equity_model
from partnerledger.engine.errors import MalformedRecord
from partnerledger.models.legacy import (
    LEGACY_DEFAULT_POLICY,
    LegacyExpenseRecord,
    LegacyIncomeRecord,
)
from partnerledger.models.ledger import (
    DerivedAmounts,
    DonationPayout,
    ExpenseEntry,
    ExpenseType,
    IncomeEntry,
    PartnerEquityConfig,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")

MIGRATED_MARKERS = ("sourceId", "policySnapshot", "derived")


class RecordState(str, Enum):
    """Migration state of a persisted income record."""
    LEGACY_FLAT = "legacy-flat"
    MIGRATED = "migrated"


def detect_state(raw: dict[str, Any]) -> RecordState:
    """Classify a raw income record by its marker fields."""
    if all(raw.get(marker) is not None for marker in MIGRATED_MARKERS):
        return RecordState.MIGRATED
    return RecordState.LEGACY_FLAT


class SkippedRecord(BaseModel):
    """A stored record that could not be read and was left out."""

    collection: str = Field(..., description="Collection the record belongs to")
    index: int = Field(..., description="Position of the record in its collection")
    reason: str = Field(..., description="Why the record could not be read")


class MigrationReport(BaseModel):
    """What a migration pass did."""

    migrated: dict[str, int] = Field(
        default_factory=dict,
        description="Records upgraded from a legacy shape, per collection"
    )
    unchanged: dict[str, int] = Field(
        default_factory=dict,
        description="Records already in the current shape, per collection"
    )
    malformed: list[SkippedRecord] = Field(
        default_factory=list,
        description="Records skipped because they could not be read"
    )

    @property
    def migrated_count(self) -> int:
        return sum(self.migrated.values())

    @property
    def skipped_count(self) -> int:
        return len(self.malformed)

    @property
    def changed(self) -> bool:
        """True when the persisted data should be written back."""
        return self.migrated_count > 0 or self.skipped_count > 0


class MigrationResult(BaseModel):
    """Migrated collections plus the report."""

    transactions: list[IncomeEntry] = Field(default_factory=list)
    expenses: list[ExpenseEntry] = Field(default_factory=list)
    donation_payouts: list[DonationPayout] = Field(default_factory=list)
    report: MigrationReport = Field(default_factory=MigrationReport)


def _bump(bucket: dict[str, int], collection: str) -> None:
    bucket[collection] = bucket.get(collection, 0) + 1


def _reason(error: Exception) -> str:
    if isinstance(error, ValidationError):
        first = error.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        return f"{location}: {first['msg']}" if location else first["msg"]
    return str(error)


class LedgerMigrator:
    """
    Upgrades persisted collections to the current record shapes.

    Usage:
        migrator = LedgerMigrator(equity_config)
        result = migrator.migrate(raw_transactions, raw_expenses, raw_payouts)
    """

    def __init__(
        self,
        equity: PartnerEquityConfig,
        ledger_currency: str = "PKR",
    ):
        """
        Args:
            equity: Equity config used to expand legacy scalar partner
                shares into share maps
            ledger_currency: Currency that marks a legacy entry as domestic
        """
        self._equity = equity
        self._ledger_currency = ledger_currency.upper()

    # -------------------------------------------------------------------------
    # Single records
    # -------------------------------------------------------------------------

    def migrate_income(self, raw: Any, index: int = 0) -> tuple[IncomeEntry, bool]:
        """
        Migrate one income record.

        Returns:
            (entry, upgraded) where upgraded is False for records that were
            already in the current shape

        Raises:
            MalformedRecord: the record cannot be read in any known shape
        """
        if not isinstance(raw, dict):
            raise MalformedRecord("transactions", index, "record is not an object")

        try:
            if detect_state(raw) == RecordState.MIGRATED:
                return IncomeEntry.model_validate(raw), False
            legacy = LegacyIncomeRecord.model_validate(raw)
            return self._upgrade_income(legacy), True
        except (ValidationError, ValueError) as e:
            raise MalformedRecord("transactions", index, _reason(e)) from e

    def _upgrade_income(self, legacy: LegacyIncomeRecord) -> IncomeEntry:
        currency = (legacy.currency or "USD").upper()
        domestic = currency == self._ledger_currency and bool(legacy.amount)

        if domestic:
            raw_amount = legacy.amount
            conversion_rate = 1.0
        else:
            raw_amount = legacy.raw_amount if legacy.raw_amount is not None else legacy.amount_usd
            conversion_rate = legacy.conversion_rate
        if raw_amount is None:
            raise ValueError("record has no amount")
        if conversion_rate is None:
            raise ValueError("record has no conversion rate")

        if legacy.derived is not None:
            derived = legacy.derived
        else:
            calc = legacy.calculations
            distributable = calc.partner_share if calc.partner_share is not None else calc.net_profit
            derived = DerivedAmounts(
                fee=calc.fee_pkr,
                gross=calc.gross_pkr,
                charity_amount=calc.charity_amount,
                tax_amount=calc.tax_amount,
                net_profit=calc.net_profit,
                partner_shares=equity_model.shares(distributable, self._equity),
            )

        policy = (
            legacy.policy_snapshot
            or legacy.donation_config_snapshot
            or LEGACY_DEFAULT_POLICY.model_copy(deep=True)
        )

        return IncomeEntry(
            id=legacy.id,
            source_id=legacy.resolved_source_id,
            source_snapshot=legacy.inline_descriptor,
            raw_amount=raw_amount,
            conversion_rate=conversion_rate,
            currency=currency,
            tax_rate=legacy.tax_rate,
            tax_config=legacy.tax_config,
            date=legacy.entry_date,
            bank=legacy.bank,
            description=legacy.description,
            derived=derived,
            policy_snapshot=policy,
        )

    def migrate_expense(self, raw: Any, index: int = 0) -> tuple[ExpenseEntry, bool]:
        """
        Migrate one expense. Expenses without a type become personal.

        Raises:
            MalformedRecord: the record cannot be read
        """
        if not isinstance(raw, dict):
            raise MalformedRecord("expenses", index, "record is not an object")

        try:
            if raw.get("type") is not None:
                return ExpenseEntry.model_validate(raw), False
            legacy = LegacyExpenseRecord.model_validate(raw)
            return ExpenseEntry(
                id=legacy.id,
                amount=legacy.amount,
                description=legacy.description,
                date=legacy.entry_date,
                category=legacy.category,
                by_whom=legacy.by_whom,
                type=ExpenseType.PERSONAL,
                metadata=legacy.metadata or {},
            ), True
        except ValidationError as e:
            raise MalformedRecord("expenses", index, _reason(e)) from e

    def migrate_payout(self, raw: Any, index: int = 0) -> tuple[DonationPayout, bool]:
        """Payouts have a single shape; this only validates them."""
        if not isinstance(raw, dict):
            raise MalformedRecord("donationPayouts", index, "record is not an object")
        try:
            return DonationPayout.model_validate(raw), False
        except ValidationError as e:
            raise MalformedRecord("donationPayouts", index, _reason(e)) from e

    # -------------------------------------------------------------------------
    # Whole collections
    # -------------------------------------------------------------------------

    def _migrate_collection(
        self,
        collection: str,
        records: Optional[list[Any]],
        migrate_one: Callable[[Any, int], tuple[T, bool]],
        report: MigrationReport,
    ) -> list[T]:
        migrated: list[T] = []
        for index, raw in enumerate(records or []):
            try:
                record, upgraded = migrate_one(raw, index)
            except MalformedRecord as e:
                logger.warning(
                    "record_skipped",
                    collection=collection,
                    index=index,
                    reason=e.reason,
                )
                report.malformed.append(SkippedRecord(
                    collection=e.collection,
                    index=e.index,
                    reason=e.reason,
                ))
                continue

            if upgraded:
                _bump(report.migrated, collection)
                logger.info("record_migrated", collection=collection, record_id=getattr(record, "id", None))
            else:
                _bump(report.unchanged, collection)
            migrated.append(record)
        return migrated

    def migrate(
        self,
        transactions: Optional[list[Any]] = None,
        expenses: Optional[list[Any]] = None,
        donation_payouts: Optional[list[Any]] = None,
    ) -> MigrationResult:
        """
        Migrate all three collections.

        Never raises for bad records: they are skipped and listed on
        ``result.report.malformed``.
        """
        report = MigrationReport()
        result = MigrationResult(
            transactions=self._migrate_collection(
                "transactions", transactions, self.migrate_income, report
            ),
            expenses=self._migrate_collection(
                "expenses", expenses, self.migrate_expense, report
            ),
            donation_payouts=self._migrate_collection(
                "donationPayouts", donation_payouts, self.migrate_payout, report
            ),
            report=report,
        )

        if report.changed:
            logger.info(
                "migration_completed",
                migrated=report.migrated,
                skipped=report.skipped_count,
            )
        return result


def dump_records(records: list[BaseModel]) -> list[dict[str, Any]]:
    """Serialize records to their persisted (camelCase, JSON-safe) shape."""
    return [r.model_dump(mode="json", by_alias=True) for r in records]
