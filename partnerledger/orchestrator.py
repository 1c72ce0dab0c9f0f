"""
Main Orchestrator for partnerledger

This module ties together all the components and defines the
end-to-end flows for:
1. Load (persisted collections → migrate → in-memory state)
2. Entry operations (new entry → calculate → persist → audit)
3. Configuration (validate → apply → persist → audit)
4. Bulk import/export (validate → replace whole ledger / dump it)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Derived amounts come only from the transaction calculator
- Existing entries are recalculated with their own policy snapshot
- Every operation is all-or-nothing: a new state is built, persisted,
  and only then swapped in. A failure leaves the in-memory ledger as it was.
- Every mutation is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

import json
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from partnerledger.audit import AuditLogger, create_correlation_id
from partnerledger.config import LedgerSettings, Settings, get_settings
from partnerledger.engine import equity as equity_model
from partnerledger.engine.calculator import TransactionCalculator
from partnerledger.engine.errors import (
    EntryNotFound,
    ImportRejected,
    InsufficientDonationFund,
    InvalidAmount,
    InvalidEquityConfig,
)
from partnerledger.engine.fees import FeeResolver
from partnerledger.engine.snapshot import (
    authorize_payout,
    snapshot_for_create,
    snapshot_for_edit,
)
from partnerledger.migration import LedgerMigrator, MigrationReport, dump_records
from partnerledger.models.audit import AuditEventBuilder
from partnerledger.models.ledger import (
    DonationPayout,
    DonationPolicy,
    ExpenseEntry,
    Financials,
    IncomeEntry,
    LedgerConfig,
    LedgerMode,
    LedgerState,
    NewDonationPayout,
    NewExpenseEntry,
    NewIncomeEntry,
    PartnerEquityConfig,
)
from partnerledger.models.validation import ValidationResult
from partnerledger.queries import DateFilter, LedgerQueryExecutor
from partnerledger.services.catalog import SourceCatalogInterface, StaticSourceCatalog
from partnerledger.services.storage import (
    COLLECTIONS,
    DONATION_PAYOUTS,
    EXPENSES,
    LEDGER_CONFIG,
    TRANSACTIONS,
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueAuditStorage,
    KeyValueStoreInterface,
    StorageError,
)
from partnerledger.validation import LedgerImportValidator


logger = structlog.get_logger(__name__)

RECORD_COLLECTIONS = (TRANSACTIONS, EXPENSES, DONATION_PAYOUTS)

# Fields a user may change on an existing entry. Everything else is
# written by the calculator or fixed at creation.
EDITABLE_INCOME_FIELDS = frozenset({
    "source_id",
    "raw_amount",
    "conversion_rate",
    "currency",
    "tax_rate",
    "tax_config",
    "entry_date",
    "bank",
    "description",
})
EDITABLE_EXPENSE_FIELDS = frozenset({
    "amount",
    "description",
    "entry_date",
    "category",
    "by_whom",
    "expense_type",
    "metadata",
})
EDITABLE_PAYOUT_FIELDS = frozenset({
    "amount",
    "entry_date",
    "paid_to",
    "description",
})


def _next_id(records: list[BaseModel]) -> int:
    return max((r.id for r in records), default=0) + 1


def _find(records: list, collection: str, entry_id: int):
    for record in records:
        if record.id == entry_id:
            return record
    raise EntryNotFound(collection, entry_id)


def _without(records: list, entry_id: int) -> list:
    return [r for r in records if r.id != entry_id]


def _replaced(records: list, updated) -> list:
    return [updated if r.id == updated.id else r for r in records]


def _check_editable(changes: dict[str, Any], allowed: frozenset) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValueError(f"Fields cannot be edited: {', '.join(unknown)}")


class LedgerService:
    """
    Orchestrates every ledger operation.

    Usage:
        service = LedgerService(store)
        await service.load()
        entry = await service.add_income(NewIncomeEntry(...))
        financials = service.financials()

    The service holds the only in-memory copy of the ledger. It never
    mutates that copy in place.
    """

    def __init__(
        self,
        store: KeyValueStoreInterface,
        catalog: Optional[SourceCatalogInterface] = None,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._catalog = catalog or StaticSourceCatalog()
        self._settings = settings or get_settings().ledger
        self._audit_logger = audit_logger or AuditLogger()

        self._calculator = TransactionCalculator(
            FeeResolver(self._catalog),
            ledger_currency=self._settings.ledger_currency,
            default_source_currency=self._settings.default_source_currency,
        )
        self._validator = LedgerImportValidator(
            ledger_currency=self._settings.ledger_currency,
            equity_epsilon=self._settings.equity_epsilon,
        )
        self._state = LedgerState(config=self._default_config())

    def _default_config(self) -> LedgerConfig:
        return LedgerConfig(
            mode=LedgerMode(self._settings.default_mode),
            ledger_currency=self._settings.ledger_currency,
            equity=equity_model.solo_config(),
        )

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def state(self) -> LedgerState:
        return self._state

    @property
    def config(self) -> LedgerConfig:
        return self._state.config

    @property
    def catalog(self) -> SourceCatalogInterface:
        return self._catalog

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _blob(self, state: LedgerState, name: str) -> str:
        if name == TRANSACTIONS:
            data = dump_records(state.transactions)
        elif name == EXPENSES:
            data = dump_records(state.expenses)
        elif name == DONATION_PAYOUTS:
            data = dump_records(state.donation_payouts)
        elif name == LEDGER_CONFIG:
            data = state.config.model_dump(mode="json", by_alias=True)
        else:
            raise ValueError(f"Unknown collection '{name}'")
        return json.dumps(data, ensure_ascii=False)

    async def _commit(
        self,
        state: LedgerState,
        collections: tuple[str, ...],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Persist the named collections of a new state, then swap it in.

        When a save fails part-way, collections already written are put
        back to their previous blobs, so storage never holds a mix of the
        old and the new ledger.
        """
        previous: dict[str, Optional[str]] = {}
        written: list[str] = []
        try:
            if len(collections) > 1:
                for name in collections:
                    previous[name] = await self._store.load(name)
            for name in collections:
                await self._store.save(name, self._blob(state, name))
                written.append(name)
        except StorageError as e:
            await self._audit_logger.log_storage_error(
                operation=f"save {', '.join(collections)}",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            await self._restore(previous, written, correlation_id)
            raise
        self._state = state

    async def _restore(
        self,
        previous: dict[str, Optional[str]],
        written: list[str],
        correlation_id: Optional[UUID],
    ) -> None:
        for name in written:
            blob = previous[name]
            try:
                if blob is None:
                    await self._store.delete(name)
                else:
                    await self._store.save(name, blob)
            except StorageError as e:
                await self._audit_logger.log_error(
                    error_type="rollback_failed",
                    error_message=str(e),
                    details={"collection": name},
                    correlation_id=correlation_id,
                )
        if written:
            logger.warning("commit_rolled_back", collections=written)

    async def _read_collection(self, name: str) -> Any:
        blob = await self._store.load(name)
        if blob is None:
            return None
        try:
            data = json.loads(blob)
        except json.JSONDecodeError as e:
            raise StorageError(f"Collection '{name}' is not valid JSON: {e}") from e

        expected = dict if name == LEDGER_CONFIG else list
        if not isinstance(data, expected):
            raise StorageError(
                f"Collection '{name}' must be a JSON {expected.__name__}, "
                f"got {type(data).__name__}"
            )
        return data

    async def load(self, correlation_id: Optional[UUID] = None) -> MigrationReport:
        """
        Load every collection, migrating legacy records.

        Records that cannot be read are skipped and reported. Collections
        with upgraded records are written back in the current shape, unless
        the collection also had skipped records: those are left as stored
        so the unreadable originals are not lost on load.

        Raises:
            StorageError: a collection blob or the ledger config is unreadable
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            raw = {name: await self._read_collection(name) for name in COLLECTIONS}
        except StorageError as e:
            await self._audit_logger.log_storage_error(
                operation="load",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        if raw[LEDGER_CONFIG] is None:
            config = self._default_config()
        else:
            try:
                config = LedgerConfig.model_validate(raw[LEDGER_CONFIG])
            except ValidationError as e:
                raise StorageError(f"Ledger config is unreadable: {e}") from e

        migrator = LedgerMigrator(
            equity_model.effective_equity(config),
            ledger_currency=config.ledger_currency,
        )
        result = migrator.migrate(
            raw[TRANSACTIONS],
            raw[EXPENSES],
            raw[DONATION_PAYOUTS],
        )
        report = result.report

        state = LedgerState(
            transactions=result.transactions,
            expenses=result.expenses,
            donation_payouts=result.donation_payouts,
            config=config,
        )

        skipped_in = {m.collection for m in report.malformed}
        write_back = tuple(
            name for name in RECORD_COLLECTIONS
            if report.migrated.get(name) and name not in skipped_in
        )
        if write_back:
            await self._commit(state, write_back, correlation_id)
        else:
            self._state = state

        events = [
            AuditEventBuilder.record_skipped(
                collection=m.collection,
                index=m.index,
                reason=m.reason,
                correlation_id=correlation_id,
            )
            for m in report.malformed
        ]
        events.append(AuditEventBuilder.ledger_loaded(
            counts={
                TRANSACTIONS: len(state.transactions),
                EXPENSES: len(state.expenses),
                DONATION_PAYOUTS: len(state.donation_payouts),
            },
            migrated=report.migrated_count,
            skipped=report.skipped_count,
            correlation_id=correlation_id,
        ))
        await self._audit_logger.log_all(events)

        return report

    # -------------------------------------------------------------------------
    # Income
    # -------------------------------------------------------------------------

    async def add_income(
        self,
        new: NewIncomeEntry,
        correlation_id: Optional[UUID] = None,
    ) -> IncomeEntry:
        """
        Record a new income entry.

        The live policy is copied before the catalog lookup is awaited, so
        the entry is calculated with the policy in force when it was
        submitted.

        Raises:
            InvalidAmount: non-positive amount or rate
        """
        correlation_id = correlation_id or create_correlation_id()
        state = self._state
        policy = snapshot_for_create(state.config.donation_policy)

        result = await self._calculator.calculate(
            new,
            policy,
            equity_model.effective_equity(state.config),
        )

        entry = IncomeEntry(
            id=_next_id(state.transactions),
            source_id=new.source_id,
            source_snapshot=(
                result.source.model_dump(mode="json", by_alias=True)
                if result.source else None
            ),
            raw_amount=new.raw_amount,
            conversion_rate=new.conversion_rate,
            currency=(new.currency or self._settings.default_source_currency).upper(),
            tax_rate=result.tax_rate,
            tax_config=new.tax_config,
            date=new.entry_date,
            bank=new.bank,
            description=new.description,
            derived=result.derived,
            policy_snapshot=policy,
        )

        await self._commit(
            state.model_copy(update={"transactions": [*state.transactions, entry]}),
            (TRANSACTIONS,),
            correlation_id,
        )

        events = [AuditEventBuilder.income_recorded(
            entry_id=entry.id,
            source_id=entry.source_id,
            gross=entry.derived.gross,
            net_profit=entry.derived.net_profit,
            correlation_id=correlation_id,
        )]
        if result.warnings:
            events.append(AuditEventBuilder.data_quality_warning(
                entity_type="income",
                entity_id=str(entry.id),
                warnings=result.warnings,
                correlation_id=correlation_id,
            ))
        await self._audit_logger.log_all(events)

        return entry

    async def edit_income(
        self,
        entry_id: int,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> IncomeEntry:
        """
        Edit an income entry and recalculate it.

        The entry keeps its own policy snapshot; an entry without one gets
        the live policy saved into it. Its frozen source snapshot keeps
        supplying fees unless the source itself is changed.

        Args:
            entry_id: Entry to edit
            changes: New values keyed by field name
                (see EDITABLE_INCOME_FIELDS)

        Raises:
            EntryNotFound: no entry with that id
            InvalidAmount: non-positive amount or rate
            ValueError: a non-editable field was given
        """
        correlation_id = correlation_id or create_correlation_id()
        _check_editable(changes, EDITABLE_INCOME_FIELDS)

        state = self._state
        existing = _find(state.transactions, TRANSACTIONS, entry_id)
        policy, backfilled = snapshot_for_edit(existing, state.config.donation_policy)

        source_changed = (
            "source_id" in changes and changes["source_id"] != existing.source_id
        )
        candidate = IncomeEntry.model_validate({
            **existing.model_dump(),
            **changes,
            "source_snapshot": None if source_changed else existing.source_snapshot,
        })

        result = await self._calculator.calculate(
            candidate,
            policy,
            equity_model.effective_equity(state.config),
        )

        source_snapshot = candidate.source_snapshot
        if source_changed and result.source is not None:
            source_snapshot = result.source.model_dump(mode="json", by_alias=True)

        updated = candidate.model_copy(update={
            "derived": result.derived,
            "policy_snapshot": policy,
            "tax_rate": result.tax_rate,
            "source_snapshot": source_snapshot,
        })

        await self._commit(
            state.model_copy(update={"transactions": _replaced(state.transactions, updated)}),
            (TRANSACTIONS,),
            correlation_id,
        )

        events = [AuditEventBuilder.income_recalculated(
            entry_id=entry_id,
            backfilled=backfilled,
            correlation_id=correlation_id,
        )]
        if result.warnings:
            events.append(AuditEventBuilder.data_quality_warning(
                entity_type="income",
                entity_id=str(entry_id),
                warnings=result.warnings,
                correlation_id=correlation_id,
            ))
        await self._audit_logger.log_all(events)

        return updated

    async def delete_income(
        self,
        entry_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        state = self._state
        _find(state.transactions, TRANSACTIONS, entry_id)
        await self._commit(
            state.model_copy(update={"transactions": _without(state.transactions, entry_id)}),
            (TRANSACTIONS,),
            correlation_id,
        )
        await self._audit_logger.log(
            AuditEventBuilder.entry_deleted("income", entry_id, correlation_id)
        )

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    def _spender_warnings(self, expense: ExpenseEntry) -> list[str]:
        equity = equity_model.effective_equity(self._state.config)
        if self._state.config.mode == LedgerMode.COMPANY and equity.find_partner(expense.by_whom) is None:
            return [f"Expense {expense.id} paid by unknown partner '{expense.by_whom}'"]
        return []

    async def _log_expense(
        self,
        expense: ExpenseEntry,
        updated: bool,
        correlation_id: Optional[UUID],
    ) -> None:
        events = [AuditEventBuilder.expense_recorded(
            entry_id=expense.id,
            amount=expense.amount,
            by_whom=expense.by_whom,
            expense_type=expense.expense_type.value,
            updated=updated,
            correlation_id=correlation_id,
        )]
        warnings = self._spender_warnings(expense)
        if warnings:
            events.append(AuditEventBuilder.data_quality_warning(
                entity_type="expense",
                entity_id=str(expense.id),
                warnings=warnings,
                correlation_id=correlation_id,
            ))
        await self._audit_logger.log_all(events)

    async def add_expense(
        self,
        new: NewExpenseEntry,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseEntry:
        """Record a new expense."""
        state = self._state
        expense = ExpenseEntry(id=_next_id(state.expenses), **new.model_dump())

        await self._commit(
            state.model_copy(update={"expenses": [*state.expenses, expense]}),
            (EXPENSES,),
            correlation_id,
        )
        await self._log_expense(expense, False, correlation_id)
        return expense

    async def update_expense(
        self,
        entry_id: int,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseEntry:
        """
        Edit an expense.

        Raises:
            EntryNotFound: no expense with that id
            InvalidAmount: the new amount is not positive
            ValueError: a non-editable field was given
        """
        _check_editable(changes, EDITABLE_EXPENSE_FIELDS)
        state = self._state
        existing = _find(state.expenses, EXPENSES, entry_id)

        updated = ExpenseEntry.model_validate({**existing.model_dump(), **changes})
        if updated.amount <= 0:
            raise InvalidAmount("amount", updated.amount)

        await self._commit(
            state.model_copy(update={"expenses": _replaced(state.expenses, updated)}),
            (EXPENSES,),
            correlation_id,
        )
        await self._log_expense(updated, True, correlation_id)
        return updated

    async def delete_expense(
        self,
        entry_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        state = self._state
        _find(state.expenses, EXPENSES, entry_id)
        await self._commit(
            state.model_copy(update={"expenses": _without(state.expenses, entry_id)}),
            (EXPENSES,),
            correlation_id,
        )
        await self._audit_logger.log(
            AuditEventBuilder.entry_deleted("expense", entry_id, correlation_id)
        )

    # -------------------------------------------------------------------------
    # Donation payouts
    # -------------------------------------------------------------------------

    async def _authorize(
        self,
        amount: float,
        previous_amount: Optional[float],
        correlation_id: Optional[UUID],
    ) -> None:
        available = self.financials().available_donations_fund
        try:
            authorize_payout(amount, available, previous_amount)
        except InsufficientDonationFund as e:
            await self._audit_logger.log(AuditEventBuilder.payout_rejected(
                amount=amount,
                available=e.available,
                correlation_id=correlation_id,
            ))
            raise

    async def add_payout(
        self,
        new: NewDonationPayout,
        correlation_id: Optional[UUID] = None,
    ) -> DonationPayout:
        """
        Record a donation payout.

        Raises:
            InsufficientDonationFund: amount exceeds the available fund
        """
        await self._authorize(new.amount, None, correlation_id)

        state = self._state
        payout = DonationPayout(id=_next_id(state.donation_payouts), **new.model_dump())
        await self._commit(
            state.model_copy(update={"donation_payouts": [*state.donation_payouts, payout]}),
            (DONATION_PAYOUTS,),
            correlation_id,
        )
        await self._audit_logger.log(AuditEventBuilder.payout_recorded(
            entry_id=payout.id,
            amount=payout.amount,
            paid_to=payout.paid_to,
            correlation_id=correlation_id,
        ))
        return payout

    async def update_payout(
        self,
        entry_id: int,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> DonationPayout:
        """
        Edit a payout. The payout's current amount counts as available.

        Raises:
            EntryNotFound: no payout with that id
            InvalidAmount: the new amount is not positive
            InsufficientDonationFund: the new amount exceeds the fund
            ValueError: a non-editable field was given
        """
        _check_editable(changes, EDITABLE_PAYOUT_FIELDS)
        state = self._state
        existing = _find(state.donation_payouts, DONATION_PAYOUTS, entry_id)
        updated = DonationPayout.model_validate({**existing.model_dump(), **changes})

        await self._authorize(updated.amount, existing.amount, correlation_id)

        await self._commit(
            state.model_copy(update={
                "donation_payouts": _replaced(state.donation_payouts, updated),
            }),
            (DONATION_PAYOUTS,),
            correlation_id,
        )
        await self._audit_logger.log(AuditEventBuilder.payout_recorded(
            entry_id=updated.id,
            amount=updated.amount,
            paid_to=updated.paid_to,
            updated=True,
            correlation_id=correlation_id,
        ))
        return updated

    async def delete_payout(
        self,
        entry_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        state = self._state
        _find(state.donation_payouts, DONATION_PAYOUTS, entry_id)
        await self._commit(
            state.model_copy(update={
                "donation_payouts": _without(state.donation_payouts, entry_id),
            }),
            (DONATION_PAYOUTS,),
            correlation_id,
        )
        await self._audit_logger.log(
            AuditEventBuilder.entry_deleted("payout", entry_id, correlation_id)
        )

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    async def _commit_config(
        self,
        config: LedgerConfig,
        correlation_id: Optional[UUID],
    ) -> None:
        await self._commit(
            self._state.model_copy(update={"config": config}),
            (LEDGER_CONFIG,),
            correlation_id,
        )

    async def set_donation_policy(
        self,
        policy: DonationPolicy,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Change the live policy. Existing entries keep their snapshots."""
        previous = self._state.config.donation_policy
        await self._commit_config(
            self._state.config.model_copy(update={"donation_policy": policy}),
            correlation_id,
        )
        await self._audit_logger.log(AuditEventBuilder.donation_policy_changed(
            previous=previous.model_dump(mode="json", by_alias=True),
            current=policy.model_dump(mode="json", by_alias=True),
            correlation_id=correlation_id,
        ))

    async def set_equity_config(
        self,
        equity: PartnerEquityConfig,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Apply a new equity config.

        Partner shares already stored on income entries are not recomputed.

        Raises:
            InvalidEquityConfig: the config fails validation
        """
        try:
            equity_model.require_valid(equity, self._settings.equity_epsilon)
        except InvalidEquityConfig as e:
            await self._audit_logger.log(AuditEventBuilder.equity_config_rejected(
                reason=str(e),
                correlation_id=correlation_id,
            ))
            raise

        await self._commit_config(
            self._state.config.model_copy(update={"equity": equity}),
            correlation_id,
        )
        await self._audit_logger.log(AuditEventBuilder.equity_config_changed(
            partners=[p.model_dump(mode="json", by_alias=True) for p in equity.partners],
            correlation_id=correlation_id,
        ))

    async def set_mode(
        self,
        mode: LedgerMode,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self._commit_config(
            self._state.config.model_copy(update={"mode": LedgerMode(mode)}),
            correlation_id,
        )
        logger.info("ledger_mode_changed", mode=LedgerMode(mode).value)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def queries(self) -> LedgerQueryExecutor:
        """Period query executor over the current state."""
        return LedgerQueryExecutor(self._state, tolerance=self._settings.amount_tolerance)

    def financials(self, date_filter: Optional[DateFilter] = None) -> Financials:
        """Aggregates recomputed from the current state."""
        return self.queries().financials(date_filter)

    # -------------------------------------------------------------------------
    # Bulk import / export
    # -------------------------------------------------------------------------

    async def import_data(
        self,
        payload: Any,
        correlation_id: Optional[UUID] = None,
    ) -> ValidationResult:
        """
        Replace the whole ledger with an exported document.

        Legacy-shaped records are migrated on the way in. Nothing is
        applied unless the entire payload passes schema validation.

        Returns:
            The validation result (warnings only, on success)

        Raises:
            ImportRejected: the payload failed schema validation
        """
        correlation_id = correlation_id or create_correlation_id()
        result, parsed = self._validator.validate(
            payload,
            self._state.config.equity,
            self._state.config.mode,
        )

        if not result.schema_valid or parsed is None:
            errors = result.errors
            await self._audit_logger.log(AuditEventBuilder.import_rejected(
                errors=errors,
                correlation_id=correlation_id,
            ))
            raise ImportRejected(errors)

        updates: dict[str, Any] = {}
        if parsed.equity is not None:
            updates["equity"] = parsed.equity
        if parsed.donation_policy is not None:
            updates["donation_policy"] = parsed.donation_policy
        if parsed.mode is not None:
            updates["mode"] = parsed.mode

        state = LedgerState(
            transactions=parsed.transactions,
            expenses=parsed.expenses,
            donation_payouts=parsed.donation_payouts,
            config=self._state.config.model_copy(update=updates),
        )
        await self._commit(state, COLLECTIONS, correlation_id)

        events = [AuditEventBuilder.data_imported(
            counts={
                TRANSACTIONS: len(state.transactions),
                EXPENSES: len(state.expenses),
                DONATION_PAYOUTS: len(state.donation_payouts),
                "migrated": parsed.report.migrated_count,
            },
            correlation_id=correlation_id,
        )]
        if result.warnings:
            events.append(AuditEventBuilder.data_quality_warning(
                entity_type="ledger",
                entity_id=None,
                warnings=result.warnings,
                correlation_id=correlation_id,
            ))
        await self._audit_logger.log_all(events)

        return result

    async def export_data(self, correlation_id: Optional[UUID] = None) -> dict[str, Any]:
        """
        Dump the whole ledger in the import shape.

        Snapshots and derived amounts are included, so importing the
        result reproduces identical financials.
        """
        state = self._state
        payload = {
            "transactions": dump_records(state.transactions),
            "expenses": dump_records(state.expenses),
            "donationPayouts": dump_records(state.donation_payouts),
            "equityConfig": state.config.equity.model_dump(mode="json", by_alias=True),
            "donationPolicy": state.config.donation_policy.model_dump(mode="json", by_alias=True),
            "mode": state.config.mode.value,
        }
        await self._audit_logger.log(AuditEventBuilder.data_exported(
            counts={
                TRANSACTIONS: len(state.transactions),
                EXPENSES: len(state.expenses),
                DONATION_PAYOUTS: len(state.donation_payouts),
            },
            correlation_id=correlation_id,
        ))
        return payload


def create_ledger_service(
    settings: Optional[Settings] = None,
) -> LedgerService:
    """
    Factory function to create a ledger service from settings.

    The storage backend is chosen by STORAGE_BACKEND. The audit log is
    kept in the same store as the ledger.
    """
    settings = settings or get_settings()
    storage_settings = settings.storage

    if storage_settings.backend == "memory":
        store: KeyValueStoreInterface = InMemoryKeyValueStore()
    elif storage_settings.backend == "json":
        store = JsonFileKeyValueStore(storage_settings.data_dir)
    else:
        store = GoogleSheetsKeyValueStore(GoogleSheetsClient(settings.google_sheets))

    logger.info("ledger_service_created", backend=storage_settings.backend)

    return LedgerService(
        store,
        catalog=StaticSourceCatalog(),
        settings=settings.ledger,
        audit_logger=AuditLogger(KeyValueAuditStorage(store)),
    )
