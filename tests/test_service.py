"""
Integration tests for the ledger service.

All tests run against the in-memory store and the built-in catalog.
"""

import asyncio
import json
from datetime import date

import pytest

from partnerledger.audit import AuditLogger
from partnerledger.config import LedgerSettings, Settings
from partnerledger.engine import equity
from partnerledger.engine.errors import (
    EntryNotFound,
    ImportRejected,
    InsufficientDonationFund,
    InvalidAmount,
    InvalidEquityConfig,
)
from partnerledger.models.audit import AuditEventType
from partnerledger.models.ledger import (
    DonationPolicy,
    ExpenseType,
    LedgerConfig,
    LedgerMode,
    NewDonationPayout,
    NewExpenseEntry,
    NewIncomeEntry,
    Partner,
    PartnerEquityConfig,
    TaxPreference,
)
from partnerledger.orchestrator import LedgerService, create_ledger_service
from partnerledger.services.catalog import StaticSourceCatalog
from partnerledger.services.storage import (
    InMemoryKeyValueStore,
    KeyValueAuditStorage,
    StorageError,
)


PARTNERS = equity.legacy_two_partner_config("A", "B")


class FailingStore(InMemoryKeyValueStore):
    """Store whose writes always fail."""

    async def save(self, name: str, blob: str) -> None:
        raise StorageError("disk full")


class FlakyStore(InMemoryKeyValueStore):
    """Store that fails chosen save calls, counted from when it is armed."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.calls = 0
        self.failing: set[int] = set()

    def arm(self, *failing: int) -> None:
        self.calls = 0
        self.failing = set(failing)

    async def save(self, name: str, blob: str) -> None:
        self.calls += 1
        if self.calls in self.failing:
            raise StorageError("quota exceeded")
        await super().save(name, blob)


def make_service(store=None):
    store = store if store is not None else InMemoryKeyValueStore()
    audit_store = KeyValueAuditStorage(store)
    service = LedgerService(
        store,
        catalog=StaticSourceCatalog(),
        settings=LedgerSettings(),
        audit_logger=AuditLogger(audit_store),
    )
    return service, store, audit_store


def upwork_income(**overrides) -> NewIncomeEntry:
    values = {
        "source_id": "upwork",
        "raw_amount": 1000,
        "conversion_rate": 280,
        "tax_rate": 0,
        "date": date(2024, 5, 1),
        "bank": "Payoneer",
    }
    values.update(overrides)
    return NewIncomeEntry(**values)


def partnership_service():
    service, store, audit_store = make_service()
    asyncio.run(service.set_equity_config(PARTNERS))
    return service, store, audit_store


def legacy_record(entry_id: int = 1) -> dict:
    return {
        "id": entry_id,
        "source": "youtube",
        "amountUSD": 100,
        "conversionRate": 280,
        "date": "2023-06-01",
        "calculations": {
            "grossPKR": 28000,
            "charityAmount": 2800,
            "netProfit": 25200,
            "partnerShare": 25200,
        },
    }


class TestIncome:
    """Tests for recording and editing income."""

    def test_add_income(self):
        """Test a new entry is calculated, snapshotted and persisted."""
        service, store, _ = partnership_service()
        entry = asyncio.run(service.add_income(upwork_income()))

        assert entry.id == 1
        assert entry.derived.gross == pytest.approx(252_000)
        assert entry.derived.net_profit == pytest.approx(226_800)
        assert entry.derived.partner_shares == {
            "A": pytest.approx(113_400),
            "B": pytest.approx(113_400),
        }
        assert entry.policy_snapshot == DonationPolicy()
        assert entry.source_snapshot["id"] == "upwork"

        persisted = json.loads(store.snapshot()["transactions"])
        assert persisted[0]["sourceId"] == "upwork"
        assert persisted[0]["policySnapshot"]["percentage"] == 10

    def test_ids_are_monotonic(self):
        """Test ids continue from the highest existing id."""
        service, _, _ = partnership_service()
        first = asyncio.run(service.add_income(upwork_income()))
        second = asyncio.run(service.add_income(upwork_income()))
        asyncio.run(service.delete_income(first.id))
        third = asyncio.run(service.add_income(upwork_income()))
        assert (first.id, second.id, third.id) == (1, 2, 3)

    def test_policy_change_does_not_touch_history(self):
        """Test changing the live policy leaves stored entries alone."""
        service, _, _ = partnership_service()
        entry = asyncio.run(service.add_income(upwork_income()))
        asyncio.run(service.set_donation_policy(
            DonationPolicy(percentage=50, tax_preference=TaxPreference.AFTER_TAX)
        ))

        stored = service.state.transactions[0]
        assert stored.derived == entry.derived
        assert stored.policy_snapshot.percentage == 10

    def test_edit_recalculates_with_own_snapshot(self):
        """Test an edit uses the entry's snapshot, not the live policy."""
        service, _, audit_store = partnership_service()
        entry = asyncio.run(service.add_income(upwork_income()))
        asyncio.run(service.set_donation_policy(DonationPolicy(percentage=50)))

        edited = asyncio.run(service.edit_income(entry.id, {"raw_amount": 2000}))

        assert edited.policy_snapshot.percentage == 10
        assert edited.derived.gross == pytest.approx(504_000)
        assert edited.derived.charity_amount == pytest.approx(50_400)

        events = asyncio.run(audit_store.get_events_by_entity("income", str(entry.id)))
        assert events[-1].event_type == AuditEventType.INCOME_RECALCULATED

    def test_edit_keeps_frozen_fee_schedule(self):
        """Test a later catalog fee change does not rewrite an edited entry."""
        service, _, _ = partnership_service()
        entry = asyncio.run(service.add_income(upwork_income()))
        asyncio.run(service.catalog.update_source(
            "upwork",
            {"fees": {"method": "percentage", "percentage_fee": 50}},
        ))

        edited = asyncio.run(service.edit_income(entry.id, {"description": "March invoice"}))
        assert edited.derived.fee == pytest.approx(28_000)

    def test_edit_rejects_derived_fields(self):
        """Test derived amounts cannot be edited by hand."""
        service, _, _ = partnership_service()
        entry = asyncio.run(service.add_income(upwork_income()))
        with pytest.raises(ValueError):
            asyncio.run(service.edit_income(entry.id, {"derived": {}}))

    def test_invalid_amount_leaves_state_untouched(self):
        """Test a rejected entry is never stored."""
        service, store, _ = partnership_service()
        with pytest.raises(InvalidAmount):
            asyncio.run(service.add_income(upwork_income(raw_amount=0)))
        assert service.state.transactions == []
        assert "transactions" not in store.snapshot()

    def test_personal_mode_single_partner(self):
        """Test personal mode credits everything to the owner."""
        service, _, _ = partnership_service()
        asyncio.run(service.set_mode(LedgerMode.PERSONAL))
        entry = asyncio.run(service.add_income(upwork_income()))
        assert list(entry.derived.partner_shares) == ["owner"]

    def test_delete_missing_entry(self):
        """Test deleting an unknown id fails."""
        service, _, _ = partnership_service()
        with pytest.raises(EntryNotFound):
            asyncio.run(service.delete_income(99))


class TestExpensesAndPayouts:
    """Tests for expenses and the donation fund guard."""

    def test_expense_settlement(self):
        """Test recorded expenses feed the loan calculation."""
        service, _, _ = partnership_service()
        asyncio.run(service.add_expense(NewExpenseEntry(amount=1000, date=date(2024, 1, 1), by_whom="A")))
        asyncio.run(service.add_expense(NewExpenseEntry(amount=400, date=date(2024, 1, 2), by_whom="B")))

        financials = service.financials()
        assert financials.loan.amount == pytest.approx(300)
        assert financials.loan.owed_by == "A"

    def test_personal_mode_expenses_belong_to_owner(self):
        """Test personal-mode expenses never create a loan, whatever the spender name."""
        service, _, audit_store = make_service()
        asyncio.run(service.set_mode(LedgerMode.PERSONAL))
        asyncio.run(service.add_income(upwork_income()))
        asyncio.run(service.add_expense(
            NewExpenseEntry(amount=5000, date=date(2024, 5, 2), by_whom="Bukhtyar")
        ))

        financials = service.financials()
        assert financials.loan.amount == 0
        assert financials.loan.owed_by is None
        assert financials.deficit_partners == []
        assert financials.partner_expenses == {"owner": 5000}
        assert financials.warnings == []
        events = asyncio.run(audit_store.get_recent_events())
        assert not any(e.event_type == AuditEventType.DATA_QUALITY_WARNING for e in events)

    def test_company_ledger_switched_to_personal(self):
        """Test old partners stop owing anything once the ledger is personal."""
        service, _, _ = partnership_service()
        entry = asyncio.run(service.add_income(upwork_income()))
        asyncio.run(service.add_expense(
            NewExpenseEntry(amount=1000, date=date(2024, 5, 2), by_whom="A")
        ))
        asyncio.run(service.set_mode(LedgerMode.PERSONAL))

        financials = service.financials()
        assert financials.loan.amount == 0
        assert financials.partner_earnings == {"owner": pytest.approx(entry.derived.net_profit)}
        assert financials.partner_expenses == {"owner": 1000}

    def test_update_expense(self):
        """Test an expense can be reclassified."""
        service, _, _ = partnership_service()
        expense = asyncio.run(service.add_expense(
            NewExpenseEntry(amount=300, date=date(2024, 1, 1), by_whom="A")
        ))
        updated = asyncio.run(service.update_expense(expense.id, {"expense_type": ExpenseType.COMPANY}))
        assert updated.expense_type == ExpenseType.COMPANY
        assert service.financials().partner_expenses == {"A": 150, "B": 150}

    def test_update_expense_rejects_zero(self):
        """Test an expense cannot be edited down to nothing."""
        service, _, _ = partnership_service()
        expense = asyncio.run(service.add_expense(
            NewExpenseEntry(amount=300, date=date(2024, 1, 1), by_whom="A")
        ))
        with pytest.raises(InvalidAmount):
            asyncio.run(service.update_expense(expense.id, {"amount": 0}))
        assert service.state.expenses[0].amount == 300

    def test_payout_above_fund_rejected(self):
        """Test a payout of available + 1 is rejected and audited."""
        service, _, audit_store = partnership_service()
        asyncio.run(service.add_income(upwork_income()))
        available = service.financials().available_donations_fund

        with pytest.raises(InsufficientDonationFund):
            asyncio.run(service.add_payout(
                NewDonationPayout(amount=available + 1, date=date(2024, 5, 2), paid_to="Edhi")
            ))

        assert service.state.donation_payouts == []
        events = asyncio.run(audit_store.get_recent_events())
        rejected = [e for e in events if e.event_type == AuditEventType.PAYOUT_REJECTED]
        assert len(rejected) == 1

    def test_payout_within_fund(self):
        """Test a payout reduces the available fund."""
        service, _, _ = partnership_service()
        asyncio.run(service.add_income(upwork_income()))
        asyncio.run(service.add_payout(
            NewDonationPayout(amount=5_200, date=date(2024, 5, 2), paid_to="Edhi")
        ))
        assert service.financials().available_donations_fund == pytest.approx(20_000)

    def test_payout_edit_counts_own_amount(self):
        """Test an edit may reuse the payout's own amount."""
        service, _, _ = partnership_service()
        asyncio.run(service.add_income(upwork_income()))
        payout = asyncio.run(service.add_payout(
            NewDonationPayout(amount=25_000, date=date(2024, 5, 2))
        ))
        updated = asyncio.run(service.update_payout(payout.id, {"amount": 25_200}))
        assert updated.amount == 25_200
        with pytest.raises(InsufficientDonationFund):
            asyncio.run(service.update_payout(payout.id, {"amount": 25_201}))


class TestConfiguration:
    """Tests for equity and policy configuration."""

    def test_invalid_equity_rejected(self):
        """Test an equity config summing to 0.9 is never applied."""
        service, _, _ = partnership_service()
        bad = PartnerEquityConfig(partners=[
            Partner(id="A", name="A", equity=0.5),
            Partner(id="B", name="B", equity=0.4),
        ])
        with pytest.raises(InvalidEquityConfig):
            asyncio.run(service.set_equity_config(bad))
        assert service.config.equity == PARTNERS

    def test_config_is_persisted(self):
        """Test configuration survives a reload."""
        service, store, _ = partnership_service()
        asyncio.run(service.set_donation_policy(DonationPolicy(percentage=7)))

        reloaded, _, _ = make_service(store)
        asyncio.run(reloaded.load())
        assert reloaded.config.equity == PARTNERS
        assert reloaded.config.donation_policy.percentage == 7


class TestLoad:
    """Tests for loading and migrating persisted collections."""

    def test_load_migrates_and_writes_back(self):
        """Test legacy records are upgraded once and saved in the new shape."""
        store = InMemoryKeyValueStore({
            "transactions": json.dumps([legacy_record()]),
            "ledgerConfig": json.dumps(
                LedgerConfig(equity=PARTNERS).model_dump(mode="json", by_alias=True)
            ),
        })
        service, _, _ = make_service(store)
        report = asyncio.run(service.load())

        assert report.migrated_count == 1
        assert service.state.transactions[0].derived.partner_shares == {"A": 12600, "B": 12600}
        persisted = json.loads(store.snapshot()["transactions"])
        assert persisted[0]["sourceId"] == "youtube"

        again, _, _ = make_service(store)
        assert asyncio.run(again.load()).migrated_count == 0

    def test_malformed_records_skipped_not_deleted(self):
        """Test unreadable records are skipped but left in storage."""
        original = json.dumps([legacy_record(1), {"id": 2}])
        store = InMemoryKeyValueStore({"transactions": original})
        service, _, audit_store = make_service(store)

        report = asyncio.run(service.load())

        assert report.skipped_count == 1
        assert [t.id for t in service.state.transactions] == [1]
        assert store.snapshot()["transactions"] == original
        events = asyncio.run(audit_store.get_recent_events())
        assert any(e.event_type == AuditEventType.RECORD_SKIPPED for e in events)

    def test_corrupt_collection_raises(self):
        """Test a collection that is not JSON is a storage error."""
        store = InMemoryKeyValueStore({"expenses": "{oops"})
        service, _, _ = make_service(store)
        with pytest.raises(StorageError):
            asyncio.run(service.load())

    def test_empty_store_uses_defaults(self):
        """Test a fresh store loads an empty ledger."""
        service, _, _ = make_service()
        report = asyncio.run(service.load())
        assert report.changed is False
        assert service.financials().total_gross_profit == 0


class TestAtomicity:
    """Tests for all-or-nothing operations."""

    def test_storage_failure_leaves_state_untouched(self):
        """Test a failed save does not change the in-memory ledger."""
        service = LedgerService(
            FailingStore(),
            catalog=StaticSourceCatalog(),
            settings=LedgerSettings(),
            audit_logger=AuditLogger(),
        )
        with pytest.raises(StorageError):
            asyncio.run(service.add_expense(
                NewExpenseEntry(amount=100, date=date(2024, 1, 1), by_whom="owner")
            ))
        assert service.state.expenses == []

    def import_payload(self) -> dict:
        return {
            "transactions": [legacy_record(7)],
            "expenses": [{"id": 7, "amount": 50, "date": "2023-06-02", "byWhom": "B"}],
            "donationPayouts": [],
        }

    def test_failed_import_restores_stored_collections(self):
        """Test a save failing part-way through an import leaves storage as it was."""
        store = FlakyStore()
        service, _, _ = make_service(store)
        asyncio.run(service.set_equity_config(PARTNERS))
        asyncio.run(service.add_income(upwork_income()))
        asyncio.run(service.add_expense(
            NewExpenseEntry(amount=1000, date=date(2024, 5, 2), by_whom="A")
        ))
        before = service.state
        before_financials = service.financials()

        store.arm(2)
        with pytest.raises(StorageError):
            asyncio.run(service.import_data(self.import_payload()))

        assert service.state is before
        reloaded, _, _ = make_service(store)
        asyncio.run(reloaded.load())
        assert [t.id for t in reloaded.state.transactions] == [1]
        assert [e.id for e in reloaded.state.expenses] == [1]
        assert reloaded.financials() == before_financials

    def test_failed_import_removes_new_collections(self):
        """Test collections that did not exist before a failed import are removed."""
        store = FlakyStore()
        service, _, _ = make_service(store)

        store.arm(2)
        with pytest.raises(StorageError):
            asyncio.run(service.import_data(self.import_payload()))

        assert "transactions" not in store.snapshot()
        assert "expenses" not in store.snapshot()

    def test_failed_restore_is_audited(self):
        """Test a collection that cannot be put back is reported as a system error."""
        store = FlakyStore({"transactions": "[]"})
        audit_store = KeyValueAuditStorage(InMemoryKeyValueStore())
        service = LedgerService(
            store,
            catalog=StaticSourceCatalog(),
            settings=LedgerSettings(),
            audit_logger=AuditLogger(audit_store),
        )

        store.arm(2, 3)
        with pytest.raises(StorageError):
            asyncio.run(service.import_data(self.import_payload()))

        events = asyncio.run(audit_store.get_recent_events())
        errors = [e for e in events if e.event_type == AuditEventType.SYSTEM_ERROR]
        assert len(errors) == 1
        assert errors[0].details == {"collection": "transactions"}


class TestImportExport:
    """Tests for bulk import and export."""

    def populated_service(self):
        service, _, _ = partnership_service()
        asyncio.run(service.add_income(upwork_income()))
        asyncio.run(service.add_income(upwork_income(
            source_id="salary", raw_amount=150_000, conversion_rate=1, currency="PKR", tax_rate=5,
        )))
        asyncio.run(service.add_expense(
            NewExpenseEntry(amount=12_000, date=date(2024, 5, 3), by_whom="A", category="Rent")
        ))
        asyncio.run(service.add_expense(NewExpenseEntry(
            amount=3_000, date=date(2024, 5, 4), by_whom="B", type=ExpenseType.COMPANY,
        )))
        asyncio.run(service.add_payout(
            NewDonationPayout(amount=10_000, date=date(2024, 5, 5), paid_to="Edhi")
        ))
        return service

    def test_round_trip_reproduces_financials(self):
        """Test export → import gives identical financials."""
        source = self.populated_service()
        exported = json.loads(json.dumps(asyncio.run(source.export_data())))

        target, _, _ = make_service()
        result = asyncio.run(target.import_data(exported))

        assert result.is_valid
        assert target.financials() == source.financials()
        assert target.config == source.config

    def test_export_shape(self):
        """Test the export carries every collection and the configuration."""
        exported = asyncio.run(self.populated_service().export_data())
        assert set(exported) == {
            "transactions",
            "expenses",
            "donationPayouts",
            "equityConfig",
            "donationPolicy",
            "mode",
        }
        assert exported["transactions"][0]["policySnapshot"] is not None

    def test_import_legacy_export(self):
        """Test older exports import through the migrator."""
        service, _, _ = partnership_service()
        result = asyncio.run(service.import_data({
            "transactions": [legacy_record()],
            "expenses": [{"id": 1, "amount": 100, "date": "2023-06-02", "byWhom": "A"}],
            "donationPayouts": [],
        }))
        assert result.is_valid
        assert service.state.expenses[0].expense_type == ExpenseType.PERSONAL
        assert service.financials().total_gross_profit == 28000

    def test_personal_ledger_import_splits_to_owner(self):
        """Test a personal ledger credits imported legacy shares to the owner."""
        service, _, _ = partnership_service()
        asyncio.run(service.set_mode(LedgerMode.PERSONAL))
        asyncio.run(service.import_data({
            "transactions": [legacy_record()],
            "expenses": [],
            "donationPayouts": [],
        }))

        assert service.state.transactions[0].derived.partner_shares == {"owner": 25200}
        assert service.financials().partner_earnings == {"owner": 25200}

    def test_import_mode_overrides_ledger_mode(self):
        """Test an explicit company mode in the payload splits by partner equity."""
        service, _, _ = partnership_service()
        asyncio.run(service.set_mode(LedgerMode.PERSONAL))
        asyncio.run(service.import_data({
            "transactions": [legacy_record()],
            "expenses": [],
            "donationPayouts": [],
            "mode": "company",
        }))

        assert service.config.mode == LedgerMode.COMPANY
        assert service.state.transactions[0].derived.partner_shares == {"A": 12600, "B": 12600}

    def test_rejected_import_applies_nothing(self):
        """Test one bad record rejects the whole import."""
        service = self.populated_service()
        before = service.state

        with pytest.raises(ImportRejected) as exc_info:
            asyncio.run(service.import_data({
                "transactions": [legacy_record(1), {"id": 2}],
                "expenses": [],
                "donationPayouts": [],
            }))

        assert exc_info.value.errors
        assert service.state is before


class TestFactory:
    """Tests for building a service from settings."""

    def test_memory_backend(self, monkeypatch):
        """Test the memory backend is selected from the environment."""
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        service = create_ledger_service(Settings())
        asyncio.run(service.load())
        assert service.state.transactions == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
