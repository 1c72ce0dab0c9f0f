"""Tests for the two-stage import validator."""

from datetime import date, timedelta

import pytest

from partnerledger.engine import equity
from partnerledger.models.ledger import LedgerMode
from partnerledger.validation import LedgerImportValidator


CURRENT = equity.legacy_two_partner_config("Ali", "Sara")


def legacy_income(entry_id: int = 1, when: str = "2023-06-01") -> dict:
    return {
        "id": entry_id,
        "source": "youtube",
        "amountUSD": 100,
        "conversionRate": 280,
        "date": when,
        "calculations": {
            "grossPKR": 28000,
            "charityAmount": 2800,
            "netProfit": 25200,
        },
    }


def payload(**overrides) -> dict:
    data = {
        "transactions": [legacy_income()],
        "expenses": [
            {"id": 1, "amount": 500, "date": "2023-06-02", "byWhom": "Ali", "type": "personal"},
        ],
        "donationPayouts": [
            {"id": 1, "amount": 1000, "date": "2023-06-03", "paidTo": "Edhi"},
        ],
    }
    data.update(overrides)
    return data


class TestSchemaStage:
    """Tests for blocking schema checks."""

    def test_valid_payload(self):
        """Test a clean legacy export passes and is migrated."""
        result, parsed = LedgerImportValidator().validate(payload(), CURRENT)

        assert result.is_valid
        assert result.issues == []
        assert parsed.transactions[0].source_id == "youtube"
        assert parsed.report.migrated == {"transactions": 1}

    def test_non_object_rejected(self):
        """Test the payload must be an object."""
        result, parsed = LedgerImportValidator().validate([1, 2, 3], CURRENT)
        assert not result.schema_valid
        assert parsed is None

    def test_collection_must_be_array(self):
        """Test each collection must be an array."""
        result, parsed = LedgerImportValidator().validate(payload(expenses={"id": 1}), CURRENT)
        assert not result.schema_valid
        assert parsed is None
        assert result.errors[0].startswith("expenses:")

    def test_missing_collection_rejected(self):
        """Test all three collections are required."""
        data = payload()
        del data["donationPayouts"]
        result, _ = LedgerImportValidator().validate(data, CURRENT)
        assert not result.schema_valid

    def test_invalid_equity_rejected(self):
        """Test an equity config that does not sum to 1 rejects the import."""
        bad_equity = {"partners": [
            {"id": "a", "name": "A", "equity": 0.5},
            {"id": "b", "name": "B", "equity": 0.4},
        ]}
        result, parsed = LedgerImportValidator().validate(payload(equityConfig=bad_equity), CURRENT)
        assert not result.schema_valid
        assert parsed is None
        assert any("equityConfig" in e for e in result.errors)

    def test_invalid_mode_rejected(self):
        """Test an unknown mode rejects the import."""
        result, _ = LedgerImportValidator().validate(payload(mode="team"), CURRENT)
        assert not result.schema_valid

    def test_one_malformed_record_rejects_everything(self):
        """Test import is all-or-nothing, unlike loading."""
        data = payload(transactions=[legacy_income(1), {"id": 2}])
        result, parsed = LedgerImportValidator().validate(data, CURRENT)
        assert not result.schema_valid
        assert parsed is None
        assert any(e.startswith("transactions[1]") for e in result.errors)

    def test_duplicate_ids_rejected(self):
        """Test ids must be unique within a collection."""
        data = payload(transactions=[legacy_income(1), legacy_income(1)])
        result, _ = LedgerImportValidator().validate(data, CURRENT)
        assert not result.schema_valid

    def test_payload_equity_used_for_legacy_shares(self):
        """Test legacy shares are split with the imported equity config."""
        imported = {"partners": [
            {"id": "x", "name": "X", "equity": 0.6},
            {"id": "y", "name": "Y", "equity": 0.4},
        ]}
        _, parsed = LedgerImportValidator().validate(payload(equityConfig=imported), CURRENT)
        shares = parsed.transactions[0].derived.partner_shares
        assert shares == {"x": pytest.approx(15120), "y": pytest.approx(10080)}

    def test_personal_mode_uses_solo_split(self):
        """Test personal-mode imports split legacy shares to the owner."""
        _, parsed = LedgerImportValidator().validate(payload(mode="personal"), CURRENT)
        assert parsed.mode == LedgerMode.PERSONAL
        assert list(parsed.transactions[0].derived.partner_shares) == ["owner"]

    def test_personal_ledger_uses_solo_split(self):
        """Test a personal ledger splits legacy shares to the owner when the payload has no mode."""
        _, parsed = LedgerImportValidator().validate(payload(), CURRENT, LedgerMode.PERSONAL)
        assert parsed.mode is None
        assert parsed.transactions[0].derived.partner_shares == {"owner": pytest.approx(25200)}

    def test_payload_mode_overrides_ledger_mode(self):
        """Test an explicit company mode splits by the current partners."""
        _, parsed = LedgerImportValidator().validate(
            payload(mode="company"), CURRENT, LedgerMode.PERSONAL
        )
        shares = parsed.transactions[0].derived.partner_shares
        assert shares == {"Ali": pytest.approx(12600), "Sara": pytest.approx(12600)}


class TestSemanticStage:
    """Tests for non-blocking data-quality warnings."""

    def test_overdrawn_fund_is_warning(self):
        """Test payouts above accrued donations only warn."""
        data = payload(donationPayouts=[
            {"id": 1, "amount": 9999, "date": "2023-06-03", "paidTo": "Edhi"},
        ])
        result, parsed = LedgerImportValidator().validate(data, CURRENT)
        assert result.schema_valid
        assert result.is_valid
        assert parsed is not None
        assert len(result.warnings) == 1

    def test_future_date_is_warning(self):
        """Test a far-future date is flagged."""
        future = (date.today() + timedelta(days=30)).isoformat()
        data = payload(transactions=[legacy_income(1, future)])
        result, _ = LedgerImportValidator().validate(data, CURRENT)
        assert result.is_valid
        assert any(i.issue_type == "future_date" for i in result.issues)

    def test_summary(self):
        """Test the plain-text summary lists rejections."""
        validator = LedgerImportValidator()
        result, _ = validator.validate(payload(expenses="nope"), CURRENT)
        summary = validator.get_summary(result)
        assert summary.startswith("Import rejected:")
        assert "expenses" in summary


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
