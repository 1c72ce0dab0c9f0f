"""Tests for the transaction calculator."""

import asyncio
from datetime import date

import pytest

from partnerledger.engine import equity
from partnerledger.engine.calculator import TransactionCalculator
from partnerledger.engine.errors import InvalidAmount
from partnerledger.engine.fees import FeeResolver
from partnerledger.models.ledger import (
    DonationPolicy,
    FeeMethod,
    FeeModel,
    IncomeSource,
    NewIncomeEntry,
    Partner,
    PartnerEquityConfig,
    TaxConfig,
    TaxConfigType,
    TaxPreference,
)
from partnerledger.services.catalog import StaticSourceCatalog


POLICY = DonationPolicy(enabled=True, percentage=10, tax_preference=TaxPreference.BEFORE_TAX)
PARTNERS = equity.legacy_two_partner_config("a", "b")


def make_calculator() -> TransactionCalculator:
    catalog = StaticSourceCatalog([
        IncomeSource(
            id="upwork",
            name="Upwork",
            fees=FeeModel(method=FeeMethod.PERCENTAGE, percentage_fee=10),
        ),
        IncomeSource(id="salary", name="Salary", default_tax_rate=5),
    ])
    return TransactionCalculator(FeeResolver(catalog), ledger_currency="PKR")


def new_entry(**overrides) -> NewIncomeEntry:
    values = {
        "source_id": "upwork",
        "raw_amount": 1000,
        "conversion_rate": 280,
        "tax_rate": 0,
        "date": date(2024, 5, 1),
    }
    values.update(overrides)
    return NewIncomeEntry(**values)


class TestCalculate:
    """Tests for the calculation pipeline."""

    def test_foreign_entry_pipeline(self):
        """Test fee in source currency, then conversion, policy and split."""
        result = asyncio.run(make_calculator().calculate(new_entry(), POLICY, PARTNERS))
        derived = result.derived

        assert derived.fee == pytest.approx(28_000)
        assert derived.gross == pytest.approx(252_000)
        assert derived.charity_amount == pytest.approx(25_200)
        assert derived.tax_amount == 0
        assert derived.net_profit == pytest.approx(226_800)
        assert derived.partner_shares == {
            "a": pytest.approx(113_400),
            "b": pytest.approx(113_400),
        }

    def test_shares_sum_to_net(self):
        """Test the partner split equals net profit."""
        uneven = PartnerEquityConfig(partners=[
            Partner(id="a", name="A", equity=0.7),
            Partner(id="b", name="B", equity=0.3),
        ])
        result = asyncio.run(make_calculator().calculate(new_entry(tax_rate=7), POLICY, uneven))
        assert sum(result.derived.partner_shares.values()) == pytest.approx(result.derived.net_profit)

    def test_domestic_entry_has_no_fee(self):
        """Test entries in the ledger currency skip the fee lookup."""
        entry = new_entry(currency="PKR", raw_amount=50_000, conversion_rate=1)
        result = asyncio.run(make_calculator().calculate(entry, POLICY, PARTNERS))
        assert result.derived.fee == 0
        assert result.derived.gross == pytest.approx(50_000)

    def test_domestic_entry_requires_rate_one(self):
        """Test a domestic entry cannot be converted."""
        entry = new_entry(currency="PKR", raw_amount=50_000, conversion_rate=280)
        with pytest.raises(InvalidAmount):
            asyncio.run(make_calculator().calculate(entry, POLICY, PARTNERS))

    @pytest.mark.parametrize("field,value", [
        ("raw_amount", 0),
        ("raw_amount", -5),
        ("conversion_rate", 0),
    ])
    def test_rejects_non_positive_inputs(self, field, value):
        """Test non-positive amounts never reach the evaluator."""
        with pytest.raises(InvalidAmount):
            asyncio.run(make_calculator().calculate(new_entry(**{field: value}), POLICY, PARTNERS))

    def test_default_tax_rate_from_source(self):
        """Test an unset tax rate falls back to the source default."""
        entry = new_entry(source_id="salary", tax_rate=None)
        result = asyncio.run(make_calculator().calculate(entry, POLICY, PARTNERS))
        assert result.tax_rate == 5
        # gross 280,000, charity 28,000, tax 5% of 252,000
        assert result.derived.tax_amount == pytest.approx(12_600)

    def test_unknown_source_still_calculates(self):
        """Test an unresolvable source is treated as fee-free."""
        entry = new_entry(source_id="not-in-catalog")
        result = asyncio.run(make_calculator().calculate(entry, POLICY, PARTNERS))
        assert result.source is None
        assert result.derived.gross == pytest.approx(280_000)

    def test_personal_mode_single_partner(self):
        """Test the solo config gets the whole net profit."""
        result = asyncio.run(
            make_calculator().calculate(new_entry(), POLICY, equity.solo_config())
        )
        assert result.derived.partner_shares == {
            "owner": pytest.approx(result.derived.net_profit),
        }


class TestTaxConfig:
    """Tests for per-entry tax overrides."""

    def test_fixed_tax_override(self):
        """Test a fixed tax amount replaces the rate."""
        entry = new_entry(
            tax_rate=5,
            tax_config=TaxConfig(enabled=True, type=TaxConfigType.FIXED, value=1_000),
        )
        result = asyncio.run(make_calculator().calculate(entry, POLICY, PARTNERS))
        assert result.derived.tax_amount == 1_000
        assert result.tax_rate == 5

    def test_fixed_tax_after_tax_keeps_rate_for_donation(self):
        """Test the after-tax donation base uses the entry rate, not the fixed tax."""
        entry = new_entry(
            tax_rate=5,
            tax_config=TaxConfig(enabled=True, type=TaxConfigType.FIXED, value=1_000),
        )
        after_tax = DonationPolicy(enabled=True, percentage=10, tax_preference=TaxPreference.AFTER_TAX)
        result = asyncio.run(make_calculator().calculate(entry, after_tax, PARTNERS))
        # gross 252,000; donation base 252,000 x 0.95
        assert result.derived.charity_amount == pytest.approx(23_940)
        assert result.derived.tax_amount == 1_000
        assert result.derived.net_profit == pytest.approx(227_060)

    def test_percentage_tax_override(self):
        """Test a percentage override replaces the entry rate."""
        entry = new_entry(
            tax_rate=5,
            tax_config=TaxConfig(enabled=True, type=TaxConfigType.PERCENTAGE, value=10),
        )
        result = asyncio.run(make_calculator().calculate(entry, POLICY, PARTNERS))
        # taxable 252,000 - 25,200
        assert result.derived.tax_amount == pytest.approx(22_680)

    def test_disabled_override_is_ignored(self):
        """Test a disabled tax config has no effect."""
        entry = new_entry(
            tax_rate=0,
            tax_config=TaxConfig(enabled=False, type=TaxConfigType.FIXED, value=1_000),
        )
        result = asyncio.run(make_calculator().calculate(entry, POLICY, PARTNERS))
        assert result.derived.tax_amount == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
