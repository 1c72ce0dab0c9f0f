"""
Transaction Calculator

The only writer of an income entry's derived amounts.

Pipeline:
    1. Reject unusable amounts
    2. Resolve the source (frozen snapshot first, then catalog)
    3. Fee in source currency → gross in ledger currency
    4. Policy evaluator → charity / tax / net
    5. Equity model → partner shares of net

DESIGN DECISION: The calculator takes the policy snapshot and the equity
config as arguments. It never reads live settings, so recalculating an
old entry with its own snapshot reproduces its stored figures.
"""

from typing import Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict

from partnerledger.engine import equity as equity_model
from partnerledger.engine.errors import InvalidAmount
from partnerledger.engine.fees import FeeResolver, compute_fee
from partnerledger.engine.policy import evaluate
from partnerledger.models.ledger import (
    DerivedAmounts,
    DonationPolicy,
    IncomeEntry,
    IncomeSource,
    NewIncomeEntry,
    PartnerEquityConfig,
    TaxConfigType,
)


logger = structlog.get_logger(__name__)


class CalculationResult(BaseModel):
    """Derived amounts for one entry plus anything worth flagging."""
    model_config = ConfigDict(frozen=True)

    derived: DerivedAmounts
    source: Optional[IncomeSource] = None
    tax_rate: float = 0.0
    warnings: list[str] = []


class TransactionCalculator:
    """Composes fee resolution, policy evaluation and equity splitting."""

    def __init__(
        self,
        fee_resolver: FeeResolver,
        ledger_currency: str = "PKR",
        default_source_currency: str = "USD",
    ):
        self._fees = fee_resolver
        self._ledger_currency = ledger_currency.upper()
        self._default_currency = default_source_currency.upper()

    def is_domestic(self, entry: Union[IncomeEntry, NewIncomeEntry]) -> bool:
        """Entry already denominated in the ledger currency."""
        currency = (entry.currency or self._default_currency).upper()
        return currency == self._ledger_currency

    async def calculate(
        self,
        entry: Union[IncomeEntry, NewIncomeEntry],
        policy_snapshot: DonationPolicy,
        equity: PartnerEquityConfig,
    ) -> CalculationResult:
        """
        Derive fee, gross, charity, tax, net and partner shares.

        Args:
            entry: New or existing income entry
            policy_snapshot: Policy to apply (live copy on create,
                the entry's own snapshot on edit)
            equity: Equity config to split net profit by (the solo config
                in personal mode)

        Raises:
            InvalidAmount: raw amount or conversion rate is not positive,
                or a domestic entry has a conversion rate other than 1
        """
        if entry.raw_amount <= 0:
            raise InvalidAmount("raw_amount", entry.raw_amount)
        if entry.conversion_rate <= 0:
            raise InvalidAmount("conversion_rate", entry.conversion_rate)

        domestic = self.is_domestic(entry)
        if domestic and entry.conversion_rate != 1:
            raise InvalidAmount(
                "conversion_rate",
                entry.conversion_rate,
                f"must be 1 for entries in {self._ledger_currency}",
            )

        snapshot = getattr(entry, "source_snapshot", None)
        source = await self._fees.resolve_source(entry.source_id, snapshot)

        if domestic:
            fee_source = 0.0
        else:
            fee_source = compute_fee(source.fees if source else None, entry.raw_amount)

        rate = entry.conversion_rate
        gross = (entry.raw_amount - fee_source) * rate
        fee = fee_source * rate

        tax_rate = entry.tax_rate
        if tax_rate is None:
            tax_rate = source.default_tax_rate if source else 0.0

        override_rate = None
        fixed_tax = None
        if entry.tax_config is not None and entry.tax_config.enabled:
            if entry.tax_config.type == TaxConfigType.FIXED:
                fixed_tax = entry.tax_config.value
            else:
                override_rate = entry.tax_config.value

        outcome = evaluate(
            gross,
            tax_rate,
            policy_snapshot,
            fixed_tax=fixed_tax,
            override_rate_percent=override_rate,
        )

        warnings = list(outcome.warnings)
        if gross <= 0:
            warnings.append(
                f"Platform fee {fee_source:,.2f} leaves no gross amount "
                f"for source '{entry.source_id}'"
            )
            logger.warning(
                "fee_exceeds_amount",
                source_id=entry.source_id,
                raw_amount=entry.raw_amount,
                fee=fee_source,
            )

        derived = DerivedAmounts(
            fee=fee,
            gross=gross,
            charity_amount=outcome.charity_amount,
            tax_amount=outcome.tax_amount,
            net_profit=outcome.net_profit,
            partner_shares=equity_model.shares(outcome.net_profit, equity),
        )

        logger.debug(
            "transaction_calculated",
            source_id=entry.source_id,
            gross=gross,
            net_profit=outcome.net_profit,
            domestic=domestic,
        )

        return CalculationResult(
            derived=derived,
            source=source,
            tax_rate=tax_rate,
            warnings=warnings,
        )
