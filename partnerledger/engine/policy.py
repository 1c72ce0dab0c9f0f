"""
Tax & Donation Policy Evaluator

Computes charity, tax and net profit for one gross amount under one
donation policy. Three branches:

    disabled     charity = 0
                 tax     = gross × rate
                 net     = gross − tax

    before-tax   charity = clamp(gross × pct)
                 taxable = gross − charity
                 tax     = taxable × rate
                 net     = taxable − tax

    after-tax    tax     = gross × rate
                 charity = clamp((gross − gross × rate) × pct)
                 net     = gross − tax − charity

A per-entry tax override (a fixed amount or another rate) replaces only
the tax itself. The after-tax donation base always uses the entry's own
rate, so entries with an override keep the donation they were saved with.

CRITICAL: The operation order above is part of the contract. Historical
entries are recalculated on edit, and any reordering changes the floating
point results of entries that were saved years ago.

Clamping happens after the percentage and before any subtraction. A
minimum donation larger than gross is kept as-is and reported as a
warning; historical snapshots may already contain such values.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict

from partnerledger.models.ledger import DonationPolicy, TaxPreference


logger = structlog.get_logger(__name__)


class PolicyOutcome(BaseModel):
    """Result of evaluating a policy against one gross amount."""
    model_config = ConfigDict(frozen=True)

    charity_amount: float
    taxable_amount: float
    tax_amount: float
    net_profit: float
    net_before_charity: Optional[float] = None
    warnings: list[str] = []


def clamp_charity(amount: float, policy: DonationPolicy) -> float:
    """
    Apply the policy's minimum/maximum to a computed donation.

    A bound of 0 (or unset) means "not configured".
    """
    if policy.minimum_amount and amount < policy.minimum_amount:
        amount = policy.minimum_amount
    if policy.maximum_amount and amount > policy.maximum_amount:
        amount = policy.maximum_amount
    return amount


def evaluate(
    gross: float,
    tax_rate_percent: float,
    policy: DonationPolicy,
    fixed_tax: Optional[float] = None,
    override_rate_percent: Optional[float] = None,
) -> PolicyOutcome:
    """
    Evaluate a donation policy.

    Args:
        gross: Post-fee amount in ledger currency
        tax_rate_percent: Tax rate in percent (5 = 5%)
        policy: The policy snapshot to apply (never the live policy on edit)
        fixed_tax: Fixed tax amount in ledger currency; replaces the
            percentage tax in every branch when given
        override_rate_percent: Rate that replaces tax_rate_percent for the
            tax amount only

    Returns:
        PolicyOutcome with the derived amounts and any data-quality warnings
    """
    def tax_on(base: float) -> float:
        if fixed_tax is not None:
            return fixed_tax
        if override_rate_percent is not None:
            return base * (override_rate_percent / 100)
        return base * (tax_rate_percent / 100)

    net_before_charity = None

    if not policy.enabled:
        charity_amount = 0.0
        taxable_amount = gross
        tax_amount = tax_on(gross)
        net_profit = gross - tax_amount

    elif policy.tax_preference == TaxPreference.BEFORE_TAX:
        charity_amount = clamp_charity(gross * (policy.percentage / 100), policy)
        taxable_amount = gross - charity_amount
        tax_amount = tax_on(taxable_amount)
        net_profit = taxable_amount - tax_amount

    else:
        net_before_charity = gross - gross * (tax_rate_percent / 100)
        tax_amount = tax_on(gross)
        charity_amount = clamp_charity(
            net_before_charity * (policy.percentage / 100), policy
        )
        taxable_amount = gross
        net_profit = gross - tax_amount - charity_amount

    warnings = []
    if charity_amount > gross:
        warnings.append(
            f"Donation {charity_amount:,.2f} exceeds gross {gross:,.2f} "
            "after applying the policy minimum"
        )
        logger.warning(
            "charity_exceeds_gross",
            charity_amount=charity_amount,
            gross=gross,
            minimum_amount=policy.minimum_amount,
        )

    return PolicyOutcome(
        charity_amount=charity_amount,
        taxable_amount=taxable_amount,
        tax_amount=tax_amount,
        net_profit=net_profit,
        net_before_charity=net_before_charity,
        warnings=warnings,
    )
