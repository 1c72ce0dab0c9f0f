"""
Snapshot Policy

Decides which donation policy an income entry is calculated with, and
guards donation payouts against the fund.

RULES:
1. On create, the entry gets a copy of the live policy, taken in the same
   step as the fee lookup.
2. On edit, the entry is recalculated with its own snapshot. An entry that
   has none gets a copy of the live policy once, and that copy is saved
   into the record so later edits are stable.
3. A payout may not exceed the available donation fund at submission time.
"""

from typing import Optional

from partnerledger.engine.errors import InsufficientDonationFund, InvalidAmount
from partnerledger.models.ledger import DonationPolicy, IncomeEntry


def snapshot_for_create(live_policy: DonationPolicy) -> DonationPolicy:
    """Deep copy of the live policy for a new entry."""
    return live_policy.model_copy(deep=True)


def snapshot_for_edit(
    entry: IncomeEntry,
    live_policy: DonationPolicy,
) -> tuple[DonationPolicy, bool]:
    """
    Policy to recalculate an existing entry with.

    Returns:
        (policy, backfilled) where backfilled is True when the entry had
        no snapshot and the live policy was copied in
    """
    if entry.policy_snapshot is not None:
        return entry.policy_snapshot, False
    return live_policy.model_copy(deep=True), True


def authorize_payout(
    amount: float,
    available_fund: float,
    previous_amount: Optional[float] = None,
) -> None:
    """
    Check a payout against the donation fund.

    Args:
        amount: Requested payout amount
        available_fund: Currently available fund
        previous_amount: For an edit, the payout's current amount, which
            is returned to the fund before the check

    Raises:
        InvalidAmount: amount is not positive
        InsufficientDonationFund: amount exceeds the fund
    """
    if amount <= 0:
        raise InvalidAmount("amount", amount)

    available = available_fund + (previous_amount or 0.0)
    if amount > available:
        raise InsufficientDonationFund(amount, available)
