"""
Ledger Derivation Engine

Pure computations that turn raw entries into derived amounts and
aggregates. The only I/O is the awaited income-source catalog lookup in
the fee resolver.
"""

from partnerledger.engine.aggregation import aggregate
from partnerledger.engine.calculator import CalculationResult, TransactionCalculator
from partnerledger.engine.equity import (
    EQUITY_EPSILON,
    effective_equity,
    legacy_two_partner_config,
    require_valid,
    shares,
    solo_config,
    validate,
)
from partnerledger.engine.errors import (
    EntryNotFound,
    ImportRejected,
    InsufficientDonationFund,
    InvalidAmount,
    InvalidEquityConfig,
    LedgerError,
    MalformedRecord,
    UnresolvableSource,
)
from partnerledger.engine.fees import FeeResolver, compute_fee
from partnerledger.engine.policy import PolicyOutcome, clamp_charity, evaluate
from partnerledger.engine.snapshot import (
    authorize_payout,
    snapshot_for_create,
    snapshot_for_edit,
)

__all__ = [
    # Aggregation
    "aggregate",
    # Calculator
    "CalculationResult",
    "TransactionCalculator",
    # Equity
    "EQUITY_EPSILON",
    "effective_equity",
    "legacy_two_partner_config",
    "require_valid",
    "shares",
    "solo_config",
    "validate",
    # Errors
    "EntryNotFound",
    "ImportRejected",
    "InsufficientDonationFund",
    "InvalidAmount",
    "InvalidEquityConfig",
    "LedgerError",
    "MalformedRecord",
    "UnresolvableSource",
    # Fees
    "FeeResolver",
    "compute_fee",
    # Policy
    "PolicyOutcome",
    "clamp_charity",
    "evaluate",
    # Snapshot
    "authorize_payout",
    "snapshot_for_create",
    "snapshot_for_edit",
]
