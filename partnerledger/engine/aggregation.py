"""
Aggregation Engine

Folds the three collections into portfolio metrics. Pure: same inputs,
same Financials, no I/O.

DESIGN DECISION: Aggregates are recomputed on every query and never
stored. Income is split by each entry's own frozen share map (the equity
in force when it was recorded); company expenses are split by the
current equity config.

SETTLEMENT:
Each partner's position is their balance minus their equity-weighted
draw on the partners' combined balance:

    balance[p]  = earnings[p] − expenses[p]
    position[p] = balance[p] − equity[p] × Σ balance

A partner with a negative position has taken more than their share and
owes the difference. For two equal partners with no income this reduces
to |expenses[A] − expenses[B]| / 2, owed by the bigger spender.

In personal mode the ledger has one implicit owner: all net profit and
every expense belong to them, whatever name an expense was recorded
under, so there is nothing to settle.
"""

from collections.abc import Iterable

import structlog

from partnerledger.engine import equity as equity_model
from partnerledger.models.ledger import (
    DeficitPartner,
    DonationPayout,
    ExpenseEntry,
    ExpenseType,
    Financials,
    IncomeEntry,
    LedgerMode,
    Loan,
    PartnerEquityConfig,
)


logger = structlog.get_logger(__name__)

AMOUNT_TOLERANCE = 1e-6


def _add(bucket: dict[str, float], key: str, amount: float) -> None:
    bucket[key] = bucket.get(key, 0.0) + amount


def aggregate(
    transactions: Iterable[IncomeEntry],
    expenses: Iterable[ExpenseEntry],
    payouts: Iterable[DonationPayout],
    equity: PartnerEquityConfig,
    tolerance: float = AMOUNT_TOLERANCE,
    mode: LedgerMode = LedgerMode.COMPANY,
) -> Financials:
    """
    Compute Financials from the source collections.

    Args:
        transactions: Income entries with derived amounts
        expenses: Expense entries
        payouts: Donation payouts
        equity: Current equity config (company expense split and
            settlement draw)
        tolerance: Amounts within this of zero are treated as zero
        mode: In personal mode everything is charged to the solo owner

    Returns:
        Financials, with data-quality findings on ``warnings``
    """
    warnings: list[str] = []

    personal = LedgerMode(mode) == LedgerMode.PERSONAL
    if personal:
        equity = equity_model.solo_config()
    owner = equity_model.SOLO_PARTNER_ID

    partner_earnings = {p.id: 0.0 for p in equity.active_partners}
    partner_expenses = {p.id: 0.0 for p in equity.active_partners}
    partner_outlays = {p.id: 0.0 for p in equity.active_partners}

    total_gross_profit = 0.0
    total_net_profit = 0.0
    total_donations_accrued = 0.0

    for tx in transactions:
        derived = tx.derived
        total_gross_profit += derived.gross
        total_net_profit += derived.net_profit
        total_donations_accrued += derived.charity_amount

        if personal:
            _add(partner_earnings, owner, derived.net_profit)
        else:
            for partner_id, share in derived.partner_shares.items():
                _add(partner_earnings, partner_id, share)

        if derived.charity_amount > derived.gross + tolerance:
            warnings.append(
                f"Income {tx.id}: donation {derived.charity_amount:,.2f} "
                f"exceeds gross {derived.gross:,.2f}"
            )
        if derived.partner_shares:
            distributed = sum(derived.partner_shares.values())
            if abs(distributed - derived.net_profit) > tolerance * max(1.0, abs(derived.net_profit)):
                warnings.append(
                    f"Income {tx.id}: partner shares total {distributed:,.2f} "
                    f"but net profit is {derived.net_profit:,.2f}"
                )

    total_expenses = 0.0
    for ex in expenses:
        total_expenses += ex.amount

        partner = None if personal else equity.find_partner(ex.by_whom)
        if personal:
            payer = owner
        elif partner is None:
            payer = ex.by_whom
            warnings.append(f"Expense {ex.id}: unknown partner '{ex.by_whom}'")
            logger.warning("expense_partner_unknown", expense_id=ex.id, by_whom=ex.by_whom)
        else:
            payer = partner.id

        _add(partner_outlays, payer, ex.amount)

        if ex.expense_type == ExpenseType.COMPANY:
            for partner_id, share in equity_model.shares(ex.amount, equity).items():
                _add(partner_expenses, partner_id, share)
        else:
            _add(partner_expenses, payer, ex.amount)

    total_donations_paid_out = sum(p.amount for p in payouts)
    available_donations_fund = total_donations_accrued - total_donations_paid_out
    if available_donations_fund < -tolerance:
        warnings.append(
            f"Donation payouts exceed accrued donations by "
            f"{-available_donations_fund:,.2f}"
        )
        logger.warning(
            "donation_fund_negative",
            accrued=total_donations_accrued,
            paid_out=total_donations_paid_out,
        )

    partner_ids = list(dict.fromkeys([*partner_earnings, *partner_expenses]))
    partner_balances = {
        pid: partner_earnings.get(pid, 0.0) - partner_expenses.get(pid, 0.0)
        for pid in partner_ids
    }

    combined = sum(partner_balances.values())
    deficits = []
    for pid, balance in partner_balances.items():
        position = balance - equity.equity_of(pid) * combined
        if position < -tolerance:
            deficits.append(DeficitPartner(partner_id=pid, amount=-position))
    deficits.sort(key=lambda d: d.amount, reverse=True)

    loan = Loan()
    if deficits:
        loan = Loan(amount=deficits[0].amount, owed_by=deficits[0].partner_id)

    return Financials(
        total_gross_profit=total_gross_profit,
        total_net_profit=total_net_profit,
        total_expenses=total_expenses,
        total_donations_accrued=total_donations_accrued,
        total_donations_paid_out=total_donations_paid_out,
        available_donations_fund=available_donations_fund,
        company_capital=total_net_profit - total_expenses,
        partner_earnings=partner_earnings,
        partner_expenses=partner_expenses,
        partner_outlays=partner_outlays,
        partner_balances=partner_balances,
        loan=loan,
        deficit_partners=deficits,
        warnings=warnings,
    )
