"""
Period Query Engine

DESIGN DECISION: Queries are DETERMINISTIC and read-only.
The executor filters a ledger state by date and feeds the result through
the same aggregation engine the dashboard totals use. It never stores
anything and never alters a record.

"Current" figures (available balance, donation fund) always come from the
unfiltered ledger: money spent last year is still spent.
"""

from calendar import monthrange
from datetime import date
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, model_validator

from partnerledger.engine.aggregation import aggregate
from partnerledger.engine.equity import effective_equity
from partnerledger.models.ledger import (
    ExpenseType,
    Financials,
    LedgerState,
)


class DatePreset(str, Enum):
    """Dashboard period presets."""
    CURRENT_MONTH = "current-month"
    THREE_MONTHS = "3-months"
    SIX_MONTHS = "6-months"
    ONE_YEAR = "1-year"
    ALL_TIME = "all-time"


# Months before the current one included by each rolling preset
_MONTHS_BACK = {
    DatePreset.THREE_MONTHS: 2,
    DatePreset.SIX_MONTHS: 5,
    DatePreset.ONE_YEAR: 11,
}


def _first_of_month(today: date, months_back: int) -> date:
    month_index = today.year * 12 + (today.month - 1) - months_back
    return date(month_index // 12, month_index % 12 + 1, 1)


class DateFilter(BaseModel):
    """
    Inclusive date range. Either bound may be open.

    Usage:
        DateFilter.preset("3-months")
        DateFilter(start=date(2024, 1, 1), end=date(2024, 3, 31))
    """

    start: Optional[date] = None
    end: Optional[date] = None
    label: str = Field(default="custom", description="Preset name or 'custom'")

    @model_validator(mode="after")
    def check_order(self) -> "DateFilter":
        if self.start and self.end and self.end < self.start:
            raise ValueError("end date is before start date")
        return self

    @classmethod
    def preset(cls, preset: Union[DatePreset, str], today: Optional[date] = None) -> "DateFilter":
        """Resolve a preset to concrete bounds relative to today."""
        preset = DatePreset(preset)
        today = today or date.today()

        if preset == DatePreset.ALL_TIME:
            return cls(label=preset.value)
        if preset == DatePreset.CURRENT_MONTH:
            last_day = monthrange(today.year, today.month)[1]
            return cls(
                start=today.replace(day=1),
                end=today.replace(day=last_day),
                label=preset.value,
            )
        return cls(
            start=_first_of_month(today, _MONTHS_BACK[preset]),
            end=today,
            label=preset.value,
        )

    def contains(self, value: date) -> bool:
        if self.start and value < self.start:
            return False
        if self.end and value > self.end:
            return False
        return True


class WalletStats(BaseModel):
    """Headline figures for one period."""

    total_income: float = Field(..., description="Gross profit in the period")
    total_expenses: float
    net_amount: float = Field(..., description="Net profit in the period")
    available_balance: float = Field(..., description="Current company capital (unfiltered)")
    donations_fund: float = Field(..., description="Current donation fund (unfiltered)")


class LedgerQueryExecutor:
    """
    Executes period queries against a ledger state.

    GUARANTEES:
    - Only returns figures derived from stored records
    - Uses the same aggregation as the unfiltered totals
    """

    def __init__(self, state: LedgerState, tolerance: float = 1e-6):
        self._state = state
        self._tolerance = tolerance

    def filter_state(self, date_filter: Optional[DateFilter] = None) -> LedgerState:
        """A copy of the state restricted to the period."""
        if date_filter is None:
            return self._state
        return LedgerState(
            transactions=[t for t in self._state.transactions if date_filter.contains(t.entry_date)],
            expenses=[e for e in self._state.expenses if date_filter.contains(e.entry_date)],
            donation_payouts=[
                p for p in self._state.donation_payouts if date_filter.contains(p.entry_date)
            ],
            config=self._state.config,
        )

    def financials(self, date_filter: Optional[DateFilter] = None) -> Financials:
        """Financials for the period (all time when no filter is given)."""
        state = self.filter_state(date_filter)
        return aggregate(
            state.transactions,
            state.expenses,
            state.donation_payouts,
            effective_equity(state.config),
            tolerance=self._tolerance,
            mode=state.config.mode,
        )

    def wallet_stats(self, date_filter: Optional[DateFilter] = None) -> WalletStats:
        period = self.financials(date_filter)
        current = period if date_filter is None else self.financials()
        return WalletStats(
            total_income=period.total_gross_profit,
            total_expenses=period.total_expenses,
            net_amount=period.total_net_profit,
            available_balance=current.company_capital,
            donations_fund=current.available_donations_fund,
        )

    def income_by_source(self, date_filter: Optional[DateFilter] = None) -> dict[str, float]:
        """Gross income per source id, largest first."""
        totals: dict[str, float] = {}
        for tx in self.filter_state(date_filter).transactions:
            totals[tx.source_id] = totals.get(tx.source_id, 0.0) + tx.derived.gross
        return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))

    def expenses_by_category(
        self,
        date_filter: Optional[DateFilter] = None,
        expense_type: Optional[ExpenseType] = None,
    ) -> dict[str, float]:
        """Expense totals per category, largest first."""
        totals: dict[str, float] = {}
        for ex in self.filter_state(date_filter).expenses:
            if expense_type is not None and ex.expense_type != expense_type:
                continue
            category = ex.category or "Uncategorized"
            totals[category] = totals.get(category, 0.0) + ex.amount
        return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))
