"""Period query package."""

from partnerledger.queries.executor import (
    DateFilter,
    DatePreset,
    LedgerQueryExecutor,
    WalletStats,
)

__all__ = [
    "DateFilter",
    "DatePreset",
    "LedgerQueryExecutor",
    "WalletStats",
]
