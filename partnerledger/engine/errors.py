"""
Ledger error taxonomy.

Every error raised by the engine or the service layer derives from
LedgerError, so callers can catch one type at the presentation boundary.

UnresolvableSource and MalformedRecord are recovered locally (zero fee,
skipped record) and are only raised internally.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class InvalidAmount(LedgerError):
    """A monetary input is non-positive or otherwise unusable."""

    def __init__(self, field: str, value: float, requirement: str = "must be greater than zero"):
        self.field = field
        self.value = value
        super().__init__(f"{field} {requirement} (got {value})")


class InvalidEquityConfig(LedgerError):
    """Partner equity configuration violates the sum-to-one rule or is malformed."""

    def __init__(self, message: str, equity_sum: Optional[float] = None):
        self.equity_sum = equity_sum
        super().__init__(message)


class InsufficientDonationFund(LedgerError):
    """A donation payout exceeds the available donation fund."""

    def __init__(self, amount: float, available: float):
        self.amount = amount
        self.available = available
        super().__init__(
            f"Payout of {amount:,.2f} exceeds the available donation fund "
            f"of {available:,.2f}"
        )


class UnresolvableSource(LedgerError):
    """The income-source catalog has no usable metadata for a source."""

    def __init__(self, source_id: str, reason: str = "unknown source"):
        self.source_id = source_id
        self.reason = reason
        super().__init__(f"Cannot resolve income source '{source_id}': {reason}")


class MalformedRecord(LedgerError):
    """A persisted record cannot be parsed in any known shape."""

    def __init__(self, collection: str, index: int, reason: str):
        self.collection = collection
        self.index = index
        self.reason = reason
        super().__init__(f"{collection}[{index}]: {reason}")


class ImportRejected(LedgerError):
    """A bulk import was rejected as a whole; nothing was applied."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        summary = "; ".join(errors[:5])
        if len(errors) > 5:
            summary += f" (+{len(errors) - 5} more)"
        super().__init__(f"Import rejected: {summary}")


class EntryNotFound(LedgerError):
    """No entry with the requested id exists in the collection."""

    def __init__(self, collection: str, entry_id: int):
        self.collection = collection
        self.entry_id = entry_id
        super().__init__(f"No entry {entry_id} in {collection}")
