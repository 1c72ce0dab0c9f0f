"""
Legacy Record Shapes

Income records were persisted in several shapes over the life of the
application. This module describes every shape we still accept so that the
migrator can read them with the same strict pydantic parsing used for
current records.

Shapes, oldest first:
1. Inline ``source`` as a plain string id ("youtube"), ``amountUSD``,
   ``calculations`` with a scalar ``partnerShare``, no policy snapshot
2. Inline ``source`` as a full descriptor object
3. ``incomeSourceId`` plus optional ``sourceSnapshot``, and a
   ``donationConfigSnapshot``
4. Domestic entries with ``currency: "PKR"`` and ``amount``

DESIGN DECISION: A legacy record is parsed exactly once, at the migration
boundary. Nothing outside ``partnerledger.migration`` sees these models.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, Field, model_validator

from partnerledger.models.ledger import (
    WIRE_CONFIG,
    DerivedAmounts,
    DonationPolicy,
    LedgerDate,
    TaxConfig,
)


# Fixed policy used for legacy entries that never stored one.
# Never replaced by the live policy: history must not move when settings change.
LEGACY_DEFAULT_POLICY = DonationPolicy(
    enabled=True,
    percentage=10.0,
    tax_preference="before-tax",
)


class LegacyCalculations(BaseModel):
    """The old ``calculations`` block (amounts in PKR)."""
    model_config = WIRE_CONFIG

    fee_pkr: float = Field(default=0.0, alias="feePKR")
    gross_pkr: float = Field(..., alias="grossPKR")
    charity_amount: float = 0.0
    tax_amount: float = 0.0
    net_profit: float
    partner_share: Optional[float] = Field(
        default=None,
        description="Amount distributed across partners (equals netProfit)"
    )


class LegacyIncomeRecord(BaseModel):
    """
    Any pre-current income record.

    Every field that moved or was renamed is optional here; the migrator
    decides which one wins.
    """
    model_config = WIRE_CONFIG

    id: int
    source: Optional[Union[str, dict[str, Any]]] = None
    income_source_id: Optional[str] = None
    source_id: Optional[str] = None
    source_snapshot: Optional[dict[str, Any]] = None

    amount_usd: Optional[float] = Field(default=None, alias="amountUSD")
    amount: Optional[float] = None
    raw_amount: Optional[float] = None
    conversion_rate: Optional[float] = None
    currency: Optional[str] = None

    tax_rate: float = Field(default=0.0, ge=0, le=100)
    tax_config: Optional[TaxConfig] = None
    entry_date: LedgerDate = Field(..., alias="date")
    bank: str = ""
    description: Optional[str] = None

    calculations: Optional[LegacyCalculations] = None
    derived: Optional[DerivedAmounts] = None
    donation_config_snapshot: Optional[DonationPolicy] = None
    policy_snapshot: Optional[DonationPolicy] = None

    @model_validator(mode="after")
    def check_recoverable(self) -> "LegacyIncomeRecord":
        """A record we cannot identify or price is not migratable."""
        if self.resolved_source_id is None:
            raise ValueError("record has no source identifier")
        if self.calculations is None and self.derived is None:
            raise ValueError("record has no stored calculations")
        return self

    @property
    def resolved_source_id(self) -> Optional[str]:
        """Source id from whichever field the record's generation used."""
        if self.source_id:
            return self.source_id
        if self.income_source_id:
            return self.income_source_id
        if isinstance(self.source, str) and self.source.strip():
            return self.source.strip()
        if isinstance(self.source, dict):
            source_id = self.source.get("id")
            if isinstance(source_id, str) and source_id:
                return source_id
        return None

    @property
    def inline_descriptor(self) -> Optional[dict[str, Any]]:
        """Full source object carried by the record, if any."""
        if self.source_snapshot is not None:
            return self.source_snapshot
        if isinstance(self.source, dict):
            return self.source
        return None


class LegacyExpenseRecord(BaseModel):
    """An expense saved before expense types existed."""
    model_config = WIRE_CONFIG

    id: int
    amount: float = Field(..., ge=0)
    description: str = ""
    entry_date: LedgerDate = Field(..., alias="date")
    category: str = ""
    by_whom: str = Field(..., min_length=1)
    type: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
