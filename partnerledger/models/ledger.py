"""
Core Data Models for partnerledger

These models define the strict schemas for all ledger records.
They are designed to:
1. Enforce type safety at runtime
2. Serialize losslessly for storage, export and re-import
3. Keep derived amounts and policy snapshots frozen once written

DESIGN DECISION: Python attributes are snake_case, the persisted/exported
wire format is camelCase (pydantic aliases). Always dump with
``by_alias=True`` when writing to storage.

Monetary values are floats on purpose: the policy evaluator must reproduce
a fixed floating-point operation order so that recalculating a historical
entry yields exactly the stored figures.
"""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
)
from pydantic.alias_generators import to_camel


WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    str_strip_whitespace=True,
)

FROZEN_WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    str_strip_whitespace=True,
    frozen=True,
)


def _coerce_date(value: Any) -> Any:
    """Accept ISO timestamps ("2024-05-01T00:00:00.000Z") where a date is expected."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return value


LedgerDate = Annotated[date, BeforeValidator(_coerce_date)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TaxPreference(str, Enum):
    """Whether the donation is taken before or after tax."""
    BEFORE_TAX = "before-tax"
    AFTER_TAX = "after-tax"


class FeeMethod(str, Enum):
    """How an income source charges its platform fee."""
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    HYBRID = "hybrid"


class ExpenseType(str, Enum):
    """
    Expense classification.

    PERSONAL expenses are charged to the spender.
    COMPANY expenses are shared by all partners according to equity.
    """
    PERSONAL = "personal"
    COMPANY = "company"


class LedgerMode(str, Enum):
    """
    Company mode splits profit across partners by equity.
    Personal mode has one implicit partner holding 100%.
    """
    COMPANY = "company"
    PERSONAL = "personal"


class TaxConfigType(str, Enum):
    """Per-entry tax override kind."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


# =============================================================================
# POLICY & EQUITY CONFIGURATION
# =============================================================================

class DonationPolicy(BaseModel):
    """
    Donation/tax policy.

    The live policy may change at any time. Every income entry carries
    a frozen copy (its policy snapshot) and is always recalculated
    against that copy, never against today's settings.

    A minimum/maximum of 0 is treated as "not configured".
    """
    model_config = FROZEN_WIRE_CONFIG

    enabled: bool = True
    percentage: float = Field(
        default=10.0,
        ge=0,
        le=100,
        description="Share of gross (before-tax) or post-tax amount donated"
    )
    tax_preference: TaxPreference = TaxPreference.BEFORE_TAX
    minimum_amount: Optional[float] = Field(
        default=None,
        ge=0,
        description="Lower clamp for the computed donation"
    )
    maximum_amount: Optional[float] = Field(
        default=None,
        ge=0,
        description="Upper clamp for the computed donation"
    )


class Partner(BaseModel):
    """A partner holding an equity fraction of the company."""
    model_config = WIRE_CONFIG

    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    display_name: Optional[str] = Field(default=None, max_length=200)
    equity: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Equity fraction (0.5 = 50%)"
    )
    is_active: bool = True
    join_date: Optional[LedgerDate] = None

    def matches(self, reference: str) -> bool:
        """True when reference is this partner's id, name or display name."""
        return reference in (self.id, self.name, self.display_name)


class PartnerEquityConfig(BaseModel):
    """
    Ordered set of partners.

    The active partners' equity must sum to 1; that rule is enforced by
    the equity model before a config is applied, never silently fixed here.
    """
    model_config = WIRE_CONFIG

    partners: list[Partner] = Field(default_factory=list)
    company_name: str = Field(default="", max_length=200)

    @property
    def active_partners(self) -> list[Partner]:
        return [p for p in self.partners if p.is_active]

    def get_partner(self, partner_id: str) -> Optional[Partner]:
        """Find a partner by id."""
        for partner in self.partners:
            if partner.id == partner_id:
                return partner
        return None

    def find_partner(self, reference: str) -> Optional[Partner]:
        """
        Find a partner by id, falling back to name/display name.

        Older expense records identify the spender by name.
        """
        return self.get_partner(reference) or next(
            (p for p in self.partners if p.matches(reference)),
            None,
        )

    def equity_of(self, partner_id: str) -> float:
        """Equity of an active partner, 0 for inactive or unknown ids."""
        partner = self.get_partner(partner_id)
        if partner is None or not partner.is_active:
            return 0.0
        return partner.equity


class LedgerConfig(BaseModel):
    """Persisted ledger configuration (the `ledgerConfig` collection)."""
    model_config = WIRE_CONFIG

    mode: LedgerMode = LedgerMode.COMPANY
    ledger_currency: str = Field(default="PKR", min_length=3, max_length=3)
    equity: PartnerEquityConfig = Field(default_factory=PartnerEquityConfig)
    donation_policy: DonationPolicy = Field(default_factory=DonationPolicy)


# =============================================================================
# INCOME SOURCE CATALOG
# =============================================================================

class FeeModel(BaseModel):
    """Platform fee schedule, in the source currency."""
    model_config = FROZEN_WIRE_CONFIG

    method: FeeMethod = FeeMethod.FIXED
    fixed_fee: float = Field(default=0.0, ge=0)
    percentage_fee: float = Field(default=0.0, ge=0, le=100)


class IncomeSource(BaseModel):
    """An income source (platform, client, salary...) known to the catalog."""
    model_config = WIRE_CONFIG

    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    enabled: bool = True
    fees: Optional[FeeModel] = None
    default_tax_rate: float = Field(default=0.0, ge=0, le=100)
    default_currency: Optional[str] = Field(default=None, max_length=3)
    category: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_descriptor(cls, descriptor: dict[str, Any]) -> "IncomeSource":
        """
        Build a source from a stored descriptor.

        Accepts both the current flat shape and the older nested shape
        (``metadata.fees.fixedFeeUSD``, ``metadata.settings.defaultTaxRate``)
        that legacy entries carry in their source snapshot.
        """
        metadata = descriptor.get("metadata")
        if not isinstance(metadata, dict):
            return cls.model_validate(descriptor)

        fees = metadata.get("fees") or None
        settings = metadata.get("settings") or {}
        display = metadata.get("display") or {}
        fee_model = None
        if fees:
            fee_model = FeeModel(
                method=fees.get("method") or FeeMethod.FIXED,
                fixed_fee=fees.get("fixedFeeUSD") or fees.get("fixedFee") or 0.0,
                percentage_fee=fees.get("percentageFee") or 0.0,
            )
        return cls(
            id=descriptor["id"],
            name=descriptor.get("name") or descriptor["id"],
            enabled=descriptor.get("enabled", True),
            fees=fee_model,
            default_tax_rate=settings.get("defaultTaxRate") or 0.0,
            default_currency=settings.get("defaultCurrency"),
            category=display.get("category"),
            description=display.get("description"),
        )


# =============================================================================
# LEDGER ENTRIES
# =============================================================================

class TaxConfig(BaseModel):
    """Per-entry tax override (percentage of the taxable amount, or fixed)."""
    model_config = FROZEN_WIRE_CONFIG

    enabled: bool = False
    type: TaxConfigType = TaxConfigType.PERCENTAGE
    value: float = Field(default=0.0, ge=0)


class DerivedAmounts(BaseModel):
    """
    Amounts derived by the transaction calculator, in ledger currency.

    CRITICAL: Only the calculator creates these. Nothing edits them by hand.
    """
    model_config = FROZEN_WIRE_CONFIG

    fee: float
    gross: float
    charity_amount: float
    tax_amount: float
    net_profit: float
    partner_shares: dict[str, float] = Field(default_factory=dict)


class IncomeEntry(BaseModel):
    """An income transaction in its current (migrated) shape."""
    model_config = WIRE_CONFIG

    id: int
    source_id: str = Field(..., min_length=1)
    source_snapshot: Optional[dict[str, Any]] = Field(
        default=None,
        description="Catalog descriptor as it was when the entry was created"
    )
    raw_amount: float = Field(..., description="Amount in the source currency")
    conversion_rate: float = Field(..., description="Source → ledger currency rate")
    currency: str = Field(default="USD", min_length=3, max_length=3)
    tax_rate: float = Field(default=0.0, ge=0, le=100)
    tax_config: Optional[TaxConfig] = None
    entry_date: LedgerDate = Field(..., alias="date")
    bank: str = Field(default="", max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    derived: DerivedAmounts
    policy_snapshot: Optional[DonationPolicy] = None


class NewIncomeEntry(BaseModel):
    """User-submitted income, before the calculator has run."""
    model_config = WIRE_CONFIG

    source_id: str = Field(..., min_length=1)
    raw_amount: float
    conversion_rate: float = 1.0
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    tax_rate: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        description="Leave unset to use the source's default tax rate"
    )
    tax_config: Optional[TaxConfig] = None
    entry_date: LedgerDate = Field(..., alias="date")
    bank: str = Field(default="", max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)


class ExpenseEntry(BaseModel):
    """An expense paid by a partner, in ledger currency."""
    model_config = WIRE_CONFIG

    id: int
    amount: float = Field(..., ge=0)
    description: str = Field(default="", max_length=500)
    entry_date: LedgerDate = Field(..., alias="date")
    category: str = Field(default="", max_length=100)
    by_whom: str = Field(..., min_length=1, description="Responsible partner id")
    expense_type: ExpenseType = Field(default=ExpenseType.PERSONAL, alias="type")
    metadata: dict[str, Any] = Field(default_factory=dict)


class NewExpenseEntry(BaseModel):
    """User-submitted expense."""
    model_config = WIRE_CONFIG

    amount: float = Field(..., gt=0)
    description: str = Field(default="", max_length=500)
    entry_date: LedgerDate = Field(..., alias="date")
    category: str = Field(default="", max_length=100)
    by_whom: str = Field(..., min_length=1)
    expense_type: ExpenseType = Field(default=ExpenseType.PERSONAL, alias="type")
    metadata: dict[str, Any] = Field(default_factory=dict)


class DonationPayout(BaseModel):
    """Funds actually disbursed from the accrued donation pool."""
    model_config = WIRE_CONFIG

    id: int
    amount: float = Field(..., ge=0)
    entry_date: LedgerDate = Field(..., alias="date")
    paid_to: str = Field(default="", max_length=200)
    description: str = Field(default="", max_length=500)


class NewDonationPayout(BaseModel):
    """User-submitted payout request."""
    model_config = WIRE_CONFIG

    amount: float = Field(..., gt=0)
    entry_date: LedgerDate = Field(..., alias="date")
    paid_to: str = Field(default="", max_length=200)
    description: str = Field(default="", max_length=500)


# =============================================================================
# AGGREGATES
# =============================================================================

class Loan(BaseModel):
    """Largest outstanding settlement: who owes the partnership, and how much."""

    amount: float = 0.0
    owed_by: Optional[str] = None


class DeficitPartner(BaseModel):
    """A partner whose balance is below their equity-weighted draw."""

    partner_id: str
    amount: float


class Financials(BaseModel):
    """
    Portfolio-level metrics.

    Recomputed from the source collections on every query and
    never persisted.
    """

    total_gross_profit: float = 0.0
    total_net_profit: float = 0.0
    total_expenses: float = 0.0
    total_donations_accrued: float = 0.0
    total_donations_paid_out: float = 0.0
    available_donations_fund: float = 0.0
    company_capital: float = 0.0
    partner_earnings: dict[str, float] = Field(default_factory=dict)
    partner_expenses: dict[str, float] = Field(default_factory=dict)
    partner_outlays: dict[str, float] = Field(
        default_factory=dict,
        description="Full amount of every expense attributed to its payer"
    )
    partner_balances: dict[str, float] = Field(default_factory=dict)
    loan: Loan = Field(default_factory=Loan)
    deficit_partners: list[DeficitPartner] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Data-quality warnings found while aggregating"
    )


# =============================================================================
# LEDGER STATE
# =============================================================================

class LedgerState(BaseModel):
    """
    Everything the ledger holds in memory.

    The service never mutates a state in place: it builds a new one,
    persists it, then swaps it in.
    """

    transactions: list[IncomeEntry] = Field(default_factory=list)
    expenses: list[ExpenseEntry] = Field(default_factory=list)
    donation_payouts: list[DonationPayout] = Field(default_factory=list)
    config: LedgerConfig = Field(default_factory=LedgerConfig)
