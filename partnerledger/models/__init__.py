"""
Data Models Package

This package contains all Pydantic models used in partnerledger.
All data flowing through the system must conform to these schemas.
"""

from partnerledger.models.ledger import (
    DeficitPartner,
    DerivedAmounts,
    DonationPayout,
    DonationPolicy,
    ExpenseEntry,
    ExpenseType,
    FeeMethod,
    FeeModel,
    Financials,
    IncomeEntry,
    IncomeSource,
    LedgerConfig,
    LedgerMode,
    LedgerState,
    Loan,
    NewDonationPayout,
    NewExpenseEntry,
    NewIncomeEntry,
    Partner,
    PartnerEquityConfig,
    TaxConfig,
    TaxConfigType,
    TaxPreference,
)
from partnerledger.models.legacy import (
    LEGACY_DEFAULT_POLICY,
    LegacyCalculations,
    LegacyExpenseRecord,
    LegacyIncomeRecord,
)
from partnerledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from partnerledger.models.validation import (
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Ledger models
    "DeficitPartner",
    "DerivedAmounts",
    "DonationPayout",
    "DonationPolicy",
    "ExpenseEntry",
    "ExpenseType",
    "FeeMethod",
    "FeeModel",
    "Financials",
    "IncomeEntry",
    "IncomeSource",
    "LedgerConfig",
    "LedgerMode",
    "LedgerState",
    "Loan",
    "NewDonationPayout",
    "NewExpenseEntry",
    "NewIncomeEntry",
    "Partner",
    "PartnerEquityConfig",
    "TaxConfig",
    "TaxConfigType",
    "TaxPreference",
    # Legacy shapes
    "LEGACY_DEFAULT_POLICY",
    "LegacyCalculations",
    "LegacyExpenseRecord",
    "LegacyIncomeRecord",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Validation
    "ValidationIssue",
    "ValidationResult",
]
