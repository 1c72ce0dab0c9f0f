"""
Two-Stage Import Validation

DESIGN DECISION: A bulk import replaces the whole ledger, so it is
validated in two distinct stages before anything is applied:

STAGE 1 - SCHEMA VALIDATION:
- Top-level shape (the three collections must be arrays)
- Equity config parses and sums to 1 across active partners
- Donation policy parses
- Every record parses in a current or legacy shape (via the migrator)
- Ids are unique within each collection
Any error here rejects the entire import.

STAGE 2 - SEMANTIC VALIDATION:
- Data-quality checks on the would-be ledger (negative donation fund,
  donations above gross, unknown spenders, dates in the future)
These are warnings only; historical data may legitimately contain them.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the import can be rejected or reviewed.
"""

from collections import Counter
from datetime import date, timedelta
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from partnerledger.engine import equity as equity_model
from partnerledger.engine.aggregation import aggregate
from partnerledger.engine.errors import InvalidEquityConfig
from partnerledger.migration.migrator import LedgerMigrator, MigrationReport
from partnerledger.models.ledger import (
    DonationPayout,
    DonationPolicy,
    ExpenseEntry,
    IncomeEntry,
    LedgerMode,
    PartnerEquityConfig,
)
from partnerledger.models.validation import ValidationIssue, ValidationResult


REQUIRED_COLLECTIONS = ("transactions", "expenses", "donationPayouts")


class ParsedImport(BaseModel):
    """An import payload that passed stage 1, ready to apply."""

    transactions: list[IncomeEntry] = Field(default_factory=list)
    expenses: list[ExpenseEntry] = Field(default_factory=list)
    donation_payouts: list[DonationPayout] = Field(default_factory=list)
    equity: Optional[PartnerEquityConfig] = None
    donation_policy: Optional[DonationPolicy] = None
    mode: Optional[LedgerMode] = None
    report: MigrationReport = Field(default_factory=MigrationReport)


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _pydantic_message(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]


def _split_equity(
    mode: LedgerMode,
    equity: Optional[PartnerEquityConfig],
    current_equity: PartnerEquityConfig,
) -> PartnerEquityConfig:
    if mode == LedgerMode.PERSONAL:
        return equity_model.solo_config()
    return equity or current_equity


class LedgerImportValidator:
    """
    Validates an import payload through a two-stage pipeline.

    Stage 1: Schema validation (blocking)
    Stage 2: Semantic validation (warnings)
    """

    def __init__(
        self,
        ledger_currency: str = "PKR",
        equity_epsilon: float = equity_model.EQUITY_EPSILON,
        future_date_tolerance_days: int = 1,
    ):
        self._ledger_currency = ledger_currency
        self._epsilon = equity_epsilon
        self._future_days = future_date_tolerance_days

    def _validate_schema(
        self,
        payload: Any,
        current_equity: PartnerEquityConfig,
        current_mode: LedgerMode,
    ) -> tuple[bool, list[ValidationIssue], Optional[ParsedImport]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues, parsed_payload_or_None)
        """
        issues: list[ValidationIssue] = []

        if not isinstance(payload, dict):
            issues.append(_error(
                "payload",
                "wrong_shape",
                "Import data must be a JSON object",
            ))
            return False, issues, None

        for name in REQUIRED_COLLECTIONS:
            if not isinstance(payload.get(name), list):
                issues.append(_error(
                    name,
                    "wrong_shape",
                    f"'{name}' must be an array",
                    "Export the ledger again and import the unmodified file",
                ))

        equity = None
        raw_equity = payload.get("equityConfig")
        if raw_equity is not None:
            try:
                equity = equity_model.require_valid(
                    PartnerEquityConfig.model_validate(raw_equity),
                    self._epsilon,
                )
            except ValidationError as e:
                issues.append(_error("equityConfig", "invalid_equity", _pydantic_message(e)))
            except InvalidEquityConfig as e:
                issues.append(_error("equityConfig", "invalid_equity", str(e)))

        policy = None
        raw_policy = payload.get("donationPolicy")
        if raw_policy is not None:
            try:
                policy = DonationPolicy.model_validate(raw_policy)
            except ValidationError as e:
                issues.append(_error("donationPolicy", "invalid_policy", _pydantic_message(e)))

        mode = None
        raw_mode = payload.get("mode")
        if raw_mode is not None:
            try:
                mode = LedgerMode(raw_mode)
            except ValueError:
                issues.append(_error("mode", "invalid_value", f"Unknown ledger mode {raw_mode!r}"))

        if issues:
            return False, issues, None

        split_by = _split_equity(mode or current_mode, equity, current_equity)
        migrator = LedgerMigrator(split_by, self._ledger_currency)
        result = migrator.migrate(
            payload["transactions"],
            payload["expenses"],
            payload["donationPayouts"],
        )

        for malformed in result.report.malformed:
            issues.append(_error(
                f"{malformed.collection}[{malformed.index}]",
                "malformed_record",
                malformed.reason,
            ))

        for name, records in (
            ("transactions", result.transactions),
            ("expenses", result.expenses),
            ("donationPayouts", result.donation_payouts),
        ):
            counts = Counter(r.id for r in records)
            for record_id, count in counts.items():
                if count > 1:
                    issues.append(_error(
                        name,
                        "duplicate_id",
                        f"Id {record_id} appears {count} times",
                    ))

        if issues:
            return False, issues, None

        return True, issues, ParsedImport(
            transactions=result.transactions,
            expenses=result.expenses,
            donation_payouts=result.donation_payouts,
            equity=equity,
            donation_policy=policy,
            mode=mode,
            report=result.report,
        )

    def _validate_semantic(
        self,
        parsed: ParsedImport,
        current_equity: PartnerEquityConfig,
        current_mode: LedgerMode,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Everything here is a warning. Returns: (is_valid, list_of_issues)
        """
        issues: list[ValidationIssue] = []

        mode = parsed.mode or current_mode
        financials = aggregate(
            parsed.transactions,
            parsed.expenses,
            parsed.donation_payouts,
            _split_equity(mode, parsed.equity, current_equity),
            mode=mode,
        )
        for warning in financials.warnings:
            issues.append(ValidationIssue(
                field="ledger",
                issue_type="data_quality",
                message=warning,
                severity="warning",
            ))

        latest_allowed = date.today() + timedelta(days=self._future_days)
        for name, records in (
            ("transactions", parsed.transactions),
            ("expenses", parsed.expenses),
            ("donationPayouts", parsed.donation_payouts),
        ):
            for record in records:
                if record.entry_date > latest_allowed:
                    issues.append(ValidationIssue(
                        field=f"{name}.{record.id}",
                        issue_type="future_date",
                        message=f"Date {record.entry_date} is in the future",
                        severity="warning",
                        suggested_fix="Please verify the date is correct",
                    ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        payload: Any,
        current_equity: PartnerEquityConfig,
        current_mode: LedgerMode = LedgerMode.COMPANY,
    ) -> tuple[ValidationResult, Optional[ParsedImport]]:
        """
        Run full two-stage validation pipeline.

        Args:
            payload: Decoded import document
            current_equity: Equity used when the payload carries none
            current_mode: Mode used when the payload carries none; personal
                mode splits legacy shares to the solo owner

        Returns:
            (ValidationResult, ParsedImport or None when stage 1 failed)
        """
        all_issues: list[ValidationIssue] = []

        schema_valid, schema_issues, parsed = self._validate_schema(
            payload, current_equity, LedgerMode(current_mode)
        )
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid and parsed is not None:
            semantic_valid, semantic_issues = self._validate_semantic(
                parsed, current_equity, LedgerMode(current_mode)
            )
            all_issues.extend(semantic_issues)

        result = ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=[i.message for i in all_issues if i.severity == "warning"],
        )
        return result, parsed

    def get_summary(self, result: ValidationResult) -> str:
        """Plain-text summary of a validation result."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        if not result.schema_valid:
            lines.append("Import rejected:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"  - {issue.field}: {issue.message}")

        if result.warnings:
            lines.append("Warnings:")
            for warning in result.warnings:
                lines.append(f"  - {warning}")

        return "\n".join(lines)
