"""
Validation result models.

Shared by the import validator and the service layer so that callers
get one shape for "what is wrong with this data" regardless of where
the check ran.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field or record path with the issue (e.g. 'transactions[3]')"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'wrong_shape', 'malformed_record', 'invalid_equity')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage import validation.

    Stage 1: Schema validation (payload shape, record parsing)
    Stage 2: Semantic validation (data-quality checks that never block)
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    schema_valid: bool = Field(
        ...,
        description="Passed stage 1"
    )
    semantic_valid: bool = Field(
        default=False,
        description="Passed stage 2 (only run when stage 1 passes)"
    )
    is_valid: bool = Field(
        ...,
        description="Overall validity"
    )
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def errors(self) -> list[str]:
        return [
            f"{issue.field}: {issue.message}"
            for issue in self.issues
            if issue.severity == "error"
        ]
