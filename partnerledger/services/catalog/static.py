"""
Static Income-Source Catalog

An in-process catalog seeded with the built-in source table. Sources can
be added, updated and removed at runtime (validated first); nothing is
persisted by the catalog itself.

Fee schedules are in the source currency (USD for every built-in source).
"""

import re
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from partnerledger.models.ledger import FeeMethod, FeeModel, IncomeSource
from partnerledger.models.validation import ValidationIssue, ValidationResult
from partnerledger.services.catalog.interface import (
    InvalidSourceError,
    SourceCatalogInterface,
    SourceNotFoundError,
)


logger = structlog.get_logger(__name__)

SOURCE_ID_PATTERN = re.compile(r"^[a-z0-9_-]+$")


# (id, name, category, fee method, fixed fee, percentage fee)
_BUILT_IN_SOURCES: list[tuple[str, str, str, str, float, float]] = [
    # Personal
    ("salary", "Salary", "Employment", "fixed", 0, 0),
    ("freelance", "Freelance", "Self-Employment", "fixed", 0, 0),
    ("investments", "Investments", "Investment", "fixed", 0, 0),
    ("side-business", "Side Business", "Business", "fixed", 0, 0),
    ("rental", "Rental Income", "Real Estate", "fixed", 0, 0),
    ("other-income", "Other Income", "Other", "fixed", 0, 0),
    # Content creator
    ("sponsorships", "Sponsorships", "Content Creator", "fixed", 0, 0),
    ("affiliate-marketing", "Affiliate Marketing", "Content Creator", "fixed", 0, 0),
    ("merchandise", "Merchandise Sales", "Content Creator", "fixed", 0, 0),
    ("digital-products", "Digital Products", "Content Creator", "fixed", 0, 0),
    # Service provider
    ("client-retainers", "Client Retainers", "Service Provider", "fixed", 0, 0),
    ("project-work", "Project-Based Work", "Service Provider", "fixed", 0, 0),
    ("maintenance-contracts", "Maintenance Contracts", "Service Provider", "fixed", 0, 0),
    ("consulting-fees", "Consulting Fees", "Service Provider", "fixed", 0, 0),
    ("hourly-billing", "Hourly Billing", "Service Provider", "fixed", 0, 0),
    # E-commerce
    ("online-store", "Online Store", "E-commerce", "fixed", 0, 0),
    ("amazon-sales", "Amazon Sales", "E-commerce", "percentage", 0, 15),
    ("wholesale", "Wholesale", "E-commerce", "fixed", 0, 0),
    ("subscription-revenue", "Subscription Revenue", "E-commerce", "fixed", 0, 0),
    ("marketplace-sales", "Marketplace Sales", "E-commerce", "percentage", 0, 10),
    # SaaS / tech
    ("license-fees", "License Fees", "SaaS/Tech", "fixed", 0, 0),
    ("api-usage", "API Usage Fees", "SaaS/Tech", "fixed", 0, 0),
    ("enterprise-contracts", "Enterprise Contracts", "SaaS/Tech", "fixed", 0, 0),
    ("app-purchases", "App Purchases", "SaaS/Tech", "percentage", 0, 30),
    # Freelance platforms
    ("upwork", "Upwork", "Freelancer", "percentage", 0, 10),
    ("fiverr", "Fiverr", "Freelancer", "percentage", 0, 20),
    # Real estate
    ("rental-income", "Rental Income", "Real Estate", "fixed", 0, 0),
    ("property-sales", "Property Sales", "Real Estate", "fixed", 0, 0),
    ("commissions", "Real Estate Commissions", "Real Estate", "fixed", 0, 0),
    ("lease-payments", "Lease Payments", "Real Estate", "fixed", 0, 0),
    ("short-term-rentals", "Short-term Rentals", "Real Estate", "percentage", 0, 15),
    # Manufacturing
    ("product-sales", "Product Sales", "Manufacturing", "fixed", 0, 0),
    ("contract-manufacturing", "Contract Manufacturing", "Manufacturing", "fixed", 0, 0),
    ("bulk-orders", "Bulk Orders", "Manufacturing", "fixed", 0, 0),
    ("b2b-sales", "B2B Sales", "Manufacturing", "fixed", 0, 0),
    # Core platforms
    ("youtube", "YouTube", "Video Platform", "fixed", 0, 0),
    ("tiktok", "TikTok", "Social Media", "fixed", 0, 0),
    ("instagram", "Instagram", "Social Media", "fixed", 0, 0),
    ("twitch", "Twitch", "Live Streaming", "percentage", 0, 2.5),
    ("patreon", "Patreon", "Subscription", "percentage", 0, 8),
]


def default_sources() -> list[IncomeSource]:
    """The built-in source table as IncomeSource records."""
    return [
        IncomeSource(
            id=source_id,
            name=name,
            category=category,
            fees=FeeModel(
                method=FeeMethod(method),
                fixed_fee=fixed_fee,
                percentage_fee=percentage_fee,
            ),
            default_currency="USD",
        )
        for source_id, name, category, method, fixed_fee, percentage_fee in _BUILT_IN_SOURCES
    ]


class StaticSourceCatalog(SourceCatalogInterface):
    """
    In-memory catalog.

    Usage:
        catalog = StaticSourceCatalog()
        source = await catalog.resolve("upwork")
    """

    def __init__(self, sources: Optional[list[IncomeSource]] = None):
        """
        Initialize the catalog.

        Args:
            sources: Initial sources. Defaults to the built-in table.
        """
        initial = default_sources() if sources is None else sources
        self._sources: dict[str, IncomeSource] = {s.id: s for s in initial}

    async def resolve(self, source_id: str) -> Optional[IncomeSource]:
        source = self._sources.get(source_id)
        return source.model_copy(deep=True) if source else None

    async def list_sources(self, include_disabled: bool = False) -> list[IncomeSource]:
        return [
            s.model_copy(deep=True)
            for s in self._sources.values()
            if include_disabled or s.enabled
        ]

    def validate_source(self, descriptor: dict[str, Any]) -> ValidationResult:
        """
        Validate a source definition without adding it.

        Accepts both the flat shape and the nested legacy metadata shape.
        Errors block; warnings (e.g. no description) do not.
        """
        issues: list[ValidationIssue] = []

        source_id = descriptor.get("id")
        if not isinstance(source_id, str) or not source_id.strip():
            issues.append(ValidationIssue(
                field="id",
                issue_type="missing",
                message="Source ID is required",
                severity="error",
            ))
        elif not SOURCE_ID_PATTERN.match(source_id):
            issues.append(ValidationIssue(
                field="id",
                issue_type="invalid_format",
                message=(
                    "Source ID must contain only lowercase letters, numbers, "
                    "underscores, and hyphens"
                ),
                severity="error",
            ))

        name = descriptor.get("name")
        if not isinstance(name, str) or not name.strip():
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Source name is required",
                severity="error",
            ))

        source = None
        if not issues:
            try:
                source = IncomeSource.from_descriptor(descriptor)
            except ValidationError as e:
                for error in e.errors():
                    issues.append(ValidationIssue(
                        field=".".join(str(part) for part in error["loc"]),
                        issue_type="invalid_value",
                        message=error["msg"],
                        severity="error",
                    ))

        if source is not None and not source.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="No description provided",
                severity="warning",
                suggested_fix="Consider adding a short description",
            ))

        schema_valid = not any(i.severity == "error" for i in issues)
        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=schema_valid,
            is_valid=schema_valid,
            issues=issues,
            warnings=[i.message for i in issues if i.severity == "warning"],
        )

    def _build(self, descriptor: dict[str, Any]) -> IncomeSource:
        result = self.validate_source(descriptor)
        if not result.is_valid:
            raise InvalidSourceError(result.errors)
        return IncomeSource.from_descriptor(descriptor)

    async def add_source(self, descriptor: dict[str, Any]) -> IncomeSource:
        """
        Add a new source.

        Raises:
            InvalidSourceError: definition invalid or id already taken
        """
        source = self._build(descriptor)
        if source.id in self._sources:
            raise InvalidSourceError([f"Source with ID '{source.id}' already exists"])

        self._sources[source.id] = source
        logger.info("source_added", source_id=source.id)
        return source.model_copy(deep=True)

    async def update_source(self, source_id: str, updates: dict[str, Any]) -> IncomeSource:
        """
        Update fields of an existing source. The id cannot change.

        Args:
            source_id: Source to update
            updates: New values keyed by field name (snake_case)

        Raises:
            SourceNotFoundError: unknown id
            InvalidSourceError: the updated definition is invalid
        """
        current = self._sources.get(source_id)
        if current is None:
            raise SourceNotFoundError(f"Source with ID '{source_id}' not found")

        merged = current.model_dump()
        merged.update(updates)
        merged["id"] = source_id

        source = self._build(merged)
        self._sources[source_id] = source
        logger.info("source_updated", source_id=source_id, fields=sorted(updates))
        return source.model_copy(deep=True)

    async def remove_source(self, source_id: str) -> bool:
        """Remove a source. Returns False if it did not exist."""
        removed = self._sources.pop(source_id, None) is not None
        if removed:
            logger.info("source_removed", source_id=source_id)
        return removed
