"""Tests for the static income-source catalog."""

import asyncio

import pytest

from partnerledger.models.ledger import FeeMethod
from partnerledger.services.catalog import (
    InvalidSourceError,
    SourceNotFoundError,
    StaticSourceCatalog,
    default_sources,
)


class TestBuiltInSources:
    """Tests for the built-in source table."""

    def test_ids_are_unique(self):
        """Test no built-in id is listed twice."""
        ids = [s.id for s in default_sources()]
        assert len(ids) == len(set(ids))

    def test_percentage_marketplaces(self):
        """Test marketplace fees are percentages of the raw amount."""
        catalog = StaticSourceCatalog()
        fiverr = asyncio.run(catalog.resolve("fiverr"))
        assert fiverr.fees.method == FeeMethod.PERCENTAGE
        assert fiverr.fees.percentage_fee == 20

    def test_unknown_source_is_none(self):
        """Test resolve returns None for an unknown id."""
        assert asyncio.run(StaticSourceCatalog().resolve("nope")) is None

    def test_resolve_returns_copy(self):
        """Test callers cannot mutate the catalog through a resolved source."""
        catalog = StaticSourceCatalog()
        source = asyncio.run(catalog.resolve("salary"))
        source.name = "Changed"
        assert asyncio.run(catalog.resolve("salary")).name == "Salary"


class TestValidateSource:
    """Tests for source definition validation."""

    def test_valid_definition(self):
        """Test a complete definition passes."""
        result = StaticSourceCatalog().validate_source({
            "id": "gumroad",
            "name": "Gumroad",
            "description": "Digital product sales",
            "fees": {"method": "percentage", "percentageFee": 10},
        })
        assert result.is_valid
        assert result.warnings == []

    def test_missing_description_is_warning(self):
        """Test a missing description does not block."""
        result = StaticSourceCatalog().validate_source({"id": "gumroad", "name": "Gumroad"})
        assert result.is_valid
        assert len(result.warnings) == 1

    @pytest.mark.parametrize("source_id", ["", "Has Spaces", "UPPER"])
    def test_bad_ids_rejected(self, source_id):
        """Test ids must be lowercase slugs."""
        result = StaticSourceCatalog().validate_source({"id": source_id, "name": "X"})
        assert not result.is_valid
        assert result.errors[0].startswith("id:")

    def test_bad_fee_rejected(self):
        """Test an out-of-range fee is reported."""
        result = StaticSourceCatalog().validate_source({
            "id": "bad-fee",
            "name": "Bad",
            "fees": {"method": "percentage", "percentageFee": 150},
        })
        assert not result.is_valid


class TestManageSources:
    """Tests for adding, updating and removing sources."""

    def test_add_source(self):
        """Test an added source resolves."""
        catalog = StaticSourceCatalog([])
        asyncio.run(catalog.add_source({"id": "gumroad", "name": "Gumroad"}))
        assert asyncio.run(catalog.resolve("gumroad")).name == "Gumroad"

    def test_add_duplicate_rejected(self):
        """Test an existing id cannot be added again."""
        catalog = StaticSourceCatalog()
        with pytest.raises(InvalidSourceError):
            asyncio.run(catalog.add_source({"id": "salary", "name": "Salary 2"}))

    def test_update_source_keeps_id(self):
        """Test updates apply but never change the id."""
        catalog = StaticSourceCatalog()
        updated = asyncio.run(catalog.update_source(
            "upwork",
            {"id": "renamed", "default_tax_rate": 7.5},
        ))
        assert updated.id == "upwork"
        assert updated.default_tax_rate == 7.5
        assert asyncio.run(catalog.resolve("renamed")) is None

    def test_update_unknown_source(self):
        """Test updating a missing source fails."""
        with pytest.raises(SourceNotFoundError):
            asyncio.run(StaticSourceCatalog().update_source("nope", {"name": "X"}))

    def test_remove_source(self):
        """Test removed sources stop resolving."""
        catalog = StaticSourceCatalog()
        assert asyncio.run(catalog.remove_source("twitch")) is True
        assert asyncio.run(catalog.remove_source("twitch")) is False
        assert asyncio.run(catalog.resolve("twitch")) is None

    def test_list_excludes_disabled(self):
        """Test disabled sources are hidden unless asked for."""
        catalog = StaticSourceCatalog([])
        asyncio.run(catalog.add_source({"id": "on", "name": "On"}))
        asyncio.run(catalog.add_source({"id": "off", "name": "Off", "enabled": False}))
        assert [s.id for s in asyncio.run(catalog.list_sources())] == ["on"]
        assert len(asyncio.run(catalog.list_sources(include_disabled=True))) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
