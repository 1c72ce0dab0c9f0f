"""
Income-Source Catalog Interface

DESIGN DECISION: The engine only ever asks one question of the catalog:
"what are the fee and tax rules for this source id?". Everything else
(source management, display metadata) lives behind the same interface
but is not needed by the calculator.

This allows us to:
1. Ship a static built-in table today
2. Swap in a user-editable or remote catalog later
3. Use a stub catalog in tests
"""

from abc import ABC, abstractmethod
from typing import Optional

from partnerledger.models.ledger import IncomeSource


class SourceCatalogInterface(ABC):
    """
    Abstract interface for income-source lookup.

    Implementations may perform I/O, hence async.
    """

    @abstractmethod
    async def resolve(self, source_id: str) -> Optional[IncomeSource]:
        """
        Resolve a source identifier to its metadata.

        Args:
            source_id: The income source identifier (e.g. 'upwork')

        Returns:
            The source if known, None otherwise
        """
        pass

    @abstractmethod
    async def list_sources(self, include_disabled: bool = False) -> list[IncomeSource]:
        """
        List known sources.

        Args:
            include_disabled: Whether to include disabled sources

        Returns:
            Sources in catalog order
        """
        pass


class CatalogError(Exception):
    """Base exception for catalog operations."""
    pass


class SourceNotFoundError(CatalogError):
    """No source with the requested id."""
    pass


class InvalidSourceError(CatalogError):
    """A source definition failed validation."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))
