"""
Income-Source Catalog Package

Resolves income-source identifiers to their fee and tax metadata.
"""

from partnerledger.services.catalog.interface import (
    CatalogError,
    InvalidSourceError,
    SourceCatalogInterface,
    SourceNotFoundError,
)
from partnerledger.services.catalog.static import (
    StaticSourceCatalog,
    default_sources,
)

__all__ = [
    # Interface
    "SourceCatalogInterface",
    # Exceptions
    "CatalogError",
    "InvalidSourceError",
    "SourceNotFoundError",
    # Implementations
    "StaticSourceCatalog",
    "default_sources",
]
