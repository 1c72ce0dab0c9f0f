"""
Fee Resolver

Platform fees are charged in the source currency before conversion.

    fixed       fee = fixed_fee
    percentage  fee = raw × percentage_fee / 100
    hybrid      fee = fixed_fee + raw × percentage_fee / 100

DESIGN DECISION: A source we cannot resolve costs nothing. An unknown id,
a catalog failure, or a source without a fee schedule all produce a zero
fee and a warning log line, never an exception. Recording income must not
fail because the catalog is incomplete.
"""

from typing import Any, Optional

import structlog
from pydantic import ValidationError

from partnerledger.engine.errors import UnresolvableSource
from partnerledger.models.ledger import FeeMethod, FeeModel, IncomeSource
from partnerledger.services.catalog.interface import SourceCatalogInterface


logger = structlog.get_logger(__name__)


def compute_fee(fees: Optional[FeeModel], raw_amount: float) -> float:
    """Fee in source currency for a raw amount under a fee schedule."""
    if fees is None:
        return 0.0
    if fees.method == FeeMethod.FIXED:
        return fees.fixed_fee
    if fees.method == FeeMethod.PERCENTAGE:
        return raw_amount * (fees.percentage_fee / 100)
    return fees.fixed_fee + raw_amount * (fees.percentage_fee / 100)


class FeeResolver:
    """
    Resolves sources and their fees through the catalog.

    When an entry carries a frozen source snapshot (an edit of an existing
    entry), the snapshot wins over the live catalog so that a later change
    to a platform's fee schedule does not rewrite history.
    """

    def __init__(self, catalog: SourceCatalogInterface):
        self._catalog = catalog

    async def resolve_source(
        self,
        source_id: str,
        snapshot: Optional[dict[str, Any]] = None,
    ) -> Optional[IncomeSource]:
        """
        Source metadata from the snapshot if usable, else from the catalog.

        Returns None when the source cannot be resolved.
        """
        if snapshot:
            try:
                return IncomeSource.from_descriptor(snapshot)
            except (ValidationError, KeyError, TypeError) as e:
                logger.warning(
                    "source_snapshot_unreadable",
                    source_id=source_id,
                    error=str(e),
                )

        try:
            source = await self._catalog.resolve(source_id)
            if source is None:
                raise UnresolvableSource(source_id)
            return source
        except UnresolvableSource as e:
            logger.warning("source_unresolvable", source_id=source_id, reason=e.reason)
        except Exception as e:
            logger.warning(
                "source_catalog_failed",
                source_id=source_id,
                error=str(e),
            )
        return None

    async def resolve_fee(
        self,
        source_id: str,
        raw_amount: float,
        snapshot: Optional[dict[str, Any]] = None,
    ) -> float:
        """
        Fee in source currency for an amount from the given source.

        Never raises for an unknown source: returns 0.
        """
        source = await self.resolve_source(source_id, snapshot)
        if source is None:
            return 0.0
        if source.fees is None:
            logger.info("source_has_no_fee_schedule", source_id=source_id)
        return compute_fee(source.fees, raw_amount)
