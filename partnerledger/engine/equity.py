"""
Partner Equity Model

Splits amounts across partners by equity fraction.

DESIGN DECISION: There is exactly one code path for splitting money.
The historical 50/50 two-partner arrangement is just an equity config with
two partners at 0.5, and personal mode is a config with one implicit
partner at 1.0. Nothing downstream special-cases either.

Invalid configurations are rejected before they are applied, never
normalized: silently rescaling equity would change every partner's
earnings without anyone agreeing to it.
"""

from typing import Optional

from partnerledger.engine.errors import InvalidEquityConfig
from partnerledger.models.ledger import (
    LedgerConfig,
    LedgerMode,
    Partner,
    PartnerEquityConfig,
)


EQUITY_EPSILON = 0.0001

SOLO_PARTNER_ID = "owner"


def active_equity_sum(config: PartnerEquityConfig) -> float:
    return sum(p.equity for p in config.active_partners)


def validate(config: PartnerEquityConfig, epsilon: float = EQUITY_EPSILON) -> bool:
    """True when the active partners' equity sums to 1 within epsilon."""
    return abs(active_equity_sum(config) - 1.0) < epsilon


def require_valid(
    config: PartnerEquityConfig,
    epsilon: float = EQUITY_EPSILON,
) -> PartnerEquityConfig:
    """
    Validate a config before it is applied system-wide.

    Raises:
        InvalidEquityConfig: duplicate partner ids, no active partner,
            or active equity not summing to 1
    """
    seen: set[str] = set()
    for partner in config.partners:
        if partner.id in seen:
            raise InvalidEquityConfig(f"Duplicate partner id '{partner.id}'")
        seen.add(partner.id)

    if not config.active_partners:
        raise InvalidEquityConfig("At least one active partner is required", 0.0)

    total = active_equity_sum(config)
    if not validate(config, epsilon):
        raise InvalidEquityConfig(
            f"Active partner equity must sum to 100% (got {total * 100:.4f}%)",
            total,
        )
    return config


def shares(amount: float, config: PartnerEquityConfig) -> dict[str, float]:
    """
    Split an amount by equity.

    Only active partners with equity > 0 appear in the result.
    """
    return {
        partner.id: amount * partner.equity
        for partner in config.active_partners
        if partner.equity > 0
    }


def legacy_two_partner_config(
    first: str,
    second: str,
    company_name: str = "",
) -> PartnerEquityConfig:
    """The original fixed arrangement: two partners, 50% each."""
    return PartnerEquityConfig(
        company_name=company_name,
        partners=[
            Partner(id=first, name=first, equity=0.5),
            Partner(id=second, name=second, equity=0.5),
        ],
    )


def solo_config(
    partner_id: str = SOLO_PARTNER_ID,
    name: Optional[str] = None,
) -> PartnerEquityConfig:
    """Personal mode: one implicit partner holding everything."""
    return PartnerEquityConfig(
        partners=[Partner(id=partner_id, name=name or partner_id, equity=1.0)],
    )


def effective_equity(config: LedgerConfig) -> PartnerEquityConfig:
    """Equity actually used for splitting under a ledger config's mode."""
    if config.mode == LedgerMode.PERSONAL:
        return solo_config()
    return config.equity
