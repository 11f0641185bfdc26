"""
Tier-based pricing for quote-desk.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .catalog import CatalogIndex
from .models import CustomerTier

logger = logging.getLogger(__name__)

TIER_MULTIPLIERS: dict[CustomerTier, float] = {
    CustomerTier.STANDARD: 1.00,
    CustomerTier.PREFERRED: 0.90,  # 10% discount
    CustomerTier.PREMIUM: 0.85,  # 15% discount
}

_CENTS = Decimal("0.01")


def round_money(value: float) -> float:
    """
    Round a currency amount to 2 decimals, half up.

    Works from the exact binary value of the float, so 2.675 (stored as
    2.67499...) rounds to 2.67 while an exact tie like 0.125 rounds to 0.13.
    """
    return float(Decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP))


def coerce_tier(tier: CustomerTier | str | None) -> CustomerTier:
    """Accept a tier enum or its string value; unknown values price as standard."""
    if isinstance(tier, CustomerTier):
        return tier
    if not tier:
        return CustomerTier.STANDARD
    try:
        return CustomerTier(str(tier).lower())
    except ValueError:
        logger.warning(f"Unknown customer tier {tier!r}, pricing as standard")
        return CustomerTier.STANDARD


@dataclass(frozen=True)
class PriceQuote:
    """Unit and extended price for one SKU and quantity."""

    unit_price: float
    extended_price: float


class PricingEngine:
    """Computes tier-discounted prices from catalog list prices."""

    def __init__(self, catalog: CatalogIndex):
        self.catalog = catalog

    def price(
        self,
        sku: str,
        quantity: int,
        tier: CustomerTier | str = CustomerTier.STANDARD,
    ) -> PriceQuote:
        """
        Price a SKU for a quantity and customer tier.

        Unknown SKUs price at zero; the caller decides what an unresolved
        line means. Rounding happens at the unit price, and again at the
        extended price.
        """
        entry = self.catalog.get(sku)
        if entry is None:
            logger.debug(f"No catalog entry for SKU {sku!r}, pricing at zero")
            return PriceQuote(unit_price=0.0, extended_price=0.0)

        multiplier = TIER_MULTIPLIERS[coerce_tier(tier)]
        unit_price = round_money(entry.list_price * multiplier)
        extended_price = round_money(unit_price * quantity)
        return PriceQuote(unit_price=unit_price, extended_price=extended_price)
