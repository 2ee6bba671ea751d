# Overview: Price tier resolution, cost floor and tara (packaging) adjustments.

"""
Pricing & Tara Resolver

Pure functions: nothing here touches the database. Callers pass a
ProductSnapshot (built once per request from the catalog) so that the
order builder can run against an already-fetched view of the product.

PRICE RESOLUTION ORDER:
1. explicit custom price
2. per-session override for the requested tier
3. product's stored tier price (tiers 2-5 fall back to markups of tier 1)

COST FLOOR: COST_FLOOR_RATIO * price1. It is only an authorization trigger;
a custom price below it needs an override credential.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping

from ..errors import InvalidPriceTier, PosError

PRICE_TIERS = (1, 2, 3, 4, 5)

# Default markup over price1 (percent) when a tier has no stored price
DEFAULT_TIER_MARKUP_PERCENT = {1: 100, 2: 110, 3: 120, 4: 130, 5: 140}

DEFAULT_COST_FLOOR_RATIO = 0.7


@dataclass(frozen=True)
class TaraOption:
    id: str
    name: str
    factor: int
    price_adjustment_cents: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "factor": self.factor,
            "price_adjustment_cents": self.price_adjustment_cents,
        }


TARA_OPTIONS = (
    TaraOption(id="1", name="PIEZA", factor=1, price_adjustment_cents=0),
    TaraOption(id="2", name="CAJA (12 piezas)", factor=12, price_adjustment_cents=-50),
    TaraOption(id="3", name="BULTO (24 piezas)", factor=24, price_adjustment_cents=-100),
    TaraOption(id="4", name="COSTAL (50 piezas)", factor=50, price_adjustment_cents=-200),
)


@dataclass(frozen=True)
class ProductSnapshot:
    """Read-only view of a product as fetched at the start of an operation."""
    id: int
    name: str
    code: str
    stock: int
    prices: Mapping[int, int] = field(default_factory=dict)
    line: str | None = None
    subline: str | None = None
    unit: str = "PZA"
    status: str = "active"
    has_tara: bool = False

    @classmethod
    def from_model(cls, product) -> "ProductSnapshot":
        return cls(
            id=product.id,
            name=product.name,
            code=product.code,
            stock=product.stock,
            prices=tier_prices(product.stored_prices()),
            line=product.line,
            subline=product.subline,
            unit=product.unit,
            status=product.status,
            has_tara=product.has_tara,
        )


def _half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_tier(tier) -> int:
    try:
        tier = int(tier)
    except (TypeError, ValueError):
        raise InvalidPriceTier(f"Invalid price tier: {tier!r}")
    if tier not in PRICE_TIERS:
        raise InvalidPriceTier(f"Invalid price tier: {tier}. Must be one of {list(PRICE_TIERS)}")
    return tier


def tier_prices(stored: Mapping[int, int | None]) -> dict[int, int]:
    """
    Fill in tiers 2-5 from tier 1 where no price is stored.

    Markups are applied to price1 and rounded half-up to the cent.
    """
    base = stored.get(1) or 0
    prices = {}
    for tier in PRICE_TIERS:
        cents = stored.get(tier)
        if cents is None:
            cents = (base * DEFAULT_TIER_MARKUP_PERCENT[tier] + 50) // 100
        prices[tier] = cents
    return prices


def _normalize_overrides(overrides: Mapping | None) -> dict[int, int]:
    if not overrides:
        return {}
    normalized = {}
    for key, value in overrides.items():
        if value is None:
            continue
        key = str(key)
        if key.startswith("price"):
            key = key[len("price"):]
        normalized[int(key)] = int(value)
    return normalized


def resolve_unit_price(
    product: ProductSnapshot,
    tier: int,
    overrides: Mapping | None = None,
    custom_price_cents: int | None = None,
) -> int:
    """Effective unit price in cents: custom, else tier override, else tier price."""
    tier = validate_tier(tier)
    if custom_price_cents is not None:
        if custom_price_cents < 0:
            raise PosError("Custom price cannot be negative")
        return int(custom_price_cents)

    override = _normalize_overrides(overrides).get(tier)
    if override is not None:
        return override

    return product.prices[tier]


def cost_floor_cents(product: ProductSnapshot, ratio: float = DEFAULT_COST_FLOOR_RATIO) -> int:
    """Estimated cost: a fixed fraction of tier-1 price."""
    price1 = product.prices.get(1) or 0
    return _half_up(Decimal(price1) * Decimal(str(ratio)))


def is_below_cost(product: ProductSnapshot, price_cents: int, ratio: float = DEFAULT_COST_FLOOR_RATIO) -> bool:
    return price_cents < cost_floor_cents(product, ratio)


def get_tara(tara_id) -> TaraOption:
    for option in TARA_OPTIONS:
        if option.id == str(tara_id):
            return option
    raise PosError(f"Unknown tara option: {tara_id}")


def apply_tara(price_cents: int, tara: TaraOption | None) -> int:
    """Unit price after the packaging adjustment (never below zero)."""
    if tara is None:
        return price_cents
    return max(0, price_cents + tara.price_adjustment_cents)
