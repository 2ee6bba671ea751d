"""
Pricing and tara tests.

Verifies:
- Tier prices fall back to markups of price1
- Resolution order: custom price, session override, stored tier price
- Cost floor is 70% of price1, rounded half-up
- Tara adjustments never push a price below zero
"""

import pytest

from pos_erp.errors import InvalidPriceTier, PosError
from pos_erp.services.pricing_service import (
    ProductSnapshot,
    apply_tara,
    cost_floor_cents,
    get_tara,
    is_below_cost,
    resolve_unit_price,
    tier_prices,
    validate_tier,
)


def _snapshot(prices=None):
    stored = {1: 1000, 2: None, 3: None, 4: None, 5: None}
    stored.update(prices or {})
    return ProductSnapshot(id=1, name="Frijol", code="FRI-1", stock=10, prices=tier_prices(stored))


# =============================================================================
# TIER PRICES
# =============================================================================


class TestTierPrices:

    def test_missing_tiers_use_default_markups(self):
        prices = tier_prices({1: 1000, 2: None, 3: None, 4: None, 5: None})
        assert prices == {1: 1000, 2: 1100, 3: 1200, 4: 1300, 5: 1400}

    def test_stored_tier_wins_over_markup(self):
        prices = tier_prices({1: 1000, 2: 1050})
        assert prices[2] == 1050
        assert prices[3] == 1200

    def test_markup_rounds_half_up(self):
        # 1005 * 110% = 1105.5
        assert tier_prices({1: 1005})[2] == 1106

    @pytest.mark.parametrize("tier", [0, 6, "x", None])
    def test_invalid_tier_rejected(self, tier):
        with pytest.raises(InvalidPriceTier):
            validate_tier(tier)


# =============================================================================
# RESOLUTION ORDER
# =============================================================================


class TestResolveUnitPrice:

    def test_stored_tier_price(self):
        assert resolve_unit_price(_snapshot(), 3) == 1200

    def test_override_beats_stored_price(self):
        assert resolve_unit_price(_snapshot(), 2, overrides={"price2": 990}) == 990

    def test_override_for_other_tier_is_ignored(self):
        assert resolve_unit_price(_snapshot(), 2, overrides={"price3": 990}) == 1100

    def test_custom_price_beats_everything(self):
        assert resolve_unit_price(_snapshot(), 2, overrides={2: 990}, custom_price_cents=850) == 850

    def test_negative_custom_price_rejected(self):
        with pytest.raises(PosError):
            resolve_unit_price(_snapshot(), 1, custom_price_cents=-1)


# =============================================================================
# COST FLOOR
# =============================================================================


class TestCostFloor:

    def test_floor_is_seventy_percent_of_price1(self):
        assert cost_floor_cents(_snapshot()) == 700

    def test_floor_ignores_other_tiers(self):
        assert cost_floor_cents(_snapshot({2: 5000})) == 700

    def test_below_and_at_floor(self):
        product = _snapshot()
        assert is_below_cost(product, 699)
        assert not is_below_cost(product, 700)

    def test_custom_ratio(self):
        assert cost_floor_cents(_snapshot(), 0.5) == 500


# =============================================================================
# TARA
# =============================================================================


class TestTara:

    def test_known_options(self):
        assert get_tara("1").factor == 1
        assert get_tara(2).factor == 12
        assert get_tara("4").price_adjustment_cents == -200

    def test_unknown_option_rejected(self):
        with pytest.raises(PosError):
            get_tara("99")

    def test_adjustment_applied(self):
        assert apply_tara(1000, get_tara("2")) == 950
        assert apply_tara(1000, None) == 1000

    def test_adjustment_floors_at_zero(self):
        assert apply_tara(150, get_tara("4")) == 0
