"""
Order builder tests.

Verifies:
- Totals invariant after every operation
- Line merge for same product and tier
- Stock and discount validation leave the order untouched
- Below-cost custom prices need authorization
- Orders round-trip through to_dict/from_dict with recomputed totals
"""

import pytest

from pos_erp.errors import (
    InsufficientStock,
    InvalidDiscount,
    InvalidQuantity,
    NoActiveOrder,
    PriceBelowCost,
)
from pos_erp.services import order_builder
from pos_erp.services.order_builder import Order
from pos_erp.services.pricing_service import ProductSnapshot, get_tara, tier_prices


def _product(id=1, stock=10, price1=1000, has_tara=False, name="Frijol"):
    return ProductSnapshot(
        id=id,
        name=name,
        code=f"P-{id}",
        stock=stock,
        prices=tier_prices({1: price1}),
        has_tara=has_tara,
    )


def _assert_totals(order: Order):
    assert order.subtotal_cents == sum(item.total_cents for item in order.items)
    assert order.total_cents == order.subtotal_cents - order.discount_cents
    for item in order.items:
        assert item.total_cents == item.quantity * item.unit_price_cents


@pytest.fixture
def order():
    return order_builder.initialize_order(created_by="Cajero Uno")


# =============================================================================
# INITIALIZE
# =============================================================================


class TestInitialize:

    def test_fresh_order_is_empty_draft(self, order):
        assert order.id.startswith("temp-")
        assert not order.is_persisted
        assert order.status == "draft"
        assert order.items == ()
        assert order.total_cents == 0
        assert order.client_name == order_builder.DEFAULT_CLIENT_NAME

    def test_operations_require_order(self):
        with pytest.raises(NoActiveOrder):
            order_builder.add_item(None, _product(), 1, 1)
        with pytest.raises(NoActiveOrder):
            order_builder.apply_discount(None, 0)


# =============================================================================
# ADD ITEM
# =============================================================================


class TestAddItem:

    def test_add_and_discount(self, order):
        order = order_builder.add_item(order, _product(), 3, 1)
        order = order_builder.apply_discount(order, 500)

        assert order.subtotal_cents == 3000
        assert order.total_cents == 2500
        _assert_totals(order)

    def test_same_product_and_tier_merges(self, order):
        product = _product()
        order = order_builder.add_item(order, product, 2, 1)
        order = order_builder.add_item(order, product, 3, 1)

        assert len(order.items) == 1
        assert order.items[0].quantity == 5
        assert order.total_cents == 5000

    def test_different_tier_makes_new_line(self, order):
        product = _product()
        order = order_builder.add_item(order, product, 2, 1)
        order = order_builder.add_item(order, product, 1, 2)

        assert len(order.items) == 2
        assert order.total_cents == 2 * 1000 + 1100
        _assert_totals(order)

    def test_stock_check_counts_all_lines(self, order):
        product = _product(stock=5)
        order = order_builder.add_item(order, product, 3, 1)

        with pytest.raises(InsufficientStock) as exc:
            order_builder.add_item(order, product, 3, 2)

        assert exc.value.product_names == ["Frijol"]
        assert len(order.items) == 1
        assert order.total_cents == 3000

    def test_zero_quantity_rejected(self, order):
        with pytest.raises(InvalidQuantity):
            order_builder.add_item(order, _product(), 0, 1)

    def test_custom_price_below_floor_needs_authorization(self, order):
        with pytest.raises(PriceBelowCost) as exc:
            order_builder.add_item(order, _product(), 1, 1, custom_price_cents=650)
        assert exc.value.details["authorization_required"] is True
        assert exc.value.details["cost_floor_cents"] == 700

        authorized = order_builder.add_item(
            order, _product(), 1, 1, custom_price_cents=650, price_authorized=True
        )
        assert authorized.items[0].unit_price_cents == 650

    def test_custom_price_at_floor_allowed(self, order):
        order = order_builder.add_item(order, _product(), 1, 1, custom_price_cents=700)
        assert order.total_cents == 700

    def test_tara_applied_only_for_tara_products(self, order):
        with_tara = order_builder.add_item(order, _product(has_tara=True), 1, 1, tara=get_tara("2"))
        assert with_tara.items[0].unit_price_cents == 950
        assert with_tara.items[0].tara.name == "CAJA (12 piezas)"

        without = order_builder.add_item(order, _product(has_tara=False), 1, 1, tara=get_tara("2"))
        assert without.items[0].unit_price_cents == 1000
        assert without.items[0].tara is None


# =============================================================================
# EDIT LINES
# =============================================================================


class TestEditLines:

    def test_remove_unknown_item_is_noop(self, order):
        order = order_builder.add_item(order, _product(), 2, 1)
        same = order_builder.remove_item(order, "missing")
        assert same.items == order.items
        _assert_totals(same)

    def test_remove_item(self, order):
        order = order_builder.add_item(order, _product(), 2, 1)
        order = order_builder.remove_item(order, order.items[0].id)
        assert order.items == ()
        assert order.total_cents == 0

    def test_update_quantity(self, order):
        product = _product()
        order = order_builder.add_item(order, product, 2, 1)
        order = order_builder.update_quantity(order, order.items[0].id, 4, {product.id: product})

        assert order.items[0].quantity == 4
        assert order.total_cents == 4000
        _assert_totals(order)

    def test_update_quantity_over_stock(self, order):
        product = _product(stock=4)
        order = order_builder.add_item(order, product, 2, 1)
        with pytest.raises(InsufficientStock):
            order_builder.update_quantity(order, order.items[0].id, 5, {product.id: product})

    def test_update_quantity_must_be_positive(self, order):
        product = _product()
        order = order_builder.add_item(order, product, 2, 1)
        with pytest.raises(InvalidQuantity):
            order_builder.update_quantity(order, order.items[0].id, 0, {product.id: product})

    def test_update_price_to_new_tier(self, order):
        product = _product()
        order = order_builder.add_item(order, product, 2, 1)
        order = order_builder.update_item_price(order, order.items[0].id, 3, {product.id: product})

        assert order.items[0].price_tier == 3
        assert order.items[0].unit_price_cents == 1200
        assert order.total_cents == 2400

    def test_update_price_for_unknown_product_is_noop(self, order):
        order = order_builder.add_item(order, _product(), 2, 1)
        same = order_builder.update_item_price(order, order.items[0].id, 3, {})
        assert same == order


# =============================================================================
# DISCOUNT
# =============================================================================


class TestDiscount:

    def test_discount_cannot_exceed_subtotal(self, order):
        order = order_builder.add_item(order, _product(), 1, 1)
        with pytest.raises(InvalidDiscount):
            order_builder.apply_discount(order, 1001)

    def test_negative_discount_rejected(self, order):
        with pytest.raises(InvalidDiscount):
            order_builder.apply_discount(order, -1)

    def test_full_discount_allowed(self, order):
        order = order_builder.add_item(order, _product(), 1, 1)
        order = order_builder.apply_discount(order, 1000)
        assert order.total_cents == 0


# =============================================================================
# SERIALIZATION
# =============================================================================


class TestFromDict:

    def test_totals_recomputed_not_trusted(self, order):
        order = order_builder.add_item(order, _product(), 3, 1)
        data = order.to_dict()
        data["subtotal_cents"] = 1
        data["total_cents"] = 1
        data["items"][0]["total_cents"] = 1
        data["discount_cents"] = 500

        rebuilt = Order.from_dict(data)

        assert rebuilt.subtotal_cents == 3000
        assert rebuilt.total_cents == 2500
        _assert_totals(rebuilt)

    def test_missing_order_rejected(self):
        with pytest.raises(NoActiveOrder):
            Order.from_dict(None)

    def test_integer_ids_are_persisted(self):
        assert order_builder.is_persisted_id("42")
        assert not order_builder.is_persisted_id("temp-1729130000000")
