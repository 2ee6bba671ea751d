# Overview: In-memory order aggregate and the pure operations that build it.

"""
Order Builder

WHY: The cart lives on the client until it is saved. Every operation here
takes an Order value and returns a new one; nothing is mutated in place and
nothing touches the database. Stock checks run against the ProductSnapshot
the caller already fetched (accepted staleness; the authoritative check
happens again at save time).

INVARIANT (after every operation):
- subtotal_cents == sum(item.total_cents)
- total_cents == subtotal_cents - discount_cents
- item.total_cents == item.quantity * item.unit_price_cents
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Mapping

from ..errors import InsufficientStock, InvalidDiscount, InvalidQuantity, NoActiveOrder
from ..time_utils import today_iso, to_utc_z, utcnow
from . import order_status
from .authorization_service import check_price_floor
from .pricing_service import (
    DEFAULT_COST_FLOOR_RATIO,
    ProductSnapshot,
    TaraOption,
    apply_tara,
    get_tara,
    resolve_unit_price,
    validate_tier,
)

DEFAULT_CLIENT_NAME = "Cliente General"


@dataclass(frozen=True)
class OrderItem:
    id: str
    product_id: int
    product_name: str
    product_code: str
    quantity: int
    price_tier: int
    unit_price_cents: int
    total_cents: int
    tara: TaraOption | None = None

    def with_quantity(self, quantity: int) -> "OrderItem":
        return replace(self, quantity=quantity, total_cents=quantity * self.unit_price_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_code": self.product_code,
            "quantity": self.quantity,
            "price_tier": self.price_tier,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "tara": self.tara.to_dict() if self.tara else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderItem":
        tara = None
        raw_tara = data.get("tara")
        if raw_tara:
            tara = get_tara(raw_tara.get("id") if isinstance(raw_tara, dict) else raw_tara)
        quantity = int(data["quantity"])
        unit_price = int(data["unit_price_cents"])
        return cls(
            id=str(data.get("id") or _new_item_id()),
            product_id=int(data["product_id"]),
            product_name=data.get("product_name") or "",
            product_code=data.get("product_code") or "",
            quantity=quantity,
            price_tier=validate_tier(data.get("price_tier", 1)),
            unit_price_cents=unit_price,
            total_cents=quantity * unit_price,
            tara=tara,
        )


@dataclass(frozen=True)
class Order:
    id: str
    client_id: int | None
    client_name: str
    date: str
    items: tuple[OrderItem, ...] = ()
    subtotal_cents: int = 0
    discount_cents: int = 0
    total_cents: int = 0
    status: str = order_status.ORDER_DRAFT
    is_credit: bool = False
    is_invoice: bool = False
    is_quote: bool = False
    is_external: bool = False
    amount_paid_cents: int = 0
    remaining_balance_cents: int = 0
    created_by: str = ""
    created_at: str = ""
    payments: tuple[dict, ...] = field(default_factory=tuple)
    version_id: int | None = None

    @property
    def is_persisted(self) -> bool:
        return is_persisted_id(self.id)

    def find_item(self, item_id: str) -> OrderItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def quantities_by_product(self) -> dict[int, int]:
        totals: dict[int, int] = {}
        for item in self.items:
            totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
        return totals

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "date": self.date,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "is_credit": self.is_credit,
            "is_invoice": self.is_invoice,
            "is_quote": self.is_quote,
            "is_external": self.is_external,
            "amount_paid_cents": self.amount_paid_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "payments": list(self.payments),
            "version_id": self.version_id,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "Order":
        """
        Rebuild an order sent back by the client.

        Line and order totals are recomputed rather than trusted.
        """
        if not data:
            raise NoActiveOrder()
        status = data.get("status") or order_status.ORDER_DRAFT
        if status not in order_status.ORDER_STATUSES:
            raise ValueError(f"Unknown order status: {status}")
        client_id = data.get("client_id")
        version_id = data.get("version_id")
        order = cls(
            id=str(data.get("id") or _new_order_id()),
            client_id=int(client_id) if client_id not in (None, "") else None,
            client_name=data.get("client_name") or DEFAULT_CLIENT_NAME,
            date=data.get("date") or today_iso(),
            items=tuple(OrderItem.from_dict(item) for item in data.get("items") or []),
            discount_cents=int(data.get("discount_cents") or 0),
            status=status,
            is_credit=bool(data.get("is_credit", False)),
            is_invoice=bool(data.get("is_invoice", False)),
            is_quote=bool(data.get("is_quote", False)),
            is_external=bool(data.get("is_external", False)),
            amount_paid_cents=int(data.get("amount_paid_cents") or 0),
            remaining_balance_cents=int(data.get("remaining_balance_cents") or 0),
            created_by=str(data.get("created_by") or ""),
            created_at=data.get("created_at") or "",
            payments=tuple(data.get("payments") or ()),
            version_id=int(version_id) if version_id is not None else None,
        )
        return recompute_totals(order)


def is_persisted_id(order_id) -> bool:
    """Backend-issued ids are positive integers; client drafts use temp-<millis>."""
    return str(order_id).isdigit()


def _new_order_id() -> str:
    return f"temp-{int(time.time() * 1000)}"


def _new_item_id() -> str:
    return f"item-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def _require(order: Order | None) -> Order:
    if order is None:
        raise NoActiveOrder()
    return order


def _check_stock(product: ProductSnapshot, quantity: int) -> None:
    if quantity > product.stock:
        raise InsufficientStock([{
            "product_id": product.id,
            "product_name": product.name,
            "requested_quantity": quantity,
            "available": product.stock,
        }])


def recompute_totals(order: Order) -> Order:
    subtotal = sum(item.total_cents for item in order.items)
    return replace(order, subtotal_cents=subtotal, total_cents=subtotal - order.discount_cents)


def initialize_order(
    client_name: str = DEFAULT_CLIENT_NAME,
    client_id: int | None = None,
    created_by: str = "",
) -> Order:
    """Fresh draft order with zeroed totals."""
    return Order(
        id=_new_order_id(),
        client_id=client_id,
        client_name=client_name or DEFAULT_CLIENT_NAME,
        date=today_iso(),
        status=order_status.ORDER_DRAFT,
        created_by=created_by,
        created_at=to_utc_z(utcnow()),
    )


def add_item(
    order: Order | None,
    product: ProductSnapshot,
    quantity: int,
    tier: int,
    custom_price_cents: int | None = None,
    tara: TaraOption | None = None,
    overrides: Mapping | None = None,
    price_authorized: bool = False,
    cost_floor_ratio: float = DEFAULT_COST_FLOOR_RATIO,
) -> Order:
    """
    Add a product line, merging with an existing line of the same product and tier.

    Raises InvalidQuantity, InsufficientStock, or PriceBelowCost; on any
    failure the input order is returned to the caller untouched.
    """
    order = _require(order)
    tier = validate_tier(tier)
    if quantity <= 0:
        raise InvalidQuantity("Quantity must be greater than zero")

    already_ordered = order.quantities_by_product().get(product.id, 0)
    _check_stock(product, already_ordered + quantity)

    if tara is not None and not product.has_tara:
        tara = None

    unit_price = resolve_unit_price(product, tier, overrides, custom_price_cents)
    if custom_price_cents is None:
        unit_price = apply_tara(unit_price, tara)
    else:
        if not price_authorized:
            check_price_floor(product, unit_price, cost_floor_ratio)

    existing = next(
        (item for item in order.items if item.product_id == product.id and item.price_tier == tier),
        None,
    )

    if existing is not None:
        merged_quantity = existing.quantity + quantity
        items = tuple(
            replace(
                item,
                quantity=merged_quantity,
                unit_price_cents=unit_price,
                total_cents=merged_quantity * unit_price,
                tara=tara or item.tara,
            )
            if item.id == existing.id else item
            for item in order.items
        )
    else:
        new_item = OrderItem(
            id=_new_item_id(),
            product_id=product.id,
            product_name=product.name,
            product_code=product.code,
            quantity=quantity,
            price_tier=tier,
            unit_price_cents=unit_price,
            total_cents=quantity * unit_price,
            tara=tara,
        )
        items = order.items + (new_item,)

    return recompute_totals(replace(order, items=items))


def remove_item(order: Order | None, item_id: str) -> Order:
    """Drop a line. Unknown ids are ignored."""
    order = _require(order)
    items = tuple(item for item in order.items if item.id != item_id)
    return recompute_totals(replace(order, items=items))


def update_quantity(
    order: Order | None,
    item_id: str,
    quantity: int,
    catalog: Mapping[int, ProductSnapshot],
) -> Order:
    order = _require(order)
    if quantity <= 0:
        raise InvalidQuantity("Quantity must be greater than zero")

    item = order.find_item(item_id)
    if item is None:
        return order

    product = catalog.get(item.product_id)
    if product is not None:
        other_lines = order.quantities_by_product().get(item.product_id, 0) - item.quantity
        _check_stock(product, other_lines + quantity)

    items = tuple(i.with_quantity(quantity) if i.id == item_id else i for i in order.items)
    return recompute_totals(replace(order, items=items))


def update_item_price(
    order: Order | None,
    item_id: str,
    tier: int,
    catalog: Mapping[int, ProductSnapshot],
    custom_price_cents: int | None = None,
    overrides: Mapping | None = None,
    price_authorized: bool = False,
    cost_floor_ratio: float = DEFAULT_COST_FLOOR_RATIO,
) -> Order:
    """
    Re-price a line from a tier, an override or a custom price.

    Silently returns the order unchanged when the line or its product is
    not known.
    """
    order = _require(order)
    tier = validate_tier(tier)

    item = order.find_item(item_id)
    if item is None:
        return order
    product = catalog.get(item.product_id)
    if product is None:
        return order

    unit_price = resolve_unit_price(product, tier, overrides, custom_price_cents)
    if custom_price_cents is None:
        unit_price = apply_tara(unit_price, item.tara)
    else:
        if not price_authorized:
            check_price_floor(product, unit_price, cost_floor_ratio)

    items = tuple(
        replace(i, price_tier=tier, unit_price_cents=unit_price, total_cents=i.quantity * unit_price)
        if i.id == item_id else i
        for i in order.items
    )
    return recompute_totals(replace(order, items=items))


def apply_discount(order: Order | None, amount_cents: int) -> Order:
    order = _require(order)
    if amount_cents < 0:
        raise InvalidDiscount("Discount cannot be negative")
    if amount_cents > order.subtotal_cents:
        raise InvalidDiscount(
            "Discount cannot exceed subtotal",
            details={"subtotal_cents": order.subtotal_cents, "discount_cents": amount_cents},
        )
    return recompute_totals(replace(order, discount_cents=amount_cents))


def set_client(order: Order | None, client_id: int | None, client_name: str | None) -> Order:
    order = _require(order)
    return replace(order, client_id=client_id, client_name=client_name or DEFAULT_CLIENT_NAME)
