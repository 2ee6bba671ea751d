# Overview: Stock writes for sales; product and warehouse quantities plus the movement log.

"""
Stock Service

Inventory invariants (authoritative):
- Product.stock and WarehouseStock.stock never go below zero; every debit is
  floored at 0.
- Every outbound debit writes one InventoryMovement of type "salida" with
  reference POS-<sale id>. Returns to stock write "entrada".
- A sale's stock is debited at most once (Sale.stock_committed). Later edits
  apply deltas against what was committed.

Nothing here commits. Callers own the transaction so that stock writes land
or roll back together with the sale header.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from ..errors import InsufficientStock, PosError
from ..extensions import db
from ..models import InventoryMovement, OrderWarehouseDistribution, Product, Sale, Warehouse, WarehouseStock
from .concurrency import lock_for_update

MOVEMENT_OUT = "salida"
MOVEMENT_IN = "entrada"

# (product_id, warehouse_id) -> quantity
Distribution = dict[tuple[int, int], int]


def sale_reference(sale_id: int) -> str:
    return f"POS-{sale_id}"


# =============================================================================
# DISTRIBUTION MAPS
# =============================================================================

def parse_distribution(raw) -> Distribution | None:
    """
    Normalize a warehouse distribution from a request body.

    Accepts:
    - {"<product_id>": [{"warehouse_id": .., "quantity": ..}, ...]}
    - {"<product_id>": {"<warehouse_id>": qty}}
    - a list of {"product_id", "warehouse_id", "quantity"} rows

    None means "no distribution supplied" and is passed through so callers
    can keep the existing one.
    """
    if raw is None:
        return None

    result: Distribution = {}
    try:
        if isinstance(raw, Mapping):
            for product_id, allocations in raw.items():
                if isinstance(allocations, Mapping):
                    pairs = allocations.items()
                else:
                    pairs = ((a["warehouse_id"], a["quantity"]) for a in allocations or [])
                for warehouse_id, qty in pairs:
                    _accumulate(result, int(product_id), int(warehouse_id), int(qty))
        else:
            for row in raw:
                _accumulate(result, int(row["product_id"]), int(row["warehouse_id"]), int(row["quantity"]))
    except (TypeError, ValueError, KeyError, AttributeError):
        raise PosError("Invalid warehouse distribution")
    return result


def _accumulate(result: Distribution, product_id: int, warehouse_id: int, qty: int) -> None:
    if qty < 0:
        raise PosError("Warehouse distribution quantities cannot be negative")
    if qty == 0:
        return
    key = (product_id, warehouse_id)
    result[key] = result.get(key, 0) + qty


def load_distribution(sale_id: int) -> Distribution:
    rows = db.session.query(OrderWarehouseDistribution).filter_by(sale_id=sale_id).all()
    return {(row.product_id, row.warehouse_id): row.quantity for row in rows}


def replace_distribution(sale_id: int, distribution: Distribution) -> None:
    """Delete then reinsert the sale's distribution rows."""
    db.session.query(OrderWarehouseDistribution).filter_by(sale_id=sale_id).delete(synchronize_session=False)
    for (product_id, warehouse_id), qty in sorted(distribution.items()):
        db.session.add(OrderWarehouseDistribution(
            sale_id=sale_id,
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=qty,
        ))
    db.session.flush()


def validate_distribution(distribution: Distribution, quantities: Mapping[int, int]) -> None:
    """
    A distribution may only allocate products on the order, never more
    than the ordered quantity, and only to known warehouses.
    """
    allocated: dict[int, int] = {}
    for (product_id, _), qty in distribution.items():
        allocated[product_id] = allocated.get(product_id, 0) + qty
    for product_id, qty in allocated.items():
        ordered = quantities.get(product_id, 0)
        if qty > ordered:
            raise PosError(
                "Warehouse distribution exceeds ordered quantity",
                details={"product_id": product_id, "ordered": ordered, "allocated": qty},
            )

    warehouse_ids = {warehouse_id for _, warehouse_id in distribution}
    if not warehouse_ids:
        return
    known = {
        row.id for row in db.session.query(Warehouse.id).filter(Warehouse.id.in_(warehouse_ids)).all()
    }
    missing = sorted(warehouse_ids - known)
    if missing:
        raise PosError("Unknown warehouse in distribution", details={"warehouse_ids": missing})


# =============================================================================
# AVAILABILITY
# =============================================================================

def lock_products(product_ids: Iterable[int]) -> dict[int, Product]:
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    rows = lock_for_update(db.session.query(Product).filter(Product.id.in_(ids))).all()
    return {p.id: p for p in rows}


def check_availability(
    requested: Mapping[int, int],
    products: Mapping[int, Product],
    already_committed: Mapping[int, int] | None = None,
) -> None:
    """
    Authoritative stock check at save time.

    already_committed holds quantities this sale has already taken out of
    stock; only the increase over that needs to be available.
    """
    already_committed = already_committed or {}
    short = []
    for product_id, qty in requested.items():
        product = products.get(product_id)
        if product is None:
            raise PosError(f"Product {product_id} not found", details={"product_id": product_id})
        needed = qty - already_committed.get(product_id, 0)
        if needed > product.stock:
            short.append({
                "product_id": product_id,
                "product_name": product.name,
                "requested_quantity": qty,
                "available": product.stock + already_committed.get(product_id, 0),
            })
    if short:
        raise InsufficientStock(short)


# =============================================================================
# WRITES
# =============================================================================

def _movement(product: Product, movement_type: str, quantity: int, *, sale: Sale, actor=None,
              warehouse_id: int | None = None) -> InventoryMovement:
    movement = InventoryMovement(
        product_id=product.id,
        product_name=product.name,
        type=movement_type,
        quantity=quantity,
        reference=sale_reference(sale.id),
        sale_id=sale.id,
        warehouse_id=warehouse_id,
        user_id=actor.id if actor is not None else None,
        user_name=actor.name if actor is not None else None,
    )
    db.session.add(movement)
    return movement


def debit_product(product: Product, quantity: int, *, sale: Sale, actor=None) -> InventoryMovement:
    product.stock = max(0, product.stock - quantity)
    return _movement(product, MOVEMENT_OUT, quantity, sale=sale, actor=actor)


def credit_product(product: Product, quantity: int, *, sale: Sale, actor=None) -> InventoryMovement:
    product.stock = product.stock + quantity
    return _movement(product, MOVEMENT_IN, quantity, sale=sale, actor=actor)


def return_to_product(product: Product, quantity: int) -> None:
    """Put quantity back on the shelf without an audit row (edit that lowers a line)."""
    product.stock = product.stock + quantity


def adjust_warehouse(warehouse_id: int, product_id: int, delta: int) -> WarehouseStock:
    """Apply a signed delta to a warehouse row, creating the row on first use."""
    row = lock_for_update(
        db.session.query(WarehouseStock).filter_by(warehouse_id=warehouse_id, product_id=product_id)
    ).first()
    if row is None:
        row = WarehouseStock(warehouse_id=warehouse_id, product_id=product_id, stock=0)
        db.session.add(row)
    row.stock = max(0, (row.stock or 0) + delta)
    return row


def apply_distribution_delta(old: Distribution, new: Distribution) -> None:
    """Move warehouse stock by the difference between two distributions."""
    for key in sorted(set(old) | set(new)):
        diff = new.get(key, 0) - old.get(key, 0)
        if diff:
            product_id, warehouse_id = key
            adjust_warehouse(warehouse_id, product_id, -diff)


def deplete_for_sale(sale: Sale, actor=None) -> bool:
    """
    Debit product and warehouse stock for every line of a sale.

    No-op (returns False) when the sale's stock is already committed.
    """
    if sale.stock_committed:
        return False

    products = lock_products(item.product_id for item in sale.items)
    for item in sale.items:
        product = products.get(item.product_id)
        if product is None:
            continue
        debit_product(product, item.quantity, sale=sale, actor=actor)

    apply_distribution_delta({}, load_distribution(sale.id))
    sale.stock_committed = True
    db.session.flush()
    return True


def restore_for_sale(sale: Sale, actor=None) -> bool:
    """Return a sale's committed stock. No-op when nothing was committed."""
    if not sale.stock_committed:
        return False

    products = lock_products(item.product_id for item in sale.items)
    for item in sale.items:
        product = products.get(item.product_id)
        if product is None:
            continue
        credit_product(product, item.quantity, sale=sale, actor=actor)

    apply_distribution_delta(load_distribution(sale.id), {})
    sale.stock_committed = False
    db.session.flush()
    return True


def movements_for_sale(sale_id: int) -> list[InventoryMovement]:
    return (
        db.session.query(InventoryMovement)
        .filter_by(sale_id=sale_id)
        .order_by(InventoryMovement.id)
        .all()
    )
