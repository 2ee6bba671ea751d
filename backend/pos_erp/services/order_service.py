# Overview: Persist orders as sales; insert, edit-with-stock-deltas, cancel and load.

"""
Order Persistence & Stock Reconciliation

WHY: An order is saved, reopened and re-saved several times before it is
paid. Stock must reflect what the order currently asks for, so an edit
moves stock by the difference against the previously persisted lines and
never re-debits the whole order.

PATHS:
- New order (client id "temp-..."): validate stock, insert header and
  lines, debit every line (product + allocated warehouses), one "salida"
  movement per line.
- Edit (integer id): diff per product against the stored lines, apply only
  non-zero deltas, one "salida" movement per positive delta, replace lines
  and distribution wholesale, recompute remaining balance and status.
- Cancel: return committed stock ("entrada"), reverse outstanding credit,
  persist status "overdue".

CREDIT: an order flagged is_credit goes through the credit gate at save
time, but the client's balance only moves once credit is actually extended
by payment_service (credit or mixed-with-credit). After that, edits move
the balance by the change in the remaining balance.

Quotes (is_quote) are persisted without touching stock. A quote re-saved
as a regular order commits its full quantities at that point.

Every save runs inside one transaction (concurrency.run_in_transaction).
"""

from __future__ import annotations

from ..errors import LockConflict, NoActiveOrder, OrderNotFound, PosError
from ..extensions import db
from ..models import Client, Sale, SaleItem
from ..time_utils import parse_iso_date, to_utc_z, utcnow
from . import lock_service, order_status, stock_service
from .authorization_service import AuthorizationGrant, check_credit_limit, check_price_floor
from .concurrency import lock_for_update, run_in_transaction
from .order_builder import DEFAULT_CLIENT_NAME, Order, OrderItem
from .pricing_service import ProductSnapshot, apply_tara, get_tara
from .sync_service import trigger_sync

NEW_ORDER_STATUSES = (order_status.ORDER_DRAFT, order_status.ORDER_SAVED, order_status.ORDER_PENDING)


# =============================================================================
# SAVE
# =============================================================================

def save_order(
    order: Order | None,
    actor,
    *,
    distribution: stock_service.Distribution | None = None,
    stock_override: bool = False,
    grant: AuthorizationGrant | None = None,
    session_key: str | None = None,
) -> Sale:
    """
    Insert a new order or reconcile an edited one.

    Args:
        order: order value built with order_builder
        actor: user performing the save (attribution on sale and movements)
        distribution: {(product_id, warehouse_id): qty}; None keeps the stored one
        stock_override: skip the availability check (manager already authorized)
        grant: verified override credential; covers a credit order past the
            client's limit and lines priced below the cost floor
        session_key: caller's session, used for the advisory lock check

    Raises:
        NoActiveOrder, InsufficientStock, PriceBelowCost, CreditLimitExceeded, LockConflict,
        OrderNotFound, PosError, PersistenceFailure
    """
    if order is None:
        raise NoActiveOrder()
    if not order.items:
        raise PosError("Cannot save an order without items")

    if order.is_persisted:
        lock_service.ensure_not_locked_by_other(order.id, actor, session_key)

    def _op():
        if order.is_persisted:
            return _save_existing(order, actor, distribution, stock_override, grant)
        return _save_new(order, actor, distribution, stock_override, grant)

    sale = run_in_transaction(_op, failure_message="Could not save the order")
    trigger_sync("order_saved")
    return sale


def _load_client(client_id) -> Client | None:
    if client_id is None:
        return None
    client = lock_for_update(db.session.query(Client).filter_by(id=client_id)).first()
    if client is None:
        raise PosError(f"Client {client_id} not found", details={"client_id": client_id})
    return client


def _build_items(order: Order) -> list[SaleItem]:
    return [
        SaleItem(
            position=position,
            product_id=item.product_id,
            product_name=item.product_name,
            product_code=item.product_code,
            quantity=item.quantity,
            price_tier=item.price_tier,
            unit_price_cents=item.unit_price_cents,
            total_cents=item.total_cents,
            tara_id=item.tara.id if item.tara else None,
            tara_name=item.tara.name if item.tara else None,
            tara_factor=item.tara.factor if item.tara else None,
            tara_adjustment_cents=item.tara.price_adjustment_cents if item.tara else None,
        )
        for position, item in enumerate(order.items)
    ]


def _apply_header(sale: Sale, order: Order, client: Client | None) -> None:
    sale.client_id = client.id if client else None
    sale.client_name = client.name if client else (order.client_name or DEFAULT_CLIENT_NAME)
    sale.date = parse_iso_date(order.date) or utcnow().date()
    sale.subtotal_cents = order.subtotal_cents
    sale.discount_cents = order.discount_cents
    sale.total_cents = order.total_cents
    sale.is_invoice = order.is_invoice
    sale.is_quote = order.is_quote
    sale.is_external = order.is_external


def _check_line_prices(order, products, grant, approved=frozenset()) -> None:
    """
    Re-check the cost floor for every line against the locked product rows.

    A line at its catalog price (tier price plus tara) passes; so does a
    (product_id, unit_price_cents) pair already stored on the sale.
    """
    for item in order.items:
        product = ProductSnapshot.from_model(products[item.product_id])
        tier_price = product.prices.get(item.price_tier)
        if tier_price is not None and item.unit_price_cents == apply_tara(tier_price, item.tara):
            continue
        if (item.product_id, item.unit_price_cents) in approved:
            continue
        check_price_floor(product, item.unit_price_cents, grant=grant)


def _commit_full_quantities(sale, order, products, distribution, actor, stock_override) -> None:
    """Debit every line of the order, first time this sale touches stock."""
    quantities = order.quantities_by_product()
    if not stock_override:
        stock_service.check_availability(quantities, products)

    for item in order.items:
        stock_service.debit_product(products[item.product_id], item.quantity, sale=sale, actor=actor)
    stock_service.apply_distribution_delta({}, distribution or {})
    sale.stock_committed = True


def _save_new(order, actor, distribution, stock_override, grant) -> Sale:
    if order.status not in NEW_ORDER_STATUSES:
        raise PosError(f"A new order cannot be saved as {order.status}")

    client = _load_client(order.client_id)
    if order.is_credit and client is not None:
        check_credit_limit(client, order.total_cents, grant)

    quantities = order.quantities_by_product()
    products = stock_service.lock_products(quantities)
    missing = sorted(set(quantities) - set(products))
    if missing:
        raise PosError("Unknown product on order", details={"product_ids": missing})
    _check_line_prices(order, products, grant)

    if distribution:
        stock_service.validate_distribution(distribution, quantities)

    # Nothing is owed on a fully discounted order
    if order.total_cents == 0 and not order.is_quote:
        status = order_status.SALE_PAID
    else:
        status = order_status.to_sale_status(order.status)

    sale = Sale(
        status=status,
        amount_paid_cents=0,
        remaining_balance_cents=order.total_cents,
        created_by_user_id=actor.id,
        created_by_name=actor.name,
        created_at=utcnow(),
    )
    _apply_header(sale, order, client)
    sale.items = _build_items(order)
    db.session.add(sale)
    db.session.flush()

    if distribution:
        stock_service.replace_distribution(sale.id, distribution)

    if not order.is_quote:
        _commit_full_quantities(sale, order, products, distribution, actor, stock_override)

    db.session.flush()
    return sale


def quantity_deltas(previous: dict[int, int], current: dict[int, int]) -> dict[int, int]:
    """Per-product change (current - previous); removed products are negative, zeros dropped."""
    deltas = {}
    for product_id in set(previous) | set(current):
        delta = current.get(product_id, 0) - previous.get(product_id, 0)
        if delta:
            deltas[product_id] = delta
    return deltas


def _save_existing(order, actor, distribution, stock_override, grant) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=int(order.id))).first()
    if sale is None:
        raise OrderNotFound(order.id)
    if order.version_id is not None and order.version_id != sale.version_id:
        raise LockConflict("The order was modified by another user; reload it and try again")
    if sale.status == order_status.SALE_OVERDUE:
        raise PosError("Cancelled orders cannot be edited")

    previous = {}
    for item in sale.items:
        previous[item.product_id] = previous.get(item.product_id, 0) + item.quantity
    current = order.quantities_by_product()

    products = stock_service.lock_products(set(previous) | set(current))
    missing = sorted(set(current) - set(products))
    if missing:
        raise PosError("Unknown product on order", details={"product_ids": missing})
    _check_line_prices(
        order, products, grant,
        approved=frozenset((item.product_id, item.unit_price_cents) for item in sale.items),
    )
    if distribution:
        stock_service.validate_distribution(distribution, current)

    client = _load_client(order.client_id)
    remaining = max(0, order.total_cents - sale.amount_paid_cents)

    # Credit already extended for this sale moves with its remaining balance
    credit_delta = 0
    if sale.is_credit and client is not None and sale.client_id == client.id:
        credit_delta = remaining - sale.remaining_balance_cents
        if credit_delta > 0:
            check_credit_limit(client, credit_delta, grant)
    elif order.is_credit and client is not None:
        check_credit_limit(client, order.total_cents, grant)

    old_distribution = stock_service.load_distribution(sale.id)
    new_distribution = old_distribution if distribution is None else distribution

    if sale.stock_committed:
        deltas = quantity_deltas(previous, current)
        if not stock_override:
            increases = {pid: current[pid] for pid, delta in deltas.items() if delta > 0}
            stock_service.check_availability(increases, products, already_committed=previous)
        for product_id, delta in sorted(deltas.items()):
            product = products[product_id]
            if delta > 0:
                stock_service.debit_product(product, delta, sale=sale, actor=actor)
            else:
                stock_service.return_to_product(product, -delta)
        stock_service.apply_distribution_delta(old_distribution, new_distribution)
    elif not order.is_quote:
        _commit_full_quantities(sale, order, products, new_distribution, actor, stock_override)

    if distribution is not None:
        stock_service.replace_distribution(sale.id, distribution)

    _apply_header(sale, order, client)
    sale.items = _build_items(order)
    sale.remaining_balance_cents = remaining
    if credit_delta:
        client.balance_cents = max(0, client.balance_cents + credit_delta)

    if order_status.is_settled(remaining):
        sale.status = order_status.SALE_PAID
    elif order.status == order_status.ORDER_SAVED:
        sale.status = order_status.SALE_SAVED
    else:
        sale.status = order_status.SALE_PENDING

    db.session.flush()
    return sale


# =============================================================================
# CANCEL
# =============================================================================

def cancel_order(sale_id: int, actor, session_key: str | None = None) -> Sale:
    """
    Cancel a pending or saved order.

    Committed stock goes back to products and warehouses ("entrada"
    movements) and any credit still owed on the sale is taken off the
    client's balance. Paid orders cannot be cancelled.
    """
    lock_service.ensure_not_locked_by_other(sale_id, actor, session_key)

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise OrderNotFound(sale_id)
        if sale.status == order_status.SALE_OVERDUE:
            raise PosError("Order is already cancelled")
        if sale.status == order_status.SALE_PAID:
            raise PosError("Paid orders cannot be cancelled")

        stock_service.restore_for_sale(sale, actor)

        if sale.is_credit and sale.client_id is not None and sale.remaining_balance_cents > 0:
            client = _load_client(sale.client_id)
            client.balance_cents = max(0, client.balance_cents - sale.remaining_balance_cents)

        sale.status = order_status.to_sale_status(order_status.ORDER_CANCELLED)
        sale.cancelled_at = utcnow()
        db.session.flush()
        return sale

    sale = run_in_transaction(_op, failure_message="Could not cancel the order")
    trigger_sync("order_cancelled")
    return sale


# =============================================================================
# QUERIES
# =============================================================================

def order_from_sale(sale: Sale) -> Order:
    """Rebuild the in-memory order value from a persisted sale."""
    items = tuple(
        OrderItem(
            id=f"item-{item.id}",
            product_id=item.product_id,
            product_name=item.product_name,
            product_code=item.product_code or "",
            quantity=item.quantity,
            price_tier=item.price_tier,
            unit_price_cents=item.unit_price_cents,
            total_cents=item.total_cents,
            tara=get_tara(item.tara_id) if item.tara_id else None,
        )
        for item in sale.items
    )
    return Order(
        id=str(sale.id),
        client_id=sale.client_id,
        client_name=sale.client_name,
        date=sale.date.isoformat() if sale.date else "",
        items=items,
        subtotal_cents=sale.subtotal_cents,
        discount_cents=sale.discount_cents,
        total_cents=sale.total_cents,
        status=order_status.to_order_status(sale.status),
        is_credit=sale.is_credit,
        is_invoice=sale.is_invoice,
        is_quote=sale.is_quote,
        is_external=sale.is_external,
        amount_paid_cents=sale.amount_paid_cents,
        remaining_balance_cents=sale.remaining_balance_cents,
        created_by=sale.created_by_name or "",
        created_at=to_utc_z(sale.created_at) or "",
        payments=tuple(p.to_dict() for p in sale.payments),
        version_id=sale.version_id,
    )


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise OrderNotFound(sale_id)
    return sale


def get_order(sale_id: int) -> Order:
    return order_from_sale(get_sale(sale_id))


def list_orders(
    created_by_user_id: int | None = None,
    status: str | None = None,
    client_id: int | None = None,
    limit: int = 100,
) -> list[Order]:
    """
    Most recent orders first.

    status may be given in either vocabulary ("cancelled" or "overdue").
    """
    query = db.session.query(Sale)
    if created_by_user_id is not None:
        query = query.filter(Sale.created_by_user_id == created_by_user_id)
    if status:
        if status in order_status.ORDER_TO_SALE:
            status = order_status.to_sale_status(status)
        if status not in order_status.SALE_STATUSES:
            raise PosError(f"Unknown status: {status}")
        query = query.filter(Sale.status == status)
    if client_id is not None:
        query = query.filter(Sale.client_id == client_id)
    sales = query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
    return [order_from_sale(sale) for sale in sales]
