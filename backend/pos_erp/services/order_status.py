# Overview: Canonical order status vocabulary and its persisted mapping.

"""
Order status mapping (single source of truth).

The in-memory order uses a five-state vocabulary; sales rows persist a
four-state one. Every translation between them goes through the two
tables below.
"""

ORDER_DRAFT = "draft"
ORDER_SAVED = "saved"
ORDER_PENDING = "pending"
ORDER_PAID = "paid"
ORDER_CANCELLED = "cancelled"

ORDER_STATUSES = (ORDER_DRAFT, ORDER_SAVED, ORDER_PENDING, ORDER_PAID, ORDER_CANCELLED)

SALE_PENDING = "pending"
SALE_SAVED = "saved"
SALE_PAID = "paid"
SALE_OVERDUE = "overdue"

SALE_STATUSES = (SALE_PENDING, SALE_SAVED, SALE_PAID, SALE_OVERDUE)

ORDER_TO_SALE = {
    ORDER_DRAFT: SALE_PENDING,
    ORDER_SAVED: SALE_SAVED,
    ORDER_PENDING: SALE_PENDING,
    ORDER_PAID: SALE_PAID,
    ORDER_CANCELLED: SALE_OVERDUE,
}

SALE_TO_ORDER = {
    SALE_PENDING: ORDER_PENDING,
    SALE_SAVED: ORDER_SAVED,
    SALE_PAID: ORDER_PAID,
    SALE_OVERDUE: ORDER_CANCELLED,
}

# Remaining balances at or below one cent count as settled
PAID_EPSILON_CENTS = 1


def to_sale_status(order_status: str) -> str:
    try:
        return ORDER_TO_SALE[order_status]
    except KeyError:
        raise ValueError(f"Unknown order status: {order_status}")


def to_order_status(sale_status: str) -> str:
    try:
        return SALE_TO_ORDER[sale_status]
    except KeyError:
        raise ValueError(f"Unknown sale status: {sale_status}")


def is_settled(remaining_cents: int) -> bool:
    return remaining_cents <= PAID_EPSILON_CENTS
