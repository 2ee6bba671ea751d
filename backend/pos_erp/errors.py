# Overview: Business error types shared by services and routes.

"""
POS error hierarchy.

Every error raised by the order, payment, lock and register services derives
from PosError. Routes translate them into JSON bodies of the form
{"error": <message>, "details": {...}} with the error's status_code.

Validation errors (stock, quantity, discount, tier) are raised before any
database write. Persistence errors are rolled back and re-raised as a single
PersistenceFailure carrying a user-readable message.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for POS business errors."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class InsufficientStock(PosError):
    """Requested quantity exceeds known stock for one or more products."""

    status_code = 409

    def __init__(self, items: list[dict]):
        names = ", ".join(item["product_name"] for item in items)
        super().__init__(f"Insufficient stock for: {names}", details={"items": items})
        self.items = items

    @property
    def product_names(self) -> list[str]:
        return [item["product_name"] for item in self.items]


class InvalidQuantity(PosError):
    """Quantity must be greater than zero."""


class InvalidDiscount(PosError):
    """Discount is negative or exceeds the order subtotal."""


class InvalidPriceTier(PosError):
    """Price tier outside 1-5."""


class NoActiveOrder(PosError):
    """An order operation was attempted without an order."""

    def __init__(self, message: str = "No active order"):
        super().__init__(message)


class OrderNotFound(PosError):
    status_code = 404

    def __init__(self, order_id):
        super().__init__(f"Order {order_id} not found", details={"order_id": str(order_id)})


class CreditLimitExceeded(PosError):
    """
    Client balance plus the new credit would exceed the credit limit.

    Surfaced as an authorization prompt: the caller retries with an
    override credential.
    """

    status_code = 409

    def __init__(self, *, client_name: str, credit_limit_cents: int, balance_cents: int, amount_cents: int):
        super().__init__(
            "Credit limit exceeded; authorization required",
            details={
                "authorization_required": True,
                "client_name": client_name,
                "credit_limit_cents": credit_limit_cents,
                "balance_cents": balance_cents,
                "amount_cents": amount_cents,
                "new_balance_cents": balance_cents + amount_cents,
            },
        )


class PriceBelowCost(PosError):
    """Custom price below the estimated cost floor; authorization required."""

    status_code = 409

    def __init__(self, *, product_name: str, price_cents: int, floor_cents: int):
        super().__init__(
            f"Price for {product_name} is below cost; authorization required",
            details={
                "authorization_required": True,
                "product_name": product_name,
                "price_cents": price_cents,
                "cost_floor_cents": floor_cents,
            },
        )


class AuthorizationDenied(PosError):
    status_code = 403


class PaymentError(PosError):
    """Settlement request rejected by a business rule."""


class LockConflict(PosError):
    """Another holder owns the order, or the order changed underneath us."""

    status_code = 409

    def __init__(self, message: str = "Order is being edited by another user", held_by: str | None = None):
        super().__init__(message, details={"held_by": held_by} if held_by else {})
        self.held_by = held_by


class RegisterError(PosError):
    """Cash register open/close rejected."""


class PersistenceFailure(PosError):
    """Wraps any backend error; internal step identity is not preserved."""

    status_code = 500
