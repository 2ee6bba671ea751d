# Overview: Override gate for below-cost prices and credit beyond the client's limit.

"""
Authorization Gate

WHY: Two business rules can be bypassed, but only with a second person's
consent: selling below the estimated cost floor, and extending credit past
a client's limit. The checks are stateless and raise an error carrying the
figures the operator needs to see. The override credential is verified
server-side against the user table (bcrypt) and must belong to one of
OVERRIDE_ROLES. Nothing is compared on the client.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import AuthorizationDenied, CreditLimitExceeded, PriceBelowCost
from . import auth_service
from .pricing_service import DEFAULT_COST_FLOOR_RATIO, ProductSnapshot, cost_floor_cents, is_below_cost


@dataclass(frozen=True)
class AuthorizationGrant:
    user_id: int
    name: str
    role: str
    reason: str

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "name": self.name, "role": self.role, "reason": self.reason}


def check_price_floor(
    product: ProductSnapshot,
    price_cents: int,
    ratio: float | None = None,
    grant: AuthorizationGrant | None = None,
) -> None:
    if grant is not None:
        return
    if ratio is None:
        ratio = current_app.config.get("COST_FLOOR_RATIO", DEFAULT_COST_FLOOR_RATIO)
    if is_below_cost(product, price_cents, ratio):
        raise PriceBelowCost(
            product_name=product.name,
            price_cents=price_cents,
            floor_cents=cost_floor_cents(product, ratio),
        )


def check_credit_limit(client, amount_cents: int, grant: AuthorizationGrant | None = None) -> None:
    """Raise CreditLimitExceeded if balance + amount would pass the client's limit."""
    if grant is not None:
        return
    if client.balance_cents + amount_cents > client.credit_limit_cents:
        raise CreditLimitExceeded(
            client_name=client.name,
            credit_limit_cents=client.credit_limit_cents,
            balance_cents=client.balance_cents,
            amount_cents=amount_cents,
        )


def authorize_override(username: str, password: str, reason: str) -> AuthorizationGrant:
    """
    Verify an override credential.

    Raises AuthorizationDenied on unknown user, wrong password, or a role
    outside OVERRIDE_ROLES. The same message is used for the first two.
    """
    if not username or not password:
        raise AuthorizationDenied("Authorization credentials required")

    user = auth_service.find_active_user(username)
    if user is None or not auth_service.verify_password(password, user.password_hash):
        current_app.logger.warning("Override denied for %r (%s): bad credentials", username, reason)
        raise AuthorizationDenied("Invalid authorization credentials")

    allowed = current_app.config.get("OVERRIDE_ROLES", ("admin", "manager"))
    if user.role not in allowed:
        current_app.logger.warning("Override denied for %r (%s): role %s", username, reason, user.role)
        raise AuthorizationDenied(
            "User is not allowed to authorize this operation",
            details={"role": user.role, "allowed_roles": list(allowed)},
        )

    current_app.logger.info("Override granted by %s for %s", user.username, reason)
    return AuthorizationGrant(user_id=user.id, name=user.name, role=user.role, reason=reason)


def grant_from_payload(payload: dict | None, reason: str) -> AuthorizationGrant | None:
    """Build a grant from an optional {"authorization": {"username", "password"}} body."""
    if not payload:
        return None
    creds = payload.get("authorization")
    if not creds:
        return None
    return authorize_override(creds.get("username", ""), creds.get("password", ""), reason)
