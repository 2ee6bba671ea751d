# Overview: Settle persisted orders across cash, card, transfer, credit, vouchers and mixed tenders.

"""
Payment Settlement Service

WHY: A saved order is paid once, in installments, on credit, with a
voucher, or with several tenders at once. Each tender has its own rules
for amount paid, remaining balance, client credit and stock.

TENDER RULES:
- credit: nothing collected; remaining = total; client balance += total
- vouchers: voucher covers what it can, cash covers the rest; the sale's
  recorded total becomes the cash collected
- mixed with a credit part: collected now, credit part stays pending and
  is added to the client balance
- mixed without credit: collected covers the whole balance
- cash / card / transfer: partial or full; paid once remaining <= 1 cent
- on a sale already put on credit, whatever a later tender settles comes
  off the client balance

STOCK: a sale is depleted at most once (Sale.stock_committed). Orders
saved through order_service are already committed, so depletion here only
happens for quotes. Mixed-with-credit does not deplete.

Every settlement runs in one transaction. Register totals are refreshed
afterwards; a failure there is logged and swallowed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..errors import OrderNotFound, PaymentError
from ..extensions import db
from ..models import Client, Payment, ReturnVoucher, Sale
from pos_erp.time_utils import utcnow
from . import order_status, register_service, stock_service
from .authorization_service import AuthorizationGrant, check_credit_limit
from .concurrency import lock_for_update, run_in_transaction
from .sync_service import trigger_sync


# =============================================================================
# TENDER TYPES (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_CARD = "card"
METHOD_TRANSFER = "transfer"
METHOD_CREDIT = "credit"
METHOD_VOUCHERS = "vouchers"
METHOD_MIXED = "mixed"

SINGLE_METHODS = (METHOD_CASH, METHOD_CARD, METHOD_TRANSFER)

VALID_METHODS = SINGLE_METHODS + (METHOD_CREDIT, METHOD_VOUCHERS, METHOD_MIXED)

BREAKDOWN_KEYS = ("cash", "card", "transfer", "credit")

VOUCHER_ENABLED = "enabled"
VOUCHER_USED = "used"


@dataclass
class SettlementRequest:
    method: str
    amount_cents: int = 0
    reference: str | None = None
    breakdown: dict[str, int] = field(default_factory=dict)
    voucher_id: int | None = None
    voucher_amount_cents: int | None = None
    cash_amount_cents: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "SettlementRequest":
        method = (data.get("method") or "").strip().lower()
        if method not in VALID_METHODS:
            raise PaymentError(f"Invalid payment method: {method!r}. Must be one of {list(VALID_METHODS)}")
        try:
            breakdown = {key: int((data.get("breakdown") or {}).get(key) or 0) for key in BREAKDOWN_KEYS}
            return cls(
                method=method,
                amount_cents=int(data.get("amount_cents") or 0),
                reference=data.get("reference"),
                breakdown=breakdown,
                voucher_id=_optional_int(data.get("voucher_id")),
                voucher_amount_cents=_optional_int(data.get("voucher_amount_cents")),
                cash_amount_cents=_optional_int(data.get("cash_amount_cents")),
            )
        except (TypeError, ValueError):
            raise PaymentError("Payment amounts must be whole cents")

    @property
    def collected_cents(self) -> int:
        return sum(self.breakdown.get(key, 0) for key in ("cash", "card", "transfer"))

    @property
    def credit_cents(self) -> int:
        return self.breakdown.get("credit", 0)


def _optional_int(value) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


# =============================================================================
# SETTLEMENT
# =============================================================================

def settle_payment(
    sale_id: int,
    request: SettlementRequest,
    actor,
    *,
    distribution: stock_service.Distribution | None = None,
    credit_grant: AuthorizationGrant | None = None,
) -> Sale:
    """
    Apply a settlement request to a persisted order.

    Args:
        sale_id: persisted order id
        request: tender, amounts and optional voucher/breakdown
        actor: user taking the payment
        distribution: warehouse allocation; wins over the stored one while
            the sale's stock is not yet committed
        credit_grant: override for credit past the client's limit

    Raises:
        OrderNotFound, PaymentError, CreditLimitExceeded, PersistenceFailure
    """
    register = register_service.get_open_register(actor.id)
    register_id = register.id if register else None

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise OrderNotFound(sale_id)
        _check_settleable(sale, request)

        if distribution is not None and not sale.stock_committed:
            stock_service.validate_distribution(distribution, _quantities(sale))
            stock_service.replace_distribution(sale.id, distribution)

        handler = _HANDLERS.get(request.method, _settle_single)
        handler(sale, request, actor, register_id, credit_grant)

        sale.payment_method = request.method
        db.session.flush()
        return sale

    sale = run_in_transaction(_op, failure_message="Could not process the payment")
    register_service.refresh_totals_quietly(register_id)
    trigger_sync("payment")
    return sale


def _quantities(sale: Sale) -> dict[int, int]:
    totals: dict[int, int] = {}
    for item in sale.items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def _check_settleable(sale: Sale, request: SettlementRequest) -> None:
    if sale.status == order_status.SALE_OVERDUE:
        raise PaymentError("Cannot take payment on a cancelled order")
    if sale.status == order_status.SALE_PAID:
        raise PaymentError("Order is already paid")
    if sale.remaining_balance_cents <= 0:
        raise PaymentError("Order has no remaining balance due")

    if request.method in (METHOD_CREDIT, METHOD_VOUCHERS) and sale.amount_paid_cents > 0:
        raise PaymentError(
            "Order already has payments; settle the remaining balance with cash, card or transfer"
        )
    wants_credit = request.method == METHOD_CREDIT or (
        request.method == METHOD_MIXED and request.credit_cents > 0
    )
    if wants_credit and sale.is_credit:
        raise PaymentError("Order is already on credit")


def _require_client(sale: Sale) -> Client:
    if sale.client_id is None:
        raise PaymentError("A client is required for this payment method")
    client = lock_for_update(db.session.query(Client).filter_by(id=sale.client_id)).first()
    if client is None:
        raise PaymentError(f"Client {sale.client_id} not found")
    return client


def _record_payment(
    sale: Sale,
    method: str,
    amount_cents: int,
    actor,
    register_id: int | None,
    *,
    change_cents: int = 0,
    reference: str | None = None,
    breakdown: dict | None = None,
) -> Payment:
    payment = Payment(
        sale_id=sale.id,
        method=method,
        amount_cents=amount_cents,
        change_cents=change_cents,
        reference=reference,
        breakdown=breakdown,
        cash_register_id=register_id,
        created_by_user_id=actor.id,
        created_at=utcnow(),
    )
    db.session.add(payment)
    return payment


def _pay_down_credit(sale: Sale, amount_cents: int) -> None:
    """Money taken on a credit sale also comes off the client's account."""
    if not sale.is_credit or sale.client_id is None or amount_cents <= 0:
        return
    client = _require_client(sale)
    client.balance_cents = max(0, client.balance_cents - amount_cents)


def _mark_paid(sale: Sale, actor) -> None:
    sale.status = order_status.SALE_PAID
    stock_service.deplete_for_sale(sale, actor)


def _settle_credit(sale, request, actor, register_id, credit_grant) -> None:
    """Whole order on credit: nothing collected, stock consumed now."""
    client = _require_client(sale)
    check_credit_limit(client, sale.total_cents, credit_grant)

    sale.status = order_status.SALE_PENDING
    sale.is_credit = True
    sale.amount_paid_cents = 0
    sale.remaining_balance_cents = sale.total_cents
    client.balance_cents = client.balance_cents + sale.total_cents

    stock_service.deplete_for_sale(sale, actor)


def _settle_vouchers(sale, request, actor, register_id, credit_grant) -> None:
    """
    Voucher first, cash for the rest.

    The voucher-covered part is dropped from the recorded total, which
    becomes the cash actually collected; voucher_amount_cents keeps it.
    """
    if request.voucher_id is None:
        raise PaymentError("voucher_id is required for voucher payments")
    voucher = lock_for_update(
        db.session.query(ReturnVoucher).filter_by(id=request.voucher_id)
    ).first()
    if voucher is None:
        raise PaymentError(f"Voucher {request.voucher_id} not found")
    if voucher.status != VOUCHER_ENABLED or voucher.available_cents <= 0:
        raise PaymentError(f"Voucher {voucher.folio} is not available")
    if sale.client_id is None or voucher.client_id != sale.client_id:
        raise PaymentError(f"Voucher {voucher.folio} does not belong to this client")

    applied = min(voucher.available_cents, sale.total_cents)
    if request.voucher_amount_cents is not None:
        if request.voucher_amount_cents < 0:
            raise PaymentError("Voucher amount cannot be negative")
        applied = min(applied, request.voucher_amount_cents)
    residual = sale.total_cents - applied

    if residual > 0:
        tendered = request.cash_amount_cents if request.cash_amount_cents is not None else residual
        if tendered < residual:
            raise PaymentError(
                "Cash does not cover the amount left after the voucher",
                details={"required_cents": residual, "tendered_cents": tendered},
            )
        _record_payment(
            sale, METHOD_CASH, tendered, actor, register_id,
            change_cents=tendered - residual,
            reference=request.reference or f"VALE {voucher.folio}",
        )

    voucher.available_cents = max(0, voucher.available_cents - applied)
    if voucher.available_cents == 0:
        voucher.status = VOUCHER_USED

    _pay_down_credit(sale, sale.remaining_balance_cents)

    sale.voucher_amount_cents = applied
    sale.total_cents = residual
    sale.amount_paid_cents = residual
    sale.remaining_balance_cents = 0
    _mark_paid(sale, actor)


def _change_for(request: SettlementRequest, remaining: int) -> int:
    """Over-tender on a mixed payment is only allowed in cash and returned as change."""
    covered = request.collected_cents + request.credit_cents
    if covered < remaining:
        raise PaymentError(
            "Payment does not cover the remaining balance",
            details={"remaining_cents": remaining, "covered_cents": covered},
        )
    non_cash = covered - request.breakdown.get("cash", 0)
    if non_cash > remaining:
        raise PaymentError("Card, transfer and credit cannot exceed the remaining balance")
    return covered - remaining


def _settle_mixed(sale, request, actor, register_id, credit_grant) -> None:
    if any(request.breakdown.get(key, 0) < 0 for key in BREAKDOWN_KEYS):
        raise PaymentError("Payment amounts cannot be negative")

    remaining = sale.remaining_balance_cents
    change = _change_for(request, remaining)
    collected = request.collected_cents
    credit = request.credit_cents

    if collected > 0:
        _record_payment(
            sale, METHOD_MIXED, collected, actor, register_id,
            change_cents=change,
            reference=request.reference,
            breakdown=dict(request.breakdown),
        )

    if credit > 0:
        client = _require_client(sale)
        check_credit_limit(client, credit, credit_grant)
        sale.amount_paid_cents = sale.amount_paid_cents + collected - change
        sale.remaining_balance_cents = credit
        sale.status = order_status.SALE_PENDING
        sale.is_credit = True
        client.balance_cents = client.balance_cents + credit
        return

    _pay_down_credit(sale, remaining)
    sale.amount_paid_cents = sale.total_cents
    sale.remaining_balance_cents = 0
    _mark_paid(sale, actor)


def _settle_single(sale, request, actor, register_id, credit_grant) -> None:
    """Cash, card or transfer; partial payments allowed."""
    amount = request.amount_cents
    if amount <= 0:
        raise PaymentError("Payment amount must be positive")

    remaining = sale.remaining_balance_cents
    if request.method != METHOD_CASH and amount > remaining:
        raise PaymentError("Non-cash tender cannot exceed remaining balance")

    change = max(0, amount - remaining) if request.method == METHOD_CASH else 0
    applied = amount - change

    _record_payment(
        sale, request.method, amount, actor, register_id,
        change_cents=change,
        reference=request.reference,
    )

    sale.amount_paid_cents = sale.amount_paid_cents + applied
    sale.remaining_balance_cents = max(0, sale.total_cents - sale.amount_paid_cents)

    _pay_down_credit(sale, applied)

    if order_status.is_settled(sale.remaining_balance_cents):
        _mark_paid(sale, actor)
    else:
        sale.status = order_status.SALE_PENDING


_HANDLERS = {
    METHOD_CREDIT: _settle_credit,
    METHOD_VOUCHERS: _settle_vouchers,
    METHOD_MIXED: _settle_mixed,
}


# =============================================================================
# QUERIES
# =============================================================================

def get_sale_payments(sale_id: int) -> list[Payment]:
    return db.session.query(Payment).filter_by(sale_id=sale_id).order_by(Payment.id).all()


def get_payment_summary(sale_id: int) -> dict:
    """
    Payment summary for a sale.

    Returns totals, status and the payment list.
    """
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise OrderNotFound(sale_id)

    payments = get_sale_payments(sale_id)
    return {
        "sale_id": sale.id,
        "status": sale.status,
        "order_status": order_status.to_order_status(sale.status),
        "total_cents": sale.total_cents,
        "voucher_amount_cents": sale.voucher_amount_cents,
        "amount_paid_cents": sale.amount_paid_cents,
        "remaining_balance_cents": sale.remaining_balance_cents,
        "change_given_cents": sum(p.change_cents or 0 for p in payments),
        "is_credit": sale.is_credit,
        "payment_method": sale.payment_method,
        "payment_count": len(payments),
        "payments": [p.to_dict() for p in payments],
    }
