# Overview: Cash register (corte de caja) open/close and running totals.

"""
Cash Register Service

WHY: Each operator works one cash drawer per shift. Payments taken while
the drawer is open are attributed to it, and closing records the counted
cash against what the drawer should hold.

DESIGN PRINCIPLES:
- At most one open register per operator (checked by query)
- Totals are derived from the register's payments, never typed in
- Closed registers are frozen
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import RegisterError
from ..extensions import db
from ..models import CashRegister, Payment
from pos_erp.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from .sync_service import trigger_sync

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"

COLLECTED_TENDERS = ("cash", "card", "transfer")


def get_open_register(user_id: int) -> CashRegister | None:
    return db.session.query(CashRegister).filter_by(
        user_id=user_id,
        status=STATUS_OPEN,
    ).order_by(CashRegister.opened_at.desc()).first()


def open_register(user, opening_amount_cents: int) -> CashRegister:
    """
    Open a cash drawer for an operator.

    Raises:
        RegisterError: negative opening amount, or the operator already has one open
    """
    if opening_amount_cents is None or int(opening_amount_cents) < 0:
        raise RegisterError("Opening amount must be zero or greater")

    def _op():
        existing = get_open_register(user.id)
        if existing is not None:
            raise RegisterError(
                f"Cash register already open (id {existing.id})",
                details={"register_id": existing.id},
            )
        register = CashRegister(
            user_id=user.id,
            status=STATUS_OPEN,
            opening_amount_cents=int(opening_amount_cents),
            opened_at=utcnow(),
        )
        db.session.add(register)
        db.session.flush()
        return register

    register = run_in_transaction(_op, failure_message="Could not open the cash register")
    trigger_sync("register_opened")
    return register


def tender_split(payment: Payment) -> dict[str, int]:
    """
    Net collected amount per tender for one payment.

    Change is handed back in cash, so it is taken off the cash share.
    """
    split = {tender: 0 for tender in COLLECTED_TENDERS}
    if payment.method == "mixed":
        breakdown = payment.breakdown or {}
        for tender in COLLECTED_TENDERS:
            split[tender] = int(breakdown.get(tender) or 0)
    elif payment.method in split:
        split[payment.method] = payment.amount_cents
    split["cash"] -= payment.change_cents or 0
    return split


def recompute_totals(register: CashRegister) -> CashRegister:
    payments = db.session.query(Payment).filter_by(cash_register_id=register.id).all()
    totals = {tender: 0 for tender in COLLECTED_TENDERS}
    for payment in payments:
        for tender, cents in tender_split(payment).items():
            totals[tender] += cents

    register.total_cash_cents = totals["cash"]
    register.total_card_cents = totals["card"]
    register.total_transfer_cents = totals["transfer"]
    register.total_sales_cents = sum(totals.values())
    return register


def refresh_totals_quietly(register_id: int | None) -> None:
    """Recompute a register's totals after a payment. Failures are logged and swallowed."""
    if register_id is None:
        return
    try:
        register = db.session.get(CashRegister, register_id)
        if register is None or register.status != STATUS_OPEN:
            return
        recompute_totals(register)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Failed to refresh totals for register %s", register_id, exc_info=True)


def close_register(user, closing_amount_cents: int) -> CashRegister:
    """
    Close the operator's open drawer with the counted cash.

    Totals are recomputed from payments before freezing.
    """
    if closing_amount_cents is None or int(closing_amount_cents) < 0:
        raise RegisterError("Closing amount must be zero or greater")

    def _op():
        open_register_row = get_open_register(user.id)
        if open_register_row is None:
            raise RegisterError("No open cash register")
        register = lock_for_update(
            db.session.query(CashRegister).filter_by(id=open_register_row.id)
        ).first()
        recompute_totals(register)
        register.closing_amount_cents = int(closing_amount_cents)
        register.status = STATUS_CLOSED
        register.closed_at = utcnow()
        db.session.flush()
        return register

    register = run_in_transaction(_op, failure_message="Could not close the cash register")
    trigger_sync("register_closed")
    return register


def list_registers(status: str | None = None, limit: int = 50) -> list[CashRegister]:
    query = db.session.query(CashRegister)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(CashRegister.opened_at.desc()).limit(limit).all()
