# Overview: Flask API routes for settling orders; parses input and returns JSON responses.

# backend/pos_erp/routes/payments.py
"""
Payment Settlement API Routes

Supports cash, card, transfer, credit, vouchers and mixed tenders.
Credit past the client's limit needs {"authorization": {...}} from a
manager or admin.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError
from ..services import authorization_service
from ..services import order_service
from ..services import payment_service
from ..services import stock_service
from ..services.payment_service import SettlementRequest
from ..decorators import require_auth


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/orders/<int:sale_id>")
@require_auth
def settle_payment_route(sale_id: int):
    """
    Settle (fully or partially) a persisted order.

    Request body:
    {
        "method": "cash" | "card" | "transfer" | "credit" | "vouchers" | "mixed",
        "amount_cents": 2500,                  (single-method)
        "reference": "AUTH-12345",             (optional)
        "breakdown": {"cash": 0, "card": 0, "transfer": 0, "credit": 0},  (mixed)
        "voucher_id": 3,                       (vouchers)
        "voucher_amount_cents": 1000,          (optional cap on the voucher)
        "cash_amount_cents": 1500,             (vouchers: cash tendered)
        "distribution": {...},                 (optional warehouse allocation)
        "authorization": {...}                 (optional credit override)
    }

    Returns:
        200: Order with payment summary
        400: Invalid payment
        403: Override credential rejected
        404: Order not found
        409: Credit limit exceeded (authorization required)
    """
    try:
        data = request.get_json() or {}
        settlement = SettlementRequest.from_dict(data)
        distribution = stock_service.parse_distribution(data.get("distribution"))
        grant = authorization_service.grant_from_payload(data, "credit_limit")

        sale = payment_service.settle_payment(
            sale_id,
            settlement,
            g.current_user,
            distribution=distribution,
            credit_grant=grant,
        )

        return jsonify({
            "order": order_service.order_from_sale(sale).to_dict(),
            "summary": payment_service.get_payment_summary(sale_id),
        }), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to settle payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/orders/<int:sale_id>")
@require_auth
def get_payment_summary_route(sale_id: int):
    """
    Payment summary for an order:
    - total, amount paid, remaining balance, status
    - list of payments
    """
    try:
        return jsonify(payment_service.get_payment_summary(sale_id)), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
