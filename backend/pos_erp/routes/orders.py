# Overview: Flask API routes for order building, saving, cancelling and tickets.

# backend/pos_erp/routes/orders.py
"""
Order API Routes

DRAFT (stateless): the client holds the order value and posts it back with
each edit; the server applies one Order Builder operation and returns the
new value with recomputed totals. Nothing is persisted.

PERSISTED: POST /api/orders saves (insert or edit-with-deltas). Override
credentials travel as {"authorization": {"username", "password"}} and are
verified server-side for below-cost prices, credit past the limit and
stock overrides.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import AuthorizationDenied, PosError
from ..services import authorization_service
from ..services import catalog_service
from ..services import order_builder
from ..services import order_service
from ..services import stock_service
from ..services import ticket_service
from ..services.order_builder import Order
from ..services.pricing_service import DEFAULT_COST_FLOOR_RATIO, get_tara
from ..decorators import require_auth


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _cost_floor_ratio() -> float:
    return current_app.config.get("COST_FLOOR_RATIO", DEFAULT_COST_FLOOR_RATIO)


def _optional_int(value):
    if value is None or value == "":
        return None
    return int(value)


def _draft_response(order: Order):
    return jsonify({"order": order.to_dict()}), 200


def _run_draft(operation):
    """Shared error handling for the stateless builder endpoints."""
    try:
        data = request.get_json() or {}
        return _draft_response(operation(data))
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except (ValueError, KeyError, TypeError) as e:
        return jsonify({"error": f"Invalid order payload: {e}"}), 400
    except Exception:
        current_app.logger.exception("Draft order operation failed")
        return jsonify({"error": "Internal server error"}), 500


def _price_authorized(data: dict, custom_price_cents) -> bool:
    if custom_price_cents is None:
        return False
    return authorization_service.grant_from_payload(data, "price_below_cost") is not None


# =============================================================================
# DRAFT ORDER BUILDING
# =============================================================================

@orders_bp.post("/draft")
@require_auth
def new_draft_route():
    """
    Start a draft order.

    Request body (optional): {"client_id": 7}
    """
    def _op(data):
        client_id = _optional_int(data.get("client_id"))
        client_name = data.get("client_name")
        if client_id is not None:
            client = catalog_service.get_client(client_id)
            if client is None:
                raise PosError(f"Client {client_id} not found")
            client_name = client.name
        return order_builder.initialize_order(
            client_name=client_name or order_builder.DEFAULT_CLIENT_NAME,
            client_id=client_id,
            created_by=g.current_user.name,
        )

    return _run_draft(_op)


@orders_bp.post("/draft/add-item")
@require_auth
def add_item_route():
    """
    Request body:
    {
        "order": {...},
        "product_id": 12,
        "quantity": 3,
        "tier": 1,                      (optional, defaults to the client's tier)
        "custom_price_cents": 950,      (optional)
        "tara_id": "2",                 (optional, packaging)
        "overrides": {"price1": 1000},  (optional, per-session tier prices)
        "authorization": {...}          (optional, for below-cost custom prices)
    }
    """
    def _op(data):
        order = Order.from_dict(data.get("order"))
        product = catalog_service.load_snapshot(int(data["product_id"]))

        tier = data.get("tier")
        if tier is None and order.client_id is not None:
            client = catalog_service.get_client(order.client_id)
            tier = client.default_price_tier if client else 1
        custom_price = _optional_int(data.get("custom_price_cents"))
        tara_id = data.get("tara_id")

        return order_builder.add_item(
            order,
            product,
            int(data.get("quantity", 1)),
            tier or 1,
            custom_price_cents=custom_price,
            tara=get_tara(tara_id) if tara_id else None,
            overrides=data.get("overrides"),
            price_authorized=_price_authorized(data, custom_price),
            cost_floor_ratio=_cost_floor_ratio(),
        )

    return _run_draft(_op)


@orders_bp.post("/draft/remove-item")
@require_auth
def remove_item_route():
    def _op(data):
        order = Order.from_dict(data.get("order"))
        return order_builder.remove_item(order, str(data.get("item_id")))

    return _run_draft(_op)


@orders_bp.post("/draft/update-quantity")
@require_auth
def update_quantity_route():
    def _op(data):
        order = Order.from_dict(data.get("order"))
        catalog = catalog_service.load_catalog(item.product_id for item in order.items)
        return order_builder.update_quantity(order, str(data["item_id"]), int(data["quantity"]), catalog)

    return _run_draft(_op)


@orders_bp.post("/draft/update-price")
@require_auth
def update_price_route():
    def _op(data):
        order = Order.from_dict(data.get("order"))
        catalog = catalog_service.load_catalog(item.product_id for item in order.items)
        custom_price = _optional_int(data.get("custom_price_cents"))
        return order_builder.update_item_price(
            order,
            str(data["item_id"]),
            int(data.get("tier", 1)),
            catalog,
            custom_price_cents=custom_price,
            overrides=data.get("overrides"),
            price_authorized=_price_authorized(data, custom_price),
            cost_floor_ratio=_cost_floor_ratio(),
        )

    return _run_draft(_op)


@orders_bp.post("/draft/set-client")
@require_auth
def set_client_route():
    """
    Request body: {"order": {...}, "client_id": 7}  (null client_id resets to the walk-in client)
    """
    def _op(data):
        order = Order.from_dict(data.get("order"))
        client_id = _optional_int(data.get("client_id"))
        client_name = None
        if client_id is not None:
            client = catalog_service.get_client(client_id)
            if client is None:
                raise PosError(f"Client {client_id} not found")
            client_name = client.name
        return order_builder.set_client(order, client_id, client_name)

    return _run_draft(_op)


@orders_bp.post("/draft/apply-discount")
@require_auth
def apply_discount_route():
    def _op(data):
        order = Order.from_dict(data.get("order"))
        return order_builder.apply_discount(order, int(data.get("amount_cents", 0)))

    return _run_draft(_op)


# =============================================================================
# PERSISTENCE
# =============================================================================

@orders_bp.post("")
@require_auth
def save_order_route():
    """
    Save an order (insert when its id is temp-..., reconcile when numeric).

    Request body:
    {
        "order": {...},
        "distribution": {"12": [{"warehouse_id": 1, "quantity": 2}]},  (optional)
        "stock_override": false,     (requires authorization)
        "authorization": {...}       (optional; stock override, credit limit, below-cost lines)
    }

    Returns:
        201: New order saved
        200: Existing order updated
        403: Override credential rejected
        409: Insufficient stock / credit limit / locked by another user
    """
    try:
        data = request.get_json() or {}
        order = Order.from_dict(data.get("order"))
        distribution = stock_service.parse_distribution(data.get("distribution"))

        grant = authorization_service.grant_from_payload(data, "order_save")
        stock_override = bool(data.get("stock_override"))
        if stock_override and grant is None:
            raise AuthorizationDenied("Stock override requires authorization")

        is_new = not order.is_persisted
        sale = order_service.save_order(
            order,
            g.current_user,
            distribution=distribution,
            stock_override=stock_override,
            grant=grant,
            session_key=g.session_key,
        )
        return jsonify({
            "order": order_service.order_from_sale(sale).to_dict(),
            "sale": sale.to_dict(),
        }), 201 if is_new else 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except (ValueError, KeyError, TypeError) as e:
        return jsonify({"error": f"Invalid order payload: {e}"}), 400
    except Exception:
        current_app.logger.exception("Failed to save order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    Query params:
    - status: draft/saved/pending/paid/cancelled (or persisted overdue)
    - mine: "true" to list only the caller's orders
    - client_id
    - limit (default 100)
    """
    try:
        mine = request.args.get("mine", "false").lower() == "true"
        orders = order_service.list_orders(
            created_by_user_id=g.current_user.id if mine else None,
            status=request.args.get("status"),
            client_id=request.args.get("client_id", type=int),
            limit=min(request.args.get("limit", 100, type=int), 500),
        )
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/<int:sale_id>")
@require_auth
def get_order_route(sale_id: int):
    try:
        sale = order_service.get_sale(sale_id)
        return jsonify({
            "order": order_service.order_from_sale(sale).to_dict(),
            "distribution": [
                {"product_id": pid, "warehouse_id": wid, "quantity": qty}
                for (pid, wid), qty in sorted(stock_service.load_distribution(sale_id).items())
            ],
        }), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.post("/<int:sale_id>/cancel")
@require_auth
def cancel_order_route(sale_id: int):
    try:
        sale = order_service.cancel_order(sale_id, g.current_user, session_key=g.session_key)
        return jsonify({"order": order_service.order_from_sale(sale).to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:sale_id>/ticket")
@require_auth
def ticket_route(sale_id: int):
    """Plain-text ticket for the printer: {"filename", "body"}."""
    try:
        filename, body = ticket_service.build_ticket(order_service.get_sale(sale_id))
        return jsonify({"filename": filename, "body": body}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
