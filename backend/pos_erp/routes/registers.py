# Overview: Flask API routes for the operator's cash register (open, close, current).

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError
from ..services import register_service
from ..decorators import require_auth, require_role


registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


@registers_bp.post("/open")
@require_auth
def open_register_route():
    """
    Open a cash drawer for the current user.

    Request body: {"opening_amount_cents": 50000}
    """
    try:
        data = request.get_json() or {}
        register = register_service.open_register(g.current_user, int(data.get("opening_amount_cents", 0)))
        return jsonify({"register": register.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except (TypeError, ValueError):
        return jsonify({"error": "opening_amount_cents must be an integer"}), 400
    except Exception:
        current_app.logger.exception("Failed to open cash register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/close")
@require_auth
def close_register_route():
    """
    Close the current user's drawer.

    Request body: {"closing_amount_cents": 82000}
    Returns the register with totals, expected cash and variance.
    """
    try:
        data = request.get_json() or {}
        if "closing_amount_cents" not in data:
            return jsonify({"error": "closing_amount_cents required"}), 400
        register = register_service.close_register(g.current_user, int(data["closing_amount_cents"]))
        return jsonify({"register": register.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except (TypeError, ValueError):
        return jsonify({"error": "closing_amount_cents must be an integer"}), 400
    except Exception:
        current_app.logger.exception("Failed to close cash register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/current")
@require_auth
def current_register_route():
    register = register_service.get_open_register(g.current_user.id)
    return jsonify({"register": register.to_dict() if register else None}), 200


@registers_bp.get("")
@require_auth
@require_role("admin", "manager")
def list_registers_route():
    """
    Recent registers across operators (supervisors only).

    Query params:
    - status: open/closed
    - limit (default 50)
    """
    registers = register_service.list_registers(
        status=request.args.get("status"),
        limit=min(request.args.get("limit", 50, type=int), 200),
    )
    return jsonify({"registers": [r.to_dict() for r in registers]}), 200
