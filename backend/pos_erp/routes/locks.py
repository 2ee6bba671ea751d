# Overview: Flask API routes for advisory order locks.

"""
Order lock API

POST acquires (200 when held by the caller, 409 with "held_by" when not),
PUT extends, DELETE releases. /release-session is called on page
teardown and never fails.
"""

from flask import Blueprint, jsonify, g

from ..errors import PosError
from ..services import lock_service
from ..decorators import require_auth


locks_bp = Blueprint("locks", __name__, url_prefix="/api/locks")


@locks_bp.get("")
@require_auth
def list_locks_route():
    return jsonify({"locks": [lock.to_dict() for lock in lock_service.list_locks()]}), 200


@locks_bp.get("/<order_id>")
@require_auth
def lock_status_route(order_id: str):
    lock = lock_service.lock_status(order_id)
    return jsonify({"locked": lock is not None, "lock": lock.to_dict() if lock else None}), 200


@locks_bp.post("/<order_id>")
@require_auth
def acquire_lock_route(order_id: str):
    status = lock_service.acquire_lock(order_id, g.current_user, g.session_key)
    return jsonify(status.to_dict()), 200 if status.acquired else 409


@locks_bp.put("/<order_id>")
@require_auth
def extend_lock_route(order_id: str):
    try:
        lock = lock_service.extend_lock(order_id, g.current_user, g.session_key)
        return jsonify({"lock": lock.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@locks_bp.delete("/<order_id>")
@require_auth
def release_lock_route(order_id: str):
    try:
        released = lock_service.release_lock(order_id, g.current_user, g.session_key)
        return jsonify({"released": released}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@locks_bp.post("/release-session")
@require_auth
def release_session_locks_route():
    released = lock_service.release_session_locks(g.current_user.id, g.session_key)
    return jsonify({"released": released}), 200
