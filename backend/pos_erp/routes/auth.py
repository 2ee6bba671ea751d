# Overview: Flask API routes for login, logout and override authorization.

# backend/pos_erp/routes/auth.py
"""
Authentication API routes

- Login issues a bearer token (hashed at rest)
- Logout revokes the token and releases the session's order locks
- /authorize verifies a manager/admin credential for a one-off override
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import PosError
from ..services import auth_service
from ..services import authorization_service
from ..services import lock_service
from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success.
    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json() or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)

        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current token. Lock release is best effort."""
    token = request.headers.get("Authorization", "").split(" ", 1)[1]
    released = lock_service.release_session_locks(g.current_user.id, g.session_key)
    session_service.revoke_session(token)
    return jsonify({"message": "Logged out", "locks_released": released}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "user": g.current_user.to_dict(),
        "session": g.session_context.session.to_dict(),
    }), 200


@auth_bp.post("/authorize")
@require_auth
def authorize_route():
    """
    Verify an override credential without performing the operation.

    Request body:
    {
        "username": "manager",
        "password": "...",
        "reason": "price_below_cost"
    }

    The client then retries the original request with the same credential
    under "authorization".
    """
    try:
        data = request.get_json() or {}
        grant = authorization_service.authorize_override(
            data.get("username", ""),
            data.get("password", ""),
            data.get("reason") or "override",
        )
        return jsonify({"authorized": True, "grant": grant.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to verify authorization")
        return jsonify({"error": "Internal server error"}), 500
