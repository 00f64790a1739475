# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Self-registration creates a new tenant and starts its 14-day trial
- Login issues a bearer token carrying the tenant context
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, session_service, subscription_service
from ..validation import DuplicateKeyError, ValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, message: str) -> dict:
    session, token = session_service.create_session(
        user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    subscription = subscription_service.get_subscription(user.effective_tenant_id)
    return {
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "tenant_id": session.tenant_id,
        "subscription": subscription.to_dict() if subscription else None,
        "message": message,
    }


@auth_bp.post("/register")
def register_route():
    """
    Register a new tenant admin and log them in.

    Request body: {"username", "password", "confirm_password"}
    """
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.register_tenant_admin(
            data.get("username"),
            data.get("password"),
            data.get("confirm_password"),
        )
    except DuplicateKeyError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(_session_payload(user, "Registration successful")), 201


@auth_bp.post("/login")
def login_route():
    """Authenticate user and create session token."""
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required"}), 400
        if not isinstance(username, str) or not isinstance(password, str):
            return jsonify({"error": "username and password must be strings"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        return jsonify(_session_payload(user, "Login successful")), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers["Authorization"].split(" ", 1)[1]
    session_service.revoke_session(token, reason="User logout")
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user, tenant and subscription state."""
    subscription = subscription_service.get_subscription(g.current_user.effective_tenant_id)
    return jsonify({
        "user": g.current_user.to_dict(),
        "tenant_id": g.tenant_id,
        "subscription": subscription.to_dict() if subscription else None,
        "subscription_active": subscription_service.is_active(subscription),
    }), 200
