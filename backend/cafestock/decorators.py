# Overview: Request decorators for API routes: authentication, roles, subscription gate.

from functools import wraps

from flask import current_app, g, jsonify, request, url_for

from .services import session_service, subscription_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'tenant_id')


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def require_auth(f):
    """
    Require authentication and establish tenant context.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.tenant_id: The tenant captured when the session was created
    - g.session_context: The full SessionContext object

    Returns 401 if the Authorization header is missing or the token is
    invalid, expired or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.tenant_id = context.tenant_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(role: str):
    """Require the authenticated user to hold a role (403 otherwise)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.current_user.role != role:
                return jsonify({
                    "error": "Permission denied",
                    "required_role": role,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_active_subscription(f):
    """
    Soft gate for tenant feature routes.

    When the tenant owner's trial and paid period have both lapsed, answer
    with 303 See Other to the billing summary and a flash message instead
    of running the view. Skipped entirely when FREE_MODE is on.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401

        if current_app.config.get("FREE_MODE"):
            return f(*args, **kwargs)

        if subscription_service.has_active_subscription(g.current_user):
            return f(*args, **kwargs)

        location = url_for("billing.billing_summary_route")
        response = jsonify({
            "flash": {
                "type": "error",
                "message": "Your trial or paid period has ended. Please submit a payment to continue.",
            },
            "redirect": location,
        })
        response.status_code = 303
        response.headers["Location"] = location
        return response

    return decorated_function
