# Overview: Flask API routes for tenant administration: payment review and sub-users.

"""
Admin routes.

SECURITY: Every route requires the admin role. Payments and users outside
the admin's tenant answer 404.
"""
from flask import Blueprint, g, jsonify, request, send_file

from ..decorators import require_auth, require_role
from ..models.billing import PAYMENT_APPROVED, PAYMENT_PENDING, PAYMENT_REJECTED
from ..services import auth_service, slip_storage, subscription_service
from ..validation import ConflictError, NotFoundError, ValidationError


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_APPROVED, PAYMENT_REJECTED)


@admin_bp.get("/payments")
@require_auth
@require_role("admin")
def list_payments_route():
    """
    Review queue, newest first (max 50).

    Query params:
    - status: pending | approved | rejected (optional)
    """
    status = request.args.get("status")
    if status and status not in PAYMENT_STATUSES:
        return jsonify({"error": f"status must be one of: {', '.join(PAYMENT_STATUSES)}"}), 400

    payments = subscription_service.list_tenant_payments(g.current_user, status=status)
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)})


@admin_bp.get("/payments/<int:payment_id>/slip")
@require_auth
@require_role("admin")
def payment_slip_route(payment_id: int):
    try:
        payment = subscription_service.get_tenant_payment(g.current_user, payment_id)
        path = slip_storage.resolve_slip(payment.slip_path)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return send_file(path)


@admin_bp.post("/payments/<int:payment_id>/approve")
@require_auth
@require_role("admin")
def approve_payment_route(payment_id: int):
    try:
        payment = subscription_service.approve_payment(admin=g.current_user, payment_id=payment_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    subscription = subscription_service.get_subscription(payment.user_id)
    return jsonify({"payment": payment.to_dict(), "subscription": subscription.to_dict()}), 200


@admin_bp.post("/payments/<int:payment_id>/reject")
@require_auth
@require_role("admin")
def reject_payment_route(payment_id: int):
    data = request.get_json(silent=True) or {}
    try:
        payment = subscription_service.reject_payment(
            admin=g.current_user, payment_id=payment_id, note=data.get("note")
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    subscription = subscription_service.get_subscription(payment.user_id)
    return jsonify({"payment": payment.to_dict(), "subscription": subscription.to_dict()}), 200


@admin_bp.get("/users")
@require_auth
@require_role("admin")
def list_users_route():
    users = auth_service.list_tenant_users(g.tenant_id)
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})


@admin_bp.post("/users")
@require_auth
@require_role("admin")
def create_user_route():
    """
    Create a sub-user in the admin's tenant.

    Request body: {"username", "password", "role": "admin" | "staff"}
    """
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_sub_user(
            g.current_user,
            data.get("username"),
            data.get("password"),
            data.get("role") or "staff",
        )
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"user": user.to_dict()}), 201
