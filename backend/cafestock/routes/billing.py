# Overview: Flask API routes for billing operations; parses input and returns JSON responses.

"""
Billing routes.

These routes sit outside the subscription gate: a lapsed tenant lands here
to submit a payment. The subscription, invoice profile and payments all
belong to the tenant owner, so sub-users act on the owner's account.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth
from ..services import invoice_service, slip_storage, subscription_service, tenant_service
from ..validation import ConflictError, NotFoundError, ValidationError


billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


@billing_bp.get("")
@require_auth
def billing_summary_route():
    """Subscription state, trial countdown, plan, profile and last payments."""
    user = tenant_service.get_current_user()
    return jsonify(subscription_service.billing_summary(user)), 200


@billing_bp.post("/profile")
@require_auth
def upsert_profile_route():
    """
    Create or replace the invoice profile.

    Request body: business_name and address required; tax_id, branch,
    email and phone optional.
    """
    user = tenant_service.get_current_user()
    data = request.get_json(silent=True) or {}

    try:
        profile = invoice_service.upsert_invoice_profile(
            subscription_service.subscription_owner_id(user), data
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"profile": profile.to_dict(), "message": "Billing details saved"}), 200


@billing_bp.post("/pay")
@require_auth
def submit_payment_route():
    """
    Submit a payment claim.

    Accepts multipart/form-data (fields: reference, optional file "slip")
    or a JSON body {"reference": "..."}. A reference or a slip is required.
    """
    user = tenant_service.get_current_user()

    if request.files or request.form:
        reference = request.form.get("reference")
        slip = request.files.get("slip")
    else:
        reference = (request.get_json(silent=True) or {}).get("reference")
        slip = None

    try:
        slip_path = slip_storage.save_slip(slip) if slip and slip.filename else None
        payment = subscription_service.submit_payment(
            user_id=subscription_service.subscription_owner_id(user),
            reference=reference,
            slip_path=slip_path,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to submit payment")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "payment": payment.to_dict(),
        "message": "Payment submitted, waiting for review",
    }), 201


@billing_bp.get("/invoice/<int:payment_id>")
@require_auth
def invoice_route(payment_id: int):
    user = tenant_service.get_current_user()
    try:
        invoice = invoice_service.build_invoice(user, payment_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(invoice), 200
