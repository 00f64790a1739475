# Overview: Invoice profile upkeep and invoice assembly for approved payments.

from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import InvoiceProfile, Payment, User
from ..models.billing import PAYMENT_APPROVED
from ..validation import NotFoundError, ValidationError
from .subscription_service import plan_info
from cafestock.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("business_name", "tax_id", "branch", "address", "email", "phone")
PROFILE_REQUIRED = ("business_name", "address")
PROFILE_MAX_LENGTHS = {
    "business_name": 255,
    "tax_id": 32,
    "branch": 128,
    "email": 255,
    "phone": 32,
}


def get_profile(user_id: int) -> InvoiceProfile | None:
    return db.session.query(InvoiceProfile).filter_by(user_id=user_id).first()


def upsert_invoice_profile(user_id: int, data: dict) -> InvoiceProfile:
    """
    Create or replace the tax identity for a user.

    business_name and address are required; other fields are trimmed and
    stored as NULL when blank.
    """
    cleaned = {}
    for field in PROFILE_FIELDS:
        raw = data.get(field)
        value = str(raw).strip() if raw is not None else ""
        max_length = PROFILE_MAX_LENGTHS.get(field)
        if max_length and len(value) > max_length:
            raise ValidationError(f"{field} exceeds max length {max_length}")
        cleaned[field] = value or None

    missing = [f for f in PROFILE_REQUIRED if not cleaned[f]]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    profile = get_profile(user_id)
    if profile is None:
        profile = InvoiceProfile(user_id=user_id)
        db.session.add(profile)

    for field, value in cleaned.items():
        setattr(profile, field, value)
    profile.updated_at = utcnow()

    db.session.commit()
    logger.info("Invoice profile saved user_id=%s", user_id)
    return profile


def seller_info() -> dict:
    cfg = current_app.config
    return {
        "business_name": cfg["SELLER_BUSINESS_NAME"],
        "tax_id": cfg["SELLER_TAX_ID"],
        "branch": cfg["SELLER_BRANCH"],
        "address": cfg["SELLER_ADDRESS"],
        "email": cfg["SELLER_EMAIL"],
        "phone": cfg["SELLER_PHONE"],
    }


def invoice_number(payment: Payment) -> str:
    issued = payment.approved_at or payment.created_at
    return f"INV-{issued:%Y%m}-{payment.id:06d}"


def _visible_payment(requester: User, payment_id: int) -> Payment:
    payment = db.session.query(Payment).filter_by(id=payment_id).first()
    if payment is None or payment.status != PAYMENT_APPROVED:
        raise NotFoundError("Approved payment not found")

    if payment.user_id == requester.id:
        return payment

    owner = db.session.get(User, payment.user_id)
    same_tenant = owner is not None and owner.effective_tenant_id == requester.effective_tenant_id
    if not (requester.is_admin and same_tenant):
        # Foreign payments report as not found, never as forbidden
        raise NotFoundError("Approved payment not found")
    return payment


def build_invoice(requester: User, payment_id: int) -> dict:
    """
    Assemble the invoice document for an approved payment.

    Visible to the payment owner and to admins of the same tenant.
    The owner's invoice profile must exist.
    """
    payment = _visible_payment(requester, payment_id)

    profile = get_profile(payment.user_id)
    if profile is None:
        raise NotFoundError("Invoice profile is missing; fill in billing details first")

    return {
        "invoice_number": invoice_number(payment),
        "issued_at": to_utc_z(payment.approved_at),
        "seller": seller_info(),
        "buyer": profile.to_dict(),
        "payment": payment.to_dict(),
        "plan": plan_info(),
        "total_cents": payment.amount_cents,
    }
