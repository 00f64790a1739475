from __future__ import annotations

from ..extensions import db
from cafestock.time_utils import to_utc_z, utcnow


SUBSCRIPTION_TRIALING = "trialing"
SUBSCRIPTION_PENDING = "pending"
SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_PAST_DUE = "past_due"

PAYMENT_PENDING = "pending"
PAYMENT_APPROVED = "approved"
PAYMENT_REJECTED = "rejected"


class Subscription(db.Model):
    """
    One subscription per tenant owner (unique user_id).

    Expiry is never swept by a job: access is evaluated lazily from
    trial_ends_at / paid_until (see subscription_service.is_active).
    version_id guards status transitions against lost updates.
    """
    __tablename__ = "subscriptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)

    plan_name = db.Column(db.String(64), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SUBSCRIPTION_TRIALING)

    trial_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    trial_ends_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", backref=db.backref("subscription", uselist=False))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Subscription id={self.id} user_id={self.user_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "plan_name": self.plan_name,
            "price_cents": self.price_cents,
            "status": self.status,
            "trial_started_at": to_utc_z(self.trial_started_at),
            "trial_ends_at": to_utc_z(self.trial_ends_at),
            "paid_until": to_utc_z(self.paid_until),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Payment(db.Model):
    """
    A claimed payment awaiting manual review.

    status moves pending -> approved or pending -> rejected exactly once.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    slip_path = db.Column(db.String(512), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("payments", lazy=True))

    def __repr__(self) -> str:
        return f"<Payment id={self.id} user_id={self.user_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "reference": self.reference,
            "has_slip": bool(self.slip_path),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "approved_by": self.approved_by,
            "note": self.note,
        }


class InvoiceProfile(db.Model):
    """Tax/business identity printed on invoices; at most one per user."""
    __tablename__ = "invoice_profiles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)

    business_name = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(32), nullable=True)
    branch = db.Column(db.String(128), nullable=True)
    address = db.Column(db.Text, nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "business_name": self.business_name,
            "tax_id": self.tax_id,
            "branch": self.branch,
            "address": self.address,
            "email": self.email,
            "phone": self.phone,
            "updated_at": to_utc_z(self.updated_at),
        }
