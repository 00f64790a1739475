# Overview: Subscription lifecycle and manual payment review; an explicit state machine.

"""
Cafe Stock Subscription Service

================================================================================
PURPOSE: Trial -> paid lifecycle per tenant owner, with manual slip review
================================================================================

STATE MACHINE (subscription.status):

    trialing --payment_submitted--> pending
    pending  --payment_approved---> active
    pending  --payment_rejected---> past_due
    past_due --payment_submitted--> pending
    active   --payment_submitted--> pending     (a new payment re-opens review)
    active   --payment_rejected---> past_due
    nothing ever returns to trialing

    payment.status: pending -> approved | rejected, exactly once.

RULES:
1. The trial window is set once, at creation, and never restarted.
2. Access is evaluated lazily from timestamps; status is informational.
   is_active() is true while now <= trial_ends_at or now <= paid_until.
3. Approval sets paid_until = approval time + PLAN_PERIOD_DAYS. It does NOT
   extend a previous paid_until; unused prepaid time is not carried over.
4. Rejection changes status only; no timestamps move.
5. Every transition locks the subscription row and validates the current
   state before writing; invalid transitions raise InvalidTransitionError.
================================================================================
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import InvoiceProfile, Payment, Subscription, User
from ..models.billing import (
    PAYMENT_APPROVED,
    PAYMENT_PENDING,
    PAYMENT_REJECTED,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_PAST_DUE,
    SUBSCRIPTION_PENDING,
    SUBSCRIPTION_TRIALING,
)
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_with_retry
from cafestock.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)

EVENT_PAYMENT_SUBMITTED = "payment_submitted"
EVENT_PAYMENT_APPROVED = "payment_approved"
EVENT_PAYMENT_REJECTED = "payment_rejected"

# event -> (states it may fire from, resulting state)
SUBSCRIPTION_TRANSITIONS = {
    EVENT_PAYMENT_SUBMITTED: (
        {SUBSCRIPTION_TRIALING, SUBSCRIPTION_PENDING, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_PAST_DUE},
        SUBSCRIPTION_PENDING,
    ),
    EVENT_PAYMENT_APPROVED: (
        {SUBSCRIPTION_PENDING, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_PAST_DUE},
        SUBSCRIPTION_ACTIVE,
    ),
    EVENT_PAYMENT_REJECTED: (
        {SUBSCRIPTION_PENDING, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_PAST_DUE},
        SUBSCRIPTION_PAST_DUE,
    ),
}

PAYMENT_TRANSITIONS = {
    (PAYMENT_PENDING, PAYMENT_APPROVED),
    (PAYMENT_PENDING, PAYMENT_REJECTED),
}

BILLING_HISTORY_LIMIT = 8
REVIEW_QUEUE_LIMIT = 50


class SubscriptionError(ValueError):
    """Base class for billing domain errors."""


class MissingProofError(SubscriptionError, ValidationError):
    """A payment was submitted with neither a reference nor a slip."""


class InvalidTransitionError(SubscriptionError, ConflictError):
    """The requested event is not allowed from the current state."""


def _cfg(key: str):
    return current_app.config[key]


# =============================================================================
# TRANSITION FUNCTIONS
# =============================================================================

def next_subscription_status(current: str, event: str) -> str:
    """
    Resolve the state an event leads to, or raise InvalidTransitionError.

    Pure; callers apply the returned status themselves.
    """
    try:
        allowed_from, target = SUBSCRIPTION_TRANSITIONS[event]
    except KeyError:
        raise InvalidTransitionError(f"Unknown subscription event '{event}'")
    if current not in allowed_from:
        raise InvalidTransitionError(f"Cannot apply {event} to a {current} subscription")
    return target


def _apply_event(subscription: Subscription, event: str, now: datetime) -> None:
    previous = subscription.status
    subscription.status = next_subscription_status(previous, event)
    subscription.updated_at = now
    logger.info(
        "Subscription %s user_id=%s %s -> %s",
        event, subscription.user_id, previous, subscription.status,
    )


def _transition_payment(payment: Payment, target: str) -> None:
    if (payment.status, target) not in PAYMENT_TRANSITIONS:
        raise InvalidTransitionError(f"Payment {payment.id} is already {payment.status}")
    payment.status = target


# =============================================================================
# LIFECYCLE
# =============================================================================

def get_subscription(user_id: int) -> Subscription | None:
    return db.session.query(Subscription).filter_by(user_id=user_id).first()


def ensure_subscription(user_id: int, *, commit: bool = True) -> Subscription:
    """
    Create the trial subscription on first login/registration.

    A legacy row without trial_started_at gets its trial window backfilled
    exactly as a new row would; any other existing row is left untouched.
    """
    now = utcnow()
    trial_ends = now + timedelta(days=_cfg("TRIAL_DAYS"))

    subscription = get_subscription(user_id)
    if subscription is None:
        subscription = Subscription(
            user_id=user_id,
            plan_name=_cfg("PLAN_NAME"),
            price_cents=_cfg("PLAN_PRICE_CENTS"),
            status=SUBSCRIPTION_TRIALING,
            trial_started_at=now,
            trial_ends_at=trial_ends,
            created_at=now,
            updated_at=now,
        )
        db.session.add(subscription)
        logger.info("Trial started user_id=%s ends=%s", user_id, to_utc_z(trial_ends))
    elif subscription.trial_started_at is None:
        subscription.trial_started_at = now
        subscription.trial_ends_at = trial_ends
        subscription.status = SUBSCRIPTION_TRIALING
        subscription.updated_at = now
        logger.info("Trial backfilled for legacy subscription user_id=%s", user_id)
    else:
        return subscription

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return subscription


def is_active(subscription: Subscription | None, now: datetime | None = None) -> bool:
    """True while inside the trial window or the paid period (both inclusive)."""
    if subscription is None:
        return False
    if now is None:
        now = utcnow()
    if subscription.trial_ends_at is not None and now <= subscription.trial_ends_at:
        return True
    if subscription.paid_until is not None and now <= subscription.paid_until:
        return True
    return False


def subscription_owner_id(user: User) -> int:
    """Subscriptions belong to the tenant owner; sub-users share it."""
    return user.effective_tenant_id


def has_active_subscription(user: User) -> bool:
    return is_active(get_subscription(subscription_owner_id(user)))


# =============================================================================
# PAYMENTS
# =============================================================================

def submit_payment(
    *,
    user_id: int,
    amount_cents: int | None = None,
    method: str | None = None,
    reference: str | None = None,
    slip_path: str | None = None,
) -> Payment:
    """
    Record a claimed payment and re-open review.

    At least one of reference / slip_path is required (MissingProofError).
    The subscription moves to pending from any state, including active.
    """
    reference = (reference or "").strip() or None
    if reference is None and not slip_path:
        raise MissingProofError("A payment reference or slip is required")
    if reference is not None and len(reference) > 128:
        raise ValidationError("reference exceeds max length 128")

    if amount_cents is None:
        amount_cents = _cfg("PLAN_PRICE_CENTS")
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer")
    method = method or _cfg("PAYMENT_METHOD")

    def _op():
        now = utcnow()
        subscription = lock_for_update(
            db.session.query(Subscription).filter_by(user_id=user_id)
        ).first()
        if subscription is None:
            subscription = ensure_subscription(user_id, commit=False)

        payment = Payment(
            user_id=user_id,
            amount_cents=amount_cents,
            method=method,
            reference=reference,
            slip_path=slip_path,
            status=PAYMENT_PENDING,
            created_at=now,
        )
        db.session.add(payment)
        _apply_event(subscription, EVENT_PAYMENT_SUBMITTED, now)

        db.session.commit()
        logger.info("Payment submitted payment_id=%s user_id=%s", payment.id, user_id)
        return payment

    return run_with_retry(_op)


def _tenant_payment_query(tenant_id: int):
    return (
        db.session.query(Payment)
        .join(User, User.id == Payment.user_id)
        .filter(User.tenant_id == tenant_id)
    )


def get_tenant_payment(admin: User, payment_id: int, *, lock: bool = False) -> Payment:
    query = _tenant_payment_query(admin.effective_tenant_id).filter(Payment.id == payment_id)
    if lock:
        query = lock_for_update(query)
    payment = query.first()
    if payment is None:
        raise NotFoundError("Payment not found")
    return payment


def list_tenant_payments(admin: User, *, status: str | None = None, limit: int = REVIEW_QUEUE_LIMIT) -> list[Payment]:
    query = _tenant_payment_query(admin.effective_tenant_id)
    if status:
        query = query.filter(Payment.status == status)
    return query.order_by(Payment.created_at.desc(), Payment.id.desc()).limit(limit).all()


def _locked_subscription_for(payment: Payment) -> Subscription:
    subscription = lock_for_update(
        db.session.query(Subscription).filter_by(user_id=payment.user_id)
    ).first()
    if subscription is None:
        subscription = ensure_subscription(payment.user_id, commit=False)
    return subscription


def approve_payment(*, admin: User, payment_id: int) -> Payment:
    """
    Approve a pending payment in the admin's tenant.

    paid_until is reset to now + PLAN_PERIOD_DAYS (non-stacking) and the
    subscription becomes active.
    """
    def _op():
        now = utcnow()
        payment = get_tenant_payment(admin, payment_id, lock=True)
        _transition_payment(payment, PAYMENT_APPROVED)
        payment.approved_at = now
        payment.approved_by = admin.id

        subscription = _locked_subscription_for(payment)
        _apply_event(subscription, EVENT_PAYMENT_APPROVED, now)
        subscription.paid_until = now + timedelta(days=_cfg("PLAN_PERIOD_DAYS"))

        db.session.commit()
        logger.info(
            "Payment approved payment_id=%s by=%s paid_until=%s",
            payment.id, admin.id, to_utc_z(subscription.paid_until),
        )
        return payment

    return run_with_retry(_op)


def reject_payment(*, admin: User, payment_id: int, note: str | None = None) -> Payment:
    """Reject a pending payment; the subscription becomes past_due."""
    note = (note or "").strip() or None

    def _op():
        now = utcnow()
        payment = get_tenant_payment(admin, payment_id, lock=True)
        _transition_payment(payment, PAYMENT_REJECTED)
        if note is not None:
            payment.note = note[:255]

        subscription = _locked_subscription_for(payment)
        _apply_event(subscription, EVENT_PAYMENT_REJECTED, now)

        db.session.commit()
        logger.info("Payment rejected payment_id=%s by=%s", payment.id, admin.id)
        return payment

    return run_with_retry(_op)


# =============================================================================
# BILLING SUMMARY
# =============================================================================

def days_left(until: datetime | None, now: datetime | None = None) -> int:
    if until is None:
        return 0
    if now is None:
        now = utcnow()
    seconds = (until - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def plan_info() -> dict:
    return {
        "name": _cfg("PLAN_NAME"),
        "price_cents": _cfg("PLAN_PRICE_CENTS"),
        "period_days": _cfg("PLAN_PERIOD_DAYS"),
    }


def billing_summary(user: User) -> dict:
    owner_id = subscription_owner_id(user)
    subscription = get_subscription(owner_id)
    profile = db.session.query(InvoiceProfile).filter_by(user_id=owner_id).first()
    payments = (
        db.session.query(Payment)
        .filter_by(user_id=owner_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .limit(BILLING_HISTORY_LIMIT)
        .all()
    )
    now = utcnow()
    return {
        "subscription": subscription.to_dict() if subscription else None,
        "is_active": is_active(subscription, now),
        "trial_days_left": days_left(subscription.trial_ends_at, now) if subscription else 0,
        "paid_until": to_utc_z(subscription.paid_until) if subscription else None,
        "plan": plan_info(),
        "profile": profile.to_dict() if profile else None,
        "payments": [p.to_dict() for p in payments],
    }
