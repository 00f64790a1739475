# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service with Tenant Bootstrap

WHY: Every stock movement and billing decision must be attributable.
Uses bcrypt for password hashing.

MULTI-TENANT: A self-registered user is an admin whose tenant_id is its own
id (tenant = registering admin). Sub-users created by that admin inherit
the tenant_id. Usernames are unique across the store.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import logging
import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, VALID_ROLES
from ..validation import DuplicateKeyError, ValidationError
from .subscription_service import ensure_subscription
from cafestock.time_utils import utcnow

logger = logging.getLogger(__name__)

USERNAME_MAX_LENGTH = 64


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password must be a string")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def _clean_username(username: str | None) -> str:
    if username is not None and not isinstance(username, str):
        raise ValidationError("username must be a string")
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    if len(username) > USERNAME_MAX_LENGTH:
        raise ValidationError(f"username exceeds max length {USERNAME_MAX_LENGTH}")
    return username


def _require_password(password) -> None:
    if password is not None and not isinstance(password, str):
        raise ValidationError("password must be a string")
    if not password:
        raise ValidationError("password is required")


def _insert_user(username: str, password: str, role: str, tenant_id: int | None) -> User:
    if db.session.query(User).filter_by(username=username).first() is not None:
        raise DuplicateKeyError("Username is already taken")

    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        tenant_id=tenant_id,
        created_at=utcnow(),
    )
    db.session.add(user)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateKeyError("Username is already taken")
    return user


def register_tenant_admin(username: str, password: str, confirm_password: str | None = None) -> User:
    """
    Self-registration: create a new tenant whose id is the admin's id.

    The trial subscription is created in the same transaction.

    Raises:
        ValidationError: missing input, mismatched confirmation, weak password
        DuplicateKeyError: username taken
    """
    username = _clean_username(username)
    _require_password(password)
    if confirm_password is not None and password != confirm_password:
        raise ValidationError("Passwords do not match")

    user = _insert_user(username, password, ROLE_ADMIN, tenant_id=None)
    user.tenant_id = user.id
    ensure_subscription(user.id, commit=False)
    db.session.commit()

    logger.info("Tenant registered tenant_id=%s username=%s", user.id, user.username)
    return user


def create_sub_user(admin: User, username: str, password: str, role: str) -> User:
    """Create a user inside the admin's tenant."""
    username = _clean_username(username)
    _require_password(password)
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")

    user = _insert_user(username, password, role, tenant_id=admin.effective_tenant_id)
    db.session.commit()

    logger.info("User created tenant_id=%s user_id=%s role=%s", user.tenant_id, user.id, role)
    return user


def list_tenant_users(tenant_id: int) -> list[User]:
    return (
        db.session.query(User)
        .filter(User.tenant_id == tenant_id)
        .order_by(User.username.asc())
        .all()
    )


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username and password.

    Returns User if credentials valid, None otherwise. On success, repairs
    a missing tenant_id, ensures the tenant owner's subscription exists and
    updates last_login_at.
    """
    if not isinstance(username, str) or not isinstance(password, str):
        return None
    username = username.strip()
    if not username or not password:
        return None

    user = db.session.query(User).filter_by(username=username).first()
    if user is None or not verify_password(password, user.password_hash):
        return None

    if user.tenant_id is None:
        user.tenant_id = user.id
    ensure_subscription(user.effective_tenant_id, commit=False)
    user.last_login_at = utcnow()
    db.session.commit()
    return user


def backfill_tenant_ids() -> int:
    """Give legacy users without a tenant their own id as tenant_id."""
    users = db.session.query(User).filter(User.tenant_id.is_(None)).all()
    for user in users:
        user.tenant_id = user.id
    db.session.commit()
    return len(users)


def ensure_bootstrap_admin() -> User | None:
    """
    Seed the default admin account when the users table is empty.

    One-time initialization over the store itself; a no-op once any user
    exists. Returns the created user, or None.
    """
    if db.session.query(User).count() > 0:
        return None

    cfg = current_app.config
    user = _insert_user(
        cfg["BOOTSTRAP_ADMIN_USERNAME"],
        cfg["BOOTSTRAP_ADMIN_PASSWORD"],
        ROLE_ADMIN,
        tenant_id=None,
    )
    user.tenant_id = user.id
    db.session.commit()

    logger.warning(
        "Seeded bootstrap admin '%s' with the default password; change it immediately",
        user.username,
    )
    return user
