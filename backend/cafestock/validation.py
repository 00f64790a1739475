from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Float, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Quantities are stored as floats; rounding to this many places on entry and
# on aggregation keeps 0.1 + 0.2 style noise out of the ledger.
QTY_DECIMALS = 3

MAX_QTY = 1_000_000_000


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level: entity absent or outside the caller's tenant."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., product with stock history)."""


class DuplicateKeyError(ConflictError):
    """409-level unique-constraint violation (username, tenant SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def round_qty(value: float) -> float:
    # "+ 0.0" folds -0.0 into 0.0
    return round(float(value), QTY_DECIMALS) + 0.0


def parse_quantity(value: Any, field: str = "qty") -> float:
    """
    Coerce user input to a finite float rounded to QTY_DECIMALS.

    Accepts ints, floats and numeric strings. Rejects bools, NaN and infinity.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            value = float(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be a number")
    if not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number")
    # ints are exact; a huge one would overflow isfinite()
    if not isinstance(value, int) and not math.isfinite(value):
        raise ValidationError(f"{field} must be a finite number")
    if abs(value) > MAX_QTY:
        raise ValidationError(f"{field} cannot exceed {MAX_QTY}")
    return round_qty(value)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Float):
        return parse_quantity(value, col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        # Optional text stored as NULL rather than ""
        if isinstance(val, str) and val == "" and col.nullable:
            val = None

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "min_qty" in patch and patch["min_qty"] is not None:
        if patch["min_qty"] < 0:
            raise ValidationError("min_qty must be >= 0")
