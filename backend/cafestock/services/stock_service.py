# Overview: Stock ledger engine; records movements and derives stock levels.

# backend/cafestock/services/stock_service.py
"""
Cafe Stock Ledger Invariants (authoritative)

Ledger model:
- Stock is ledger-derived from StockMovement rows; never stored as a mutable
  quantity field.
- CurrentStock = SUM(qty where kind in ('in', 'adjust')) - SUM(qty where kind = 'out').
- Movements are append-only: no updates, no deletes.

Recording rules (quantity is always a positive magnitude from the user):
- 'in'     stores qty as given.
- 'out'    is rejected with InsufficientStockError when qty > current stock.
- 'adjust' means "set the level to qty": stores (qty - current) as a signed
           delta, rejected with NoChangeError when that delta is zero.

Transactions:
- The product row is locked before stock is read, so the read-then-insert
  sequence is atomic against concurrent movements for the same product.
- Stock returned after a write is recomputed from the ledger inside the
  same transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import case, func

from ..extensions import db
from ..models import Product, StockMovement, User
from ..models.inventory import MOVEMENT_ADJUST, MOVEMENT_IN, MOVEMENT_KINDS, MOVEMENT_OUT
from ..validation import ConflictError, ValidationError, parse_quantity, round_qty
from .concurrency import run_with_retry
from .products_service import get_tenant_product
from cafestock.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)

DASHBOARD_PREVIEW_LIMIT = 6
NOTE_MAX_LENGTH = 255


class InsufficientStockError(ConflictError):
    """An 'out' movement asked for more than the current stock."""

    def __init__(self, requested: float, available: float):
        self.requested = requested
        self.available = available
        super().__init__(f"Insufficient stock: requested {requested:g}, available {available:g}")


class NoChangeError(ValidationError):
    """An 'adjust' movement targeted the level the product is already at."""


@dataclass
class RecordedMovement:
    movement: StockMovement
    stock: float


@dataclass
class ProductStock:
    product: Product
    stock: float

    @property
    def is_low(self) -> bool:
        return self.stock <= self.product.min_qty

    def to_dict(self) -> dict:
        data = self.product.to_dict()
        data["stock"] = self.stock
        data["is_low"] = self.is_low
        return data


def _signed_qty():
    return case(
        (StockMovement.kind == MOVEMENT_IN, StockMovement.qty),
        (StockMovement.kind == MOVEMENT_OUT, -StockMovement.qty),
        (StockMovement.kind == MOVEMENT_ADJUST, StockMovement.qty),
        else_=0,
    )


def current_stock(tenant_id: int, product_id: int) -> float:
    """
    Derived stock for one product: a pure fold over its movements.

    Calling this twice without an intervening write returns the same value.
    """
    total = db.session.query(
        func.coalesce(func.sum(_signed_qty()), 0)
    ).filter(
        StockMovement.tenant_id == tenant_id,
        StockMovement.product_id == product_id,
    ).scalar()
    return round_qty(total or 0)


def _normalize_note(note: str | None) -> str | None:
    if note is None:
        return None
    note = str(note).strip()
    if not note:
        return None
    if len(note) > NOTE_MAX_LENGTH:
        raise ValidationError(f"note exceeds max length {NOTE_MAX_LENGTH}")
    return note


def record_movement(
    *,
    tenant_id: int,
    product_id: int,
    kind: str,
    quantity,
    author_id: int,
    note: str | None = None,
) -> RecordedMovement:
    """
    Append one movement to the ledger and return it with the resulting stock.

    Raises:
        ValidationError: unknown kind, or quantity not a finite number > 0
        NotFoundError: product absent or outside the tenant
        InsufficientStockError: 'out' larger than current stock
        NoChangeError: 'adjust' to the level the product already has
    """
    if kind not in MOVEMENT_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(MOVEMENT_KINDS)}")

    qty = parse_quantity(quantity, "qty")
    if qty <= 0:
        raise ValidationError("qty must be greater than 0")

    note = _normalize_note(note)

    def _op():
        product = get_tenant_product(tenant_id, product_id, lock=True)
        current = current_stock(tenant_id, product.id)

        if kind == MOVEMENT_OUT:
            if qty > current:
                logger.warning(
                    "Rejected out movement tenant_id=%s product_id=%s requested=%s available=%s",
                    tenant_id, product.id, qty, current,
                )
                raise InsufficientStockError(qty, current)
            stored_qty = qty
        elif kind == MOVEMENT_ADJUST:
            stored_qty = round_qty(qty - current)
            if stored_qty == 0:
                raise NoChangeError("Stock level is unchanged")
        else:
            stored_qty = qty

        movement = StockMovement(
            tenant_id=tenant_id,
            product_id=product.id,
            kind=kind,
            qty=stored_qty,
            note=note,
            created_by=author_id,
            created_at=utcnow(),
        )
        db.session.add(movement)
        db.session.flush()

        stock_after = current_stock(tenant_id, product.id)
        db.session.commit()

        logger.info(
            "Movement recorded tenant_id=%s product_id=%s kind=%s qty=%s stock=%s",
            tenant_id, product.id, kind, stored_qty, stock_after,
        )
        return RecordedMovement(movement=movement, stock=stock_after)

    return run_with_retry(_op)


def list_with_stock(
    tenant_id: int,
    *,
    query: str | None = None,
    only_low: bool = False,
) -> list[ProductStock]:
    """
    Every tenant product joined with its derived stock, ordered by name.

    query: case-insensitive substring of the product name.
    only_low: keep rows where stock <= min_qty.
    """
    totals = (
        db.session.query(
            StockMovement.product_id.label("product_id"),
            func.sum(_signed_qty()).label("stock"),
        )
        .filter(StockMovement.tenant_id == tenant_id)
        .group_by(StockMovement.product_id)
        .subquery()
    )

    rows = (
        db.session.query(Product, func.coalesce(totals.c.stock, 0))
        .outerjoin(totals, totals.c.product_id == Product.id)
        .filter(Product.tenant_id == tenant_id)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )

    items = [ProductStock(product=p, stock=round_qty(stock or 0)) for p, stock in rows]

    # Filtered in Python: SQLite's lower() only folds ASCII, names are often Thai.
    needle = (query or "").strip().casefold()
    if needle:
        items = [item for item in items if needle in item.product.name.casefold()]
    if only_low:
        items = [item for item in items if item.is_low]
    return items


def low_stock(tenant_id: int, *, limit: int | None = None) -> list[ProductStock]:
    """Products at or below their minimum; capped when limit is given."""
    if limit is not None and limit < 0:
        raise ValidationError("limit must be >= 0")
    items = list_with_stock(tenant_id, only_low=True)
    if limit is not None:
        items = items[:limit]
    return items


def get_product_stock(tenant_id: int, product_id: int) -> ProductStock:
    product = get_tenant_product(tenant_id, product_id)
    return ProductStock(product=product, stock=current_stock(tenant_id, product.id))


def list_movements(
    tenant_id: int,
    *,
    product_id: int | None = None,
    limit: int | None = None,
) -> list[dict]:
    """Ledger history, newest first, with product and author names."""
    q = (
        db.session.query(StockMovement, Product.name, Product.unit, User.username)
        .join(Product, Product.id == StockMovement.product_id)
        .join(User, User.id == StockMovement.created_by)
        .filter(StockMovement.tenant_id == tenant_id)
    )
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    q = q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    if limit is not None:
        q = q.limit(limit)

    result = []
    for movement, product_name, unit, username in q.all():
        data = movement.to_dict()
        data["product_name"] = product_name
        data["unit"] = unit
        data["created_by_name"] = username
        result.append(data)
    return result


def dashboard_stats(tenant_id: int) -> dict:
    total_products = db.session.query(Product).filter_by(tenant_id=tenant_id).count()
    low_items = low_stock(tenant_id)

    now = utcnow()
    week_ago = now - timedelta(days=7)
    weekly_movements = (
        db.session.query(StockMovement)
        .filter(StockMovement.tenant_id == tenant_id, StockMovement.created_at >= week_ago)
        .count()
    )

    return {
        "as_of": to_utc_z(now),
        "total_products": total_products,
        "low_stock_count": len(low_items),
        "weekly_movements": weekly_movements,
        "recent_movements": list_movements(tenant_id, limit=DASHBOARD_PREVIEW_LIMIT),
        "low_stock_items": [item.to_dict() for item in low_items[:DASHBOARD_PREVIEW_LIMIT]],
    }
