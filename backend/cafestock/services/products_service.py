# backend/cafestock/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are tenant-scoped.
- Lookups filter by tenant_id; a product in another tenant is reported as
  not found rather than forbidden, so existence is not revealed.
- SKUs are unique per tenant and generated when the caller omits one.
- A product with stock history cannot be deleted (the ledger references it).
"""
from __future__ import annotations

import logging
import random
import time

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, StockMovement
from ..validation import ConflictError, DuplicateKeyError, NotFoundError
from .concurrency import lock_for_update
from cafestock.time_utils import utcnow

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "unit", "min_qty"}


def generate_sku() -> str:
    """PRD-<epoch ms>-<0..999>, matching SKUs produced by earlier imports."""
    stamp = int(time.time() * 1000)
    return f"PRD-{stamp}-{random.randint(0, 999)}"


def unused_sku(tenant_id: int) -> str:
    sku = generate_sku()
    while find_by_sku(tenant_id, sku) is not None:
        sku = generate_sku()
    return sku


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_tenant_product(tenant_id: int, product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def find_by_sku(tenant_id: int, sku: str) -> Product | None:
    return db.session.query(Product).filter_by(tenant_id=tenant_id, sku=sku).first()


def create_product(*, tenant_id: int, patch: dict) -> Product:
    """
    Create product using a validated patch dict.

    Raises DuplicateKeyError if the SKU already exists in the tenant.
    """
    sku = patch.get("sku") or unused_sku(tenant_id)
    if find_by_sku(tenant_id, sku) is not None:
        raise DuplicateKeyError(f"SKU {sku} already exists")

    now = utcnow()
    p = Product(
        tenant_id=tenant_id,
        sku=sku,
        name=patch["name"],
        unit=patch["unit"],
        min_qty=patch.get("min_qty") or 0,
        created_at=now,
        updated_at=now,
    )
    db.session.add(p)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateKeyError(f"SKU {sku} already exists")

    logger.info("Product created tenant_id=%s product_id=%s sku=%s", tenant_id, p.id, p.sku)
    return p


def update_product(*, tenant_id: int, product_id: int, patch: dict) -> Product:
    p = get_tenant_product(tenant_id, product_id)

    new_sku = patch.get("sku")
    if new_sku and new_sku != p.sku:
        if find_by_sku(tenant_id, new_sku) is not None:
            raise DuplicateKeyError(f"SKU {new_sku} already exists")

    apply_product_patch(p, patch)
    p.updated_at = utcnow()
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateKeyError(f"SKU {new_sku} already exists")
    return p


def delete_product(*, tenant_id: int, product_id: int) -> None:
    """
    Delete a product that has no ledger history.

    Raises ConflictError when any StockMovement references the product.
    """
    p = get_tenant_product(tenant_id, product_id, lock=True)

    movement_count = (
        db.session.query(StockMovement)
        .filter_by(tenant_id=tenant_id, product_id=p.id)
        .count()
    )
    if movement_count > 0:
        db.session.rollback()
        raise ConflictError("Cannot delete a product that has stock history")

    db.session.delete(p)
    db.session.commit()
    logger.info("Product deleted tenant_id=%s product_id=%s", tenant_id, product_id)
