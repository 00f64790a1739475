# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

MULTI-TENANT: All product operations are scoped to g.tenant_id.

SECURITY: All routes require authentication and an active subscription.
- Read operations are open to every role
- Write operations require the admin role
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_active_subscription, require_auth, require_role
from ..models import Product
from ..services import products_service, stock_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "unit", "min_qty"},
    required_on_create={"name", "unit"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_active_subscription
def list_products_route():
    """
    List tenant products with derived stock, ordered by name.

    Query params:
    - q: str (optional) - case-insensitive name substring
    - low: "1" (optional) - only products at or below min_qty
    """
    query = request.args.get("q", "")
    only_low = request.args.get("low") == "1"

    items = stock_service.list_with_stock(g.tenant_id, query=query, only_low=only_low)
    return jsonify({
        "items": [item.to_dict() for item in items],
        "count": len(items),
        "query": query.strip(),
        "only_low": only_low,
    })


@products_bp.post("")
@require_auth
@require_active_subscription
@require_role("admin")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    # blank SKU means "generate one"
    if isinstance(payload, dict) and not str(payload.get("sku") or "").strip():
        payload.pop("sku", None)

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = products_service.create_product(tenant_id=g.tenant_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    return created.to_dict(), 201


@products_bp.get("/<int:product_id>")
@require_auth
@require_active_subscription
def get_product_route(product_id: int):
    """Product with its derived stock."""
    try:
        item = stock_service.get_product_stock(g.tenant_id, product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return item.to_dict(), 200


@products_bp.put("/<int:product_id>")
@require_auth
@require_active_subscription
@require_role("admin")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(
            tenant_id=g.tenant_id, product_id=product_id, patch=patch
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return updated.to_dict(), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_active_subscription
@require_role("admin")
def delete_product_route(product_id: int):
    """Delete a product; refused (409) when it has stock history."""
    try:
        products_service.delete_product(tenant_id=g.tenant_id, product_id=product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"ok": True}, 200


@products_bp.get("/<int:product_id>/stock")
@require_auth
@require_active_subscription
def product_stock_route(product_id: int):
    try:
        item = stock_service.get_product_stock(g.tenant_id, product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {
        "product_id": item.product.id,
        "stock": item.stock,
        "min_qty": item.product.min_qty,
        "is_low": item.is_low,
    }, 200


@products_bp.get("/<int:product_id>/movements")
@require_auth
@require_active_subscription
def product_movements_route(product_id: int):
    """Ledger history for one product, newest first."""
    try:
        item = stock_service.get_product_stock(g.tenant_id, product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    movements = stock_service.list_movements(g.tenant_id, product_id=product_id)
    return jsonify({"product": item.to_dict(), "movements": movements})
