# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

"""
Stock movement routes.

Every role may record movements. Quantities are positive magnitudes:
- in:     receive stock
- out:    issue stock (409 when it exceeds the current stock)
- adjust: set the stock level to qty (400 when the level would not change)
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_active_subscription, require_auth
from ..services import stock_service
from ..services.stock_service import InsufficientStockError
from ..validation import ConflictError, NotFoundError, ValidationError


movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


@movements_bp.get("")
@require_auth
@require_active_subscription
def list_movements_route():
    """
    Tenant ledger, newest first.

    Query params:
    - product_id: int (optional)
    - limit: int (optional)
    """
    product_id = request.args.get("product_id", type=int)
    limit = request.args.get("limit", type=int)
    if limit is not None and limit < 0:
        return {"error": "limit must be >= 0"}, 400

    movements = stock_service.list_movements(g.tenant_id, product_id=product_id, limit=limit)
    return jsonify({"items": movements, "count": len(movements)})


@movements_bp.post("")
@require_auth
@require_active_subscription
def record_movement_route():
    """
    Record a stock movement.

    Request body:
    {
        "product_id": 1,
        "kind": "in" | "out" | "adjust",
        "qty": 12.5,
        "note": "delivery"  (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    product_id = data.get("product_id")
    kind = data.get("kind")
    qty = data.get("qty")

    if not product_id or not kind or qty in (None, ""):
        return {"error": "product_id, kind and qty are required"}, 400
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        return {"error": "product_id must be an integer"}, 400

    try:
        result = stock_service.record_movement(
            tenant_id=g.tenant_id,
            product_id=product_id,
            kind=kind,
            quantity=qty,
            note=data.get("note"),
            author_id=g.current_user.id,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except InsufficientStockError as e:
        return {"error": str(e), "available": e.available, "requested": e.requested}, 409
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"movement": result.movement.to_dict(), "stock": result.stock}, 201
