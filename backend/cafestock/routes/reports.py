# Overview: Flask API routes for dashboards, low-stock reports and CSV import/export.

import io

from flask import Blueprint, Response, g, jsonify, request

from ..decorators import require_active_subscription, require_auth, require_role
from ..services import csv_service, stock_service
from ..validation import ValidationError
from cafestock.time_utils import to_utc_z, utcnow


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
@require_active_subscription
def dashboard_route():
    return jsonify(stock_service.dashboard_stats(g.tenant_id))


@reports_bp.get("/alerts")
@require_auth
@require_active_subscription
def alerts_route():
    """Every product at or below its minimum quantity."""
    items = stock_service.low_stock(g.tenant_id)
    return jsonify({"items": [item.to_dict() for item in items], "count": len(items)})


@reports_bp.get("/low-stock")
@require_auth
@require_active_subscription
def low_stock_report_route():
    """Printable low-stock report; optional ?limit= caps the rows."""
    limit = request.args.get("limit", type=int)
    try:
        items = stock_service.low_stock(g.tenant_id, limit=limit)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({
        "items": [item.to_dict() for item in items],
        "count": len(items),
        "generated_at": to_utc_z(utcnow()),
    })


@reports_bp.get("/export/products.csv")
@require_auth
@require_active_subscription
def export_products_route():
    body = csv_service.export_products_csv(g.tenant_id)
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=products.csv"},
    )


@reports_bp.post("/import")
@require_auth
@require_active_subscription
@require_role("admin")
def import_products_route():
    """
    Import products from an uploaded CSV or .xlsx file (multipart field "file").

    Columns: sku (optional), name, unit, min_qty (optional).
    """
    if "file" not in request.files:
        return jsonify({"error": "Please upload a CSV file"}), 400

    upload = request.files["file"]
    ext = (upload.filename or "").rsplit(".", 1)[-1].lower()

    try:
        if ext in csv_service.WORKBOOK_EXTENSIONS:
            imported = csv_service.import_products_workbook(g.tenant_id, io.BytesIO(upload.stream.read()))
        else:
            try:
                text = upload.stream.read().decode("utf-8")
            except UnicodeDecodeError:
                return jsonify({"error": "CSV file must be UTF-8 encoded"}), 400
            imported = csv_service.import_products(g.tenant_id, text)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"imported": imported, "message": f"Imported {imported} products"}), 201
