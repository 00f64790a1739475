# Overview: CSV codec for bulk product import and stock export.

"""
Product CSV import/export

Import format (header row required, extra columns ignored):
    sku,name,unit,min_qty
- sku is optional; a row whose sku already exists in the tenant updates that
  product, any other row inserts a new product (sku generated when blank).
- rows without name or unit are skipped.
- min_qty that is blank or not a finite number becomes 0.
- the same columns are accepted from the first sheet of an .xlsx workbook.

Export format:
    name,unit,min_qty,stock
- fields containing a comma, quote or newline are wrapped in quotes and
  embedded quotes are doubled.
"""

from __future__ import annotations

import csv
import io
import logging
import math
import zipfile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..extensions import db
from ..models import Product
from ..validation import ValidationError, round_qty
from .products_service import find_by_sku, unused_sku
from .stock_service import list_with_stock
from cafestock.time_utils import utcnow

logger = logging.getLogger(__name__)

EXPORT_HEADER = ("name", "unit", "min_qty", "stock")
WORKBOOK_EXTENSIONS = {"xlsx", "xlsm"}


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _to_records(rows) -> list[dict]:
    records = []
    for row in rows:
        cleaned = {
            (key or "").strip().lower(): _cell_text(value)
            for key, value in row.items()
            if key is not None and not isinstance(value, list)
        }
        if not any(cleaned.values()):
            continue
        records.append({
            "sku": cleaned.get("sku") or None,
            "name": cleaned.get("name", ""),
            "unit": cleaned.get("unit", ""),
            "min_qty": cleaned.get("min_qty") or None,
        })
    return records


def parse_product_csv(text: str) -> list[dict]:
    """
    Parse uploaded CSV text into {sku, name, unit, min_qty} records.

    Cells are trimmed and blank lines skipped. Raises ValidationError when
    the text cannot be read as CSV or has no header row.
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    try:
        reader = csv.DictReader(io.StringIO(text), skipinitialspace=True, strict=True)
        fieldnames = reader.fieldnames
        rows = list(reader)
    except csv.Error as exc:
        raise ValidationError(f"Invalid CSV: {exc}")

    if not fieldnames:
        raise ValidationError("CSV file is empty")
    return _to_records(rows)


def parse_product_workbook(stream) -> list[dict]:
    """Read the first sheet of an .xlsx upload; row 1 is the header."""
    try:
        wb = load_workbook(stream, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise ValidationError(f"Invalid workbook: {exc}")

    try:
        data = list(wb.active.values)
    finally:
        wb.close()

    if not data:
        raise ValidationError("Workbook is empty")
    headers = [_cell_text(h) for h in data[0]]
    rows = [
        {headers[i]: row[i] for i in range(min(len(headers), len(row)))}
        for row in data[1:]
    ]
    return _to_records(rows)


def _import_min_qty(raw) -> float:
    if raw is None:
        return 0.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return round_qty(value)


def import_products(tenant_id: int, text: str) -> int:
    """Upsert products from CSV text; returns the number of rows applied."""
    return apply_product_records(tenant_id, parse_product_csv(text))


def import_products_workbook(tenant_id: int, stream) -> int:
    return apply_product_records(tenant_id, parse_product_workbook(stream))


def apply_product_records(tenant_id: int, records: list[dict]) -> int:
    """
    Upsert parsed product records for one tenant.

    All rows are written in one transaction.
    """
    imported = 0
    now = utcnow()
    for record in records:
        name = record["name"][:255]
        unit = record["unit"][:32]
        if not name or not unit:
            continue

        sku = (record["sku"] or "")[:64]
        min_qty = _import_min_qty(record["min_qty"])

        existing = find_by_sku(tenant_id, sku) if sku else None
        if existing is not None:
            existing.name = name
            existing.unit = unit
            existing.min_qty = min_qty
            existing.updated_at = now
        else:
            db.session.add(Product(
                tenant_id=tenant_id,
                sku=sku or unused_sku(tenant_id),
                name=name,
                unit=unit,
                min_qty=min_qty,
                created_at=now,
                updated_at=now,
            ))
            # flush so a repeated sku later in the same file updates this row
            db.session.flush()
        imported += 1

    db.session.commit()
    logger.info("Product import tenant_id=%s rows=%s imported=%s", tenant_id, len(records), imported)
    return imported


def format_number(value) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def export_products_csv(tenant_id: int) -> str:
    """Every tenant product with its derived stock, as CSV text."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for item in list_with_stock(tenant_id):
        writer.writerow([
            item.product.name,
            item.product.unit,
            format_number(item.product.min_qty),
            format_number(item.stock),
        ])
    return buffer.getvalue()
