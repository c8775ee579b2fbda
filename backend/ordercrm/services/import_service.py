# Overview: Spreadsheet imports for the catalogue (product list) and stock (paid invoices).

"""
Import Service

Reads the first sheet of an .xlsx/.xlsm workbook (openpyxl) or a CSV file.
Supplier sheets often carry a title block above the table, so the header
row is looked for among the first rows by keyword; the first non-empty row
is used when no keyword matches.

Product import upserts by item number and sets stock from the quantity
column. Invoice import matches rows to products and, when applied, takes
the quantity of every paid row out of stock.
"""

from __future__ import annotations

import csv
import io
import re
from typing import Any

from flask import current_app
from openpyxl import load_workbook
from werkzeug.datastructures import FileStorage

from ..extensions import db
from ..models import Product
from . import reconciliation_service as recon
from .product_service import default_description


HEADER_SCAN_ROWS = 20

ITEM_KEYS = ("oem", "item", "item number", "oem/item number", "part number", "编号", "item_number", "itemnumber")
NAME_KEYS = ("name", "product", "description", "名称")
DESCRIPTION_KEYS = ("description", "desc", "描述")
QUANTITY_KEYS = ("quantity", "qty", "数量", "stock")
PAID_KEYS = ("paid", "status", "payment status")

PAID_RE = re.compile(r"^(paid|yes|true|تم|مدفوع)$", re.IGNORECASE)


class ImportFileError(Exception):
    """The upload is missing, of the wrong kind, or cannot be parsed."""
    pass


def _norm(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return re.sub(r"\s+", " ", str(value)).strip()


def _norm_header(value: Any) -> str:
    return _norm(value).lower()


def read_sheet(file: FileStorage | None) -> list[list[Any]]:
    """All rows of the first sheet as lists of cell values."""
    if file is None or not file.filename:
        raise ImportFileError("No file uploaded")

    ext = file.filename.rsplit(".", 1)[-1].lower() if "." in file.filename else ""
    if ext not in current_app.config.get("ALLOWED_IMPORT_EXTENSIONS", {"xlsx", "xlsm", "csv"}):
        raise ImportFileError("Only Excel (.xlsx) or CSV files are allowed")

    try:
        if ext == "csv":
            stream = io.StringIO(file.stream.read().decode("utf-8-sig"))
            return [list(row) for row in csv.reader(stream)]
        wb = load_workbook(file.stream, read_only=True, data_only=True)
        try:
            return [list(row) for row in wb.active.iter_rows(values_only=True)]
        finally:
            wb.close()
    except Exception as exc:
        current_app.logger.warning("Failed to parse upload %s: %s", file.filename, exc)
        raise ImportFileError("Failed to parse upload") from exc


def _find_header(rows: list[list[Any]], keywords, *, require_quantity: bool) -> int:
    for index, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        tokens = [t for t in (_norm_header(c) for c in row) if t]
        if not tokens:
            continue
        has_key = any(k in t for k in keywords for t in tokens)
        has_qty = any("quantity" in t or "qty" in t for t in tokens)
        if has_key and (has_qty or not require_quantity):
            return index
    for index, row in enumerate(rows):
        if any(_norm(c) for c in row):
            return index
    return 0


def _records(rows: list[list[Any]], header_index: int) -> tuple[list[str], list[tuple[int, dict]]]:
    """(headers, [(sheet_row_number, {normalized header: value})]) with blank rows skipped."""
    if not rows:
        return [], []
    headers = [_norm_header(h) or f"col_{i}" for i, h in enumerate(rows[header_index])]
    records = []
    for offset, row in enumerate(rows[header_index + 1:], start=header_index + 2):
        if not any(_norm(c) for c in row):
            continue
        records.append((offset, {headers[i]: row[i] for i in range(min(len(headers), len(row)))}))
    return headers, records


def _get(record: dict, keys) -> Any:
    for key in keys:
        value = record.get(key)
        if _norm(value):
            return value
    return None


def _find_column(headers: list[str], predicates) -> str | None:
    for header in headers:
        if any(p(header) for p in predicates):
            return header
    return None


def _quantity(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    cleaned = re.sub(r"[^0-9.\-]", "", str(value))
    try:
        return int(float(cleaned)) if cleaned else 0
    except ValueError:
        return 0


def import_products(file: FileStorage | None) -> dict:
    """
    Upsert products from a sheet. Returns {created, updated, skipped, errors}.

    Rows without an item number are skipped. Existing products (active or
    not) are updated and reactivated. Name and stock are overwritten only
    when the row carries them.
    """
    rows = read_sheet(file)
    header_index = _find_header(rows, ("oem", "item number", "part number"), require_quantity=True)
    _, records = _records(rows, header_index)

    item_col = Product.__table__.c.item_number.type.length
    name_col = Product.__table__.c.name.type.length
    description_col = Product.__table__.c.description.type.length

    results = {"created": 0, "updated": 0, "skipped": 0, "errors": []}
    for row_number, record in records:
        item_number = _norm(_get(record, ITEM_KEYS))
        raw_name = _norm(_get(record, NAME_KEYS))
        name = raw_name or item_number
        description = _norm(_get(record, DESCRIPTION_KEYS))
        raw_quantity = _get(record, QUANTITY_KEYS)

        problem = None
        if not item_number:
            problem = "Item number is required"
        elif len(item_number) > item_col:
            problem = f"Item number exceeds max length {item_col}"
        elif len(name) > name_col:
            problem = f"Name exceeds max length {name_col}"
        if problem:
            results["skipped"] += 1
            results["errors"].append({"row": row_number, "item_number": item_number, "message": problem})
            continue

        final_description = (description or default_description(name, item_number))[:description_col]
        product = db.session.query(Product).filter(Product.item_number == item_number).first()
        if product is None:
            product = Product(
                item_number=item_number,
                name=name,
                description=final_description,
                images=[],
                specifications={},
                stock=_quantity(raw_quantity),
                is_active=True,
            )
            db.session.add(product)
            db.session.flush()
            results["created"] += 1
        else:
            if raw_name:
                product.name = raw_name
            if description or not product.description:
                product.description = final_description
            if raw_quantity is not None:
                product.stock = _quantity(raw_quantity)
            product.is_active = True
            results["updated"] += 1

    db.session.commit()
    current_app.logger.info(
        "Product import: %d created, %d updated, %d skipped",
        results["created"], results["updated"], results["skipped"],
    )
    return results


def import_invoice(file: FileStorage | None, *, apply: bool = False) -> dict:
    """
    Match invoice rows to products. Returns {preview, applied_count}.

    Each preview entry reports the parsed item number, quantity and paid
    flag, whether a product matched, and the stock before and after the
    paid quantity leaves. With apply=True paid rows are taken out of stock.
    """
    rows = read_sheet(file)
    header_index = _find_header(rows, ("oem", "item number", "part number", "item", "code"), require_quantity=False)
    headers, records = _records(rows, header_index)

    item_column = _find_column(headers, (
        lambda h: "oem" in h,
        # Tolerates typos such as "Item Nur"
        lambda h: "item" in h and ("num" in h or "nur" in h),
        lambda h: "part" in h,
    ))
    qty_column = _find_column(headers, (lambda h: "qty" in h, lambda h: "quant" in h))
    paid_column = _find_column(headers, (lambda h: "paid" in h, lambda h: "status" in h, lambda h: "payment" in h))

    preview = []
    applied_count = 0
    for row_number, record in records:
        item_number = _norm(_get(record, ITEM_KEYS))
        if not item_number and item_column:
            item_number = _norm(record.get(item_column))
        if not item_number:
            item_number = next((_norm(v) for v in record.values() if _norm(v)), "")

        raw_quantity = _get(record, QUANTITY_KEYS)
        if raw_quantity is None and qty_column:
            raw_quantity = record.get(qty_column)
        quantity = _quantity(raw_quantity)

        paid_raw = _norm(_get(record, PAID_KEYS))
        if not paid_raw and paid_column:
            paid_raw = _norm(record.get(paid_column))
        paid = bool(PAID_RE.match(paid_raw))

        entry = {"row": row_number, "item_number": item_number, "quantity": quantity, "paid": paid}
        if not item_number or quantity <= 0:
            preview.append({**entry, "matched": False, "reason": "Missing item number or qty"})
            continue

        product = (
            db.session.query(Product)
            .filter(Product.item_number == item_number, Product.is_active.is_(True))
            .first()
        )
        if product is None:
            preview.append({**entry, "matched": False, "reason": "Product not found"})
            continue

        current_stock = product.stock or 0
        new_stock = current_stock - quantity if paid else current_stock
        if apply and paid:
            recon.apply_stock_delta(product.id, -quantity)
            applied_count += 1

        preview.append({
            **entry,
            "matched": True,
            "product_id": product.id,
            "name": product.name,
            "current_stock": current_stock,
            "new_stock": new_stock,
        })

    if apply:
        db.session.commit()
        current_app.logger.info("Invoice import applied %d paid row(s)", applied_count)
    return {"preview": preview, "applied_count": applied_count}
