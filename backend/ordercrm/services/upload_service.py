# Overview: Service-layer operations for image uploads (orders, order items, products).

"""
Image uploads.

Files land in UPLOAD_FOLDER under a collision-free name and are served back
from /upload/<name>. The stored path (not a full URL) is what goes into
image_path columns and product galleries.

An order or item image is also prepended to the product's gallery. That
sync runs after the order commit in its own transaction; if it fails the
upload still succeeds and a warning is logged.
"""

from __future__ import annotations

import os
import time

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..extensions import db
from ..models import Order, OrderItem, Product
from ordercrm.time_utils import utcnow
from . import order_service
from . import product_service


UPLOAD_URL_PREFIX = "/upload/"


class UploadError(Exception):
    """Missing file, bad extension or unreadable upload."""
    pass


def _allowed_extensions() -> set[str]:
    return {ext.lower() for ext in current_app.config.get("ALLOWED_IMAGE_EXTENSIONS", ())}


def save_image(file: FileStorage | None) -> str:
    """Store an uploaded image and return its public path (/upload/<name>)."""
    if file is None or not file.filename:
        raise UploadError("No image file provided")

    filename = secure_filename(file.filename)
    base, dot, ext = filename.rpartition(".")
    ext = ext.lower()
    if not dot or ext not in _allowed_extensions():
        allowed = ", ".join(sorted(_allowed_extensions()))
        raise UploadError(f"Only image files are allowed ({allowed})")

    stored_name = f"{int(time.time() * 1000)}-{base or 'image'}.{ext}"
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    file.save(os.path.join(folder, stored_name))
    return f"{UPLOAD_URL_PREFIX}{stored_name}"


def _sync_product_gallery(product_id: int, path: str) -> None:
    try:
        product = db.session.get(Product, product_id)
        if product is None:
            return
        product_service.prepend_image(product, path)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Failed to add %s to gallery of product %s", path, product_id, exc_info=True
        )


def attach_order_image(order_id: int, file: FileStorage | None, principal) -> Order:
    """
    Order-level image. The first active item's product gallery gets it too.
    """
    order = order_service.get_order(order_id, principal)
    path = save_image(file)

    order.image_path = path
    order.updated_at = utcnow()
    db.session.commit()

    items = order.active_items
    if items:
        _sync_product_gallery(items[0].product_id, path)
    return order


def attach_item_image(order_id: int, item_index, file: FileStorage | None, principal) -> tuple[Order, OrderItem]:
    order = order_service.get_order(order_id, principal)
    item = order_service.get_item_by_index(order, item_index)
    path = save_image(file)

    item.image_path = path
    item.updated_at = utcnow()
    order.updated_at = utcnow()
    db.session.commit()

    _sync_product_gallery(item.product_id, path)
    return order, item


def attach_product_image(product_id: int, file: FileStorage | None) -> Product:
    product = product_service.get_product(product_id)
    path = save_image(file)
    product_service.prepend_image(product, path)
    db.session.commit()
    return product
