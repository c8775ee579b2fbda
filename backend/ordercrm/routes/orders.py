# Overview: Flask API routes for orders and their items; parses input and returns JSON responses.

# backend/ordercrm/routes/orders.py
"""
Order API routes.

Staff (admin, supplier) and vendors only; clients are refused. Vendors are
confined to orders addressed to them. All business rules live in
order_service; routes translate its exceptions and publish notification
events once the transaction has committed.
"""

from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_order_access, require_roles
from ..responses import error_response, pagination_meta, success_response
from ..services import notification_service
from ..services import order_service
from ..services import upload_service
from ..services.order_service import (
    OrderAccessError,
    OrderConflictError,
    OrderNotFoundError,
)
from ..services.upload_service import UploadError
from ..validation import ValidationError, parse_pagination


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _publish(event_type: str, payload: dict) -> None:
    notification_service.publish(event_type, payload, principal=g.principal)


def _order_event(order, event_type: str = notification_service.ORDERS_UPDATED) -> None:
    _publish(event_type, order.to_dict())


@orders_bp.get("")
@require_auth
@require_order_access
def list_orders_route():
    """
    Query params:
    - search, search_type: all | invoice_number | item_count
    - status, vendor_id (ignored for vendors)
    - sort_by: order_date | created_at | updated_at | order_number | status
    - sort_order: asc | desc
    - page, limit
    """
    page, limit = parse_pagination(request.args)
    try:
        orders, total = order_service.list_orders(
            g.principal,
            search=request.args.get("search"),
            search_type=request.args.get("search_type", "all"),
            status=request.args.get("status"),
            vendor_id=request.args.get("vendor_id"),
            sort_by=request.args.get("sort_by", "order_date"),
            sort_order=request.args.get("sort_order", "desc"),
            page=page,
            limit=limit,
        )
    except ValidationError as e:
        return error_response(e.message, 400, errors=e.errors)

    order_service.resync_listed(orders)
    return success_response(
        [o.to_dict() for o in orders],
        pagination=pagination_meta(page=page, limit=limit, total=total),
    )


@orders_bp.get("/vendor/<int:vendor_id>")
@require_auth
@require_order_access
def vendor_orders_route(vendor_id: int):
    try:
        orders = order_service.vendor_orders(vendor_id, g.principal)
    except OrderAccessError as e:
        return error_response(str(e), 403)

    order_service.resync_listed(orders)
    return success_response([o.to_dict() for o in orders])


@orders_bp.get("/<int:order_id>")
@require_auth
@require_order_access
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, g.principal)
    except OrderNotFoundError as e:
        return error_response(str(e), 404)
    except OrderAccessError as e:
        return error_response(str(e), 403)

    order_service.resync_listed([order])
    return success_response(order.to_dict())


@orders_bp.post("")
@require_auth
@require_order_access
def create_order_route():
    """
    Request body:
    - vendor_id: int (staff only; vendors always create their own)
    - items: [{product_id | item_number, name?, quantity, unit_price_cents?, ...}]
    - order_number: str (optional; generated when absent)
    - shipping_address: {street, city, state, zip_code, country}
    - notes, expected_delivery_date and logistics fields
    """
    try:
        order = order_service.create_order(request.get_json(silent=True), g.principal)

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except OrderConflictError as e:
        db.session.rollback()
        return error_response(str(e), 400, errors=[{"field": "order_number", "message": str(e)}])
    except OrderAccessError as e:
        db.session.rollback()
        return error_response(str(e), 403)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create order")
        return error_response("Internal server error", 500)

    _order_event(order, notification_service.ORDERS_CREATED)
    notification_service.push(
        f"Order {order.order_number} created",
        principal=g.principal,
        order_id=order.id,
        vendor_id=order.vendor_id,
    )
    return success_response(order.to_dict(), message="Order created successfully", status=201)


@orders_bp.put("/<int:order_id>")
@require_auth
@require_order_access
def update_order_route(order_id: int):
    """
    Patch order fields and, optionally, items: either
    {item_index, item} for one item or {items: [...]} to replace them all.
    """
    try:
        order = order_service.update_order(order_id, request.get_json(silent=True), g.principal)

    except OrderNotFoundError as e:
        db.session.rollback()
        return error_response(str(e), 404)
    except OrderAccessError as e:
        db.session.rollback()
        return error_response(str(e), 403)
    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except OrderConflictError as e:
        db.session.rollback()
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update order")
        return error_response("Internal server error", 500)

    _order_event(order)
    return success_response(order.to_dict(), message="Order updated successfully")


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_order_access
def delete_order_route(order_id: int):
    """Soft delete; stock added by the order is taken back."""
    try:
        order = order_service.delete_order(order_id, g.principal)

    except OrderNotFoundError as e:
        return error_response(str(e), 404)
    except OrderAccessError as e:
        return error_response(str(e), 403)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete order")
        return error_response("Internal server error", 500)

    _publish(
        notification_service.ORDERS_DELETED,
        {"id": order.id, "order_number": order.order_number, "vendor_id": order.vendor_id},
    )
    return success_response(message="Order deleted successfully")


@orders_bp.post("/<int:order_id>/confirm-item")
@require_auth
@require_order_access
def confirm_item_route(order_id: int):
    """Request body: {item_index: int}"""
    data = request.get_json(silent=True) or {}
    if data.get("item_index") is None:
        return error_response(
            "item_index is required", 400,
            errors=[{"field": "item_index", "message": "item_index is required"}],
        )
    try:
        order, applied = order_service.confirm_item(order_id, data["item_index"], g.principal)

    except OrderNotFoundError as e:
        db.session.rollback()
        return error_response(str(e), 404)
    except OrderAccessError as e:
        db.session.rollback()
        return error_response(str(e), 403)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to confirm order item")
        return error_response("Internal server error", 500)

    _order_event(order)
    if applied:
        item = order_service.get_item_by_index(order, data["item_index"])
        _publish(notification_service.PRODUCTS_UPDATED, {"id": item.product_id})
    return success_response(
        order.to_dict(),
        message="Item confirmed" if applied else "Item already confirmed",
    )


@orders_bp.post("/<int:order_id>/items/<int:item_index>/transfer")
@require_auth
@require_roles("admin", "vendor")
def transfer_item_route(order_id: int, item_index: int):
    """
    Split `quantity` off an item into a new order for the same vendor.

    Request body: {quantity: int}, 1 <= quantity <= item quantity
    """
    data = request.get_json(silent=True) or {}
    try:
        source, new_order = order_service.transfer_item_quantity(
            order_id, item_index, data.get("quantity"), g.principal
        )

    except OrderNotFoundError as e:
        db.session.rollback()
        return error_response(str(e), 404)
    except OrderAccessError as e:
        db.session.rollback()
        return error_response(str(e), 403)
    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to transfer item quantity")
        return error_response("Internal server error", 500)

    _order_event(source)
    _order_event(new_order, notification_service.ORDERS_CREATED)
    return success_response(
        {"source_order": source.to_dict(), "new_order": new_order.to_dict()},
        message="Quantity transferred to new order",
        status=201,
    )


@orders_bp.post("/<int:order_id>/image")
@require_auth
@require_order_access
def upload_order_image_route(order_id: int):
    """Multipart field `image`."""
    try:
        order = upload_service.attach_order_image(order_id, request.files.get("image"), g.principal)

    except OrderNotFoundError as e:
        return error_response(str(e), 404)
    except OrderAccessError as e:
        return error_response(str(e), 403)
    except UploadError as e:
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to upload order image")
        return error_response("Internal server error", 500)

    _order_event(order)
    return success_response(
        {"image_path": order.image_path, "order": order.to_dict()},
        message="Image uploaded successfully",
    )


@orders_bp.post("/<int:order_id>/item/<int:item_index>/image")
@require_auth
@require_order_access
def upload_item_image_route(order_id: int, item_index: int):
    """Multipart field `image`."""
    try:
        order, item = upload_service.attach_item_image(
            order_id, item_index, request.files.get("image"), g.principal
        )

    except OrderNotFoundError as e:
        return error_response(str(e), 404)
    except OrderAccessError as e:
        return error_response(str(e), 403)
    except UploadError as e:
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to upload item image")
        return error_response("Internal server error", 500)

    _order_event(order)
    return success_response(
        {"image_path": item.image_path, "order": order.to_dict()},
        message="Image uploaded successfully",
    )
