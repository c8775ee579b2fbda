# Overview: Flask API routes for product purchase history.

from flask import Blueprint, request, current_app

from ..extensions import db
from ..decorators import require_auth, require_staff
from ..responses import error_response, pagination_meta, success_response
from ..services import purchase_service
from ..services.purchase_service import PurchaseNotFoundError
from ..validation import ValidationError, parse_pagination


product_purchases_bp = Blueprint("product_purchases", __name__, url_prefix="/api/product-purchases")


@product_purchases_bp.get("")
@require_auth
@require_staff
def list_purchases_route():
    """
    Query params:
    - product_id, vendor_id
    - start_date, end_date: ISO-8601, inclusive
    - sort_by: purchase_date | quantity | price_cents | total_amount_cents | created_at
    - sort_order: asc | desc
    - page, limit
    """
    page, limit = parse_pagination(request.args)
    try:
        purchases, total = purchase_service.list_purchases(
            product_id=request.args.get("product_id"),
            vendor_id=request.args.get("vendor_id"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            sort_by=request.args.get("sort_by", "purchase_date"),
            sort_order=request.args.get("sort_order", "desc"),
            page=page,
            limit=limit,
        )
    except ValidationError as e:
        return error_response(e.message, 400, errors=e.errors)

    return success_response(
        [p.to_dict() for p in purchases],
        pagination=pagination_meta(page=page, limit=limit, total=total),
    )


@product_purchases_bp.get("/statistics/overview")
@require_auth
@require_staff
def purchase_statistics_route():
    """Query params: product_id, vendor_id, start_date, end_date (same meaning as the listing)."""
    try:
        stats = purchase_service.statistics_overview(
            product_id=request.args.get("product_id"),
            vendor_id=request.args.get("vendor_id"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
        )
    except ValidationError as e:
        return error_response(e.message, 400, errors=e.errors)
    return success_response(stats)


@product_purchases_bp.get("/<int:purchase_id>")
@require_auth
@require_staff
def get_purchase_route(purchase_id: int):
    try:
        return success_response(purchase_service.get_purchase(purchase_id).to_dict())
    except PurchaseNotFoundError as e:
        return error_response(str(e), 404)


@product_purchases_bp.post("")
@require_auth
@require_staff
def create_purchase_route():
    """
    Manual purchase entry. Does not change stock.

    Request body: product_id, vendor_id, quantity, price_cents (required);
    purchase_date, order_id, notes (optional)
    """
    try:
        purchase = purchase_service.create_purchase(request.get_json(silent=True))
        return success_response(purchase.to_dict(), message="Product purchase created successfully", status=201)

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product purchase")
        return error_response("Internal server error", 500)


@product_purchases_bp.put("/<int:purchase_id>")
@require_auth
@require_staff
def update_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.update_purchase(purchase_id, request.get_json(silent=True))
        return success_response(purchase.to_dict(), message="Product purchase updated successfully")

    except PurchaseNotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product purchase")
        return error_response("Internal server error", 500)


@product_purchases_bp.delete("/<int:purchase_id>")
@require_auth
@require_staff
def delete_purchase_route(purchase_id: int):
    try:
        purchase_service.delete_purchase(purchase_id)
        return success_response(message="Product purchase deleted successfully")

    except PurchaseNotFoundError as e:
        return error_response(str(e), 404)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete product purchase")
        return error_response("Internal server error", 500)
