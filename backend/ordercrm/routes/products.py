# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

# backend/ordercrm/routes/products.py
"""
Product catalog routes.

Vendors may list, create and edit products but never see or set stock and
selling price. Clients only see the visible catalogue.

The catalogue also leaves the CRM: admins push it to a webhook, outside
apps pull it with an API key, and the visible part is public.
"""

from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..decorators import require_admin, require_auth, require_order_access, require_staff, require_user
from ..responses import error_response, pagination_meta, success_response
from ..services import catalog_export_service
from ..services import import_service
from ..services import notification_service
from ..services import product_service
from ..services import upload_service
from ..services.catalog_export_service import CatalogExportError
from ..services.import_service import ImportFileError
from ..services.product_service import ProductConflictError, ProductNotFoundError
from ..services.upload_service import UploadError
from ..validation import ValidationError, parse_bool_arg, parse_pagination


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _list(visible: bool | None):
    page, limit = parse_pagination(request.args)
    products, total = product_service.list_products(
        search=request.args.get("search"),
        visible=visible,
        sort_by=request.args.get("sort_by", "created_at"),
        sort_order=request.args.get("sort_order", "desc"),
        page=page,
        limit=limit,
    )
    return success_response(
        product_service.serialize(products, g.principal),
        pagination=pagination_meta(page=page, limit=limit, total=total),
    )


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - search: item number, name or description (substring)
    - visible: bool filter on visible_to_clients
    - sort_by: created_at | updated_at | name | item_number
    - sort_order: asc | desc
    - page, limit

    Clients always get the visible catalogue.
    """
    if g.principal.role == "client":
        return _list(True)
    return _list(parse_bool_arg(request.args.get("visible")))


@products_bp.get("/visible")
@require_auth
@require_user
def list_visible_products_route():
    """Client catalogue: active products with visible_to_clients set."""
    return _list(True)


@products_bp.get("/<int:product_id>")
@require_auth
@require_user
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(product_id)
    except ProductNotFoundError as e:
        return error_response(str(e), 404)
    if g.principal.role == "client" and not product.visible_to_clients:
        return error_response("Product not found", 404)
    return success_response(product_service.serialize([product], g.principal)[0])


@products_bp.post("")
@require_auth
@require_order_access
def create_product_route():
    """
    Create a product. A soft-deleted product with the same item number is
    reactivated with the new data instead.
    """
    try:
        product, reactivated = product_service.create_product(request.get_json(silent=True), g.principal)

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except ProductConflictError as e:
        db.session.rollback()
        return error_response(str(e), 400, errors=[{"field": "item_number", "message": str(e)}])
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return error_response("Internal server error", 500)

    event = notification_service.PRODUCTS_UPDATED if reactivated else notification_service.PRODUCTS_CREATED
    notification_service.publish(event, {"id": product.id}, principal=g.principal)
    return success_response(
        product_service.serialize([product], g.principal)[0],
        message="Product reactivated successfully" if reactivated else "Product created successfully",
        status=200 if reactivated else 201,
    )


@products_bp.put("/<int:product_id>")
@require_auth
@require_order_access
def update_product_route(product_id: int):
    try:
        product = product_service.update_product(product_id, request.get_json(silent=True), g.principal)

    except ProductNotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except ProductConflictError as e:
        db.session.rollback()
        return error_response(str(e), 400, errors=[{"field": "item_number", "message": str(e)}])
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product")
        return error_response("Internal server error", 500)

    notification_service.publish(notification_service.PRODUCTS_UPDATED, {"id": product.id}, principal=g.principal)
    return success_response(
        product_service.serialize([product], g.principal)[0],
        message="Product updated successfully",
    )


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    try:
        product = product_service.delete_product(product_id)

    except ProductNotFoundError as e:
        return error_response(str(e), 404)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete product")
        return error_response("Internal server error", 500)

    notification_service.publish(notification_service.PRODUCTS_DELETED, {"id": product.id}, principal=g.principal)
    return success_response(message="Product deleted successfully")


@products_bp.get("/<int:product_id>/purchases")
@require_auth
@require_staff
def purchase_history_route(product_id: int):
    """Purchase history with statistics."""
    try:
        return success_response(product_service.purchase_history(product_id))
    except ProductNotFoundError as e:
        return error_response(str(e), 404)


@products_bp.post("/<int:product_id>/image")
@require_auth
@require_order_access
def upload_product_image_route(product_id: int):
    """Multipart field `image`; the new image goes to the front of the gallery."""
    try:
        product = upload_service.attach_product_image(product_id, request.files.get("image"))

    except ProductNotFoundError as e:
        return error_response(str(e), 404)
    except UploadError as e:
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to upload product image")
        return error_response("Internal server error", 500)

    notification_service.publish(notification_service.PRODUCTS_UPDATED, {"id": product.id}, principal=g.principal)
    return success_response(
        {"images": list(product.images or []), "image_path": product.images[0]},
        message="Image uploaded successfully",
    )


@products_bp.get("/<int:product_id>/statistics")
@require_auth
@require_staff
def product_statistics_route(product_id: int):
    """Totals over every active order holding the product, with the per-order rows."""
    try:
        return success_response(product_service.product_statistics(product_id))
    except ProductNotFoundError as e:
        return error_response(str(e), 404)


# ---------------------------------------------------------------------------
# Catalogue export
# ---------------------------------------------------------------------------

def _snapshot_response(include_hidden: bool):
    limit = catalog_export_service.clamp_limit(
        request.args.get("limit"),
        default=catalog_export_service.DEFAULT_PULL_LIMIT,
        minimum=1,
    )
    response, status = success_response(
        catalog_export_service.snapshot(include_hidden=include_hidden, limit=limit)
    )
    response.headers["Cache-Control"] = "no-store"
    return response, status


@products_bp.get("/public")
def public_products_route():
    """Visible catalogue for anyone. Query params: limit (1..5000, default 1000)."""
    return _snapshot_response(include_hidden=False)


@products_bp.get("/export/share")
def share_products_route():
    """
    Catalogue for outside apps holding EXTERNAL_PRODUCTS_API_KEY.

    Key from the X-External-Api-Key or X-Api-Key header, or ?key=.
    Query params: include_hidden (bool, default false), limit.
    """
    provided = (
        request.headers.get("X-External-Api-Key")
        or request.headers.get("X-Api-Key")
        or request.args.get("key")
    )
    try:
        if not catalog_export_service.api_key_matches(provided):
            return error_response("Invalid external API key.", 401)
    except CatalogExportError as e:
        return error_response(e.message, e.status)
    return _snapshot_response(include_hidden=bool(parse_bool_arg(request.args.get("include_hidden"))))


@products_bp.post("/export/send")
@require_auth
@require_admin
def send_products_route():
    """
    Request body:
        {target_url?: str, include_hidden?: bool (default true),
         dry_run?: bool, limit?: int (0 = everything, max 5000)}
    """
    data = request.get_json(silent=True) or {}
    dry_run = bool(data.get("dry_run", False))
    try:
        result = catalog_export_service.send_to_webhook(
            target_url=data.get("target_url"),
            include_hidden=bool(data.get("include_hidden", True)),
            dry_run=dry_run,
            limit=data.get("limit"),
        )
    except CatalogExportError as e:
        return error_response(e.message, e.status, data=e.data)
    except Exception:
        current_app.logger.exception("Failed to export products")
        return error_response("Internal server error", 500)

    return success_response(
        result,
        message="Dry run complete. No payload was sent." if dry_run else "Products sent to external app successfully.",
    )


# ---------------------------------------------------------------------------
# Spreadsheet imports
# ---------------------------------------------------------------------------

@products_bp.post("/import/excel")
@require_auth
@require_admin
def import_products_route():
    """Multipart field `file` (.xlsx or .csv); products are upserted by item number."""
    try:
        results = import_service.import_products(request.files.get("file"))

    except ImportFileError as e:
        db.session.rollback()
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to import products")
        return error_response("Internal server error", 500)

    notification_service.publish(notification_service.PRODUCTS_UPDATED, {"bulk": True}, principal=g.principal)
    return success_response(results, message="Import completed")


@products_bp.post("/invoices/import")
@require_auth
@require_admin
def import_invoice_route():
    """
    Multipart field `file` (.xlsx or .csv). With apply=true (query or form
    field) the quantity of every paid row leaves stock; otherwise the
    invoice is only previewed.
    """
    apply = bool(parse_bool_arg(request.args.get("apply") or request.form.get("apply")))
    try:
        result = import_service.import_invoice(request.files.get("file"), apply=apply)

    except ImportFileError as e:
        db.session.rollback()
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to import invoice")
        return error_response("Internal server error", 500)

    if apply:
        notification_service.publish(notification_service.PRODUCTS_UPDATED, {"bulk": True}, principal=g.principal)
    return success_response(result, message="Invoice applied" if apply else "Invoice parsed")
