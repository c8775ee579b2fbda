# Overview: Flask API routes for vendors; parses input and returns JSON responses.

# backend/ordercrm/routes/vendors.py
"""
Vendor API routes.

Admins provision and manage vendors. Vendors manage their own contact
details and presence through the /me routes, which are registered before
/<vendor_id> so the literal path wins.
"""

from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_admin, require_vendor
from ..responses import error_response, pagination_meta, success_response
from ..services import notification_service
from ..services import vendor_service
from ..services.vendor_service import VendorAccessError, VendorNotFoundError, VendorValidationError
from ..validation import ValidationError, parse_pagination


vendors_bp = Blueprint("vendors", __name__, url_prefix="/api/vendors")


def _publish_presence(vendor, online: bool) -> None:
    notification_service.publish(
        notification_service.VENDORS_PRESENCE,
        {"vendor_id": vendor.id, "online": online, "last_online_at": vendor.to_dict()["last_online_at"]},
        principal=g.principal,
    )


# =============================================================================
# ADMIN
# =============================================================================

@vendors_bp.get("")
@require_auth
@require_admin
def list_vendors_route():
    """
    Query params:
    - search: name, contact person or email (substring)
    - status: active | inactive
    - page, limit
    """
    page, limit = parse_pagination(request.args)
    vendors, total = vendor_service.list_vendors(
        search=request.args.get("search"),
        status=request.args.get("status"),
        page=page,
        limit=limit,
    )
    return success_response(
        [v.to_dict() for v in vendors],
        pagination=pagination_meta(page=page, limit=limit, total=total),
    )


@vendors_bp.post("")
@require_auth
@require_admin
def create_vendor_route():
    """
    Create a vendor with generated credentials.

    The plaintext password is only in this response; it is stored hashed.
    """
    try:
        vendor, password = vendor_service.create_vendor(request.get_json(silent=True))
        data = vendor.to_dict()
        data["credentials"] = {"username": vendor.username, "password": password}
        return success_response(data, message="Vendor created successfully", status=201)

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except VendorValidationError as e:
        db.session.rollback()
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create vendor")
        return error_response("Internal server error", 500)


@vendors_bp.get("/presence")
@require_auth
@require_admin
def presence_route():
    return success_response(vendor_service.presence())


# =============================================================================
# VENDOR SELF-SERVICE
# =============================================================================

@vendors_bp.get("/me")
@require_auth
@require_vendor
def get_own_profile_route():
    return success_response(g.principal.vendor.to_dict())


@vendors_bp.put("/me")
@require_auth
@require_vendor
def update_own_profile_route():
    """Contact fields only: contact_person, phone, address, city, country."""
    try:
        vendor = vendor_service.update_own_profile(g.principal.vendor, request.get_json(silent=True))
        return success_response(vendor.to_dict(), message="Profile updated successfully")

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update vendor profile")
        return error_response("Internal server error", 500)


@vendors_bp.post("/me/heartbeat")
@require_auth
@require_vendor
def heartbeat_route():
    try:
        vendor = vendor_service.heartbeat(g.principal.vendor)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record vendor heartbeat")
        return error_response("Internal server error", 500)
    _publish_presence(vendor, True)
    return success_response({"last_online_at": vendor.to_dict()["last_online_at"]})


@vendors_bp.post("/me/offline")
@require_auth
@require_vendor
def offline_route():
    try:
        vendor = vendor_service.go_offline(g.principal.vendor)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to mark vendor offline")
        return error_response("Internal server error", 500)
    _publish_presence(vendor, False)
    return success_response(message="Marked offline")


@vendors_bp.post("/me/orders/last-read")
@require_auth
@require_vendor
def mark_orders_read_route():
    try:
        vendor = vendor_service.mark_orders_read(g.principal.vendor)
        return success_response({"last_orders_read_at": vendor.to_dict()["last_orders_read_at"]})
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to mark orders read")
        return error_response("Internal server error", 500)


@vendors_bp.get("/me/orders/unread-count")
@require_auth
@require_vendor
def unread_count_route():
    return success_response({"count": vendor_service.unread_order_count(g.principal.vendor)})


# =============================================================================
# BY ID
# =============================================================================

@vendors_bp.get("/<int:vendor_id>")
@require_auth
def get_vendor_route(vendor_id: int):
    try:
        vendor = vendor_service.get_vendor_for(vendor_id, g.principal)
        return success_response(vendor.to_dict())
    except VendorAccessError as e:
        return error_response(str(e), 403)
    except VendorNotFoundError as e:
        return error_response(str(e), 404)


@vendors_bp.put("/<int:vendor_id>")
@require_auth
@require_admin
def update_vendor_route(vendor_id: int):
    try:
        vendor = vendor_service.update_vendor(vendor_id, request.get_json(silent=True))
        return success_response(vendor.to_dict(), message="Vendor updated successfully")

    except VendorNotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except VendorValidationError as e:
        db.session.rollback()
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update vendor")
        return error_response("Internal server error", 500)


@vendors_bp.delete("/<int:vendor_id>")
@require_auth
@require_admin
def delete_vendor_route(vendor_id: int):
    """Soft delete; the linked user is deactivated and sessions end."""
    try:
        vendor_service.deactivate_vendor(vendor_id)
        return success_response(message="Vendor deleted successfully")

    except VendorNotFoundError as e:
        return error_response(str(e), 404)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete vendor")
        return error_response("Internal server error", 500)


@vendors_bp.put("/<int:vendor_id>/credentials")
@require_auth
@require_admin
def update_credentials_route(vendor_id: int):
    """
    Request body (at least one):
    - username: str
    - password: str
    """
    data = request.get_json(silent=True) or {}
    try:
        vendor = vendor_service.update_credentials(
            vendor_id,
            username=data.get("username"),
            password=data.get("password"),
        )
        return success_response(vendor.to_dict(), message="Credentials updated successfully")

    except VendorNotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except VendorValidationError as e:
        db.session.rollback()
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update vendor credentials")
        return error_response("Internal server error", 500)
