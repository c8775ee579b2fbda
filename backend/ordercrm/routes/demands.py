# Overview: Flask API routes for client demands and demand reports.

from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..decorators import require_admin, require_auth, require_user
from ..responses import error_response, success_response
from ..services import demand_service
from ..services import notification_service
from ..services.demand_service import DemandNotFoundError
from ..services.whatsapp_service import WhatsAppError
from ..validation import ValidationError


demands_bp = Blueprint("demands", __name__, url_prefix="/api/demands")


@demands_bp.get("/product/<int:product_id>/confirmed")
@require_auth
@require_admin
def confirmed_for_product_route(product_id: int):
    demands = demand_service.confirmed_for_product(product_id)
    return success_response([d.to_dict() for d in demands])


@demands_bp.post("")
@require_auth
@require_user
def create_demand_route():
    """
    Request body:
    - product_id: int (required, active product)
    - quantity: int (optional, default 1)
    - notes: str (optional, max 500)
    """
    try:
        demand = demand_service.create_demand(request.get_json(silent=True), user_id=g.principal.user.id)

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except DemandNotFoundError as e:
        return error_response(str(e), 404)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create demand")
        return error_response("Internal server error", 500)

    notification_service.publish(notification_service.DEMANDS_CREATED, demand.to_dict(), principal=g.principal)
    notification_service.push(
        f"New demand created (qty {demand.quantity})",
        principal=g.principal,
        type="demand_created",
        demand_id=demand.id,
        user_id=demand.user_id,
        product_id=demand.product_id,
    )
    return success_response(demand.to_dict(), message="Demand created successfully", status=201)


@demands_bp.get("")
@require_auth
@require_admin
def list_demands_route():
    return success_response([d.to_dict() for d in demand_service.list_demands()])


@demands_bp.get("/mine")
@require_auth
@require_user
def my_demands_route():
    demands = demand_service.list_user_demands(g.principal.user.id)
    return success_response([d.to_dict() for d in demands])


@demands_bp.put("/<int:demand_id>/status")
@require_auth
@require_admin
def update_demand_status_route(demand_id: int):
    """
    Request body: {status: pending | confirmed | rejected}

    Entering confirmed takes the quantity out of stock; leaving it puts the
    quantity back.
    """
    data = request.get_json(silent=True) or {}
    try:
        demand = demand_service.update_status(demand_id, data.get("status"))

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except DemandNotFoundError as e:
        db.session.rollback()
        return error_response(str(e), 404)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update demand status")
        return error_response("Internal server error", 500)

    notification_service.publish(notification_service.DEMANDS_UPDATED, demand.to_dict(), principal=g.principal)
    notification_service.push(
        f"Demand {demand.status}",
        principal=g.principal,
        type=f"demand_{demand.status}",
        demand_id=demand.id,
        user_id=demand.user_id,
    )
    notification_service.publish(
        notification_service.PRODUCTS_UPDATED, {"id": demand.product_id}, principal=g.principal
    )
    return success_response(demand.to_dict(), message="Demand updated successfully")


@demands_bp.post("/<int:demand_id>/send-report")
@require_auth
@require_admin
def send_report_route(demand_id: int):
    """
    Request body:
    - recipient_phone: str (required)
    - bundle_window_sec: int (optional, 0-600, default 60)

    502 when WhatsApp is not configured or refuses the message.
    """
    data = request.get_json(silent=True) or {}
    try:
        result = demand_service.send_report(
            demand_id,
            recipient_phone=data.get("recipient_phone"),
            bundle_window_sec=data.get("bundle_window_sec"),
        )

    except ValidationError as e:
        return error_response(e.message, 400, errors=e.errors)
    except DemandNotFoundError as e:
        return error_response(str(e), 404)
    except WhatsAppError as e:
        current_app.logger.warning("Demand report %s not delivered: %s", demand_id, e.message)
        return error_response(e.message, 502, details=e.details)
    except Exception:
        current_app.logger.exception("Failed to send demand report")
        return error_response("Internal server error", 500)

    return success_response(result, message="Report sent")
