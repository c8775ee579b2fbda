# Overview: Flask API routes for saved WhatsApp report recipients (admin).

from flask import Blueprint, request, current_app

from ..extensions import db
from ..decorators import require_admin, require_auth
from ..responses import error_response, success_response
from ..services import demand_service
from ..services.demand_service import RecipientNotFoundError
from ..validation import ValidationError


whatsapp_recipients_bp = Blueprint("whatsapp_recipients", __name__, url_prefix="/api/whatsapp-recipients")


@whatsapp_recipients_bp.get("")
@require_auth
@require_admin
def list_recipients_route():
    return success_response([r.to_dict() for r in demand_service.list_recipients()])


@whatsapp_recipients_bp.post("")
@require_auth
@require_admin
def create_recipient_route():
    """Request body: {phone: str (>= 5 chars), name: str (optional)}"""
    try:
        recipient = demand_service.create_recipient(request.get_json(silent=True))
        return success_response(recipient.to_dict(), status=201)

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create WhatsApp recipient")
        return error_response("Internal server error", 500)


@whatsapp_recipients_bp.delete("/<int:recipient_id>")
@require_auth
@require_admin
def delete_recipient_route(recipient_id: int):
    try:
        demand_service.delete_recipient(recipient_id)
        return success_response(message="Recipient deleted")

    except RecipientNotFoundError as e:
        return error_response(str(e), 404)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete WhatsApp recipient")
        return error_response("Internal server error", 500)
