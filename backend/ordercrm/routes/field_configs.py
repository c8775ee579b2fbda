# Overview: Flask API routes for the configurable order-form fields.

from flask import Blueprint, g, request, current_app

from ..extensions import db
from ..decorators import require_admin, require_auth, require_order_access
from ..responses import error_response, success_response
from ..services import field_config_service
from ..services.field_config_service import FieldConfigConflictError, FieldConfigNotFoundError
from ..validation import ValidationError


field_configs_bp = Blueprint("field_configs", __name__, url_prefix="/api/field-configs")


@field_configs_bp.get("")
@require_auth
@require_order_access
def list_field_configs_route():
    """Active fields the caller may see, each flagged with whether the caller may edit it."""
    audience = field_config_service.audience_of(g.principal)
    configs = field_config_service.list_field_configs(g.principal)
    return success_response([c.to_dict(audience) for c in configs])


@field_configs_bp.get("/all")
@require_auth
@require_admin
def list_all_field_configs_route():
    return success_response([c.to_dict() for c in field_config_service.list_field_configs()])


@field_configs_bp.get("/name/<string:name>")
@require_auth
@require_order_access
def get_field_config_route(name: str):
    try:
        config = field_config_service.get_field_config(name)
        audience = field_config_service.audience_of(g.principal)
        if not config.visible_for(audience):
            raise FieldConfigNotFoundError("Field configuration not found")
        return success_response(config.to_dict(audience))

    except FieldConfigNotFoundError as e:
        return error_response(str(e), 404)


@field_configs_bp.post("")
@require_auth
@require_admin
def create_field_config_route():
    """
    Request body:
        {name, label, type (text|number|date|select|textarea),
         editable_by, visible_to (admin|vendor|both),
         required?, placeholder?, options?, validation?, position?}
    """
    try:
        config = field_config_service.create_field_config(request.get_json(silent=True))
        return success_response(
            config.to_dict(),
            message="Field configuration created successfully",
            status=201,
        )

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except FieldConfigConflictError as e:
        db.session.rollback()
        return error_response(str(e), 409)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create field config")
        return error_response("Internal server error", 500)


@field_configs_bp.put("/bulk")
@require_auth
@require_admin
def bulk_update_field_configs_route():
    try:
        configs = field_config_service.bulk_update_field_configs(request.get_json(silent=True))
        return success_response(
            [c.to_dict() for c in configs],
            message=f"{len(configs)} field configurations updated successfully",
        )

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to bulk update field configs")
        return error_response("Internal server error", 500)


@field_configs_bp.put("/name/<string:name>")
@require_auth
@require_admin
def update_field_config_route(name: str):
    try:
        config = field_config_service.update_field_config(name, request.get_json(silent=True))
        return success_response(config.to_dict(), message="Field configuration updated successfully")

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except FieldConfigNotFoundError as e:
        return error_response(str(e), 404)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update field config")
        return error_response("Internal server error", 500)


@field_configs_bp.delete("/name/<string:name>")
@require_auth
@require_admin
def delete_field_config_route(name: str):
    try:
        field_config_service.delete_field_config(name)
        return success_response(message="Field configuration deleted successfully")

    except FieldConfigNotFoundError as e:
        return error_response(str(e), 404)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete field config")
        return error_response("Internal server error", 500)


@field_configs_bp.post("/reset")
@require_auth
@require_admin
def reset_field_configs_route():
    try:
        configs = field_config_service.reset_field_configs()
        return success_response(
            [c.to_dict() for c in configs],
            message="Field configurations reset to defaults successfully",
        )

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reset field configs")
        return error_response("Internal server error", 500)
