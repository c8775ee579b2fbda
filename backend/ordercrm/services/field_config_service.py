# Overview: Service-layer operations for the configurable order-form fields.

"""
Field configs describe the order form: one row per field with its label,
input type, options, validation bounds and which audience ("admin" for
staff, "vendor", or "both") may see and edit it.

Configs are looked up by their unique name. Deleting one deactivates it;
creating a config whose name belongs to a deactivated row brings that row
back with the new values. A reset restores field_catalog.DEFAULT_FIELD_CONFIGS
and deactivates everything else.
"""

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..field_catalog import DEFAULT_FIELD_CONFIGS
from ..models import FIELD_AUDIENCES, FIELD_TYPES, FieldConfig
from ..principals import VendorPrincipal
from ..validation import ModelValidationPolicy, ValidationError, coerce_int, validate_payload
from ordercrm.time_utils import utcnow


FIELD_CONFIG_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "label", "field_type", "required", "editable_by", "visible_to",
        "placeholder", "options", "validation", "position", "is_active",
    },
    required_on_create={"name", "label", "field_type", "editable_by", "visible_to"},
)

# Bulk updates only touch access and layout
BULK_FIELDS = ("editable_by", "visible_to", "required", "position")

VALIDATION_KEYS = ("min", "max", "pattern")


class FieldConfigNotFoundError(Exception):
    pass


class FieldConfigConflictError(Exception):
    pass


def audience_of(principal) -> str:
    return "vendor" if isinstance(principal, VendorPrincipal) else "admin"


def _from_payload(data) -> dict:
    # The API calls the column "type"
    if isinstance(data, dict) and "type" in data:
        data = dict(data)
        data["field_type"] = data.pop("type")
    return data


def _rename_errors(errors: list[dict]) -> list[dict]:
    return [
        dict(e, field="type") if e.get("field") == "field_type" else e
        for e in errors
    ]


def _check_options(options, errors: list[dict]):
    if not isinstance(options, list):
        errors.append({"field": "options", "message": "options must be an array"})
        return None
    cleaned = []
    for option in options:
        if isinstance(option, dict):
            value = str(option.get("value") or "").strip()
            label = str(option.get("label") or value).strip()
        else:
            value = label = str(option).strip()
        if not value:
            errors.append({"field": "options", "message": "Every option needs a value"})
            return None
        cleaned.append({"value": value, "label": label})
    return cleaned


def _check_validation(rules, errors: list[dict]):
    if not isinstance(rules, dict):
        errors.append({"field": "validation", "message": "validation must be an object"})
        return None
    cleaned = {}
    for key, value in rules.items():
        if key not in VALIDATION_KEYS:
            errors.append({"field": f"validation.{key}", "message": f"Unknown validation rule: {key}"})
            continue
        if value is None:
            continue
        if key == "pattern":
            try:
                re.compile(str(value))
            except re.error:
                errors.append({"field": "validation.pattern", "message": "validation.pattern is not a valid regex"})
                continue
            cleaned[key] = str(value)
        else:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append({"field": f"validation.{key}", "message": f"validation.{key} must be numeric"})
                continue
            cleaned[key] = value
    if "min" in cleaned and "max" in cleaned and cleaned["min"] > cleaned["max"]:
        errors.append({"field": "validation", "message": "validation.min cannot exceed validation.max"})
    return cleaned


def _validate(data, *, partial: bool) -> dict:
    data = _from_payload(data)
    try:
        patch = validate_payload(model=FieldConfig, payload=data, policy=FIELD_CONFIG_POLICY, partial=partial)
        errors: list[dict] = []
    except ValidationError as exc:
        if exc.message != "Validation failed":
            raise
        patch, errors = {}, list(exc.errors)
        # Keep checking the remaining rules so every problem is reported at once
        for key in ("field_type", "editable_by", "visible_to", "options", "validation"):
            if isinstance(data, dict) and key in data and not any(e["field"] == key for e in errors):
                patch[key] = data[key]

    if "field_type" in patch and patch["field_type"] not in FIELD_TYPES:
        errors.append({"field": "type", "message": f"type must be one of: {', '.join(FIELD_TYPES)}"})
    for key in ("editable_by", "visible_to"):
        if key in patch and patch[key] not in FIELD_AUDIENCES:
            errors.append({"field": key, "message": f"{key} must be one of: {', '.join(FIELD_AUDIENCES)}"})
    if "options" in patch:
        patch["options"] = _check_options(patch["options"] or [], errors)
    if "validation" in patch:
        patch["validation"] = _check_validation(patch["validation"] or {}, errors)

    if errors:
        raise ValidationError("Validation failed", errors=_rename_errors(errors))
    return patch


def list_field_configs(principal=None) -> list[FieldConfig]:
    """Active configs in form order; narrowed to what the caller may see when a principal is given."""
    configs = (
        db.session.query(FieldConfig)
        .filter(FieldConfig.is_active.is_(True))
        .order_by(FieldConfig.position.asc(), FieldConfig.name.asc())
        .all()
    )
    if principal is None:
        return configs
    audience = audience_of(principal)
    return [c for c in configs if c.visible_for(audience)]


def get_field_config(name: str) -> FieldConfig:
    config = (
        db.session.query(FieldConfig)
        .filter(FieldConfig.name == name, FieldConfig.is_active.is_(True))
        .first()
    )
    if not config:
        raise FieldConfigNotFoundError("Field configuration not found")
    return config


def create_field_config(data: dict) -> FieldConfig:
    patch = _validate(data, partial=False)
    existing = db.session.query(FieldConfig).filter(FieldConfig.name == patch["name"]).first()
    if existing and existing.is_active:
        raise FieldConfigConflictError("Field configuration with this name already exists")

    now = utcnow()
    if existing:
        config = existing
        config.required = False
        config.placeholder = ""
        config.options = []
        config.validation = {}
        config.position = 0
    else:
        config = FieldConfig(created_at=now)
        db.session.add(config)

    for key, value in patch.items():
        setattr(config, key, value)
    config.is_active = True
    config.updated_at = now
    db.session.commit()

    current_app.logger.info("Field config %s %s", config.name, "reactivated" if existing else "created")
    return config


def update_field_config(name: str, data: dict) -> FieldConfig:
    config = get_field_config(name)
    patch = _validate(data, partial=True)
    if patch.get("name", config.name) != config.name:
        raise ValidationError("Field name cannot be changed", field="name")

    for key, value in patch.items():
        setattr(config, key, value)
    config.updated_at = utcnow()
    db.session.commit()
    return config


def bulk_update_field_configs(data: dict) -> list[FieldConfig]:
    """
    Apply access and layout changes to several configs in one commit.

    Request body: {configs: [{name, editable_by?, visible_to?, required?, position?}]}
    Unknown or inactive names are skipped; the updated configs are returned.
    """
    entries = (data or {}).get("configs")
    if not isinstance(entries, list):
        raise ValidationError("configs must be an array", field="configs")

    errors = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or not str(entry.get("name") or "").strip():
            errors.append({"field": f"configs[{index}].name", "message": "Field name is required"})
            continue
        for key in ("editable_by", "visible_to"):
            if key in entry and entry[key] not in FIELD_AUDIENCES:
                errors.append({
                    "field": f"configs[{index}].{key}",
                    "message": f"{key} must be one of: {', '.join(FIELD_AUDIENCES)}",
                })
        if "position" in entry:
            try:
                coerce_int("position", entry["position"])
            except ValidationError:
                errors.append({"field": f"configs[{index}].position", "message": "position must be an integer"})
    if errors:
        raise ValidationError("Validation failed", errors=errors)

    updated = []
    now = utcnow()
    for entry in entries:
        try:
            config = get_field_config(str(entry["name"]).strip())
        except FieldConfigNotFoundError:
            continue
        for key in BULK_FIELDS:
            if key not in entry:
                continue
            value = entry[key]
            if key == "position":
                value = coerce_int("position", value)
            elif key == "required":
                value = bool(value)
            setattr(config, key, value)
        config.updated_at = now
        updated.append(config)

    db.session.commit()
    return updated


def delete_field_config(name: str) -> FieldConfig:
    config = get_field_config(name)
    config.is_active = False
    config.updated_at = utcnow()
    db.session.commit()
    return config


def reset_field_configs() -> list[FieldConfig]:
    """Restore the default form: defaults are rewritten in place, every other config is deactivated."""
    defaults = {row["name"]: row for row in DEFAULT_FIELD_CONFIGS}
    existing = {c.name: c for c in db.session.query(FieldConfig).all()}
    now = utcnow()

    for name, config in existing.items():
        if name not in defaults:
            config.is_active = False
            config.updated_at = now

    for name, row in defaults.items():
        config = existing.get(name)
        if config is None:
            config = FieldConfig(name=name, created_at=now)
            db.session.add(config)
        config.label = row["label"]
        config.field_type = row["type"]
        config.required = bool(row.get("required", False))
        config.editable_by = row["editable_by"]
        config.visible_to = row["visible_to"]
        config.placeholder = row.get("placeholder", "")
        config.options = list(row.get("options", []))
        config.validation = dict(row.get("validation", {}))
        config.position = row["position"]
        config.is_active = True
        config.updated_at = now

    db.session.commit()
    current_app.logger.info("Field configs reset to %d defaults", len(defaults))
    return list_field_configs()


def ensure_defaults_seeded() -> int:
    """Seed the default form on an empty table. Returns the number of rows added."""
    if db.session.query(FieldConfig.id).first() is not None:
        return 0
    return len(reset_field_configs())
