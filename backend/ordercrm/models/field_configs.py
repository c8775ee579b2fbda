from __future__ import annotations

from ..extensions import db
from ordercrm.time_utils import to_utc_z, utcnow


FIELD_TYPES = ("text", "number", "date", "select", "textarea")
# Who a field applies to: staff ("admin"), vendors, or both
FIELD_AUDIENCES = ("admin", "vendor", "both")


class FieldConfig(db.Model):
    """
    One configurable field of the order form.

    Describes how the field is rendered (label, type, placeholder, options),
    how it is checked (required, validation) and which side of the CRM may
    see and edit it. Deleting a config only deactivates it.
    """
    __tablename__ = "field_configs"
    __table_args__ = (
        db.Index("ix_field_configs_active_position", "is_active", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True, index=True)
    label = db.Column(db.String(200), nullable=False)
    field_type = db.Column("type", db.String(16), nullable=False)
    required = db.Column(db.Boolean, nullable=False, default=False)
    editable_by = db.Column(db.String(16), nullable=False, default="admin")
    visible_to = db.Column(db.String(16), nullable=False, default="both")
    placeholder = db.Column(db.String(200), nullable=False, default="")
    # [{"value": ..., "label": ...}], used by select fields
    options = db.Column(db.JSON, nullable=False, default=list)
    # {"min": n, "max": n, "pattern": regex}, every key optional
    validation = db.Column(db.JSON, nullable=False, default=dict)
    position = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<FieldConfig {self.name!r} type={self.field_type} active={self.is_active}>"

    def visible_for(self, audience: str) -> bool:
        return self.visible_to in ("both", audience)

    def editable_for(self, audience: str) -> bool:
        return self.editable_by in ("both", audience)

    def to_dict(self, audience: str | None = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "label": self.label,
            "type": self.field_type,
            "required": bool(self.required),
            "editable_by": self.editable_by,
            "visible_to": self.visible_to,
            "placeholder": self.placeholder or "",
            "options": self.options or [],
            "validation": self.validation or {},
            "position": self.position,
            "is_active": bool(self.is_active),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if audience is not None:
            data["editable"] = self.editable_for(audience)
        return data
