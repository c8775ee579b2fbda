from __future__ import annotations

from ..extensions import db
from ordercrm.time_utils import to_utc_z, utcnow


class NotificationEvent(db.Model):
    """
    Append-only outbox for the push channel.

    Rows are written after the domain transaction commits. Consumers read by
    increasing id; old rows are pruned by `flask maintenance
    cleanup-notifications`.
    """
    __tablename__ = "notification_events"
    __table_args__ = (
        db.Index("ix_notification_events_type", "event_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    # user | vendor | system
    actor_type = db.Column(db.String(16), nullable=True)
    actor_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event": self.event_type,
            "payload": self.payload,
            "actor_type": self.actor_type,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }
