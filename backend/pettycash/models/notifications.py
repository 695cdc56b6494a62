from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


NOTIFICATION_APPROVAL_REQUEST = "approval_request"
NOTIFICATION_APPROVAL_DECISION = "approval_decision"


class Notification(db.Model):
    """
    In-app notification for a single user.

    Written by the default notifier (notification_service). Delivery beyond
    the in-app inbox (email, push) is not handled here.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "read_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    action_url = db.Column(db.String(255), nullable=True)

    # JSON payload (serialized)
    data = db.Column(db.Text, nullable=True)

    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", backref=db.backref("notifications", lazy=True))

    def is_read(self) -> bool:
        return self.read_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "action_url": self.action_url,
            "data": json.loads(self.data) if self.data else None,
            "read_at": to_utc_z(self.read_at) if self.read_at else None,
            "created_at": to_utc_z(self.created_at),
        }
