from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z


class Notification(db.Model):
    """
    Log of messages delivered to a user's device.

    A row is written only after the push collaborator reports success, so
    the table doubles as the user's inbox.

    TYPES: REMINDER (dues), PROMOTION (discounts), SYSTEM (column default)
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_sent", "user_id", "sent_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(16), nullable=False, default="SYSTEM", index=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("notifications", lazy=True))

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "is_read": self.is_read,
            "sent_at": to_utc_z(self.sent_at),
        }
