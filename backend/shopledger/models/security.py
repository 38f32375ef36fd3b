from __future__ import annotations

from ..extensions import db


class SecurityEvent(db.Model):
    """
    Append-only audit of permission denials and login outcomes.

    user_id is empty when the caller could not be identified (failed login).
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_type_time", "event_type", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    event_type = db.Column(db.String(32), nullable=False)
    resource = db.Column(db.String(128), nullable=True)  # request path
    action = db.Column(db.String(64), nullable=True)     # permission code or LOGIN/LOGOUT
    success = db.Column(db.Boolean, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
