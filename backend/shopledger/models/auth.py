from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z


class User(db.Model):
    """
    Store managers and customers.

    WHY phone: phone is the login identity (one-time codes are delivered by
    SMS); email is optional contact data.

    pending_dues_cents is a maintained projection of the ledger
    (sum DEBIT - sum CREDIT). Negative means the customer holds store credit.
    Only ledger_service writes it, and only with an in-database increment.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("phone", name="uq_users_phone"),
        db.UniqueConstraint("email", name="uq_users_email"),
        db.Index("ix_users_role_dues", "role", "pending_dues_cents"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(512), nullable=True)

    role = db.Column(db.String(16), nullable=False, default="CUSTOMER", index=True)  # MANAGER, CUSTOMER

    pending_dues_cents = db.Column(db.Integer, nullable=False, default=0)

    # Push notification device token (FCM or similar)
    push_token = db.Column(db.String(512), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "role": self.role,
            "pending_dues_cents": self.pending_dues_cents,
            "has_push_token": bool(self.push_token),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }

    def to_summary_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "pending_dues_cents": self.pending_dues_cents,
        }


class OtpChallenge(db.Model):
    """
    One-time login code issued to a phone number.

    SECURITY NOTES:
    - Only the bcrypt hash of the code is stored
    - Single use (consumed_at), time-limited (expires_at)
    - Attempts are counted; the challenge dies after OTP_MAX_ATTEMPTS
    """
    __tablename__ = "otp_challenges"
    __table_args__ = (
        db.Index("ix_otp_challenges_phone_created", "phone", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    phone = db.Column(db.String(32), nullable=False)
    code_hash = db.Column(db.String(255), nullable=False)

    attempts = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    consumed_at = db.Column(db.DateTime(timezone=True), nullable=True)


class SessionToken(db.Model):
    """
    Bearer session opened by a successful one-time-code login.

    Only the SHA-256 digest of the token is kept. A row stops authenticating
    once expires_at passes, once it sits idle too long, or once revoked.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_revoked", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(128), nullable=True)

    # Where the login came from
    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))
