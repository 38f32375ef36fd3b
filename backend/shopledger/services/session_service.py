# Overview: Bearer session tokens issued after a successful one-time-code login.

"""
Sessions

A login (verify-otp) opens a session and hands the client a random token.
Only its SHA-256 digest is stored, so a leaked table cannot be replayed.

LIFETIME:
- expires_at: created_at + SESSION_ABSOLUTE_TIMEOUT_HOURS (hard stop)
- last_used_at: bumped on every authenticated request; a gap longer than
  SESSION_IDLE_TIMEOUT_HOURS revokes the session
- logout, user deactivation or an admin action revoke it explicitly
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from shopledger.time_utils import utcnow


TOKEN_BYTES = 32


@dataclass
class SessionContext:
    """Authenticated user plus the session record that proved it."""
    user: User
    session: SessionToken


def _hours(key: str) -> timedelta:
    return timedelta(hours=current_app.config[key])


def generate_token() -> str:
    """64 hex characters; returned to the client once, never stored."""
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    # Tokens carry full entropy, so a fast digest is enough (codes use bcrypt)
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _revoke(session: SessionToken, reason: str, when: datetime) -> None:
    session.is_revoked = True
    session.revoked_at = when
    session.revoked_reason = reason


def _live_session(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Open a session for an active user.

    Returns (session_record, plaintext_token).
    Raises ValueError for an unknown or deactivated user.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User account is deactivated")

    token = generate_token()
    now = utcnow()
    record = SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _hours("SESSION_ABSOLUTE_TIMEOUT_HOURS"),
        is_revoked=False,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    user.last_login_at = now
    db.session.add(record)
    db.session.commit()
    return record, token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its user, or None.

    Idle sessions and sessions of deactivated users are revoked on the way
    out. A valid session has its last_used_at refreshed.
    """
    record = _live_session(token)
    if record is None:
        return None

    now = utcnow()
    if record.expires_at < now:
        return None

    if now - record.last_used_at > _hours("SESSION_IDLE_TIMEOUT_HOURS"):
        _revoke(record, "Idle timeout", now)
        db.session.commit()
        return None

    user = record.user
    if user is None or not user.is_active:
        _revoke(record, "User account deactivated", now)
        db.session.commit()
        return None

    record.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=record)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """False when the token is unknown or already revoked."""
    record = _live_session(token)
    if record is None:
        return False
    _revoke(record, reason, utcnow())
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str) -> int:
    """Revoke every open session of user_id; returns how many were open."""
    now = utcnow()
    records = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for record in records:
        _revoke(record, reason, now)
    db.session.commit()
    return len(records)
