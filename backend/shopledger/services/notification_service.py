# Overview: Dues reminder policy and the per-user notification inbox.

"""
Dues Reminders

TARGETING:
- Candidates: pending_dues_cents > 0 and a registered push token
- Broadcast (custom message): every candidate
- Automatic: candidates whose latest ledger entry is older than
  OVERDUE_THRESHOLD_DAYS, or who have no ledger entries at all

DELIVERY: each target is dispatched independently. A failed send is
collected into the summary's error list; it never aborts the batch and
never touches the ledger.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..models import Notification, Transaction, User
from ..money import format_cents
from .push_service import dispatch
from shopledger.time_utils import utcnow


REMINDER_TITLE = "Payment Reminder: Outstanding Dues"

NOTIFICATION_REMINDER = "REMINDER"
NOTIFICATION_PROMOTION = "PROMOTION"


def default_reminder_message(user: User) -> str:
    symbol = current_app.config["CURRENCY_SYMBOL"]
    return (
        f"Hello {user.name}, you have pending dues of "
        f"{symbol}{format_cents(user.pending_dues_cents)}. "
        "Please visit the store to clear them."
    )


def _reminder_candidates() -> list[User]:
    return (
        db.session.query(User)
        .filter(
            User.pending_dues_cents > 0,
            User.push_token.isnot(None),
            User.push_token != "",
        )
        .order_by(User.pending_dues_cents.desc(), User.id.asc())
        .all()
    )


def _overdue(candidates: list[User], now: datetime | None) -> list[User]:
    if not candidates:
        return []

    cutoff = (now or utcnow()) - timedelta(days=current_app.config["OVERDUE_THRESHOLD_DAYS"])

    last_dates = dict(
        db.session.query(Transaction.user_id, func.max(Transaction.date))
        .filter(Transaction.user_id.in_([u.id for u in candidates]))
        .group_by(Transaction.user_id)
        .all()
    )

    targets = []
    for user in candidates:
        last = last_dates.get(user.id)
        # No history at all counts as overdue
        if last is None or last < cutoff:
            targets.append(user)
    return targets


def select_reminder_targets(broadcast_message: str | None = None, now: datetime | None = None) -> list[User]:
    """
    Users who should receive a dues reminder.

    A non-empty broadcast_message targets every candidate regardless of
    how recently they transacted.
    """
    candidates = _reminder_candidates()
    if broadcast_message:
        return candidates
    return _overdue(candidates, now)


def send_due_reminders(custom_message: str | None = None, now: datetime | None = None) -> dict:
    """
    Run the reminder policy and dispatch.

    Returns {"message", "total_debtors", "reminders_sent", "errors"} where
    total_debtors counts every candidate (overdue or not) and errors lists
    the phone numbers whose delivery failed.
    """
    custom_message = (custom_message or "").strip() or None
    candidates = _reminder_candidates()
    targets = candidates if custom_message else _overdue(candidates, now)

    sent = 0
    errors: list[str] = []
    for user in targets:
        body = custom_message or default_reminder_message(user)
        if dispatch(user, REMINDER_TITLE, body):
            db.session.add(Notification(
                user_id=user.id,
                title=REMINDER_TITLE,
                message=body,
                type=NOTIFICATION_REMINDER,
                sent_at=utcnow(),
            ))
            sent += 1
        else:
            errors.append(user.phone)
    db.session.commit()

    current_app.logger.info(
        "Dues reminders: %d debtors, %d targeted, %d sent, %d failed",
        len(candidates), len(targets), sent, len(errors),
    )
    return {
        "message": f"Sent {sent} reminders",
        "total_debtors": len(candidates),
        "reminders_sent": sent,
        "errors": errors,
    }


# =============================================================================
# DEVICE TOKENS / INBOX
# =============================================================================

def update_push_token(user_id: int, push_token: str | None) -> User:
    """Register the caller's device token. A blank token is rejected, not treated as a clear."""
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND", details={"user_id": user_id})
    if push_token is not None and not isinstance(push_token, str):
        raise ValidationError("push_token must be a string", code="INVALID_PUSH_TOKEN")
    token = (push_token or "").strip()
    if not token:
        raise ValidationError("Token required", code="PUSH_TOKEN_REQUIRED")
    user.push_token = token
    db.session.commit()
    return user


def list_notifications(user_id: int) -> list[Notification]:
    """Newest first."""
    return (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.sent_at.desc(), Notification.id.desc())
        .all()
    )


def mark_read(notification_id: int, user_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if not notification:
        raise NotFoundError(
            "Notification not found",
            code="NOTIFICATION_NOT_FOUND",
            details={"notification_id": notification_id},
        )
    if notification.user_id != user_id:
        raise AuthorizationError("Not authorized to modify this notification", code="NOTIFICATION_FORBIDDEN")
    notification.is_read = True
    db.session.commit()
    return notification
