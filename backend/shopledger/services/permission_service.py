# Overview: Permission enforcement and the security_events audit trail.

"""
Denials (and login outcomes) are appended to security_events. Granted
checks are not recorded; the table would otherwise grow with every request.
"""

from ..extensions import db
from ..models import SecurityEvent
from ..errors import AuthorizationError
from ..permissions import has_permission
from shopledger.time_utils import utcnow


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Append one audit row and commit.

    event_type: PERMISSION_DENIED, LOGIN_FAILED, LOGIN_SUCCEEDED, LOGOUT
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        success=success,
        resource=resource,
        action=action,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.commit()
    return event


def require_permission(
    user,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Raise AuthorizationError (PERMISSION_DENIED) unless user's role grants permission_code."""
    if has_permission(user, permission_code):
        return

    log_security_event(
        user_id=user.id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Role {user.role} lacks {permission_code}",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise AuthorizationError(
        f"Permission denied: {permission_code}",
        code="PERMISSION_DENIED",
        details={"required_permission": permission_code},
    )
