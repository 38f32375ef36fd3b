# Overview: Push notification collaborator; delivery is delegated, failures are reported, never raised.

"""
Push Dispatch

WHY: Device delivery (FCM or similar) is an external service. The core only
needs send(user, title, body) -> bool. The active dispatcher lives in
app.extensions so tests and deployments can swap it.

The default LogPushDispatcher records what would have been sent and reports
success, matching a store running without push credentials.
"""

from __future__ import annotations

from flask import Flask, current_app

from ..errors import DependencyError


EXTENSION_KEY = "shopledger.push"


class PushDispatcher:
    """Interface for push delivery."""

    def send(self, user, title: str, body: str) -> bool:
        raise NotImplementedError


class LogPushDispatcher(PushDispatcher):
    def send(self, user, title: str, body: str) -> bool:
        if not user.push_token:
            return False
        current_app.logger.info(
            "[Mock Notification] To: %s... | Title: %s | Body: %s",
            user.push_token[:10],
            title,
            body,
        )
        return True


def init_push(app: Flask, dispatcher: PushDispatcher | None = None) -> None:
    app.extensions[EXTENSION_KEY] = dispatcher or LogPushDispatcher()


def get_dispatcher() -> PushDispatcher:
    return current_app.extensions[EXTENSION_KEY]


def dispatch(user, title: str, body: str) -> bool:
    """
    Send through the active dispatcher.

    Returns False on any delivery failure; the error is logged, not raised,
    so callers can keep going with the rest of a batch.
    """
    if not user.push_token:
        current_app.logger.warning("Push skipped for user %s: no device token", user.id)
        return False
    try:
        return bool(get_dispatcher().send(user, title, body))
    except DependencyError as exc:
        current_app.logger.warning("Push failed for user %s: %s", user.id, exc)
        return False
    except Exception:
        current_app.logger.exception("Push dispatcher crashed for user %s", user.id)
        return False
