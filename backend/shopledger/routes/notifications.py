# Overview: Flask API routes for notifications; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import ShopError, error_response
from ..services import notification_service
from ..decorators import require_auth, require_permission


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.post("/reminders")
@require_auth
@require_permission("SEND_REMINDERS")
def send_reminders_route():
    """
    Body: {"custom_message": "..."} (optional)

    Without a message only overdue debtors are reminded; with one, every
    debtor with a device token receives it.
    """
    data = request.get_json(silent=True) or {}
    try:
        summary = notification_service.send_due_reminders(data.get("custom_message"))
        return jsonify(summary), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to send reminders")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.put("/token")
@require_auth
def update_token_route():
    data = request.get_json(silent=True) or {}
    try:
        user = notification_service.update_push_token(g.current_user.id, data.get("push_token"))
        return jsonify({"message": "Push token updated", "has_push_token": bool(user.push_token)}), 200
    except ShopError as e:
        return error_response(e)


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    notifications = notification_service.list_notifications(g.current_user.id)
    return jsonify([n.to_dict() for n in notifications]), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(notification_id, g.current_user.id)
        return jsonify(notification.to_dict()), 200
    except ShopError as e:
        return error_response(e)
