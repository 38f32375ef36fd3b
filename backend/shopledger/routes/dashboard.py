# Overview: Flask API routes for dashboard rollups; returns JSON responses.

from flask import Blueprint, jsonify, current_app, g

from ..services import dashboard_service
from ..decorators import require_auth, require_permission


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/manager")
@require_auth
@require_permission("VIEW_MANAGER_DASHBOARD")
def manager_dashboard_route():
    try:
        return jsonify(dashboard_service.manager_dashboard()), 200
    except Exception:
        current_app.logger.exception("Failed to build manager dashboard")
        return jsonify({"error": "Internal server error"}), 500


@dashboard_bp.get("/customer")
@require_auth
@require_permission("VIEW_OWN_DASHBOARD")
def customer_dashboard_route():
    try:
        return jsonify(dashboard_service.customer_dashboard(g.current_user.id)), 200
    except Exception:
        current_app.logger.exception("Failed to build customer dashboard")
        return jsonify({"error": "Internal server error"}), 500
