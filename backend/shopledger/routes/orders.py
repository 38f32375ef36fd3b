# Overview: Flask API routes for order operations; parses input and returns JSON responses.

"""
Orders

POST /api/orders body:
    {
      "order_items": [{"product_id": 1, "quantity": 2}, ...],
      "amount_paid_cents": 0,
      "payment_method": "CASH" | "CARD" | "ONLINE" (optional),
      "customer_id": 5 (optional, BILL_CUSTOMER only)
    }

Prices always come from the catalog; any price sent by the client is ignored.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import ShopError, error_response
from ..services import order_service
from ..decorators import require_auth, require_permission


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
@require_permission("PLACE_ORDER")
def place_order_route():
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.place_order_for(
            g.current_user,
            data.get("order_items"),
            amount_paid_cents=data.get("amount_paid_cents", 0),
            payment_method=data.get("payment_method"),
            customer_id=data.get("customer_id"),
        )
        current_app.logger.info(
            "Order %s placed for user %s: total=%s paid=%s status=%s",
            order.id, order.customer_id, order.total_cents, order.amount_paid_cents, order.payment_status,
        )
        return jsonify(order.to_dict()), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
@require_permission("VIEW_ALL_ORDERS")
def list_orders_route():
    """All orders, newest first (manager)."""
    orders = order_service.list_orders()
    return jsonify([o.to_dict(include_customer=True) for o in orders]), 200


@orders_bp.get("/myorders")
@require_auth
def my_orders_route():
    orders = order_service.list_customer_orders(g.current_user.id)
    return jsonify([o.to_dict() for o in orders]), 200


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    """Owner or a user with VIEW_ALL_ORDERS; 403 otherwise, 404 if unknown."""
    try:
        order = order_service.get_order(order_id, viewer=g.current_user)
        return jsonify(order.to_dict(include_customer=True)), 200
    except ShopError as e:
        return error_response(e)
