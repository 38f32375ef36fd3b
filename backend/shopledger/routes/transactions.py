# Overview: Flask API routes for ledger operations; parses input and returns JSON responses.

"""
Ledger routes

The ledger is append-only: there is no update or delete endpoint.

POST /api/transactions/pay body:
    {"user_id": 5 (optional), "amount_cents": 5000,
     "description": "...", "payment_method": "CASH"}
Paying for someone else requires RECORD_CUSTOMER_PAYMENT.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import AuthorizationError, ShopError, ValidationError, error_response
from ..permissions import has_permission
from ..services import ledger_service
from ..validation import coerce_int
from ..decorators import require_auth, require_permission


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _optional_description(raw) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError("description must be a string")
    return raw.strip() or None


@transactions_bp.post("/pay")
@require_auth
@require_permission("RECORD_OWN_PAYMENT")
def pay_route():
    data = request.get_json(silent=True) or {}
    actor = g.current_user
    try:
        target_id = actor.id
        if data.get("user_id") is not None:
            target_id = coerce_int(data.get("user_id"), "user_id")
            if target_id != actor.id and not has_permission(actor, "RECORD_CUSTOMER_PAYMENT"):
                raise AuthorizationError(
                    "Not authorized to record payments for another user",
                    code="PAYMENT_FORBIDDEN",
                )

        tx = ledger_service.record_payment(
            target_id,
            None,
            data.get("amount_cents"),
            data.get("payment_method"),
            description=_optional_description(data.get("description")),
            recorded_by_user_id=actor.id,
        )
        current_app.logger.info(
            "Payment of %s recorded for user %s by user %s", tx.amount_cents, target_id, actor.id
        )
        return jsonify(tx.to_dict()), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/my")
@require_auth
def my_transactions_route():
    txs = ledger_service.list_user_transactions(g.current_user.id)
    return jsonify([t.to_dict() for t in txs]), 200


@transactions_bp.get("/dues")
@require_auth
@require_permission("VIEW_DUES")
def dues_route():
    """Debtors, highest dues first."""
    return jsonify([u.to_summary_dict() for u in ledger_service.users_with_dues()]), 200


@transactions_bp.get("/user/<int:user_id>")
@require_auth
@require_permission("VIEW_DUES")
def user_transactions_route(user_id: int):
    try:
        txs = ledger_service.list_user_transactions(user_id)
        return jsonify([t.to_dict() for t in txs]), 200
    except ShopError as e:
        return error_response(e)


@transactions_bp.get("/reconcile")
@require_auth
@require_permission("RECONCILE_LEDGER")
def reconcile_route():
    """Report only. Repairs go through `flask ledger reconcile --fix`."""
    drift = ledger_service.reconcile(fix=False)
    return jsonify({"consistent": not drift, "drift": drift}), 200
