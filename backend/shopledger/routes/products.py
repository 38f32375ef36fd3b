# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

Listing and single-product reads are public (the shop front).
Everything else requires MANAGE_PRODUCTS or VIEW_INVENTORY.
"""
from flask import Blueprint, request, jsonify, current_app

from ..errors import ShopError, error_response
from ..models import Product
from ..services import catalog_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    coerce_int,
)
from ..decorators import require_auth, require_permission

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "description", "image_url", "price_cents", "stock", "unit", "is_active"},
    required_on_create={"name", "category", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


@products_bp.get("")
def list_products_route():
    """
    Query params:
    - keyword: case-insensitive name filter (optional)
    """
    try:
        products = catalog_service.list_products(keyword=request.args.get("keyword"))
        return jsonify([p.to_dict() for p in products]), 200
    except Exception:
        return _internal_error("Failed to list products")


@products_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    threshold = request.args.get("threshold", type=int)
    try:
        products = catalog_service.low_stock_products(threshold)
        return jsonify([p.to_dict() for p in products]), 200
    except Exception:
        return _internal_error("Failed to list low-stock products")


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return jsonify(catalog_service.get_product(product_id, active_only=True).to_dict()), 200
    except ShopError as e:
        return error_response(e)


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(patch=patch)
        return jsonify(product.to_dict()), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to create product")


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = catalog_service.update_product(product_id, patch=patch)
        return jsonify(product.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product_route(product_id: int):
    """Soft delete: the product disappears from the shop, order history keeps it."""
    try:
        catalog_service.deactivate_product(product_id)
        return jsonify({"message": "Product removed"}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to delete product")


@products_bp.post("/<int:product_id>/discount")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def apply_discount_route(product_id: int):
    """
    Body: {"price_cents": int, "notify": bool (default true)}

    Returns the product plus how many customers were told about the offer.
    """
    payload = request.get_json(silent=True) or {}
    try:
        if payload.get("price_cents") is None:
            return jsonify({"error": "price_cents is required"}), 400
        product, notified = catalog_service.apply_discount(
            product_id,
            coerce_int(payload.get("price_cents"), "price_cents"),
            notify=payload.get("notify", True) is not False,
        )
        return jsonify({"product": product.to_dict(), "notified": notified}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to apply discount")


@products_bp.delete("/<int:product_id>/discount")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def clear_discount_route(product_id: int):
    try:
        return jsonify(catalog_service.clear_discount(product_id).to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to clear discount")
