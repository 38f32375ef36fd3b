# backend/shopledger/services/catalog_service.py
"""
Catalog Service

Products are created and edited by managers; order fulfilment only touches
stock, through reserve_stock().

STOCK INVARIANT: stock >= 0. reserve_stock() is a single conditional UPDATE
(stock = stock - q WHERE stock >= q), so two orders racing for the last
units cannot both succeed and no read-then-write window exists.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Product, User, Notification
from ..money import format_cents
from ..permissions import Role
from ..validation import enforce_price_rules
from .concurrency import run_with_retry
from .notification_service import NOTIFICATION_PROMOTION
from .push_service import dispatch
from shopledger.time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {
    "name", "category", "description", "image_url",
    "price_cents", "stock", "unit", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(keyword: str | None = None, include_inactive: bool = False) -> list[Product]:
    """Shop listing: active products, optional case-insensitive name search."""
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if keyword:
        query = query.filter(Product.name.ilike(f"%{keyword.strip()}%"))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(product_id: int, active_only: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if not product or (active_only and not product.is_active):
        raise NotFoundError(
            "Product not found",
            code="PRODUCT_NOT_FOUND",
            details={"product_id": product_id},
        )
    return product


def create_product(*, patch: dict) -> Product:
    """Create product from a validated patch dict."""
    product = Product(stock=0, unit="pc", is_active=True)
    apply_product_patch(product, patch)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, *, patch: dict) -> Product:
    def _op():
        product = get_product(product_id)
        apply_product_patch(product, patch)
        if product.original_price_cents is not None and product.price_cents >= product.original_price_cents:
            # Regular price moved up to (or past) the was-price: offer is over
            product.original_price_cents = None
        db.session.commit()
        return product

    return run_with_retry(_op)


def deactivate_product(product_id: int) -> Product:
    """Soft delete. Order history keeps referencing the row."""
    def _op():
        product = get_product(product_id)
        product.is_active = False
        db.session.commit()
        return product

    return run_with_retry(_op)


def low_stock_products(threshold: int | None = None) -> list[Product]:
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock < threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )


def count_low_stock(threshold: int | None = None) -> int:
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock < threshold)
        .count()
    )


def reserve_stock(product_id: int, quantity: int) -> bool:
    """
    Atomically take quantity units out of stock.

    Returns False (and changes nothing) when the product is inactive or has
    fewer than quantity units. Does not commit: the caller owns the unit of
    work and rolls everything back if a later step fails. Product objects
    already loaded in the session keep their old stock value until commit
    expires them.
    """
    result = db.session.execute(
        update(Product)
        .where(
            Product.id == product_id,
            Product.is_active.is_(True),
            Product.stock >= quantity,
        )
        .values(stock=Product.stock - quantity, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# =============================================================================
# DISCOUNTS
# =============================================================================

def apply_discount(product_id: int, new_price_cents: int, *, notify: bool = True) -> tuple[Product, int]:
    """
    Put a product on offer.

    The current regular price becomes the was-price (an existing was-price is
    kept, so stacking offers still shows the original price). Customers with
    a device token get a PROMOTION push; delivery failures are logged only.

    Returns (product, notified_count).
    """
    enforce_price_rules(new_price_cents)

    def _op():
        product = get_product(product_id, active_only=True)
        was_price = product.original_price_cents or product.price_cents
        if new_price_cents >= was_price:
            raise ValidationError(
                "Discounted price must be lower than the current price",
                code="INVALID_DISCOUNT",
                details={"was_price_cents": was_price, "price_cents": new_price_cents},
            )
        product.original_price_cents = was_price
        product.price_cents = new_price_cents
        db.session.commit()
        return product

    product = run_with_retry(_op)

    notified = _notify_price_drop(product) if notify else 0
    return product, notified


def clear_discount(product_id: int) -> Product:
    """End an offer: the was-price becomes the price again."""
    def _op():
        product = get_product(product_id)
        if product.original_price_cents is None:
            raise ValidationError("Product has no active discount", code="NO_DISCOUNT")
        product.price_cents = product.original_price_cents
        product.original_price_cents = None
        db.session.commit()
        return product

    return run_with_retry(_op)


def _notify_price_drop(product: Product) -> int:
    symbol = current_app.config["CURRENCY_SYMBOL"]
    title = f"Price drop: {product.name}"
    body = (
        f"{product.name} is now {symbol}{format_cents(product.price_cents)} "
        f"(was {symbol}{format_cents(product.original_price_cents)})."
    )

    customers = db.session.query(User).filter(
        User.role == Role.CUSTOMER,
        User.is_active.is_(True),
        User.push_token.isnot(None),
        User.push_token != "",
    ).all()

    sent = 0
    for customer in customers:
        if dispatch(customer, title, body):
            db.session.add(Notification(
                user_id=customer.id,
                title=title,
                message=body,
                type=NOTIFICATION_PROMOTION,
                sent_at=utcnow(),
            ))
            sent += 1
    db.session.commit()
    return sent
