"""
Order Pricing & Fulfilment

WHY: One implementation of pricing, stock and ledger effects for every
caller (customer checkout, manager counter bill, CLI, tests).

FLOW (place_order, one DB transaction):
1. Validate input shape (non-empty, positive integer quantities, amount >= 0)
2. Resolve every product; unknown or inactive -> PRODUCT_NOT_FOUND
3. Check stock for ALL lines (quantities aggregated per product) before any
   write -> INSUFFICIENT_STOCK
4. Price from the server-side product row, snapshot name + unit price
5. Conditional stock decrements (catalog_service.reserve_stock); a racing
   order that empties stock in between is rejected the same way
6. Insert order + lines, then ledger DEBIT (total) and CREDIT (amount paid);
   the ledger moves pending dues by total - amount_paid
7. Commit. Any failure rolls back everything above.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from flask import current_app

from ..extensions import db
from ..errors import ValidationError, NotFoundError, ConflictError, AuthorizationError
from ..models import Order, OrderLine, Product, User
from ..money import apply_rate_bps
from ..permissions import has_permission
from ..validation import coerce_int
from . import ledger_service
from .catalog_service import reserve_stock
from .concurrency import run_with_retry
from shopledger.time_utils import utcnow


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_FAILED = "FAILED"

PAYMENT_METHOD_PENDING = "PENDING"


@dataclass(frozen=True)
class RequestedItem:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    line_number: int
    product_id: int
    name: str
    unit_price_cents: int
    quantity: int

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class Pricing:
    subtotal_cents: int
    tax_rate_bps: int
    tax_cents: int
    discount_cents: int
    total_cents: int


# =============================================================================
# PURE PRICING HELPERS
# =============================================================================

def compute_pricing(subtotal_cents: int, tax_rate_bps: int, discount_cents: int = 0) -> Pricing:
    """
    tax = subtotal * rate (rounded half-up once), total = subtotal + tax - discount.

    Example: 100000 at 800 bps -> tax 8000, total 108000.
    """
    tax_cents = apply_rate_bps(subtotal_cents, tax_rate_bps)
    return Pricing(
        subtotal_cents=subtotal_cents,
        tax_rate_bps=tax_rate_bps,
        tax_cents=tax_cents,
        discount_cents=discount_cents,
        total_cents=subtotal_cents + tax_cents - discount_cents,
    )


def derive_payment_status(amount_paid_cents: int, total_cents: int) -> str:
    if amount_paid_cents >= total_cents:
        return PAYMENT_STATUS_PAID
    if amount_paid_cents > 0:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_PENDING


def price_lines(items: list[RequestedItem], products: dict[int, Product]) -> list[PricedLine]:
    """Snapshot each requested line against its (already resolved) product."""
    return [
        PricedLine(
            line_number=i,
            product_id=item.product_id,
            name=products[item.product_id].name,
            unit_price_cents=products[item.product_id].price_cents,
            quantity=item.quantity,
        )
        for i, item in enumerate(items, start=1)
    ]


# =============================================================================
# INPUT NORMALIZATION
# =============================================================================

def normalize_items(raw_items: Any) -> list[RequestedItem]:
    """
    Accepts [{"product_id": 1, "quantity": 2}, ...]; "product" is accepted
    as an alias of "product_id". Client-sent prices are ignored.
    """
    if raw_items is None or (isinstance(raw_items, list) and not raw_items):
        raise ValidationError("No order items", code="EMPTY_ORDER")
    if not isinstance(raw_items, list):
        raise ValidationError("order_items must be a list", code="INVALID_ORDER_ITEMS")

    items = []
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Order item {index} must be an object", code="INVALID_ORDER_ITEMS")
        product_ref = raw.get("product_id", raw.get("product"))
        if product_ref is None:
            raise ValidationError(
                f"Order item {index} is missing product_id",
                code="INVALID_ORDER_ITEMS",
                details={"line": index},
            )
        product_id = coerce_int(product_ref, f"order_items[{index}].product_id")
        quantity = raw.get("quantity")
        if quantity is not None:
            quantity = coerce_int(quantity, f"order_items[{index}].quantity")
        if quantity is None or quantity <= 0:
            raise ValidationError(
                f"Order item {index} quantity must be a positive integer",
                code="INVALID_QUANTITY",
                details={"line": index, "product_id": product_id},
            )
        items.append(RequestedItem(product_id=product_id, quantity=quantity))
    return items


def _normalize_amount_paid(amount_paid_cents: Any) -> int:
    if amount_paid_cents is None:
        return 0
    try:
        value = coerce_int(amount_paid_cents, "amount_paid_cents")
    except ValidationError as exc:
        raise ValidationError(str(exc), code="INVALID_AMOUNT")
    if value < 0:
        raise ValidationError("amount_paid_cents must be >= 0", code="INVALID_AMOUNT")
    return value


def _resolve_products(items: list[RequestedItem]) -> dict[int, Product]:
    products: dict[int, Product] = {}
    for line_number, item in enumerate(items, start=1):
        if item.product_id in products:
            continue
        product = db.session.get(Product, item.product_id)
        if not product or not product.is_active:
            raise NotFoundError(
                f"Product not found: {item.product_id}",
                code="PRODUCT_NOT_FOUND",
                details={"line": line_number, "product_id": item.product_id},
            )
        products[item.product_id] = product
    return products


def _aggregate_quantities(items: list[RequestedItem]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def _insufficient_stock(product: Product, requested: int, available: int) -> ConflictError:
    # Reported as 400 at the HTTP boundary (bad request for current stock)
    return ConflictError(
        f"Insufficient stock for {product.name}",
        code="INSUFFICIENT_STOCK",
        details={
            "product_id": product.id,
            "name": product.name,
            "requested_quantity": requested,
            "available": available,
        },
        status_code=400,
    )


# =============================================================================
# PLACE ORDER
# =============================================================================

def place_order(
    requested_items: Any,
    amount_paid_cents: Any = 0,
    payment_method: str | None = None,
    *,
    customer_id: int,
    created_by_user_id: int | None = None,
) -> Order:
    """
    Price, fulfil and bill an order for customer_id.

    Returns the committed Order.

    Raises:
        ValidationError: empty order, bad quantity, negative amount, bad method
        NotFoundError: unknown customer, unknown/inactive product
        ConflictError: insufficient stock (nothing is decremented)
    """
    items = normalize_items(requested_items)
    amount_paid = _normalize_amount_paid(amount_paid_cents)
    method = ledger_service.validate_payment_method(payment_method)
    if method is None:
        method = ledger_service.PAYMENT_METHOD_CASH if amount_paid > 0 else PAYMENT_METHOD_PENDING
    tax_rate_bps = current_app.config["TAX_RATE_BPS"]

    def _op():
        customer = db.session.get(User, customer_id)
        if not customer:
            raise NotFoundError("Customer not found", code="USER_NOT_FOUND", details={"user_id": customer_id})

        products = _resolve_products(items)
        quantities = _aggregate_quantities(items)

        # Validate every line before touching any stock
        for product_id, qty in quantities.items():
            product = products[product_id]
            if product.stock < qty:
                raise _insufficient_stock(product, qty, product.stock)

        lines = price_lines(items, products)
        pricing = compute_pricing(sum(line.line_total_cents for line in lines), tax_rate_bps)

        for product_id, qty in quantities.items():
            if not reserve_stock(product_id, qty):
                # Stock moved between check and decrement (concurrent order)
                db.session.rollback()
                fresh = db.session.get(Product, product_id)
                raise _insufficient_stock(fresh, qty, fresh.stock if fresh else 0)

        order = Order(
            customer_id=customer.id,
            created_by_user_id=created_by_user_id,
            subtotal_cents=pricing.subtotal_cents,
            tax_rate_bps=pricing.tax_rate_bps,
            tax_cents=pricing.tax_cents,
            discount_cents=pricing.discount_cents,
            total_cents=pricing.total_cents,
            amount_paid_cents=amount_paid,
            payment_status=derive_payment_status(amount_paid, pricing.total_cents),
            payment_method=method,
            created_at=utcnow(),
        )
        db.session.add(order)
        db.session.flush()

        for line in lines:
            db.session.add(OrderLine(
                order_id=order.id,
                line_number=line.line_number,
                product_id=line.product_id,
                name=line.name,
                unit_price_cents=line.unit_price_cents,
                quantity=line.quantity,
                line_total_cents=line.line_total_cents,
            ))

        # Ledger: charge the total, credit what was paid at the counter.
        # Net effect on pending dues: total - amount_paid.
        if pricing.total_cents > 0:
            ledger_service.record_charge(
                customer.id,
                order.id,
                pricing.total_cents,
                recorded_by_user_id=created_by_user_id,
                occurred_at=order.created_at,
                commit=False,
            )
        if amount_paid > 0:
            ledger_service.record_payment(
                customer.id,
                order.id,
                amount_paid,
                method if method != PAYMENT_METHOD_PENDING else None,
                recorded_by_user_id=created_by_user_id,
                occurred_at=order.created_at,
                commit=False,
            )

        db.session.commit()
        return order

    return run_with_retry(_op)


def place_order_for(
    actor: User,
    requested_items: Any,
    amount_paid_cents: Any = 0,
    payment_method: str | None = None,
    customer_id: Any = None,
) -> Order:
    """
    Resolve who is billed, then place the order.

    Users with BILL_CUSTOMER may bill anyone; everyone else may only bill
    themselves.
    """
    target_id = actor.id
    if customer_id is not None:
        target_id = coerce_int(customer_id, "customer_id")
        if target_id != actor.id and not has_permission(actor, "BILL_CUSTOMER"):
            raise AuthorizationError(
                "Not authorized to bill another customer",
                code="BILL_CUSTOMER_DENIED",
            )
    return place_order(
        requested_items,
        amount_paid_cents,
        payment_method,
        customer_id=target_id,
        created_by_user_id=actor.id,
    )


# =============================================================================
# READS
# =============================================================================

def get_order(order_id: int, viewer: User | None = None) -> Order:
    """
    Fetch an order. When viewer is given, only the owner or a user with
    VIEW_ALL_ORDERS may see it.
    """
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND", details={"order_id": order_id})
    if viewer is not None and order.customer_id != viewer.id and not has_permission(viewer, "VIEW_ALL_ORDERS"):
        raise AuthorizationError("Not authorized to view this order", code="ORDER_FORBIDDEN")
    return order


def list_orders(limit: int | None = None) -> list[Order]:
    """All orders, newest first."""
    query = db.session.query(Order).order_by(Order.created_at.desc(), Order.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def list_customer_orders(customer_id: int, limit: int | None = None) -> list[Order]:
    query = (
        db.session.query(Order)
        .filter(Order.customer_id == customer_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()
