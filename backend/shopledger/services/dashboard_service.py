# Overview: Read-only dashboard rollups over orders, users and products.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderLine, User
from .catalog_service import count_low_stock
from .order_service import list_customer_orders, list_orders
from shopledger.time_utils import local_day_bounds

TOP_PRODUCTS_LIMIT = 5
MANAGER_RECENT_ORDERS = 5
CUSTOMER_RECENT_ORDERS = 3


def todays_sales_cents(now: datetime | None = None) -> int:
    """Sum of order totals for the store's current calendar day, both ends inclusive."""
    start, end = local_day_bounds(current_app.config["STORE_TIMEZONE"], now=now)
    total = (
        db.session.query(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.created_at >= start, Order.created_at <= end)
        .scalar()
    )
    return int(total or 0)


def total_revenue_cents() -> int:
    return int(db.session.query(func.coalesce(func.sum(Order.total_cents), 0)).scalar() or 0)


def total_pending_dues_cents() -> int:
    return int(db.session.query(func.coalesce(func.sum(User.pending_dues_cents), 0)).scalar() or 0)


def top_products(limit: int = TOP_PRODUCTS_LIMIT) -> list[dict]:
    """
    Best sellers by quantity, grouped by the snapshot name on each line.

    Ties keep the order in which the name first appeared in the line history.
    """
    rows = (
        db.session.query(
            OrderLine.name,
            func.sum(OrderLine.quantity),
            func.min(OrderLine.id),
        )
        .group_by(OrderLine.name)
        .all()
    )
    rows = sorted(rows, key=lambda r: r[2])
    rows = sorted(rows, key=lambda r: int(r[1]), reverse=True)
    return [{"name": name, "qty": int(qty)} for name, qty, _ in rows[:limit]]


def manager_dashboard(now: datetime | None = None) -> dict:
    return {
        "todays_sales_cents": todays_sales_cents(now=now),
        "total_revenue_cents": total_revenue_cents(),
        "total_pending_dues_cents": total_pending_dues_cents(),
        "low_stock_count": count_low_stock(),
        "recent_orders": [o.to_dict(include_customer=True) for o in list_orders(limit=MANAGER_RECENT_ORDERS)],
        "top_products": top_products(),
    }


def customer_dashboard(user_id: int) -> dict:
    user = db.session.get(User, user_id)
    order_count, spent = (
        db.session.query(func.count(Order.id), func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.customer_id == user_id)
        .one()
    )
    return {
        "total_orders": int(order_count or 0),
        "total_spent_cents": int(spent or 0),
        "pending_dues_cents": user.pending_dues_cents if user else 0,
        "recent_orders": [o.to_dict() for o in list_customer_orders(user_id, limit=CUSTOMER_RECENT_ORDERS)],
    }
