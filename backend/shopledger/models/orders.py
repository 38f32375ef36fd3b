from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z


class Order(db.Model):
    """
    Priced order (counter bill or self-service checkout).

    IMMUTABLE: Orders are written once by order_service.place_order and never
    edited or cancelled. Pricing is stored, not derived, so later catalog
    changes cannot alter history.

    PRICING (all cents): total_cents = subtotal_cents + tax_cents - discount_cents
    PAYMENT STATUS: PAID, PARTIAL, PENDING (FAILED is reserved for gateways)
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    payment_method = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("User", foreign_keys=[customer_id], backref=db.backref("orders", lazy=True))
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.line_number",
    )

    def to_dict(self, include_customer: bool = False) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "created_by_user_id": self.created_by_user_id,
            "items": [line.to_dict() for line in self.lines],
            "pricing": {
                "subtotal_cents": self.subtotal_cents,
                "tax_rate_bps": self.tax_rate_bps,
                "tax_cents": self.tax_cents,
                "discount_cents": self.discount_cents,
                "total_cents": self.total_cents,
            },
            "payment": {
                "amount_paid_cents": self.amount_paid_cents,
                "status": self.payment_status,
                "method": self.payment_method,
            },
            "created_at": to_utc_z(self.created_at),
        }
        if include_customer and self.customer is not None:
            data["customer"] = {"id": self.customer.id, "name": self.customer.name}
        return data


class OrderLine(db.Model):
    """
    Frozen line item snapshot: name and unit price are copied from the
    product at order time and never re-read.
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.UniqueConstraint("order_id", "line_number", name="uq_order_lines_order_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "product_id": self.product_id,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }
