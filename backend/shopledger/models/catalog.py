from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    STOCK INVARIANT: stock >= 0 at all times. Order fulfilment only lowers it
    through a conditional UPDATE (see catalog_service.reserve_stock), and
    manager edits are validated before they reach the row.

    DISCOUNTS: original_price_cents is the "was" price and is set only while
    a discount is active. price_cents is always the price a sale is charged.

    Products are never hard-deleted; is_active=False hides them from the shop
    while historical order lines keep their product reference.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        db.Index("ix_products_active_stock", "is_active", "stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(1024), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)
    original_price_cents = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(16), nullable=False, default="pc")  # e.g. kg, pc, ltr

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def has_discount(self) -> bool:
        return self.original_price_cents is not None and self.original_price_cents > self.price_cents

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "image_url": self.image_url,
            "price_cents": self.price_cents,
            "original_price_cents": self.original_price_cents,
            "has_discount": self.has_discount,
            "stock": self.stock,
            "unit": self.unit,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
