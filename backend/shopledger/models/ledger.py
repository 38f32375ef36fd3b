from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z


class Transaction(db.Model):
    """
    Append-only customer ledger.

    TRANSACTION TYPES:
    - DEBIT: charge, increases what the customer owes (order total)
    - CREDIT: payment, decreases what the customer owes

    amount_cents is always positive; the type carries the sign.

    IMMUTABLE: Records are never updated or deleted. User.pending_dues_cents
    is a cache of sum(DEBIT) - sum(CREDIT) and is written in the same DB
    transaction as each row here.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        db.Index("ix_transactions_user_date", "user_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    type = db.Column(db.String(8), nullable=False, index=True)  # DEBIT, CREDIT
    amount_cents = db.Column(db.Integer, nullable=False)

    description = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(16), nullable=True)

    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Business time of the movement
    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("transactions", lazy=True))
    order = db.relationship("Order", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "payment_method": self.payment_method,
            "recorded_by_user_id": self.recorded_by_user_id,
            "date": to_utc_z(self.date),
        }
