# Overview: Service-layer operations for the customer ledger; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import case, func, update

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Transaction, User
from ..validation import coerce_int
from .concurrency import run_with_retry
from shopledger.time_utils import utcnow
"""
Customer Ledger Invariants (authoritative)

- Append-only: transactions are inserted, never updated or deleted.
- amount_cents > 0 on every row; DEBIT adds to what the user owes, CREDIT
  subtracts from it.
- Every insert is paired with a pending_dues_cents delta on the user
  (DEBIT +amount, CREDIT -amount) inside the same DB transaction, issued as
  an in-database increment so concurrent writers cannot lose updates.
- Therefore, after every committed operation:
      users.pending_dues_cents == sum(DEBIT) - sum(CREDIT)
  replay_balance() and reconcile() recompute the right-hand side.
- pending_dues_cents may go negative (store credit). That is not an error.
"""


# =============================================================================
# TRANSACTION TYPES / PAYMENT METHODS (CONSTANTS)
# =============================================================================

TRANSACTION_DEBIT = "DEBIT"
TRANSACTION_CREDIT = "CREDIT"

PAYMENT_METHOD_CASH = "CASH"
PAYMENT_METHOD_CARD = "CARD"
PAYMENT_METHOD_ONLINE = "ONLINE"

VALID_PAYMENT_METHODS = [
    PAYMENT_METHOD_CASH,
    PAYMENT_METHOD_CARD,
    PAYMENT_METHOD_ONLINE,
]

DEFAULT_PAYMENT_DESCRIPTION = "Dues Payment"


def validate_amount(amount: Any, field: str = "amount_cents") -> int:
    """Ledger amounts are positive integer cents."""
    if amount is None:
        raise ValidationError("Invalid amount", code="INVALID_AMOUNT", details={"field": field})
    try:
        value = coerce_int(amount, field)
    except ValidationError as exc:
        raise ValidationError(str(exc), code="INVALID_AMOUNT", details={"field": field})
    if value <= 0:
        raise ValidationError("Invalid amount", code="INVALID_AMOUNT", details={"field": field, "value": value})
    return value


def validate_payment_method(method: str | None) -> str | None:
    if method is None:
        return None
    method = str(method).strip().upper()
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}",
            code="INVALID_PAYMENT_METHOD",
        )
    return method


def _require_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND", details={"user_id": user_id})
    return user


def _apply_dues_delta(user_id: int, delta_cents: int) -> None:
    """pending_dues_cents += delta as a single UPDATE (no read-modify-write)."""
    result = db.session.execute(
        update(User)
        .where(User.id == user_id)
        .values(pending_dues_cents=User.pending_dues_cents + delta_cents)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError("User not found", code="USER_NOT_FOUND", details={"user_id": user_id})


def _append_entry(
    *,
    user_id: int,
    order_id: int | None,
    tx_type: str,
    amount_cents: int,
    description: str | None,
    payment_method: str | None,
    recorded_by_user_id: int | None,
    occurred_at: datetime | None,
) -> Transaction:
    tx = Transaction(
        user_id=user_id,
        order_id=order_id,
        type=tx_type,
        amount_cents=amount_cents,
        description=description,
        payment_method=payment_method,
        recorded_by_user_id=recorded_by_user_id,
        date=occurred_at or utcnow(),
    )
    db.session.add(tx)
    db.session.flush()  # ensures tx.id is assigned without committing

    delta = amount_cents if tx_type == TRANSACTION_DEBIT else -amount_cents
    _apply_dues_delta(user_id, delta)
    return tx


# =============================================================================
# WRITES
# =============================================================================

def record_charge(
    user_id: int,
    order_id: int | None,
    amount_cents: int,
    *,
    description: str | None = None,
    recorded_by_user_id: int | None = None,
    occurred_at: datetime | None = None,
    commit: bool = True,
) -> Transaction:
    """
    Append a DEBIT and raise the user's dues by amount_cents.

    commit=False joins the caller's unit of work (order placement).

    Raises:
        ValidationError: amount not a positive integer (INVALID_AMOUNT)
        NotFoundError: unknown user
    """
    amount_cents = validate_amount(amount_cents)

    def _op():
        _require_user(user_id)
        tx = _append_entry(
            user_id=user_id,
            order_id=order_id,
            tx_type=TRANSACTION_DEBIT,
            amount_cents=amount_cents,
            description=description or (f"Order #{order_id} Charge" if order_id else "Charge"),
            payment_method=None,
            recorded_by_user_id=recorded_by_user_id,
            occurred_at=occurred_at,
        )
        if commit:
            db.session.commit()
        return tx

    return run_with_retry(_op) if commit else _op()


def record_payment(
    user_id: int,
    order_id: int | None,
    amount_cents: int,
    method: str | None = None,
    *,
    description: str | None = None,
    recorded_by_user_id: int | None = None,
    occurred_at: datetime | None = None,
    commit: bool = True,
) -> Transaction:
    """
    Append a CREDIT and lower the user's dues by amount_cents.

    A payment needs no prior charge: paying more than is owed leaves the
    user with negative dues (store credit).

    Raises:
        ValidationError: amount not a positive integer, unknown method
        NotFoundError: unknown user
    """
    amount_cents = validate_amount(amount_cents)
    method = validate_payment_method(method)

    if description is None:
        if order_id is not None:
            description = f"Payment for Order #{order_id}"
        else:
            description = DEFAULT_PAYMENT_DESCRIPTION
            if method:
                description = f"{description} ({method})"

    def _op():
        _require_user(user_id)
        tx = _append_entry(
            user_id=user_id,
            order_id=order_id,
            tx_type=TRANSACTION_CREDIT,
            amount_cents=amount_cents,
            description=description,
            payment_method=method,
            recorded_by_user_id=recorded_by_user_id,
            occurred_at=occurred_at,
        )
        if commit:
            db.session.commit()
        return tx

    return run_with_retry(_op) if commit else _op()


# =============================================================================
# READS
# =============================================================================

def list_user_transactions(user_id: int) -> list[Transaction]:
    """Newest first."""
    _require_user(user_id)
    return (
        db.session.query(Transaction)
        .filter(Transaction.user_id == user_id)
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .all()
    )


def users_with_dues() -> list[User]:
    """Users who owe money, highest debt first."""
    return (
        db.session.query(User)
        .filter(User.pending_dues_cents > 0)
        .order_by(User.pending_dues_cents.desc(), User.id.asc())
        .all()
    )


def _signed_amount():
    return case(
        (Transaction.type == TRANSACTION_DEBIT, Transaction.amount_cents),
        else_=-Transaction.amount_cents,
    )


def replay_balance(user_id: int) -> int:
    """sum(DEBIT) - sum(CREDIT) for one user, straight from the ledger."""
    total = (
        db.session.query(func.coalesce(func.sum(_signed_amount()), 0))
        .filter(Transaction.user_id == user_id)
        .scalar()
    )
    return int(total or 0)


def reconcile(*, fix: bool = False) -> list[dict]:
    """
    Compare every user's cached dues with a replay of their ledger.

    Returns one entry per user whose cache drifted. With fix=True the cache
    is rewritten from the ledger (the ledger is authoritative) and committed.
    """
    ledger_rows = (
        db.session.query(Transaction.user_id, func.sum(_signed_amount()))
        .group_by(Transaction.user_id)
        .all()
    )
    ledger_by_user = {user_id: int(total or 0) for user_id, total in ledger_rows}

    drift = []
    users = (
        db.session.query(User)
        .order_by(User.id.asc())
        .execution_options(populate_existing=True)
        .all()
    )
    for user in users:
        ledger_cents = ledger_by_user.get(user.id, 0)
        if user.pending_dues_cents != ledger_cents:
            drift.append({
                "user_id": user.id,
                "name": user.name,
                "cached_cents": user.pending_dues_cents,
                "ledger_cents": ledger_cents,
                "drift_cents": user.pending_dues_cents - ledger_cents,
            })
            if fix:
                user.pending_dues_cents = ledger_cents

    if fix and drift:
        db.session.commit()
    return drift
