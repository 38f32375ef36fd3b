"""
Customer ledger: append-only entries paired with cached dues.
"""

from datetime import timedelta

import pytest
from sqlalchemy import update

from shopledger.errors import NotFoundError, ValidationError
from shopledger.models import Transaction, User
from shopledger.services import ledger_service
from shopledger.time_utils import utcnow


def _dues(db_session, user_id):
    db_session.expire_all()
    return db_session.get(User, user_id).pending_dues_cents


class TestRecordCharge:

    def test_charge_raises_dues(self, db_session, customer):
        tx = ledger_service.record_charge(customer.id, None, 2500)
        assert tx.type == "DEBIT"
        assert tx.amount_cents == 2500
        assert tx.description == "Charge"
        assert _dues(db_session, customer.id) == 2500

    @pytest.mark.parametrize("amount", [0, -1, None, "12.5", 3.0, "abc"])
    def test_rejects_non_positive_or_fractional(self, db_session, customer, amount):
        with pytest.raises(ValidationError) as exc:
            ledger_service.record_charge(customer.id, None, amount)
        assert exc.value.code == "INVALID_AMOUNT"
        assert db_session.query(Transaction).count() == 0
        assert _dues(db_session, customer.id) == 0

    def test_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_service.record_charge(4242, None, 100)
        assert db_session.query(Transaction).count() == 0


class TestRecordPayment:

    def test_standalone_payment_without_prior_charge(self, db_session, customer):
        tx = ledger_service.record_payment(customer.id, None, 700)
        assert tx.type == "CREDIT"
        assert tx.order_id is None
        assert tx.description == "Dues Payment"
        assert _dues(db_session, customer.id) == -700

    def test_overpayment_yields_store_credit(self, db_session, customer):
        ledger_service.record_charge(customer.id, None, 10000)
        ledger_service.record_payment(customer.id, None, 15000, "CASH")
        assert _dues(db_session, customer.id) == -5000

    def test_description_names_method(self, db_session, customer):
        tx = ledger_service.record_payment(customer.id, None, 100, "online")
        assert tx.payment_method == "ONLINE"
        assert tx.description == "Dues Payment (ONLINE)"

    def test_custom_description_kept(self, db_session, customer):
        tx = ledger_service.record_payment(customer.id, None, 100, "CASH", description="Paid at counter")
        assert tx.description == "Paid at counter"

    def test_rejects_unknown_method(self, db_session, customer):
        with pytest.raises(ValidationError) as exc:
            ledger_service.record_payment(customer.id, None, 100, "BARTER")
        assert exc.value.code == "INVALID_PAYMENT_METHOD"
        assert db_session.query(Transaction).count() == 0

    def test_rejects_zero(self, db_session, customer):
        with pytest.raises(ValidationError):
            ledger_service.record_payment(customer.id, None, 0)


class TestReads:

    def test_history_newest_first(self, db_session, customer):
        base = utcnow()
        old = ledger_service.record_charge(customer.id, None, 100, occurred_at=base - timedelta(days=3)).id
        new = ledger_service.record_payment(customer.id, None, 50, occurred_at=base).id
        mid = ledger_service.record_charge(customer.id, None, 100, occurred_at=base - timedelta(days=1)).id

        assert [t.id for t in ledger_service.list_user_transactions(customer.id)] == [new, mid, old]

    def test_debtors_sorted_by_dues(self, db_session, customer, other_customer, make_user):
        third = make_user("Meera", "9000000003")
        ledger_service.record_charge(customer.id, None, 300)
        ledger_service.record_charge(other_customer.id, None, 900)
        ledger_service.record_charge(third.id, None, 100)
        ledger_service.record_payment(third.id, None, 100)

        assert [u.name for u in ledger_service.users_with_dues()] == ["Ravi", "Asha"]

    def test_replay_matches_cache(self, db_session, customer):
        for amount in (1000, 250, 4000):
            ledger_service.record_charge(customer.id, None, amount)
        ledger_service.record_payment(customer.id, None, 3000)
        assert ledger_service.replay_balance(customer.id) == 2250 == _dues(db_session, customer.id)


class TestReconcile:

    def _corrupt(self, db_session, user_id, value):
        db_session.execute(update(User).where(User.id == user_id).values(pending_dues_cents=value))
        db_session.commit()

    def test_clean_ledger_has_no_drift(self, db_session, customer, other_customer):
        ledger_service.record_charge(customer.id, None, 500)
        ledger_service.record_payment(other_customer.id, None, 200)
        assert ledger_service.reconcile() == []

    def test_reports_and_fixes_drift(self, db_session, customer, other_customer):
        ledger_service.record_charge(customer.id, None, 500)
        self._corrupt(db_session, customer.id, 800)
        self._corrupt(db_session, other_customer.id, -25)

        drift = ledger_service.reconcile()
        assert [(d["user_id"], d["cached_cents"], d["ledger_cents"], d["drift_cents"]) for d in drift] == [
            (customer.id, 800, 500, 300),
            (other_customer.id, -25, 0, -25),
        ]
        # report-only mode changes nothing
        assert _dues(db_session, customer.id) == 800

        ledger_service.reconcile(fix=True)
        assert _dues(db_session, customer.id) == 500
        assert _dues(db_session, other_customer.id) == 0
        assert ledger_service.reconcile() == []
