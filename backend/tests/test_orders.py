"""
Order pricing and fulfilment.

Verifies:
- Tax and status derivation
- Stock never goes negative; rejected orders change nothing
- Line items are frozen snapshots of name and price
- Ledger entries and cached dues move together
"""

import pytest
from sqlalchemy import update

from shopledger.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from shopledger.models import Order, OrderLine, Product, Transaction, User
from shopledger.services import catalog_service, ledger_service, order_service
from shopledger.services.order_service import (
    compute_pricing,
    derive_payment_status,
    place_order,
    place_order_for,
)


def _line(product, quantity):
    return {"product_id": product.id, "quantity": quantity}


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock


def _dues(db_session, user_id):
    db_session.expire_all()
    return db_session.get(User, user_id).pending_dues_cents


# =============================================================================
# PURE PRICING
# =============================================================================


class TestPricing:

    def test_tax_example(self):
        pricing = compute_pricing(100000, 800)
        assert pricing.tax_cents == 8000
        assert pricing.total_cents == 108000
        assert pricing.discount_cents == 0

    def test_total_is_exact_sum(self):
        pricing = compute_pricing(12345, 800)
        # 987.6 rounds half-up to 988
        assert pricing.tax_cents == 988
        assert pricing.total_cents == pricing.subtotal_cents + pricing.tax_cents - pricing.discount_cents

    @pytest.mark.parametrize(
        "paid,expected",
        [(10000, "PAID"), (12000, "PAID"), (4000, "PARTIAL"), (1, "PARTIAL"), (0, "PENDING")],
    )
    def test_status_derivation(self, paid, expected):
        assert derive_payment_status(paid, 10000) == expected

    def test_zero_total_counts_as_paid(self):
        assert derive_payment_status(0, 0) == "PAID"


# =============================================================================
# PLACE ORDER
# =============================================================================


class TestPlaceOrder:

    def test_prices_lines_and_decrements_stock(self, db_session, customer, products):
        order = place_order(
            [_line(products["rice"], 2), _line(products["soap"], 1)],
            0,
            customer_id=customer.id,
        )

        assert order.subtotal_cents == 24000
        assert order.tax_cents == 1920
        assert order.total_cents == 25920
        assert order.payment_status == "PENDING"
        assert order.payment_method == "PENDING"
        assert [(l.line_number, l.name, l.unit_price_cents, l.quantity, l.line_total_cents) for l in order.lines] == [
            (1, "Basmati Rice", 10000, 2, 20000),
            (2, "Neem Soap", 4000, 1, 4000),
        ]
        assert _stock(db_session, products["rice"].id) == 48
        assert _stock(db_session, products["soap"].id) == 19
        assert _dues(db_session, customer.id) == 25920

    def test_unpaid_order_writes_single_debit(self, db_session, customer, products):
        order = place_order([_line(products["rice"], 1)], 0, customer_id=customer.id)

        txs = db_session.query(Transaction).filter_by(user_id=customer.id).all()
        assert len(txs) == 1
        assert txs[0].type == "DEBIT"
        assert txs[0].amount_cents == order.total_cents == 10800
        assert txs[0].order_id == order.id
        assert txs[0].description == f"Order #{order.id} Charge"

    def test_fully_paid_order_leaves_no_dues(self, db_session, customer, products):
        order = place_order([_line(products["rice"], 1)], 10800, "card", customer_id=customer.id)

        assert order.payment_status == "PAID"
        assert order.payment_method == "CARD"
        types = sorted(t.type for t in db_session.query(Transaction).filter_by(order_id=order.id))
        assert types == ["CREDIT", "DEBIT"]
        assert _dues(db_session, customer.id) == 0

    def test_partial_payment(self, db_session, customer, products):
        order = place_order([_line(products["rice"], 1)], 4000, customer_id=customer.id)

        assert order.payment_status == "PARTIAL"
        assert order.payment_method == "CASH"
        assert _dues(db_session, customer.id) == 6800

    def test_overpayment_becomes_credit(self, db_session, customer, products):
        place_order([_line(products["rice"], 1)], 15000, "CASH", customer_id=customer.id)
        assert _dues(db_session, customer.id) == -4200

    def test_client_price_is_ignored(self, db_session, customer, products):
        order = place_order(
            [{"product_id": products["oil"].id, "quantity": 1, "price": 1, "price_cents": 1}],
            0,
            customer_id=customer.id,
        )
        assert order.lines[0].unit_price_cents == 25000

    def test_product_alias_key(self, db_session, customer, products):
        order = place_order([{"product": products["soap"].id, "quantity": 3}], 0, customer_id=customer.id)
        assert order.subtotal_cents == 12000

    def test_zero_total_order_writes_no_debit(self, db_session, customer):
        freebie = Product(name="Carry Bag", category="Misc", price_cents=0, stock=10)
        db_session.add(freebie)
        db_session.commit()

        order = place_order([_line(freebie, 2)], 0, customer_id=customer.id)

        assert order.total_cents == 0
        assert order.payment_status == "PAID"
        assert db_session.query(Transaction).count() == 0
        assert _stock(db_session, freebie.id) == 8


class TestRejectedOrders:
    """A rejected order leaves stock, orders, ledger and dues untouched."""

    def _assert_untouched(self, db_session, customer, products):
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderLine).count() == 0
        assert db_session.query(Transaction).count() == 0
        assert _dues(db_session, customer.id) == 0
        assert _stock(db_session, products["rice"].id) == 50
        assert _stock(db_session, products["oil"].id) == 5

    @pytest.mark.parametrize("items", [[], None])
    def test_empty_order(self, db_session, customer, products, items):
        with pytest.raises(ValidationError) as exc:
            place_order(items, 0, customer_id=customer.id)
        assert exc.value.code == "EMPTY_ORDER"
        self._assert_untouched(db_session, customer, products)

    def test_insufficient_stock_rejects_whole_order(self, db_session, customer, products):
        with pytest.raises(ConflictError) as exc:
            place_order(
                [_line(products["rice"], 2), _line(products["oil"], 6)],
                0,
                customer_id=customer.id,
            )
        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert exc.value.status_code == 400
        assert exc.value.details["name"] == "Mustard Oil"
        assert exc.value.details["available"] == 5
        self._assert_untouched(db_session, customer, products)

    def test_stock_checked_against_aggregate_quantity(self, db_session, customer, products):
        with pytest.raises(ConflictError):
            place_order(
                [_line(products["oil"], 3), _line(products["oil"], 3)],
                0,
                customer_id=customer.id,
            )
        self._assert_untouched(db_session, customer, products)

    def test_unknown_product(self, db_session, customer, products):
        with pytest.raises(NotFoundError) as exc:
            place_order(
                [_line(products["rice"], 1), {"product_id": 99999, "quantity": 1}],
                0,
                customer_id=customer.id,
            )
        assert exc.value.code == "PRODUCT_NOT_FOUND"
        assert exc.value.details == {"line": 2, "product_id": 99999}
        self._assert_untouched(db_session, customer, products)

    def test_inactive_product_is_not_found(self, db_session, customer, products):
        catalog_service.deactivate_product(products["soap"].id)
        with pytest.raises(NotFoundError):
            place_order([_line(products["soap"], 1)], 0, customer_id=customer.id)
        self._assert_untouched(db_session, customer, products)

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2.5", True, None])
    def test_bad_quantity(self, db_session, customer, products, quantity):
        with pytest.raises(ValidationError):
            place_order([{"product_id": products["rice"].id, "quantity": quantity}], 0, customer_id=customer.id)
        self._assert_untouched(db_session, customer, products)

    def test_negative_amount_paid(self, db_session, customer, products):
        with pytest.raises(ValidationError) as exc:
            place_order([_line(products["rice"], 1)], -100, customer_id=customer.id)
        assert exc.value.code == "INVALID_AMOUNT"
        self._assert_untouched(db_session, customer, products)

    def test_unknown_payment_method(self, db_session, customer, products):
        with pytest.raises(ValidationError) as exc:
            place_order([_line(products["rice"], 1)], 100, "CHEQUE", customer_id=customer.id)
        assert exc.value.code == "INVALID_PAYMENT_METHOD"
        self._assert_untouched(db_session, customer, products)

    def test_unknown_customer(self, db_session, customer, products):
        with pytest.raises(NotFoundError):
            place_order([_line(products["rice"], 1)], 0, customer_id=99999)
        self._assert_untouched(db_session, customer, products)


class TestStockNeverNegative:

    def test_sequential_orders_stop_at_zero(self, db_session, customer, products):
        oil_id = products["oil"].id
        place_order([{"product_id": oil_id, "quantity": 3}], 0, customer_id=customer.id)

        with pytest.raises(ConflictError):
            place_order([{"product_id": oil_id, "quantity": 3}], 0, customer_id=customer.id)
        assert _stock(db_session, oil_id) == 2

        place_order([{"product_id": oil_id, "quantity": 2}], 0, customer_id=customer.id)
        assert _stock(db_session, oil_id) == 0

        with pytest.raises(ConflictError):
            place_order([{"product_id": oil_id, "quantity": 1}], 0, customer_id=customer.id)
        assert _stock(db_session, oil_id) == 0
        assert db_session.query(Order).count() == 2

    def test_stock_taken_between_check_and_decrement(self, db_session, customer, products, monkeypatch):
        rice_id, oil_id = products["rice"].id, products["oil"].id
        real_reserve = order_service.reserve_stock

        def reserve_after_competitor(product_id, quantity):
            if product_id == oil_id:
                # another order empties the shelf after the stock check passed
                db_session.execute(update(Product).where(Product.id == oil_id).values(stock=0))
            return real_reserve(product_id, quantity)

        monkeypatch.setattr(order_service, "reserve_stock", reserve_after_competitor)

        with pytest.raises(ConflictError) as exc:
            place_order([_line(products["rice"], 2), _line(products["oil"], 1)], 0, customer_id=customer.id)

        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert exc.value.details["product_id"] == oil_id
        assert _stock(db_session, rice_id) == 50
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderLine).count() == 0
        assert db_session.query(Transaction).count() == 0
        db_session.expire_all()
        assert db_session.get(User, customer.id).pending_dues_cents == 0

    def test_reserve_stock_is_conditional(self, db_session, products):
        oil_id = products["oil"].id
        assert catalog_service.reserve_stock(oil_id, 6) is False
        assert catalog_service.reserve_stock(oil_id, 5) is True
        db_session.commit()
        assert _stock(db_session, oil_id) == 0
        assert catalog_service.reserve_stock(oil_id, 1) is False


class TestSnapshots:

    def test_price_change_does_not_alter_history(self, db_session, customer, products):
        order = place_order([_line(products["rice"], 2)], 0, customer_id=customer.id)
        order_id = order.id

        catalog_service.update_product(products["rice"].id, patch={"price_cents": 99900, "name": "Premium Rice"})

        db_session.expire_all()
        stored = order_service.get_order(order_id)
        assert stored.lines[0].unit_price_cents == 10000
        assert stored.lines[0].name == "Basmati Rice"
        assert stored.total_cents == 21600

    def test_discount_does_not_alter_history(self, db_session, customer, products):
        order = place_order([_line(products["oil"], 1)], 0, customer_id=customer.id)
        order_id = order.id

        catalog_service.apply_discount(products["oil"].id, 20000, notify=False)

        db_session.expire_all()
        assert order_service.get_order(order_id).lines[0].unit_price_cents == 25000


class TestBillingOnBehalf:

    def test_manager_bills_customer(self, db_session, manager, customer, products):
        order = place_order_for(manager, [_line(products["soap"], 1)], 0, None, customer_id=customer.id)
        assert order.customer_id == customer.id
        assert order.created_by_user_id == manager.id
        assert _dues(db_session, customer.id) == 4320
        assert _dues(db_session, manager.id) == 0

    def test_customer_cannot_bill_someone_else(self, db_session, customer, other_customer, products):
        with pytest.raises(AuthorizationError):
            place_order_for(customer, [_line(products["soap"], 1)], customer_id=other_customer.id)
        assert db_session.query(Order).count() == 0

    def test_customer_billing_self_explicitly(self, db_session, customer, products):
        order = place_order_for(customer, [_line(products["soap"], 1)], customer_id=customer.id)
        assert order.customer_id == customer.id

    def test_manager_billing_unknown_customer(self, db_session, manager, products):
        with pytest.raises(NotFoundError):
            place_order_for(manager, [_line(products["soap"], 1)], customer_id=424242)


class TestOrderReads:

    def test_owner_and_manager_can_view(self, db_session, manager, customer, other_customer, products):
        order = place_order([_line(products["soap"], 1)], 0, customer_id=customer.id)

        assert order_service.get_order(order.id, viewer=customer).id == order.id
        assert order_service.get_order(order.id, viewer=manager).id == order.id
        with pytest.raises(AuthorizationError):
            order_service.get_order(order.id, viewer=other_customer)

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.get_order(12345)

    def test_customer_orders_newest_first(self, db_session, customer, other_customer, products):
        first = place_order([_line(products["soap"], 1)], 0, customer_id=customer.id).id
        place_order([_line(products["soap"], 1)], 0, customer_id=other_customer.id)
        second = place_order([_line(products["rice"], 1)], 0, customer_id=customer.id).id

        assert [o.id for o in order_service.list_customer_orders(customer.id)] == [second, first]
        assert len(order_service.list_orders()) == 3


class TestLedgerConsistency:

    def test_dues_match_ledger_after_mixed_activity(self, db_session, manager, customer, products):
        place_order([_line(products["rice"], 3)], 5000, customer_id=customer.id)
        place_order([_line(products["soap"], 2), _line(products["oil"], 1)], 0, customer_id=customer.id)
        ledger_service.record_payment(customer.id, None, 12000, "ONLINE")
        place_order([_line(products["rice"], 1)], 20000, customer_id=customer.id)
        ledger_service.record_payment(customer.id, None, 500)

        assert _dues(db_session, customer.id) == ledger_service.replay_balance(customer.id)
        assert ledger_service.reconcile() == []
