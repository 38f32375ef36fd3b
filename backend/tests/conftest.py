"""
Pytest fixtures for shop ledger backend tests.

Provides the app on an in-memory database, seeded users and products,
bearer-token headers and a recording push dispatcher.
"""

import pytest
from shopledger import create_app
from shopledger.errors import DependencyError
from shopledger.extensions import db
from shopledger.models import User, Product
from shopledger.permissions import Role
from shopledger.services import session_service
from shopledger.services.push_service import EXTENSION_KEY, PushDispatcher


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'OTP_FIXED_CODE': '123456',
    'TAX_RATE_BPS': 800,
    'OVERDUE_THRESHOLD_DAYS': 7,
    'LOW_STOCK_THRESHOLD': 10,
    'STORE_TIMEZONE': 'UTC',
    'CURRENCY_SYMBOL': '₹',
}


class RecordingDispatcher(PushDispatcher):
    """Collects sends; users whose id is in fail_for raise DependencyError."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, user, title, body):
        if user.id in self.fail_for:
            raise DependencyError("push gateway unavailable")
        self.sent.append((user.id, title, body))
        return True


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def push_outbox(app):
    """Swap in a recording dispatcher for the duration of a test."""
    original = app.extensions[EXTENSION_KEY]
    dispatcher = RecordingDispatcher()
    app.extensions[EXTENSION_KEY] = dispatcher
    yield dispatcher
    app.extensions[EXTENSION_KEY] = original


def _make_user(db_session, name, phone, role=Role.CUSTOMER, push_token=None, pending_dues_cents=0):
    user = User(
        name=name,
        phone=phone,
        role=role,
        push_token=push_token,
        pending_dues_cents=pending_dues_cents,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manager(db_session):
    return _make_user(db_session, "Store Manager", "9000000000", role=Role.MANAGER)


@pytest.fixture(scope='function')
def customer(db_session):
    """Customer with a registered device."""
    return _make_user(db_session, "Asha", "9000000001", push_token="device-token-asha")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return _make_user(db_session, "Ravi", "9000000002")


@pytest.fixture(scope='function')
def make_user(db_session):
    def _factory(name, phone, **kwargs):
        return _make_user(db_session, name, phone, **kwargs)
    return _factory


@pytest.fixture(scope='function')
def products(db_session):
    """
    rice: 100.00, 50 in stock
    oil:  250.00, 5 in stock (low stock)
    soap:  40.00, 20 in stock
    """
    items = {
        "rice": Product(name="Basmati Rice", category="Grains", price_cents=10000, stock=50, unit="kg"),
        "oil": Product(name="Mustard Oil", category="Oils", price_cents=25000, stock=5, unit="l"),
        "soap": Product(name="Neem Soap", category="Personal Care", price_cents=4000, stock=20, unit="pc"),
    }
    for product in items.values():
        db_session.add(product)
    db_session.commit()
    return items


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def manager_headers(manager):
    return headers_for(manager)


@pytest.fixture(scope='function')
def customer_headers(customer):
    return headers_for(customer)


@pytest.fixture(scope='function')
def other_customer_headers(other_customer):
    return headers_for(other_customer)
