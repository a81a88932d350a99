"""
Pytest fixtures for the purchasing core tests.

Provides test database setup, catalog / directory factories, cutoff window
helpers, fake notification senders and the test client.
"""

import threading
import time
from datetime import timedelta

import pytest

from ordering import create_app
from ordering.extensions import db
from ordering.models import Company, Product
from ordering.services import cutoff_service
from ordering.services.notification_service import SendResult
from ordering.time_utils import utcnow


ACTOR = "ops-kim"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BUSINESS_TIMEZONE': 'UTC',
        'CUTOFF_CATEGORIES': [],
        'AUTO_CONFIRM_SALE_ORDERS': True,
        'NOTIFICATION_BACKEND': 'log',
        'NOTIFICATION_TIMEOUT_SECONDS': 2,
        'NOTIFICATION_SIGNATURE': 'Please confirm and reply.',
    })

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
def make_supplier(db_session):
    """Factory: directory entry for a supplier with one SMS recipient by default."""
    def _make(business_id="111-11-11111", name="Fresh Farm", recipients=None):
        if recipients is None:
            recipients = [{"name": "Manager Lee", "phone": "010-1111-2222"}]
        company = Company(business_id=business_id, name=name, company_type="supplier", recipients=recipients)
        db_session.add(company)
        db_session.commit()
        return company
    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: catalog product."""
    def _make(product_id="P-TOFU", name="Tofu", spec="300g", category="daily-fresh",
              supplier_id="111-11-11111", purchase_price=700, sale_price=1000,
              stock_quantity=None, minimum_stock=None, is_active=True):
        product = Product(
            product_id=product_id,
            name=name,
            spec=spec,
            category=category,
            supplier_id=supplier_id,
            purchase_price=purchase_price,
            sale_price=sale_price,
            stock_quantity=stock_quantity,
            minimum_stock=minimum_stock,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def supplier(make_supplier):
    return make_supplier()


@pytest.fixture(scope='function')
def tofu(make_product, supplier):
    return make_product()


@pytest.fixture(scope='function')
def day_start():
    """09:00 of a day safely in the past, so every timestamp in a test precedes utcnow()."""
    return (utcnow() - timedelta(days=1)).replace(hour=9, minute=0, second=0, microsecond=0)


@pytest.fixture(scope='function')
def open_window(db_session, day_start):
    return cutoff_service.open_window(actor=ACTOR, at=day_start)


def item(product_id="P-TOFU", quantity=1, unit_price=1000, **extra):
    data = {"product_id": product_id, "quantity": quantity, "unit_price": unit_price}
    data.update(extra)
    return data


class RecordingSender:
    """Fake sender: records every call and answers with a fixed outcome."""

    def __init__(self, success=True, error="Gateway rejected message", fail_for=()):
        self.success = success
        self.error = error
        self.fail_for = set(fail_for)
        self.calls = []
        self._lock = threading.Lock()

    def send(self, recipients, message, *, timeout):
        with self._lock:
            self.calls.append({"recipients": list(recipients), "message": message, "timeout": timeout})
        if not self.success or any(marker in message for marker in self.fail_for):
            return SendResult(success=False, error=self.error)
        return SendResult(success=True, provider_message_id=f"msg-{len(self.calls)}")

    def sent_order_numbers(self):
        numbers = []
        for call in self.calls:
            first_line = call["message"].splitlines()[0]
            numbers.append(first_line.removeprefix("[Purchase Order ").rstrip("]"))
        return numbers


class SlowSender:
    """Fake sender that sleeps before answering success; counts calls as they start."""

    def __init__(self, delay):
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def send(self, recipients, message, *, timeout):
        with self._lock:
            self.calls += 1
        time.sleep(self.delay)
        return SendResult(success=True, provider_message_id="late")


class ExplodingSender:
    def send(self, recipients, message, *, timeout):
        raise RuntimeError("socket closed")


def actor_headers(actor=ACTOR) -> dict:
    """Helper to create actor identity headers."""
    return {'X-Actor-Id': actor}
