"""
Pytest fixtures for BizTracker backend tests.

Provides an in-memory app, a cleaned database per test, and small factories
for stock items, customers, and sales.
"""

import pytest

from biztracker import create_app
from biztracker.extensions import db
from biztracker.models import Customer, Item
from biztracker.services import sales_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before the test runs."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory for stock items."""
    def _make(name="Rice (50kg bag)", price_cents=10_000, wholesale_price_cents=7_000, stock=100):
        item = Item(
            name=name,
            category="Groceries",
            price_cents=price_cents,
            wholesale_price_cents=wholesale_price_cents,
            stock=stock,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    """Factory for customers."""
    def _make(name="Mama Ngozi", phone=None):
        customer = Customer(name=name, phone=phone)
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope='function')
def make_sale(db_session, make_item):
    """
    Factory for sales recorded through the sales service.

    `created_at` pins the sale date so FIFO ordering is deterministic.
    """
    def _make(buyer_name="Mama Ngozi", total_cents=10_000, payment_status="debt",
              balance_cents=None, customer_id=None, created_at=None, item=None):
        item = item or make_item(name=f"Item for {buyer_name}", price_cents=total_cents)
        sale = sales_service.create_sale(
            buyer_name=buyer_name,
            lines=[(item.id, 1)],
            payment_status=payment_status,
            balance_cents=balance_cents,
            customer_id=customer_id,
        )
        if created_at is not None:
            sale.created_at = created_at
            if sale.debt is not None:
                sale.debt.created_at = created_at
            db_session.commit()
        return sale

    return _make
