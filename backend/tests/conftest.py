"""
Pytest fixtures for the retail POS backend tests.

Provides an in-memory application, a per-test table wipe and small
factories for users, products and historical transactions.
"""

import itertools
from datetime import datetime

import pytest

from retail_pos import create_app
from retail_pos.extensions import db
from retail_pos.models import Customer, Product, Transaction, TransactionItem, User
from retail_pos.services.transaction_service import LineItemInput, TransactionHeader


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'UNIT_OF_WORK_BACKOFF_SECONDS': 0,
        'REPORT_TIMEZONE': 'UTC',
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
    """Clear all data but keep schema."""
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()
    app.config['REPORT_TIMEZONE'] = 'UTC'


@pytest.fixture(scope='function')
def cashier(db_session):
    user = User(username="cashier", email="cashier@shop.local", role="cashier")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Walk-in Regular", email="regular@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def make_product(db_session):
    counter = {"n": 0}

    def _make(*, stock=10, price_cents=1000, cost_cents=500, min_stock_level=0, sku=None, is_active=True):
        counter["n"] += 1
        product = Product(
            sku=sku or f"SKU-{counter['n']:03d}",
            name=f"Product {counter['n']}",
            price_cents=price_cents,
            cost_cents=cost_cents,
            stock_quantity=stock,
            min_stock_level=min_stock_level,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


_history_numbers = itertools.count(1)


def stock_of(product_id: int) -> int:
    """Read stock straight from the database, bypassing the identity map."""
    return db.session.query(Product.stock_quantity).filter(Product.id == product_id).scalar()


def header_for(cashier_id: int, total_cents: int, **overrides) -> TransactionHeader:
    fields = {
        "user_id": cashier_id,
        "total_amount_cents": total_cents,
        "payment_type": "cash",
    }
    fields.update(overrides)
    return TransactionHeader(**fields)


def line(product_id: int, quantity: int, unit_price_cents: int = 1000) -> LineItemInput:
    return LineItemInput(product_id=product_id, quantity=quantity, unit_price_cents=unit_price_cents)


def insert_transaction(
    *,
    user_id: int,
    created_at: datetime,
    total_cents: int,
    items=(),
    discount_cents: int = 0,
    status: str = "completed",
    number: str | None = None,
) -> Transaction:
    """
    Write a historical transaction directly, without touching stock.

    items: iterable of (product, quantity, unit_price_cents).
    """
    transaction = Transaction(
        transaction_number=number or f"HIST-{created_at:%Y%m%d}-{next(_history_numbers):05d}",
        user_id=user_id,
        total_amount_cents=total_cents,
        discount_amount_cents=discount_cents,
        tax_amount_cents=0,
        payment_type="card",
        status=status,
        created_at=created_at,
        updated_at=created_at,
    )
    db.session.add(transaction)
    db.session.flush()
    for product, quantity, unit_price_cents in items:
        db.session.add(TransactionItem(
            transaction_id=transaction.id,
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            total_price_cents=quantity * unit_price_cents,
            unit_cost_cents=product.cost_cents,
            created_at=created_at,
        ))
    db.session.commit()
    return transaction
