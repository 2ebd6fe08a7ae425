"""
Pytest fixtures for shop ledger tests.

Provides the application on an in-memory database, a per-test table wipe,
seeded customers/products/suppliers built through the services, and the
Flask test client.
"""

import pytest

from shopledger import create_app
from shopledger.config import TestConfig
from shopledger.extensions import db
from shopledger.services import customer_service, pocket_money_service, stock_service, supplier_service
from shopledger.services.audit_service import Actor


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
def actor():
    return Actor(name="Mary Clerk", role="cashier")

@pytest.fixture(scope='function')
def learner(db_session, actor):
    """Day learner enrolled in program A."""
    return customer_service.create_customer(
        name="Jane Wanjiku",
        class_name="Form 2",
        admission_number="ADM-001",
        program_membership="A",
        guardian_name="Paul Wanjiku",
        guardian_phone="0711000000",
        actor=actor,
    )

@pytest.fixture(scope='function')
def boarder(db_session, actor):
    """Boarding learner with pocket money enabled (zero balance)."""
    customer = customer_service.create_customer(
        name="Peter Otieno",
        class_name="Form 3",
        admission_number="ADM-002",
        boarding_status="BOARDING",
        program_membership="B",
        actor=actor,
    )
    return pocket_money_service.enable(customer.id, actor=actor)

@pytest.fixture(scope='function')
def exercise_book(db_session, actor):
    return stock_service.create_product(
        sku="EXB-200",
        name="Exercise Book 200pg",
        department="Stationery",
        sell_price_cents=15000,
        buy_price_cents=10000,
        reorder_level=5,
        is_allocatable=True,
        initial_stock=50,
        actor=actor,
    )

@pytest.fixture(scope='function')
def pen(db_session, actor):
    return stock_service.create_product(
        sku="PEN-BLU",
        name="Blue Pen",
        department="Stationery",
        sell_price_cents=2000,
        buy_price_cents=1200,
        reorder_level=10,
        initial_stock=100,
        actor=actor,
    )

@pytest.fixture(scope='function')
def sweater(db_session, actor):
    return stock_service.create_product(
        sku="UNI-SWT",
        name="School Sweater",
        department="Uniform",
        sell_price_cents=120000,
        buy_price_cents=80000,
        reorder_level=2,
        initial_stock=10,
        actor=actor,
    )

@pytest.fixture(scope='function')
def snack(db_session, actor):
    return stock_service.create_product(
        sku="SNK-001",
        name="Biscuits",
        department="Canteen",
        sell_price_cents=500,
        initial_stock=30,
        actor=actor,
    )

@pytest.fixture(scope='function')
def supplier(db_session, actor):
    return supplier_service.create_supplier(
        name="Text Book Centre",
        contact_person="Ann",
        phone="0722000000",
        actor=actor,
    )
