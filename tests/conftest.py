"""
Pytest fixtures for wareflow tests.

Provides the application on an in-memory database, per-test table wipes,
party/item factories, actors and a test client with actor headers.
"""

import pytest
from wareflow import create_app
from wareflow.extensions import db
from wareflow.models import Dealer, InventoryRecord, Item, Salesman, Warehouse
from wareflow.services.scope_service import Actor


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'TRANSACTION_RETRY_BACKOFF': 0.001,
}


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
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()
    db.session.expunge_all()


# =============================================================================
# PARTIES AND ITEMS
# =============================================================================

@pytest.fixture(scope='function')
def warehouse_a(db_session):
    warehouse = Warehouse(name="Warehouse A", username="wh_a", status="active")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def warehouse_b(db_session):
    warehouse = Warehouse(name="Warehouse B", username="wh_b", status="active")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def dealer(db_session, warehouse_a):
    dealer = Dealer(name="Dealer One", mobile_number="9100000001", warehouse_id=warehouse_a.id)
    db_session.add(dealer)
    db_session.commit()
    return dealer


@pytest.fixture(scope='function')
def other_dealer(db_session, warehouse_b):
    dealer = Dealer(name="Dealer Two", mobile_number="9100000002", warehouse_id=warehouse_b.id)
    db_session.add(dealer)
    db_session.commit()
    return dealer


@pytest.fixture(scope='function')
def salesman(db_session, warehouse_a):
    salesman = Salesman(name="Salesman One", mobile_number="9200000001", warehouse_id=warehouse_a.id)
    db_session.add(salesman)
    db_session.commit()
    return salesman


@pytest.fixture(scope='function')
def item(db_session):
    """Item priced 10.00."""
    item = Item(name="Cement 50kg", price_cents=1000, status="active")
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def second_item(db_session):
    item = Item(name="Steel Rod", price_cents=2500, status="active")
    db_session.add(item)
    db_session.commit()
    return item


def stock(warehouse, item, quantity):
    """Seed an inventory record directly, bypassing the ledger."""
    db.session.add(InventoryRecord(warehouse_id=warehouse.id, item_id=item.id, quantity=quantity))
    db.session.commit()


def quantity_of(warehouse, item):
    db.session.expire_all()
    record = db.session.query(InventoryRecord).filter_by(warehouse_id=warehouse.id, item_id=item.id).first()
    return record.quantity if record else 0


# =============================================================================
# ACTORS
# =============================================================================

@pytest.fixture(scope='function')
def owner():
    return Actor(role="owner", id=1)


@pytest.fixture(scope='function')
def warehouse_actor(warehouse_a):
    return Actor(role="warehouse", id=warehouse_a.id)


@pytest.fixture(scope='function')
def other_warehouse_actor(warehouse_b):
    return Actor(role="warehouse", id=warehouse_b.id)


@pytest.fixture(scope='function')
def dealer_actor(dealer):
    return Actor(role="dealer", id=dealer.id)


@pytest.fixture(scope='function')
def salesman_actor(salesman):
    return Actor(role="salesman", id=salesman.id)


def actor_headers(role: str, actor_id: int) -> dict:
    """Helper to create the identity headers the API trusts."""
    return {'X-Actor-Role': role, 'X-Actor-Id': str(actor_id)}
