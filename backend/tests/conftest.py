"""
Pytest fixtures for RexPOS backend tests.

Provides an in-memory database, a test client and store-scoped catalog
fixtures built through the services themselves.
"""

import pytest

from rexpos import create_app
from rexpos.extensions import db
from rexpos.models import Role
from rexpos.services import catalog_service, store_service, supplier_service, user_service
from rexpos.services.role_service import create_default_roles


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
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
    """Create fresh database for each test."""
    db.session.remove()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    app.config['ALLOW_NEGATIVE_STOCK'] = True

    yield db.session

    db.session.rollback()
    db.session.remove()


@pytest.fixture(scope='function')
def store(db_session):
    return store_service.create_store({
        "name": "Main Store",
        "code": "main",
        "address": "1 Mall Road",
        "phone": "0300-0000000",
        "email": "main@rexpos.test",
    })


@pytest.fixture(scope='function')
def other_store(db_session):
    return store_service.create_store({
        "name": "Branch Store",
        "code": "BR1",
        "address": "2 Canal Road",
        "phone": "0300-1111111",
        "email": "branch@rexpos.test",
    })


@pytest.fixture(scope='function')
def roles(db_session):
    create_default_roles()
    db_session.commit()
    return {role.name: role for role in db_session.query(Role).all()}


@pytest.fixture(scope='function')
def admin_user(db_session, roles):
    return user_service.create_user({
        "email": "admin@rexpos.test",
        "full_name": "Admin User",
        "password": TEST_PASSWORD,
        "role_id": roles["admin"].id,
        "global_role": "ADMIN",
    })


@pytest.fixture(scope='function')
def category(store):
    return catalog_service.create_category(store.id, {"name": "Mobile Phones"})


@pytest.fixture(scope='function')
def supplier(store):
    return supplier_service.create_supplier(store.id, {"name": "Acme Traders", "phone": "042-111"})


@pytest.fixture(scope='function')
def make_product(store, category):
    """Factory for products in the main store; keyword overrides go into the payload."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        payload = {
            "sku": f"sku-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "category_id": category.id,
            "buying_price_cents": 1000,
            "selling_price_cents": 1500,
            "stock_level": 0,
            "min_stock_level": 5,
        }
        payload.update(overrides)
        return catalog_service.create_product(store.id, payload)

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product()
