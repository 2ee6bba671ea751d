"""
Pytest fixtures for POS backend tests.

Provides the application on an in-memory database, per-test table cleanup,
model factories and auth helpers for API tests.
"""

import pytest
from pos_erp import create_app
from pos_erp.config import Config
from pos_erp.extensions import db
from pos_erp.models import Client, Product, ReturnVoucher, Warehouse, WarehouseStock
from pos_erp.services.auth_service import create_user

PASSWORD = "Password123!"


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_ROUNDS = 4


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
def cashier(db_session):
    return create_user(username="cashier", password=PASSWORD, name="Cajero Uno", role="cashier")


@pytest.fixture(scope='function')
def other_cashier(db_session):
    return create_user(username="cashier2", password=PASSWORD, name="Cajero Dos", role="cashier")


@pytest.fixture(scope='function')
def manager(db_session):
    return create_user(username="manager", password=PASSWORD, name="Gerente", role="manager")


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(stock=10, price1_cents=1000, **fields)."""
    counter = {"n": 0}

    def _make(stock=10, price1_cents=1000, **fields):
        counter["n"] += 1
        product = Product(
            code=fields.pop("code", f"P-{counter['n']:03d}"),
            name=fields.pop("name", f"Producto {counter['n']}"),
            stock=stock,
            price1_cents=price1_cents,
            **fields,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product(name="Frijol", stock=10, price1_cents=1000)


@pytest.fixture(scope='function')
def make_client(db_session):
    def _make(name="Abarrotes Lupita", credit_limit_cents=100000, balance_cents=0, **fields):
        row = Client(
            name=name,
            credit_limit_cents=credit_limit_cents,
            balance_cents=balance_cents,
            **fields,
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _make


@pytest.fixture(scope='function')
def warehouse(db_session):
    row = Warehouse(name="Bodega Principal", is_active=True)
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def stock_in_warehouse(db_session):
    def _put(warehouse, product, qty):
        row = WarehouseStock(warehouse_id=warehouse.id, product_id=product.id, stock=qty)
        db_session.add(row)
        db_session.commit()
        return row

    return _put


@pytest.fixture(scope='function')
def make_voucher(db_session):
    def _make(client, available_cents, folio="V-0001"):
        voucher = ReturnVoucher(
            folio=folio,
            client_id=client.id,
            amount_cents=available_cents,
            available_cents=available_cents,
            status="enabled",
        )
        db_session.add(voucher)
        db_session.commit()
        return voucher

    return _make


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, "cashier"))


@pytest.fixture(scope='function')
def other_headers(client, other_cashier):
    return auth_headers(get_auth_token(client, "cashier2"))
