"""
Pytest fixtures for stockpos tests.

Provides an in-memory database (cleared per test), a logged-in test client
and a product factory that goes through the catalog service so every
product starts with a consistent movement log.
"""

import pytest

from stockpos import create_app
from stockpos.extensions import db
from stockpos.models import Product, User
from stockpos.services import products_service
from stockpos.services.auth_service import hash_password


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh database for each test."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Unauthenticated test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def user(db_session, password_hash):
    user = User(
        email="cashier@stockpos.test",
        name="Cashier",
        password_hash=password_hash,
        is_admin=True,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def auth_token(client, user):
    return get_auth_token(client, user.email, TEST_PASSWORD)


@pytest.fixture(scope='function')
def auth_client(app, user):
    """Test client holding a session cookie from a real login."""
    test_client = app.test_client()
    response = test_client.post('/api/auth/login', json={
        'email': user.email,
        'password': TEST_PASSWORD,
    })
    assert response.status_code == 200
    return test_client


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory creating products through the catalog service."""
    counter = {"n": 0}

    def _make(stock: int = 10, selling_price: int = 100000, **fields) -> Product:
        counter["n"] += 1
        patch = {
            "sku": fields.pop("sku", f"SKU-{counter['n']:03d}"),
            "name": fields.pop("name", f"Product {counter['n']}"),
            "selling_price": selling_price,
            "stock": stock,
        }
        patch.update(fields)
        created = products_service.create_product(patch=patch)
        return db_session.get(Product, created["id"])

    return _make


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
