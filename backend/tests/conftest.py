"""
Pytest fixtures for the store backend tests.

Provides an in-memory database, a clean slate per test, factories for the
common rows (client, product, user) and an authenticated test client.
"""

import pytest
from jewelpos import create_app
from jewelpos.extensions import db
from jewelpos.models import Client, Product, User
from jewelpos.services.auth_service import hash_password
from jewelpos.services import session_service


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'AUTH_MODE': 'password',
        'BUSINESS_NAME': 'Rubia Joias',
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('product-images')),
        'WHATSAPP_RELAY_URL': 'https://relay.test/whatsapp.php',
        'CATALOG_WHATSAPP_NUMBER': '5511999998888',
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


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    """Retries in run_in_transaction must not slow the suite down."""
    monkeypatch.setattr("jewelpos.services.concurrency.time.sleep", lambda seconds: None)


@pytest.fixture(scope='function')
def make_client(db_session):
    def _make(name="Maria Souza", tax_id=None, phone=None):
        c = Client(name=name, tax_id=tax_id, phone=phone)
        db_session.add(c)
        db_session.commit()
        return c
    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    counter = {"n": 0}

    def _make(description="Anel de prata", sale_price_cents=10000, stock_quantity=5, category="Anéis", cost_cents=None):
        counter["n"] += 1
        p = Product(
            code=f"{10000000 + counter['n']}",
            description=description,
            category=category,
            sale_price_cents=sale_price_cents,
            cost_cents=cost_cents,
            stock_quantity=stock_quantity,
        )
        db_session.add(p)
        db_session.commit()
        return p
    return _make


@pytest.fixture(scope='function')
def user(db_session):
    """Password-mode login user."""
    u = User(
        username="caixa",
        email="caixa@loja.local",
        password_hash=hash_password("Password123!"),
    )
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture(scope='function')
def auth_token(user):
    _, token = session_service.create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers(auth_token):
    return auth_headers(auth_token)
