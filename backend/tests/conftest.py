"""
Pytest fixtures for order CRM backend tests.

Provides an in-memory database per test, one account per role, a vendor
with its generated credentials, catalogue products and auth helpers.
"""

import pytest

from ordercrm import create_app
from ordercrm.extensions import db
from ordercrm.models import Product
from ordercrm.services.auth_service import create_user
from ordercrm.services import vendor_service


PASSWORD = "Password123!"


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_FOLDER': str(tmp_path / 'upload'),
        'BCRYPT_LOG_ROUNDS': 4,
        'PUBLIC_BASE_URL': 'https://crm.example.com',
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


def _make_user(username: str, role: str):
    user = create_user(username=username, password=PASSWORD, role=role)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(app):
    return _make_user("admin", "admin")


@pytest.fixture(scope='function')
def supplier_user(app):
    return _make_user("supplier", "supplier")


@pytest.fixture(scope='function')
def client_user(app):
    return _make_user("client", "client")


@pytest.fixture(scope='function')
def vendor_account(app):
    """(vendor, plaintext_password) for a freshly provisioned vendor."""
    return vendor_service.create_vendor({
        "name": "Acme Supplies",
        "contact_person": "Jane Roe",
        "email": "orders@acme.example",
        "phone": "+15550001",
    })


@pytest.fixture(scope='function')
def vendor(vendor_account):
    return vendor_account[0]


@pytest.fixture(scope='function')
def other_vendor_account(app):
    return vendor_service.create_vendor({"name": "Globex", "email": "sales@globex.example"})


@pytest.fixture(scope='function')
def other_vendor(other_vendor_account):
    return other_vendor_account[0]


@pytest.fixture(scope='function')
def product(app):
    """Visible product with no stock yet."""
    product = Product(
        item_number="ITEM-001",
        name="Steel Bolt",
        description="Steel Bolt (ITEM-001)",
        images=[],
        specifications={},
        selling_price_cents=250,
        stock=0,
        visible_to_clients=True,
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture(scope='function')
def hidden_product(app):
    product = Product(
        item_number="ITEM-HIDDEN",
        name="Prototype Nut",
        description="Prototype Nut (ITEM-HIDDEN)",
        images=[],
        specifications={},
        stock=0,
        visible_to_clients=False,
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    return product


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json['data']['token']
    return None


def get_vendor_token(client, username: str, password: str) -> str:
    response = client.post('/api/auth/vendor-login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json['data']['token']
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture(scope='function')
def supplier_headers(client, supplier_user):
    return auth_headers(get_auth_token(client, "supplier"))


@pytest.fixture(scope='function')
def client_headers(client, client_user):
    return auth_headers(get_auth_token(client, "client"))


@pytest.fixture(scope='function')
def vendor_headers(client, vendor_account):
    vendor, password = vendor_account
    return auth_headers(get_vendor_token(client, vendor.username, password))


@pytest.fixture(scope='function')
def other_vendor_headers(client, other_vendor_account):
    vendor, password = other_vendor_account
    return auth_headers(get_vendor_token(client, vendor.username, password))


def create_order(client, headers, vendor_id, items, **extra):
    """POST /api/orders and return the created order payload."""
    body = {"vendor_id": vendor_id, "items": items}
    body.update(extra)
    resp = client.post('/api/orders', json=body, headers=headers)
    assert resp.status_code == 201, resp.json
    return resp.json['data']


def stock_of(product_id: int) -> int:
    """Stored stock, read fresh from the database."""
    db.session.expire_all()
    return db.session.get(Product, product_id).stock
