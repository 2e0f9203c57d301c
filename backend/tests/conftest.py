"""
Pytest fixtures for storefront backend tests.

Provides an in-memory database per test, the test client, and small
factories for users, catalog, stock and orders.
"""

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models.users import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_DISTRIBUTOR
from storefront.services import order_service, product_service, token_service, user_service


TEST_PASSWORD = "Password123!"

SHIPPING_ADDRESS = {
    "line1": "100 Queen St W",
    "city": "Toronto",
    "province": "ON",
    "postal_code": "M5H 2N2",
    "country": "CA",
}


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'JWT_SECRET': 'test-secret',
        'BCRYPT_ROUNDS': 4,
        'CSRF_ENABLED': False,
        'RATELIMIT_ENABLED': False,
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
def make_user(app):
    """Factory: make_user("a@b.com", role=..., referred_by_code=...)."""
    def _make(email, role=ROLE_CUSTOMER, **kwargs):
        return user_service.create_user(email, TEST_PASSWORD, name=email.split("@")[0], role=role, **kwargs)
    return _make


@pytest.fixture(scope='function')
def customer(make_user):
    return make_user("buyer@test.local")


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("admin@test.local", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def distributor(make_user):
    return make_user("driver@test.local", role=ROLE_DISTRIBUTOR)


@pytest.fixture(scope='function')
def warehouse(app):
    return product_service.ensure_location("Main Warehouse")


@pytest.fixture(scope='function')
def make_variation(app):
    """Factory: make_variation(price_cents=1000, name="Mint 6mg") -> ProductVariation."""
    counter = {"n": 0}

    def _make(price_cents=1000, name=None, product_name="Northern Mint"):
        counter["n"] += 1
        product = product_service.create_product({
            "name": f"{product_name} {counter['n']}",
            "category": "Mint",
            "variations": [{
                "name": name or f"{counter['n'] * 3}mg",
                "sku": f"SKU-{counter['n']:04d}",
                "price_cents": price_cents,
            }],
        })
        return product.variations[0]
    return _make


@pytest.fixture(scope='function')
def stock(warehouse):
    """stock(variation, qty) puts qty units on hand at the main warehouse."""
    def _stock(variation, quantity):
        return product_service.adjust_inventory(
            variation.id, warehouse.id, quantity, product_service.MOVEMENT_RESTOCK,
        )
    return _stock


@pytest.fixture(scope='function')
def variation(make_variation, stock):
    """A $10.00 variation with 500 units on hand."""
    v = make_variation(price_cents=1000)
    stock(v, 500)
    return v


@pytest.fixture(scope='function')
def place_order(variation):
    """place_order(user, quantity=10, **kwargs) -> Order, using the default variation."""
    def _place(user, quantity=10, payment_method="ETransfer", **kwargs):
        return order_service.create_order(
            user.id,
            [{"variation_id": kwargs.pop("variation_id", variation.id), "quantity": quantity}],
            SHIPPING_ADDRESS,
            payment_method,
            **kwargs,
        )
    return _place


@pytest.fixture(scope='function')
def auth_headers(app):
    """auth_headers(user) -> Authorization header dict with a fresh access token."""
    def _headers(user):
        tokens = token_service.issue_token_pair(user)
        return {'Authorization': f'Bearer {tokens.access_token}'}
    return _headers
