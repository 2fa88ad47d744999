import pytest
from fastapi.testclient import TestClient

from storefront.api.deps import get_db, get_producer
from storefront.core.auth import create_access_token
from storefront.db.models import Category, Product, User
from storefront.db.session import Database
from storefront.main import app
from storefront.services.checkout import CheckoutCoordinator
from storefront.store.cart_store import CartStore
from storefront.store.catalog_store import CatalogStore
from storefront.store.order_store import OrderStore

CUSTOMER_ID = 1
OTHER_CUSTOMER_ID = 2
ADMIN_ID = 3


class FakeProducer:
    """Collects events instead of publishing them."""

    def __init__(self):
        self.sent = []

    def send(self, topic, key, value):
        self.sent.append((topic, key, value))

    def types(self):
        return [value["type"] for _, _, value in self.sent]


@pytest.fixture()
def db():
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.drop_all()
    database.dispose()


@pytest.fixture()
def seeded(db):
    """Three users, one category and three products; returns the product ids by key."""
    with db.session() as s:
        s.add_all([
            User(id=CUSTOMER_ID, email="alice@example.com", name="Alice", role="customer"),
            User(id=OTHER_CUSTOMER_ID, email="bob@example.com", name="Bob", role="customer"),
            User(id=ADMIN_ID, email="admin@example.com", name="Admin", role="admin"),
        ])
        gadgets = Category(name="Gadgets", description="Small useful things")
        s.add(gadgets)
        s.flush()
        widget = Product(name="Widget", description="A blue widget", price_cents=1000, stock=5,
                         status="available", category_id=gadgets.id)
        gizmo = Product(name="Gizmo", description="A red gizmo", price_cents=550, stock=3,
                        status="available", category_id=gadgets.id)
        relic = Product(name="Relic", description="No longer sold", price_cents=2500, stock=10,
                        status="unavailable")
        s.add_all([widget, gizmo, relic])
        s.flush()
        ids = {"widget": widget.id, "gizmo": gizmo.id, "relic": relic.id, "category": gadgets.id}
    return ids


@pytest.fixture()
def producer():
    return FakeProducer()


@pytest.fixture()
def catalog(db):
    return CatalogStore(db)


@pytest.fixture()
def carts(db):
    return CartStore(db)


@pytest.fixture()
def orders(db, producer):
    return OrderStore(db, producer, strict_transitions=False)


@pytest.fixture()
def coordinator(db, carts, orders, catalog):
    return CheckoutCoordinator(db, carts, orders, catalog, atomic=True, decrement_stock=True)


@pytest.fixture()
def client(db, producer):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_producer] = lambda: producer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(user_id, role="customer"):
    token, _ = create_access_token(user_id, role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def customer_headers():
    return auth_headers(CUSTOMER_ID)


@pytest.fixture()
def other_headers():
    return auth_headers(OTHER_CUSTOMER_ID)


@pytest.fixture()
def admin_headers():
    return auth_headers(ADMIN_ID, role="admin")
