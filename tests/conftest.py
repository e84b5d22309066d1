import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOCK_WAIT_SECONDS", "0.2")

from decimal import Decimal
from threading import Lock

import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.api import deps
from marketplace.data.database import Base, get_db, init_db
from marketplace.main import create_app
from marketplace.services.catalog_client import CatalogClient
from marketplace.services.lock_service import LockService


class FakeCatalog(CatalogClient):
    """CatalogClient backed by a dict instead of HTTP."""

    def __init__(self):
        super().__init__(base_url="http://catalog.test", timeout=1)
        self.products = {}
        self.sales = {}
        self.down = False

    def put(self, product_id, price, seller_id, is_active=True, title=None):
        self.products[product_id] = {
            "id": product_id,
            "title": title or f"Product {product_id}",
            "price": str(Decimal(str(price))),
            "seller_id": seller_id,
            "is_active": is_active,
        }

    def _get_product(self, product_id):
        if self.down:
            raise requests.ConnectionError("catalog down")
        return self.products.get(product_id)

    def _post_sales(self, product_id, quantity):
        if product_id not in self.products:
            return False
        self.sales[product_id] = self.sales.get(product_id, 0) + quantity
        return True


class InProcessLockService(LockService):
    """LockService with the redis calls replaced by a dict."""

    def __init__(self):
        self._mutex = Lock()
        self.held = {}

    def acquire(self, key, token, ttl):
        with self._mutex:
            if key in self.held:
                return False
            self.held[key] = token
            return True

    def release(self, key, token):
        with self._mutex:
            if self.held.get(key) != token:
                return False
            del self.held[key]
            return True


class RecordingSales:
    def __init__(self):
        self.calls = []

    def record_sales(self, order_reference, quantities):
        self.calls.append((order_reference, dict(quantities)))


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def catalog():
    return FakeCatalog()


@pytest.fixture()
def locks():
    return InProcessLockService()


@pytest.fixture()
def sales():
    return RecordingSales()


@pytest.fixture()
def client(session_factory, catalog, locks, sales):
    app = create_app()

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[deps.get_catalog_client] = lambda: catalog
    app.dependency_overrides[deps.get_lock_service] = lambda: locks
    app.dependency_overrides[deps.get_sales_service] = lambda: sales
    return TestClient(app)
