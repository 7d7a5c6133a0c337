import mongomock
import pytest
from fastapi.testclient import TestClient

from database import create_document, ensure_indexes, get_db
from main import app
from schemas import Role
from security import authenticate, register_user


@pytest.fixture
def db():
    """Fresh in-memory database per test, with the production indexes."""
    database = mongomock.MongoClient()["storefront_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def test_client(db):
    """TestClient whose database dependency points at the in-memory database."""
    app.dependency_overrides[get_db] = lambda: db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def _headers_for(db, name, email, password, role=Role.USER):
    register_user(db, name, email, password, role=role)
    token = authenticate(db, email, password)["token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(db):
    return _headers_for(db, "Alice", "alice@example.com", "secret123")


@pytest.fixture
def other_user_headers(db):
    return _headers_for(db, "Bob", "bob@example.com", "secret456")


@pytest.fixture
def admin_headers(db):
    return _headers_for(db, "Admin", "admin@example.com", "adminpass", role=Role.ADMIN)


@pytest.fixture
def make_product(db):
    """Factory inserting a product document and returning its id."""
    def _make(name="Widget", price=10.5, stock_quantity=5, category="tools", active=True, **extra):
        data = {
            "name": name,
            "description": extra.pop("description", None),
            "price": price,
            "stock_quantity": stock_quantity,
            "category": category,
            "image_url": extra.pop("image_url", None),
            "active": active,
        }
        data.update(extra)
        return create_document(db, "product", data)
    return _make
