"""
Shared fixtures

The module-level `database.db` handle is swapped for a fresh mongomock
database per test, so routes, services and stores all see the same data.
"""
import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import database
from main import app
from schemas import User
from store import ProductCatalog, UserStore


@pytest.fixture
def mongo_db(monkeypatch):
    """Fresh in-memory database patched in as the application database."""
    db = mongomock.MongoClient()["storefront_test"]
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def test_client(mongo_db):
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def products(mongo_db):
    """Seed the catalog with three products and return their ids as strings."""
    docs = [
        {"title": "Linen Shirt", "description": "Breathable summer shirt", "price": 40.0,
         "category": "Clothing", "images": [], "stock": 10, "rating": 4.5},
        {"title": "Canvas Sneakers", "description": "Everyday low-tops", "price": 55.5,
         "category": "Shoes", "images": [], "stock": 4, "rating": 4.1},
        {"title": "Wool Beanie", "description": "Warm knit hat", "price": 12.25,
         "category": "Accessories", "images": [], "stock": 30, "rating": 4.8},
    ]
    result = mongo_db["product"].insert_many(docs)
    return [str(oid) for oid in result.inserted_ids]


@pytest.fixture
def user_store(mongo_db) -> UserStore:
    return UserStore(mongo_db)


@pytest.fixture
def catalog(mongo_db) -> ProductCatalog:
    return ProductCatalog(mongo_db)


@pytest.fixture
def user_id(user_store) -> str:
    """A stored user with an empty cart, created without going through bcrypt."""
    user = user_store.create(User(name="Ada Shopper", email="ada@gmail.com", password_hash="not-a-real-hash"))
    return str(user["_id"])


@pytest.fixture
def product_id() -> str:
    return str(ObjectId())


@pytest.fixture
def registered(test_client):
    """Register a user through the API; returns the signup response body."""
    response = test_client.post(
        "/api/user/signup",
        json={"name": "Grace Buyer", "email": "grace@gmail.com", "password": "s3cret-pass"},
    )
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def auth_headers(registered) -> dict:
    return {"Authorization": f"Bearer {registered['token']}"}
