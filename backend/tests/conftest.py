import mongomock
import pytest
from pymongo.errors import ServerSelectionTimeoutError

from app import create_app
from storage import DocumentStore


@pytest.fixture
def store():
    store = DocumentStore(mongomock.MongoClient().db)
    store.ensure_indexes()
    return store


@pytest.fixture
def app(store):
    app = create_app(
        {
            "TESTING": True,
            "JWT_SECRET_KEY": "test-secret",
            "BCRYPT_ROUNDS": 4,
        },
        store=store,
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seeded_products(store):
    products = [
        {"name": "Cheap tee", "price": 9.99, "rating": 3, "category": "tshirt", "flashSale": False, "topRated": False},
        {"name": "Basic tee", "price": 10, "rating": 4, "category": "tshirt", "flashSale": True, "topRated": False},
        {"name": "Polo", "price": 35.5, "rating": 5, "category": "polo", "flashSale": "true", "topRated": True},
        {"name": "Hoodie", "price": 50, "rating": 4.5, "category": "hoodie", "flashSale": True, "topRated": True},
        {"name": "Jacket", "price": 50.01, "rating": 2, "category": "jacket", "flashSale": False, "topRated": "true"},
    ]
    for product in products:
        store.insert_one("products", product)
    return products


class UnreachableCollection:
    def __getattr__(self, operation):
        def fail(*args, **kwargs):
            raise ServerSelectionTimeoutError("db01:27017: connection refused")

        return fail


class UnreachableDatabase:
    def __getitem__(self, name):
        return UnreachableCollection()


@pytest.fixture
def unreachable_db(store, monkeypatch):
    monkeypatch.setattr(store, "db", UnreachableDatabase())
