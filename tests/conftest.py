import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
import database
import main
import settings_store
from schemas import Product

ADMIN_EMAIL = "admin@goodluckfashion.in"
SHOPPER_EMAIL = "asha@mailbox.in"


@pytest.fixture
def fake_db(monkeypatch):
    fake = mongomock.MongoClient()["storefront_test"]
    for module in (database, auth, main, settings_store):
        monkeypatch.setattr(module, "db", fake)
    monkeypatch.setattr(auth, "ADMIN_EMAILS", {ADMIN_EMAIL})
    return fake


@pytest.fixture
def client(fake_db):
    with TestClient(main.app) as c:
        yield c


def register(client, email, name="Test User", password="secret123"):
    res = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


@pytest.fixture
def admin_headers(client):
    return register(client, ADMIN_EMAIL, name="Store Admin")


@pytest.fixture
def user_headers(client):
    return register(client, SHOPPER_EMAIL, name="Asha")


@pytest.fixture
def make_product(fake_db):
    def _make(**fields):
        data = {
            "name": "Linen Shirt",
            "category": "men",
            "price": 50,
            "stock": 10,
            "images": [{"url": "https://img.example.in/linen.jpg", "public_id": "linen"}],
        }
        data.update(fields)
        return database.create_document("product", Product(**data))
    return _make
