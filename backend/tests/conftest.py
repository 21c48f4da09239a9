import os
import sys
from pathlib import Path

import pytest

# Tests run against a private in-memory database and a fixed signing key
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.pop("ADMIN_PASSWORD", None)

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from fastapi.testclient import TestClient  # noqa: E402

import auth  # noqa: E402
import models  # noqa: E402
from database import SessionLocal, engine  # noqa: E402
from main import app  # noqa: E402


@pytest.fixture
def db():
    models.Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        models.Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_user(db):
    def _make_user(username, password="secret123", role=models.Role.CASHIER.value, email=None):
        user = models.User(
            username=username,
            email=email or f"{username}@warung.co.id",
            password_hash=auth.get_password_hash(password),
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_product(db):
    def _make_product(name="Nasi Goreng", price=25000, stock=50, category="FOOD", is_active=True):
        product = models.Product(name=name, price=price, stock=stock, category=category, is_active=is_active)
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    return _make_product


@pytest.fixture
def client(db):
    return TestClient(app)


def login(test_client, username, password="secret123"):
    response = test_client.post("/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response


@pytest.fixture
def admin_client(db, make_user):
    make_user("admin", role=models.Role.ADMIN.value)
    test_client = TestClient(app)
    login(test_client, "admin")
    return test_client


@pytest.fixture
def cashier_client(db, make_user):
    make_user("alma", role=models.Role.CASHIER.value)
    test_client = TestClient(app)
    login(test_client, "alma")
    return test_client
