"""
Shared fixtures.

MongoDB is replaced by mongomock: ``pymongo.MongoClient`` is patched before
the application modules are imported, so ``database.db`` is an in-memory
database. Every test starts from empty collections.
"""

import os
from unittest import mock

import mongomock
import pytest

os.environ["DATABASE_URL"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "shopkart_test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENVIRONMENT"] = "test"

_mongo_patch = mock.patch("pymongo.MongoClient", mongomock.MongoClient)
_mongo_patch.start()

from fastapi.testclient import TestClient  # noqa: E402

import database  # noqa: E402
from auth import create_token, hash_password  # noqa: E402
from main import app  # noqa: E402

DEFAULT_PASSWORD = "Str0ngP@ss!"


@pytest.fixture(autouse=True)
def db():
    for name in database.db.list_collection_names():
        database.db.drop_collection(name)
    database.ensure_indexes()
    yield database.db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


_user_counter = 0


@pytest.fixture
def make_user(db):
    """Insert a user directly and return it with a ready-to-use token."""

    def _make(role="user", is_approved=True, is_super_admin=False, name=None, email=None,
              password=DEFAULT_PASSWORD):
        global _user_counter
        _user_counter += 1
        doc = {
            "name": name or f"Test User {_user_counter}",
            "email": email or f"user{_user_counter}@example.com",
            "password_hash": hash_password(password),
            "role": role,
            "is_approved": is_approved,
            "is_super_admin": is_super_admin,
            "created_at": database.now(),
            "updated_at": database.now(),
        }
        user_id = str(db["user"].insert_one(doc).inserted_id)
        token = create_token(user_id)
        return {
            "id": user_id,
            "email": doc["email"],
            "name": doc["name"],
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def super_admin(make_user):
    return make_user(role="admin", is_super_admin=True, name="Root Admin")


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", name="Shop Admin")


@pytest.fixture
def make_product(db, admin):
    def _make(**overrides):
        doc = {
            "user_id": admin["id"],
            "name": "Classic Tee",
            "description": "Soft cotton unisex t-shirt",
            "price": 19.99,
            "image": "/images/tee.jpg",
            "category": "Apparel",
            "count_in_stock": 10,
            "rating": 0,
            "num_reviews": 0,
            "num_purchases": 0,
            "reviews": [],
            "created_at": database.now(),
            "updated_at": database.now(),
        }
        doc.update(overrides)
        return str(db["product"].insert_one(doc).inserted_id)

    return _make