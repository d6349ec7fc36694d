"""Pytest configuration for the Car Hub API tests."""

import os
import uuid
from datetime import datetime, timedelta, timezone

# Settings are read lazily, but keep imports safe if anything asks for them.
os.environ.setdefault("DATABASE_URL", "mongodb://localhost:27017")
os.environ.setdefault("SUPABASE_URL", "https://carhub-test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import Identity, get_verifier
from catalog import CatalogStore
from database import Database, get_database
from errors import AuthError
from main import app
from reservations import ReservationLedger, ReservationService

ALICE = Identity(email="alice@example.com", subject_id="uid-alice")
BOB = Identity(email="bob@example.com", subject_id="uid-bob")

TOKENS = {"alice-token": ALICE, "bob-token": BOB}


class FakeVerifier:
    """Maps known tokens to identities, rejects everything else."""

    def __init__(self, tokens):
        self.tokens = tokens
        self.calls = []

    def verify(self, token):
        self.calls.append(token)
        try:
            return self.tokens[token]
        except KeyError:
            raise AuthError("Invalid token")


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def database():
    """Fresh mongomock-backed storage handle per test."""
    return Database(name=f"carhub_test_{uuid.uuid4().hex[:8]}", client=mongomock.MongoClient())


@pytest.fixture
def catalog(database):
    return CatalogStore(database)


@pytest.fixture
def ledger(database):
    return ReservationLedger(database)


@pytest.fixture
def service(catalog, ledger):
    return ReservationService(catalog, ledger)


@pytest.fixture
def verifier():
    return FakeVerifier(TOKENS)


@pytest.fixture
def client(database, verifier):
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_verifier] = lambda: verifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_product(database):
    """Insert a product directly and return its id string."""
    base_time = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(name="Honda Civic", quantity=5, owner=ALICE.email, **extra):
        counter["n"] += 1
        doc = {
            "productName": name,
            "price": 21000.0,
            "originCountry": "Japan",
            "rating": 4.5,
            "productImage": f"https://img.example.com/{counter['n']}.jpg",
            "availableQuantity": quantity,
            "createdBy": owner,
            "createdAt": base_time + timedelta(minutes=counter["n"]),
        }
        doc.update(extra)
        return str(database.products.insert_one(doc).inserted_id)

    return _make
