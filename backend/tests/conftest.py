"""Shared fixtures: a throwaway SQLite database per test and an API client bound to it."""

import os
import sys
import tempfile

# Settings are read at import time, so point them at scratch values first.
_SCRATCH_DIR = tempfile.mkdtemp(prefix="farm-market-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_SCRATCH_DIR, "default.db")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ORDER_RATE_LIMIT"] = "10000/minute"

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app import models  # noqa: F401
from app.database import Base, get_db, make_engine
from app.middleware.auth import token_for
from app.models.listing import Listing


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'market.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_listing(db):
    """Insert a listing directly, bypassing the API."""

    def _make(
        seller_id: int = 10,
        quantity: int = 5,
        price: str = "100.00",
        status: str = "active",
        title: str = "Heirloom tomatoes",
        category: str = "vegetables",
        unit: str = "kg",
    ) -> Listing:
        listing = Listing(
            seller_id=seller_id,
            title=title,
            category=category,
            unit=unit,
            unit_price=Decimal(price),
            available_quantity=quantity,
            status=status,
        )
        db.add(listing)
        db.commit()
        db.refresh(listing)
        return listing

    return _make


@pytest.fixture
def client(session_factory):
    from app.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """auth_headers(user_id, role) -> Authorization header for that caller."""

    def _headers(user_id: int, role: str) -> dict:
        return {"Authorization": f"Bearer {token_for(user_id, role)}"}

    return _headers
