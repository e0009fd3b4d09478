"""Shared fixtures: a fresh SQLite database per test and an API client bound to it."""
import os

# Must be set before order_service modules read their configuration.
os.environ.setdefault("LOG_FILE", os.devnull)
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from order_service.database import build_engine, get_session, init_db
from order_service.entities import Product, PromoCode, utc_now
from order_service.main import app

DISTRIBUTOR = {"X-User-Id": "user-dist-1", "X-User-Role": "Distributor"}
FIELD_EXECUTIVE = {"X-User-Id": "user-fe-1", "X-User-Role": "FieldExecutive"}
ADMIN = {"X-User-Id": "user-admin-1", "X-User-Role": "Admin"}
WORKER = {"X-User-Id": "user-worker-1", "X-User-Role": "Worker"}


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def client(session_factory):
    def _session_override():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_session] = _session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_product(session):
    def _make(name="Ball Valve 1/2in", price="100.00", quantity=10, warranty_months=12):
        product = Product(
            name=name,
            price=Decimal(price),
            on_hand_quantity=quantity,
            warranty_period_months=warranty_months,
        )
        session.add(product)
        session.commit()
        return product
    return _make


@pytest.fixture
def make_promo(session):
    def _make(code="SAVE10", discount_type="percentage", value="10", **overrides):
        now = utc_now()
        fields = {
            "code": code,
            "description": f"{code} promotion",
            "discount_type": discount_type,
            "discount_value": Decimal(value),
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
            "status": "Active",
        }
        fields.update(overrides)
        promo = PromoCode(**fields)
        session.add(promo)
        session.commit()
        return promo
    return _make
