import os

# Point the app engine at SQLite before bizops.core.database is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ENV", "test")

import importlib
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bizops.core import config as app_config
from bizops.core.base import Base
from bizops.core.config import WebhookConfig
from bizops.core.database import get_db
from bizops.dependencies.config import get_webhook_config

# Import models so they register with SQLAlchemy metadata.
from bizops.models import Client, Estimate, Invoice, InvoiceStatus, EstimateStatus  # noqa: F401

from webhook_payloads import ADMIN_API_KEY, INVOICENINJA_SECRET, STRIPE_WEBHOOK_SECRET


@pytest.fixture(scope="session")
def db_engine():
    # In-memory SQLite for fast, isolated tests.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def db_session(db_engine):
    # The in-memory DB persists across tests with StaticPool; reset schema per test.
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def webhook_config():
    return WebhookConfig(
        environment="test",
        stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
        invoiceninja_webhook_secret=INVOICENINJA_SECRET,
        admin_api_key=ADMIN_API_KEY,
    )


@pytest.fixture(autouse=True)
def _reset_mutable_settings():
    """
    Tests sometimes tweak global settings (app_config.settings.*); restore them after
    each test to avoid cross-test coupling.
    """
    keys = ["ENABLE_RATE_LIMITING", "ADMIN_RATE_LIMIT", "N8N_WEBHOOK_URL"]
    original = {k: getattr(app_config.settings, k) for k in keys}
    try:
        yield
    finally:
        for k, v in original.items():
            setattr(app_config.settings, k, v)
        app_config.settings.ENABLE_RATE_LIMITING = False


@pytest.fixture()
def app(db_session, webhook_config):
    app_config.settings.ENABLE_RATE_LIMITING = False

    # SlowAPI decorators bind at import time, so reload the routes + app with rate limiting
    # disabled (the rate limiting test reloads them with it enabled).
    import bizops.routes.admin_replay as admin_replay_routes
    import bizops.main as main

    importlib.reload(admin_replay_routes)
    importlib.reload(main)
    fastapi_app = main.app

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_webhook_config] = lambda: webhook_config
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_API_KEY}"}


@pytest.fixture()
def customer(db_session):
    row = Client(first_name="Dana", last_name="Reyes", email="dana@example.com")
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row


@pytest.fixture()
def invoice(db_session, customer):
    row = Invoice(
        client_id=customer.client_id,
        job_id="job-1",
        external_id="ninja_inv_1",
        external_number="INV-0001",
        status=InvoiceStatus.SENT.value,
        currency="USD",
        total_amount=Decimal("2500.00"),
    )
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row


@pytest.fixture()
def estimate(db_session, customer):
    row = Estimate(
        client_id=customer.client_id,
        job_id="job-1",
        external_id="ninja_quote_1",
        external_number="Q-0001",
        status=EstimateStatus.SENT.value,
    )
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row
