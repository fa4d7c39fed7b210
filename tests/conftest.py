import os
from types import SimpleNamespace

# Must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models, models_payout  # noqa: F401
from app.config import Settings, get_settings
from app.database import Base, get_db
from app.domain.payments.webhooks import get_webhook_secret
from app.domain.scheduling.router import get_session_factory
from app.main import app
from app.services.payment_gateway import get_payment_gateway

from tests.factories import WEBHOOK_SECRET, make_home, make_relationship, make_user
from tests.fakes import FakePaymentGateway


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def seeded(db):
    """A cleaner with an active relationship to a homeowner and their home"""
    cleaner = make_user(db, "cleaner")
    homeowner = make_user(db, "homeowner", gateway_customer_id="cus_test", gateway_payment_method_id="pm_card")
    owner = make_user(db, "owner")
    home = make_home(db, homeowner)
    relationship = make_relationship(db, cleaner, homeowner, home)
    db.commit()
    return SimpleNamespace(
        cleaner=cleaner, homeowner=homeowner, owner=owner, home=home, relationship=relationship
    )


@pytest.fixture
def client(session_factory, settings, gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_webhook_secret] = lambda: WEBHOOK_SECRET
    yield TestClient(app)
    app.dependency_overrides.clear()
