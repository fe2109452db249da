import os
import sys
import pytest

# Ensure the project root (containing core/, services/, api/) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base, get_db
from core.collaborators import (
    CallerAuthenticator,
    InMemoryLedger,
    InMemorySchemeStore,
    ManualClock,
    RecordingEventSink,
)
from core.round_engine import RoundEngine
from main import app
from api.schemes import get_clock

ASSET = "USDC"
CUSTODY = "scheme:test"


@pytest.fixture()
def clock():
    return ManualClock(0)


@pytest.fixture()
def ledger():
    return InMemoryLedger()


@pytest.fixture()
def events():
    return RecordingEventSink()


@pytest.fixture()
def auth():
    return CallerAuthenticator(None)


@pytest.fixture()
def engine(ledger, auth, clock, events):
    return RoundEngine(
        store=InMemorySchemeStore(),
        transfer=ledger,
        authenticator=auth,
        clock=clock,
        events=events,
        custody_account=CUSTODY,
    )


@pytest.fixture()
def db_engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture()
def db_session(db_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db_engine, clock):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    # Not used as a context manager: the lifespan would create tables on the real engine
    yield TestClient(app)
    app.dependency_overrides.clear()
