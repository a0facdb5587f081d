import os

os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config import settings
from database import Base
import main  # registers every model with Base.metadata
from Abandoned_module import reminder_lock


@pytest.fixture(autouse=True)
def quiet_collaborators(monkeypatch):
    """No SMTP, Redis or Firebase during tests."""
    monkeypatch.setattr(settings, "SMTP_HOST", None)
    monkeypatch.setattr(settings, "REDIS_URL", None)
    monkeypatch.setattr(settings, "FIREBASE_SERVICE_ACCOUNT_PATH", None)
    monkeypatch.setattr(settings, "DEFAULT_INTER_STATE_SHIPPING_RATE", None)
    monkeypatch.setattr(reminder_lock, "_redis_client", None)


@pytest.fixture
def engine(tmp_path):
    # A file database so separate sessions behave like separate connections
    engine = create_engine(
        f"sqlite:///{(tmp_path / 'test.db').as_posix()}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
