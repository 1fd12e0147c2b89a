import os

# Must be set before src modules read their configuration.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EMAIL_ENABLED"] = "false"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.api.routes.routes import get_db, get_dispatcher
from src.domain.exceptions import NotificationError
from src.infrastructure.db.models import Base, Equipment, Package, User
from src.infrastructure.notifications.email_dispatcher import EmailDispatcher
from src.main import app


class RecordingTransport:
    """Mail transport double that keeps every message it is handed."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def send(self, message) -> None:
        if self.fail:
            raise NotificationError(f"Could not send email to {message['To']}")
        self.sent.append(message)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog(db_session):
    """Two customers, two equipment items and one package."""
    db_session.add_all(
        [
            User(id="user-1", name="Maria Santos", email="maria@example.com"),
            User(id="user-2", name="Jose Reyes", email="jose@example.com"),
            Equipment(
                id="eq-chair",
                name="Monobloc Chair",
                category="Chairs",
                price_per_day=Decimal("100.00"),
                available_quantity=5,
            ),
            Equipment(
                id="eq-speaker",
                name="Speaker Set",
                category="Sound",
                price_per_day=Decimal("800.00"),
                available_quantity=3,
            ),
            Package(
                id="pkg-party",
                name="Birthday Party Set",
                price=Decimal("500.00"),
                pax=50,
                available_quantity=2,
                main_items=["Party tent"],
            ),
        ]
    )
    db_session.commit()
    return db_session


@pytest.fixture
def mail_transport():
    return RecordingTransport()


@pytest.fixture
def dispatcher(mail_transport):
    return EmailDispatcher(
        transport=mail_transport,
        sender="rentals@example.com",
        enabled=True,
    )


@pytest.fixture
def client(session_factory, dispatcher, catalog):
    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()
