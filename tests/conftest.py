"""Pytest fixtures for testing"""

import os

# Point settings at SQLite and disable retry backoff before the app is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("NOTIFICATION_BACKOFF_BASE", "0")

import pytest
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from fareflow_gateway.api.main import create_app
from fareflow_gateway.api.dependencies import get_live_state_client, get_notification_client
from fareflow_gateway.domain.models import BusLiveState, FareConfig, Route
from fareflow_gateway.infrastructure.clients.live_state import LiveStateClient
from fareflow_gateway.infrastructure.clients.notifications import NotificationClient
from fareflow_gateway.infrastructure.database.models import Base, BusLedger, Rider
from fareflow_gateway.infrastructure.database.session import get_db
from fareflow_gateway.services.outbox import OutboxProcessor
from fareflow_gateway.services.settlement import FareSettlementService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

SETTLED_AT = datetime(2025, 5, 26, 9, 30, tzinfo=timezone.utc)


class SteppingClock:
    """Clock that advances one second per reading, so each tap gets its own transaction id"""

    def __init__(self, start: datetime = SETTLED_AT):
        self.current = start - timedelta(seconds=1)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fare_config() -> FareConfig:
    return FareConfig(default_fare_amount=1500, minimum_balance=500, currency="UGX")


@pytest.fixture
def live_state() -> AsyncMock:
    """Live-state client returning an active fixed-route bus with an 800 fare"""
    client = AsyncMock(spec=LiveStateClient)
    client.get_bus.return_value = fixed_route_bus(fare_amount=800)
    return client


@pytest.fixture
def notifier() -> AsyncMock:
    """Notification client where both channels succeed"""
    return AsyncMock(spec=NotificationClient)


@pytest.fixture
def make_rider(db: Session) -> Callable[..., Rider]:
    """Factory that inserts a rider account"""

    def _make_rider(
        card_uid: str = "CARD-001",
        balance: int = 1000,
        blocked: bool = False,
        phone: str = "+256700000001",
        email: str = "jane@example.com",
    ) -> Rider:
        rider = Rider(
            card_uid=card_uid,
            first_name="Jane",
            last_name="Okello",
            email=email,
            phone=phone,
            balance=balance,
            blocked=blocked,
            version=0,
        )
        db.add(rider)
        db.commit()
        return rider

    return _make_rider


@pytest.fixture
def bus_ledger(db: Session) -> BusLedger:
    ledger = BusLedger(plate_number="UAZ-123", weekly_earnings=[], monthly_earnings=[], total_earnings=0)
    db.add(ledger)
    db.commit()
    return ledger


@pytest.fixture
def service(db: Session, live_state: AsyncMock, notifier: AsyncMock, fare_config: FareConfig) -> FareSettlementService:
    """Orchestrator wired to the test session and mocked collaborators"""
    return FareSettlementService(
        db,
        live_state,
        OutboxProcessor(db, notifier, max_attempts=3, tz_name="UTC"),
        fare_config,
        tz_name="UTC",
        max_attempts=3,
        timeout_seconds=5.0,
        clock=SteppingClock(),
    )


@pytest.fixture
def client(db: Session, live_state: AsyncMock, notifier: AsyncMock) -> TestClient:
    """Create FastAPI test client with test database and mocked transports"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_live_state_client] = lambda: live_state
    app.dependency_overrides[get_notification_client] = lambda: notifier
    return TestClient(app)


def fixed_route_bus(fare_amount: int | None = 800, status: bool = True, plate_number: str = "UAZ-123") -> BusLiveState:
    return BusLiveState(
        plate_number=plate_number,
        status=status,
        route=Route(type="fixed", fare_amount=fare_amount, departure="Kampala", destination="Entebbe"),
    )


def dynamic_route_bus(plate_number: str = "UAZ-123") -> BusLiveState:
    return BusLiveState(
        plate_number=plate_number,
        status=True,
        route=Route(type="dynamic", departure="Kampala", destination="Jinja"),
    )
