"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta
from typing import Callable, Dict, Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from fakedetector_accounts.api.dependencies import get_alert_client, get_gateways
from fakedetector_accounts.api.main import create_app
from fakedetector_accounts.config import Settings
from fakedetector_accounts.domain.events import FLUTTERWAVE, PAYSTACK
from fakedetector_accounts.domain.exceptions import GatewayUnavailableError
from fakedetector_accounts.domain.models import GatewayVerification, PlanTier
from fakedetector_accounts.infrastructure.clients.alerts import AlertWebhookClient
from fakedetector_accounts.infrastructure.database.models import Base
from fakedetector_accounts.infrastructure.database.repositories import LedgerRepository, TIER_COLUMNS
from fakedetector_accounts.infrastructure.database.session import build_engine, get_db
from fakedetector_accounts.infrastructure.notifications.sinks import InMemoryNotificationSink
from fakedetector_accounts.services.point_ledger import PointLedger


# Test database: one shared in-memory connection
TEST_DATABASE_URL = "sqlite://"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    """Callable clock that tests move forward by hand"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeGateway:
    """
    Scripted verification client.

    `results` maps transaction id -> GatewayVerification or an exception to raise.
    Unknown ids verify as failed.
    """

    def __init__(self, name: str):
        self.name = name
        self.results: Dict[str, object] = {}
        self.calls: List[str] = []
        self.before_verify: Callable | None = None

    def succeed(self, transaction_id: str, email: str, amount_naira: int, tier: str | None = "basic", points: int | None = None):
        self.results[transaction_id] = GatewayVerification(
            verified=True,
            transaction_id=transaction_id,
            amount_minor=amount_naira * 100,
            customer_email=email,
            purchased_tier=tier,
            points_count=points,
        )

    def fail(self, transaction_id: str, error: str = "Declined", email: str | None = None):
        self.results[transaction_id] = GatewayVerification(
            verified=False, transaction_id=transaction_id, customer_email=email, error=error
        )

    def unavailable(self, transaction_id: str):
        self.results[transaction_id] = GatewayUnavailableError(f"{self.name} timeout")

    async def verify_transaction(self, transaction_id: str) -> GatewayVerification:
        self.calls.append(transaction_id)
        if self.before_verify is not None:
            await self.before_verify(transaction_id)
        result = self.results.get(transaction_id)
        if isinstance(result, Exception):
            raise result
        if result is None:
            return GatewayVerification(verified=False, transaction_id=transaction_id, error="Transaction not found")
        return result


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
def session_factory(db: Session) -> sessionmaker:
    """Opens extra sessions on the test database, e.g. to play a competing request"""
    return TestingSessionLocal


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, alert_webhook_url=None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 10, 9, 0, 0))


@pytest.fixture
def outbox() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def point_ledger(db: Session, test_settings: Settings, clock: FakeClock) -> PointLedger:
    return PointLedger(db, test_settings, clock=clock)


@pytest.fixture
def make_account(db: Session, point_ledger: PointLedger):
    """Open an account and set its plan and balances directly"""

    def _make(email: str, plan_tier: PlanTier = PlanTier.FREE, **points: int) -> str:
        user_id = point_ledger.open_account(email).user_id
        ledger = LedgerRepository(db).get(user_id)
        ledger.plan_tier = plan_tier.value
        for tier, column in TIER_COLUMNS.items():
            setattr(ledger, column.key, points.get(tier.value, 0))
        ledger.aggregate_balance = sum(points.values())
        db.commit()
        return user_id

    return _make


@pytest.fixture
def paystack() -> FakeGateway:
    return FakeGateway(PAYSTACK)


@pytest.fixture
def flutterwave() -> FakeGateway:
    return FakeGateway(FLUTTERWAVE)


@pytest.fixture
def gateways(paystack: FakeGateway, flutterwave: FakeGateway) -> Dict[str, FakeGateway]:
    return {PAYSTACK: paystack, FLUTTERWAVE: flutterwave}


@pytest.fixture
def client(db: Session, gateways) -> TestClient:
    """Create FastAPI test client with test database and scripted gateways"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateways] = lambda: gateways
    app.dependency_overrides[get_alert_client] = lambda: AlertWebhookClient(webhook_url=None)
    return TestClient(app)


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed SQLite for multi-threaded tests"""
    file_engine = build_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(bind=file_engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    finally:
        file_engine.dispose()
