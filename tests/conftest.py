"""Pytest fixtures for testing"""

from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from farm_finance.api.main import create_app
from farm_finance.config import Settings
from farm_finance.domain.collaborators import FinanceContext
from farm_finance.domain.credit_events import CreditEventLedger
from farm_finance.domain.deal import Deal
from farm_finance.domain.models import DealKind, GameDate, ItemKind, ItemRef
from farm_finance.infrastructure.clients.memory import (
    InMemoryAssetRegistry,
    InMemoryLandRegistry,
    InMemoryLedger,
    LeaseRenewalInbox,
    RecordingNotifier,
    SimulatedCalendar,
    StaticLoanPolicy,
)
from farm_finance.infrastructure.database.models import Base
from farm_finance.infrastructure.database.session import get_db
from farm_finance.services.registry import DealRegistry

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ACCOUNT = "farm_1"
START = GameDate(year=2025, month=1)


class FixedRateCurve:
    """Rate curve returning one annual percentage for every product"""

    def __init__(self, rate: float = 6.0):
        self.rate = rate

    def vehicle_rate(self, score: int, term_months: int, down_payment_pct: float) -> float:
        return self.rate

    def land_rate(self, score: int, term_months: int, down_payment_pct: float) -> float:
        return self.rate

    def lease_rate(self, score: int, term_months: int, down_payment_pct: float) -> float:
        return self.rate


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger({ACCOUNT: 150_000.0})


@pytest.fixture
def assets() -> InMemoryAssetRegistry:
    return InMemoryAssetRegistry()


@pytest.fixture
def lands() -> InMemoryLandRegistry:
    return InMemoryLandRegistry()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def inbox() -> LeaseRenewalInbox:
    return LeaseRenewalInbox()


@pytest.fixture
def loan_policy() -> StaticLoanPolicy:
    return StaticLoanPolicy()


@pytest.fixture
def calendar() -> SimulatedCalendar:
    return SimulatedCalendar(START)


@pytest.fixture
def ctx(ledger, assets, lands, notifier) -> FinanceContext:
    """Context for exercising a Deal directly"""
    return FinanceContext(
        ledger=ledger,
        assets=assets,
        lands=lands,
        notifier=notifier,
        events=CreditEventLedger(),
        today=START,
    )


@pytest.fixture
def make_deal():
    """Factory for registered-looking deals; defaults to the 40k/8k/60-month 6% vehicle"""

    def _make(
        kind: DealKind = DealKind.FINANCE,
        item_kind: ItemKind = ItemKind.VEHICLE,
        price: float = 40_000.0,
        down_payment: float = 8_000.0,
        term_months: int = 60,
        rate: float = 0.06,
        item_id: str = "tractor_01",
        asset_ref: Optional[str] = None,
        **kwargs,
    ) -> Deal:
        deal = Deal.new(
            account_id=ACCOUNT,
            kind=kind,
            item=ItemRef(kind=item_kind, item_id=item_id, name=item_id.replace("_", " ").title(), asset_ref=asset_ref),
            price=price,
            down_payment=down_payment,
            term_months=term_months,
            interest_rate=rate,
            created_at=START,
            **kwargs,
        )
        deal.id = "DEAL_00000001"
        return deal

    return _make


def _registry(ledger, assets, lands, notifier, inbox, loan_policy, **config) -> DealRegistry:
    registry = DealRegistry(
        ledger=ledger,
        assets=assets,
        lands=lands,
        notifier=notifier,
        rate_curve=FixedRateCurve(6.0),
        renewal_handler=inbox,
        loan_policy=loan_policy,
        config=Settings(**config),
    )
    registry.today = START
    return registry


@pytest.fixture
def registry(ledger, assets, lands, notifier, inbox, loan_policy) -> DealRegistry:
    """Authority registry at a fixed 6% rate with credit gates off"""
    return _registry(
        ledger, assets, lands, notifier, inbox, loan_policy, role="authority", enforce_credit_requirements=False
    )


@pytest.fixture
def strict_registry(ledger, assets, lands, notifier, inbox, loan_policy) -> DealRegistry:
    """Authority registry with credit requirements enforced"""
    return _registry(
        ledger, assets, lands, notifier, inbox, loan_policy, role="authority", enforce_credit_requirements=True
    )


@pytest.fixture
def registry_factory(ledger, assets, lands, notifier, inbox, loan_policy):
    """Builds further authority registries over the same collaborators"""

    def _make(**config) -> DealRegistry:
        config.setdefault("enforce_credit_requirements", False)
        return _registry(ledger, assets, lands, notifier, inbox, loan_policy, role="authority", **config)

    return _make


@pytest.fixture
def observer_registry(ledger, assets, lands, notifier, inbox, loan_policy) -> DealRegistry:
    return _registry(ledger, assets, lands, notifier, inbox, loan_policy, role="observer")


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
def client(db: Session, registry: DealRegistry) -> TestClient:
    """Create FastAPI test client over the test registry and database"""
    app = create_app(registry)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)
