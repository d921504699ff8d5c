import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal
from unittest.mock import Mock

import pytest

from bullionapi.config import Settings
from bullionapi.core.exceptions import PriceProviderError
from bullionapi.database.connection import create_db_engine, create_session_factory
from bullionapi.models import Base, Commodity
from bullionapi.repositories.tenant_repository import TenantRepository
from bullionapi.services.price_oracle import PriceCache, PriceOracle
from bullionapi.services.wallet_service import WalletService

TENANT_ID = "tenant-1"
USER_ID = "user-1"


class FakeClock:
    """PriceCache TTL 테스트용 수동 시계"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_provider(name="stub", price=None, error=None):
    """고정 가격을 반환하거나 PriceProviderError를 던지는 모의 시세 제공자"""
    provider = Mock()
    provider.name = name
    if error is not None:
        provider.fetch_price_per_gram.side_effect = PriceProviderError(name, error)
    else:
        provider.fetch_price_per_gram.return_value = Decimal(str(price))
    return provider


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def tenant(db_session):
    """마진 설정이 없는 기본 테넌트"""
    return TenantRepository(db_session).create_tenant(TENANT_ID, "Sunrise Jewellers")


@pytest.fixture
def wallet(db_session, tenant):
    return WalletService(db_session).create_wallet(USER_ID, TENANT_ID)


@pytest.fixture
def funded_wallet(db_session, wallet):
    """잔액 5000의 지갑"""
    WalletService(db_session).credit(USER_ID, TENANT_ID, Decimal("5000"), "pay_seed")
    return WalletService(db_session).get_wallet(USER_ID, TENANT_ID)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def oracle_factory(clock):
    def _build(*providers, ttl_seconds=300):
        return PriceOracle(list(providers), PriceCache(ttl_seconds=ttl_seconds, clock=clock))

    return _build


@pytest.fixture
def live_oracle(oracle_factory):
    """금 7000.00 / 은 90.00을 반환하는 오라클"""
    provider = Mock()
    provider.name = "stub"
    provider.fetch_price_per_gram.side_effect = lambda commodity: {
        Commodity.GOLD: Decimal("7000.00"),
        Commodity.SILVER: Decimal("90.00"),
    }[commodity]
    return oracle_factory(provider)


@pytest.fixture
def down_oracle(oracle_factory):
    """모든 제공자가 실패하는 오라클"""
    return oracle_factory(make_provider(error="connection refused"))


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite://",
        RAZORPAY_KEY_ID="rzp_test_key",
        RAZORPAY_KEY_SECRET="rzp_test_secret",
        RAZORPAY_WEBHOOK_SECRET="whsec_test",
        RAZORPAY_API_BASE_URL="https://api.razorpay.test/v1",
    )


@pytest.fixture
def provider_factory():
    return make_provider
