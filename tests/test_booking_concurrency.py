import random
import threading
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from bullionapi.core.exceptions import InsufficientBalanceError
from bullionapi.database.connection import create_db_engine, create_session_factory
from bullionapi.models import Base, Commodity
from bullionapi.models.booking import Booking
from bullionapi.models.wallet import LedgerTransaction, TransactionType
from bullionapi.repositories.tenant_repository import TenantRepository
from bullionapi.services.booking_service import BookingService
from bullionapi.services.wallet_service import WalletService

TENANT_ID = "tenant-1"
USER_ID = "user-1"


@pytest.fixture
def file_session_factory(tmp_path):
    """세션마다 별도 커넥션을 쓰는 파일 기반 SQLite"""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'bullion.db'}")
    Base.metadata.create_all(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def seeded(file_session_factory):
    """잔액 5000 지갑"""
    session = file_session_factory()
    TenantRepository(session).create_tenant(TENANT_ID, "Sunrise Jewellers")
    wallets = WalletService(session)
    wallets.create_wallet(USER_ID, TENANT_ID)
    wallets.credit(USER_ID, TENANT_ID, Decimal("5000"), "pay_seed")
    session.close()
    return file_session_factory


@pytest.fixture
def warm_oracle(live_oracle):
    live_oracle.fetch_market_price(Commodity.GOLD)
    live_oracle.fetch_market_price(Commodity.SILVER)
    return live_oracle


def _snapshot(session_factory):
    session = session_factory()
    try:
        wallet = WalletService(session).get_wallet(USER_ID, TENANT_ID)
        bookings = session.query(Booking).count()
        debits = (
            session.query(LedgerTransaction)
            .filter(LedgerTransaction.type == TransactionType.DEBIT)
            .count()
        )
        integrity = WalletService(session).verify_wallet_integrity(USER_ID, TENANT_ID)
        return wallet, bookings, debits, integrity
    finally:
        session.close()


class TestConcurrentBookings:
    """여러 세션이 같은 지갑을 동시에 사용할 때 잔액 불변식 검증"""

    def test_stale_session_cannot_overdraw(self, seeded, warm_oracle):
        """다른 세션이 먼저 차감한 뒤에는 메모리의 오래된 잔액과 무관하게 잔액 부족"""
        # Given - 두 세션 모두 잔액 5000을 읽은 상태
        first = seeded()
        second = seeded()
        assert WalletService(first).get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("5000")
        assert WalletService(second).get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("5000")

        # When
        BookingService(first, warm_oracle).create_booking(
            USER_ID, TENANT_ID, Commodity.GOLD, Decimal("3000")
        )
        with pytest.raises(InsufficientBalanceError):
            BookingService(second, warm_oracle).create_booking(
                USER_ID, TENANT_ID, Commodity.GOLD, Decimal("3000")
            )
        first.close()
        second.close()

        # Then
        wallet, bookings, debits, integrity = _snapshot(seeded)
        assert wallet.cash_balance == Decimal("2000")
        assert bookings == 1
        assert debits == 1
        assert integrity.status == "OK"

    def test_racing_threads_book_only_what_balance_covers(self, seeded, warm_oracle):
        """잔액이 한 건만 감당할 때 두 스레드가 동시에 예약하면 정확히 한 건만 성공"""
        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def book():
            session = seeded()
            try:
                service = BookingService(session, warm_oracle)
                barrier.wait()
                try:
                    service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("3000"))
                    result = "booked"
                except InsufficientBalanceError:
                    result = "insufficient"
                except OperationalError:
                    # SQLite 쓰기 잠금 경합으로 거절된 트랜잭션 (롤백됨)
                    result = "locked"
                with lock:
                    outcomes.append(result)
            finally:
                session.close()

        threads = [threading.Thread(target=book) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(outcomes) == 2
        assert outcomes.count("booked") == 1

        wallet, bookings, debits, integrity = _snapshot(seeded)
        assert wallet.cash_balance == Decimal("2000")
        assert bookings == 1
        assert debits == 1
        assert integrity.status == "OK"

    def test_random_concurrent_sequences_keep_invariants(self, seeded, warm_oracle):
        """여러 스레드의 임의 입금/예약 후에도 잔액 ≥ 0, 예약별 DEBIT 1건, 보유량 = 예약 그램 합"""
        errors = []

        def worker(seed):
            rng = random.Random(seed)
            session = seeded()
            booking_service = BookingService(session, warm_oracle)
            wallet_service = WalletService(session)
            try:
                for step in range(15):
                    try:
                        if rng.random() < 0.3:
                            wallet_service.credit(
                                USER_ID,
                                TENANT_ID,
                                Decimal(rng.randint(100, 2000)),
                                f"pay_{seed}_{step}",
                            )
                        else:
                            booking_service.create_booking(
                                USER_ID,
                                TENANT_ID,
                                rng.choice(list(Commodity)),
                                Decimal(rng.randint(100, 2500)),
                            )
                    except InsufficientBalanceError:
                        pass
                    except OperationalError:
                        session.rollback()
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert errors == []
        wallet, bookings, debits, integrity = _snapshot(seeded)
        assert wallet.cash_balance >= 0
        assert all(grams >= 0 for grams in wallet.gram_balances.values())
        assert debits == bookings
        assert integrity.status == "OK"
