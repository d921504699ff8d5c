import random
import uuid
from decimal import Decimal

import pytest

from bullionapi.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from bullionapi.models.booking import Booking, BookingStatus
from bullionapi.models.commodity import Commodity
from bullionapi.models.wallet import LedgerTransaction, TransactionType
from bullionapi.repositories.tenant_repository import TenantRepository
from bullionapi.schemas.auth import Principal, UserRole
from bullionapi.services.booking_service import BookingService
from bullionapi.services.price_service import PriceService
from bullionapi.services.wallet_service import WalletService

TENANT_ID = "tenant-1"
USER_ID = "user-1"

ADMIN = Principal(user_id="admin-1", tenant_id=TENANT_ID, role=UserRole.ADMIN)
CUSTOMER = Principal(user_id=USER_ID, tenant_id=TENANT_ID, role=UserRole.CUSTOMER)


@pytest.fixture
def booking_service(db_session, live_oracle):
    return BookingService(db_session, live_oracle)


@pytest.fixture
def wallet_service(db_session):
    return WalletService(db_session)


def _debits(db_session):
    return (
        db_session.query(LedgerTransaction)
        .filter(LedgerTransaction.type == TransactionType.DEBIT)
        .all()
    )


class TestCreateBooking:
    """예약 생성 테스트"""

    def test_booking_debits_cash_and_credits_grams(
        self, booking_service, wallet_service, db_session, funded_wallet
    ):
        """잔액 5000에서 7000원/g 금 2000원 예약"""
        # When
        booking = booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("2000"))

        # Then
        assert booking.status == BookingStatus.ACTIVE
        assert booking.grams == Decimal("0.2857")
        assert booking.locked_price_per_gram == Decimal("7000.00")
        assert booking.amount_paid == Decimal("2000.00")

        wallet = wallet_service.get_wallet(USER_ID, TENANT_ID)
        assert wallet.cash_balance == Decimal("3000")
        assert wallet.gram_balances[Commodity.GOLD] == Decimal("0.2857")

        bookings = db_session.query(Booking).all()
        assert len(bookings) == 1
        assert bookings[0].status == BookingStatus.ACTIVE

        debits = _debits(db_session)
        assert len(debits) == 1
        assert debits[0].amount == Decimal("2000")
        assert debits[0].booking_id == booking.id

    def test_insufficient_balance_leaves_no_trace(
        self, booking_service, wallet_service, db_session, funded_wallet
    ):
        """잔액 부족 시 예약/DEBIT/그램 어느 것도 남지 않음"""
        with pytest.raises(InsufficientBalanceError):
            booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("6000"))

        assert db_session.query(Booking).count() == 0
        assert _debits(db_session) == []
        wallet = wallet_service.get_wallet(USER_ID, TENANT_ID)
        assert wallet.cash_balance == Decimal("5000")
        assert wallet.gram_balances[Commodity.GOLD] == Decimal("0")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    def test_non_positive_amount_rejected(self, booking_service, funded_wallet, amount):
        with pytest.raises(ValidationError):
            booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, amount)

    @pytest.mark.parametrize("amount", ["abc", Decimal("NaN"), Decimal("Infinity")])
    def test_non_numeric_amount_rejected_without_side_effects(
        self, booking_service, wallet_service, db_session, funded_wallet, amount
    ):
        with pytest.raises(ValidationError):
            booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, amount)

        assert db_session.query(Booking).count() == 0
        assert wallet_service.get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("5000")

    def test_non_positive_final_price_rejected(
        self, booking_service, wallet_service, db_session, funded_wallet
    ):
        """마진 적용 후 최종가가 0이면 예약 불가, 지갑은 그대로"""
        TenantRepository(db_session).upsert_margin(
            TENANT_ID, Commodity.GOLD, margin_fixed=Decimal("-7000")
        )

        with pytest.raises(ValidationError):
            booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("1000"))

        assert db_session.query(Booking).count() == 0
        assert _debits(db_session) == []
        assert wallet_service.get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("5000")

    def test_amount_too_small_for_any_grams_rejected(self, booking_service, funded_wallet):
        with pytest.raises(ValidationError):
            booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("0.10"))

    def test_unknown_commodity_rejected(self, booking_service, funded_wallet):
        with pytest.raises(ValidationError):
            booking_service.create_booking(USER_ID, TENANT_ID, "platinum", Decimal("100"))

    def test_missing_wallet_raises_not_found(self, booking_service, tenant):
        with pytest.raises(NotFoundError):
            booking_service.create_booking("ghost", TENANT_ID, Commodity.SILVER, Decimal("100"))

    def test_locked_price_includes_tenant_margin(self, booking_service, db_session, funded_wallet):
        TenantRepository(db_session).upsert_margin(
            TENANT_ID, Commodity.SILVER, margin_percent=Decimal("10"), margin_fixed=Decimal("1")
        )

        booking = booking_service.create_booking(USER_ID, TENANT_ID, "silver", Decimal("1000"))

        assert booking.commodity == Commodity.SILVER
        assert booking.locked_price_per_gram == Decimal("100.00")
        assert booking.grams == Decimal("10.0000")

    def test_booking_uses_snapshot_price_when_oracle_down(
        self, db_session, down_oracle, funded_wallet
    ):
        """실시간 시세가 없으면 고정가와 그램 모두 스냅샷 가격 기준"""
        # Given
        PriceService(db_session, down_oracle).set_price(TENANT_ID, Commodity.GOLD, Decimal("6400"))
        service = BookingService(db_session, down_oracle)

        # When
        booking = service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("3200"))

        # Then
        assert booking.locked_price_per_gram == Decimal("6400.00")
        assert booking.grams == Decimal("0.5000")

    def test_random_booking_sequences_never_overdraw(self, booking_service, wallet_service, wallet):
        """임의의 입금/예약 순서에서도 잔액은 음수가 되지 않고 정합성 유지"""
        rng = random.Random(20240601)

        for step in range(60):
            if rng.random() < 0.3:
                wallet_service.credit(
                    USER_ID, TENANT_ID, Decimal(rng.randint(100, 3000)), f"pay_rand_{step}"
                )
            else:
                commodity = rng.choice(list(Commodity))
                try:
                    booking_service.create_booking(
                        USER_ID, TENANT_ID, commodity, Decimal(rng.randint(100, 2500))
                    )
                except InsufficientBalanceError:
                    pass

            current = wallet_service.get_wallet(USER_ID, TENANT_ID)
            assert current.cash_balance >= 0
            assert all(grams >= 0 for grams in current.gram_balances.values())

        assert wallet_service.verify_wallet_integrity(USER_ID, TENANT_ID).status == "OK"


class TestBookingQueries:
    """예약 조회 테스트"""

    def test_user_bookings_newest_first(self, booking_service, funded_wallet):
        first = booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("1000"))
        second = booking_service.create_booking(USER_ID, TENANT_ID, Commodity.SILVER, Decimal("500"))

        page = booking_service.get_user_bookings(USER_ID, TENANT_ID, limit=1)

        assert page.total_count == 2
        assert page.has_next is True
        assert page.bookings[0].id == second.id
        assert first.id != second.id

    def test_get_booking_by_id_scoped_to_tenant(self, booking_service, funded_wallet):
        booking = booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("700"))

        assert booking_service.get_booking_by_id(booking.id, TENANT_ID).id == booking.id
        with pytest.raises(NotFoundError):
            booking_service.get_booking_by_id(booking.id, "tenant-2")

    def test_tenant_bookings_filter_and_require_admin(self, booking_service, funded_wallet):
        booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("700"))
        booking_service.create_booking(USER_ID, TENANT_ID, Commodity.SILVER, Decimal("90"))

        with pytest.raises(AuthorizationError):
            booking_service.get_tenant_bookings(CUSTOMER, TENANT_ID)

        silver = booking_service.get_tenant_bookings(ADMIN, TENANT_ID, commodity=Commodity.SILVER)
        assert silver.total_count == 1
        assert silver.bookings[0].commodity == Commodity.SILVER

    def test_statistics(self, booking_service, funded_wallet):
        first = booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("1400"))
        booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("700"))
        booking_service.update_booking_status(ADMIN, first.id, TENANT_ID, BookingStatus.REDEEMED)

        stats = booking_service.get_booking_statistics(TENANT_ID, Commodity.GOLD)

        assert stats.total_bookings == 2
        assert stats.total_amount == Decimal("2100.00")
        assert stats.total_grams == Decimal("0.3000")
        assert stats.active_bookings == 1
        assert stats.redeemed_bookings == 1
        assert stats.cancelled_bookings == 0


class TestBookingStatus:
    """예약 상태 전이 테스트"""

    @pytest.fixture
    def booking(self, booking_service, funded_wallet):
        return booking_service.create_booking(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("1400"))

    def test_admin_can_redeem_active_booking(self, booking_service, wallet_service, booking):
        updated = booking_service.update_booking_status(
            ADMIN, booking.id, TENANT_ID, BookingStatus.REDEEMED
        )

        assert updated.status == BookingStatus.REDEEMED
        assert updated.locked_price_per_gram == booking.locked_price_per_gram
        # 상태 변경은 원장을 되돌리지 않음
        assert wallet_service.get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("3600")

    def test_terminal_booking_cannot_transition(self, booking_service, booking):
        booking_service.update_booking_status(ADMIN, booking.id, TENANT_ID, "CANCELLED")

        with pytest.raises(ConflictError):
            booking_service.update_booking_status(ADMIN, booking.id, TENANT_ID, "REDEEMED")

    def test_customer_cannot_change_status(self, booking_service, booking):
        with pytest.raises(AuthorizationError):
            booking_service.update_booking_status(
                CUSTOMER, booking.id, TENANT_ID, BookingStatus.CANCELLED
            )

    def test_admin_of_other_tenant_rejected(self, booking_service, booking):
        outsider = Principal(user_id="admin-2", tenant_id="tenant-2", role=UserRole.ADMIN)

        with pytest.raises(AuthorizationError):
            booking_service.update_booking_status(
                outsider, booking.id, TENANT_ID, BookingStatus.CANCELLED
            )

    def test_unknown_booking_raises_not_found(self, booking_service, tenant):
        with pytest.raises(NotFoundError):
            booking_service.update_booking_status(
                ADMIN, uuid.uuid4(), TENANT_ID, BookingStatus.REDEEMED
            )

    @pytest.mark.parametrize("status", ["ACTIVE", "SHIPPED"])
    def test_invalid_target_status_rejected(self, booking_service, booking, status):
        with pytest.raises(ValidationError):
            booking_service.update_booking_status(ADMIN, booking.id, TENANT_ID, status)

    def test_locked_price_cannot_be_modified(self, db_session, booking):
        model = db_session.query(Booking).filter(Booking.id == booking.id).one()

        with pytest.raises(ValueError):
            model.locked_price_per_gram = Decimal("1.00")
