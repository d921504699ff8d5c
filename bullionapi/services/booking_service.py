"""
금속 예약 서비스

예약 생성은 하나의 트랜잭션입니다:
1. 예약 행 INSERT (ACTIVE)
2. 지갑 현금 차감 (조건부 UPDATE + DEBIT 원장)
3. 금속 그램 적립
중간에 실패하면 전체 롤백되어 예약/원장/그램 어느 것도 남지 않습니다.
"""

from decimal import Decimal
from typing import Optional, Union
import logging
import uuid

from sqlalchemy.orm import Session

from bullionapi.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from bullionapi.models.booking import BookingStatus
from bullionapi.models.commodity import Commodity
from bullionapi.repositories.booking_repository import BookingRepository
from bullionapi.schemas.auth import Principal
from bullionapi.schemas.booking import (
    BookingListResponse,
    BookingResponse,
    BookingStatisticsResponse,
)
from bullionapi.services.price_oracle import PriceOracle
from bullionapi.services.price_service import PriceService
from bullionapi.services.wallet_service import WalletService
from bullionapi.utils.money import parse_amount, round2

logger = logging.getLogger(__name__)


def _parse_commodity(value: Union[str, Commodity]) -> Commodity:
    try:
        return Commodity.parse(value)
    except ValueError:
        raise ValidationError(f"Unsupported commodity: {value}")


def _require_tenant_admin(actor: Principal, tenant_id: str) -> None:
    if not actor.is_admin or actor.tenant_id != tenant_id:
        raise AuthorizationError(
            "Admin access to this tenant is required",
            details={"tenant_id": tenant_id},
        )


class BookingService:
    """금속 예약 비즈니스 로직"""

    def __init__(self, db: Session, oracle: PriceOracle):
        self.db = db
        self.price_service = PriceService(db, oracle)
        self.wallet_service = WalletService(db)
        self.booking_repo = BookingRepository(db)

    def create_booking(
        self,
        user_id: str,
        tenant_id: str,
        commodity: Union[str, Commodity],
        amount: Decimal,
    ) -> BookingResponse:
        """
        금속 예약 생성

        고정가(locked_price_per_gram)와 그램 계산은 같은 가격 객체를 사용합니다.
        실시간 시세가 없으면 저장된 스냅샷 가격이 사용됩니다.

        Args:
            user_id: 사용자 ID
            tenant_id: 테넌트 ID
            commodity: 금속 종류
            amount: 결제 금액

        Returns:
            BookingResponse: 생성된 예약

        Raises:
            ValidationError: 금액이 0 이하이거나 환산 그램이 0인 경우
            NotFoundError: 지갑 또는 가격이 없는 경우
            InsufficientBalanceError: 잔액 부족
        """
        commodity = _parse_commodity(commodity)
        amount = round2(parse_amount(amount))

        quote = self.price_service.get_live_price(tenant_id, commodity)
        calculation = PriceService.grams_for_quote(quote, amount)
        if calculation.grams <= 0:
            raise ValidationError(
                "Amount is too small to book any grams",
                details={"price_per_gram": str(calculation.price_per_gram)},
            )

        if self.wallet_service.wallet_repo.get_wallet_id(user_id, tenant_id) is None:
            raise NotFoundError(
                "Wallet not found",
                details={"user_id": user_id, "tenant_id": tenant_id},
            )

        try:
            booking = self.booking_repo.add_booking(
                user_id=user_id,
                tenant_id=tenant_id,
                commodity=commodity,
                amount_paid=amount,
                grams=calculation.grams,
                locked_price_per_gram=calculation.price_per_gram,
                commit=False,
            )
            self.wallet_service.debit(
                user_id, tenant_id, amount, booking_id=booking.id, commit=False
            )
            self.wallet_service.credit_grams(
                user_id, tenant_id, commodity, calculation.grams, commit=False
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Booking {booking.id} created: user {user_id}, {calculation.grams}g {commodity.value} at {calculation.price_per_gram} ({quote.source})"
        )
        return booking

    def get_booking_by_id(self, booking_id: uuid.UUID, tenant_id: str) -> BookingResponse:
        booking = self.booking_repo.get_booking(booking_id, tenant_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def get_user_bookings(
        self, user_id: str, tenant_id: str, limit: int = 20, offset: int = 0
    ) -> BookingListResponse:
        """사용자 예약 목록 (최신순)

        Args:
            user_id: 사용자 ID
            tenant_id: 테넌트 ID
            limit: 페이지 크기 (최대 100)
            offset: 오프셋
        """
        if limit > 100:
            limit = 100
        return self.booking_repo.get_user_bookings(user_id, tenant_id, limit=limit, offset=offset)

    def get_tenant_bookings(
        self,
        actor: Principal,
        tenant_id: str,
        status: Optional[BookingStatus] = None,
        commodity: Optional[Commodity] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> BookingListResponse:
        """테넌트 전체 예약 목록 (관리자 전용)"""
        _require_tenant_admin(actor, tenant_id)
        if limit > 100:
            limit = 100
        return self.booking_repo.get_tenant_bookings(
            tenant_id, status=status, commodity=commodity, limit=limit, offset=offset
        )

    def update_booking_status(
        self,
        actor: Principal,
        booking_id: uuid.UUID,
        tenant_id: str,
        new_status: Union[str, BookingStatus],
    ) -> BookingResponse:
        """
        예약 상태 변경 (관리자 전용)

        ACTIVE → REDEEMED | CANCELLED 만 허용됩니다. 원장/그램은 되돌리지 않습니다.

        Raises:
            AuthorizationError: 관리자가 아니거나 다른 테넌트인 경우
            ValidationError: 알 수 없는 상태
            NotFoundError: 예약이 없는 경우
            ConflictError: 이미 종료된 예약
        """
        _require_tenant_admin(actor, tenant_id)

        try:
            target = BookingStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown booking status: {new_status}")
        if not BookingStatus.ACTIVE.can_transition_to(target):
            raise ValidationError(f"Bookings cannot be moved to {target.value}")

        if not self.booking_repo.transition_status(booking_id, tenant_id, target):
            existing = self.booking_repo.get_booking(booking_id, tenant_id)
            if existing is None:
                raise NotFoundError(f"Booking {booking_id} not found")
            raise ConflictError(
                f"Booking is already {existing.status.value}",
                details={"booking_id": str(booking_id), "status": existing.status.value},
            )

        logger.info(f"Booking {booking_id} moved to {target.value} by {actor.user_id}")
        return self.booking_repo.get_booking(booking_id, tenant_id)

    def get_booking_statistics(
        self, tenant_id: str, commodity: Union[str, Commodity]
    ) -> BookingStatisticsResponse:
        return self.booking_repo.get_statistics(tenant_id, _parse_commodity(commodity))
