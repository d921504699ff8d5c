from decimal import Decimal
from typing import Optional
import uuid

from sqlalchemy import desc, func, update
from sqlalchemy.orm import Session

from bullionapi.models.booking import Booking, BookingStatus
from bullionapi.models.commodity import Commodity
from bullionapi.repositories.base import BaseRepository
from bullionapi.schemas.booking import (
    BookingListResponse,
    BookingResponse,
    BookingStatisticsResponse,
)
from bullionapi.utils.money import round2, round4
from bullionapi.utils.timezone_utils import utcnow


class BookingRepository(BaseRepository[Booking, BookingResponse]):
    """금속 예약 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(Booking, BookingResponse, db)

    def add_booking(
        self,
        user_id: str,
        tenant_id: str,
        commodity: Commodity,
        amount_paid: Decimal,
        grams: Decimal,
        locked_price_per_gram: Decimal,
        commit: bool = True,
    ) -> BookingResponse:
        """ACTIVE 상태의 예약 행 생성"""
        return self.create(
            commit=commit,
            id=uuid.uuid4(),
            user_id=user_id,
            tenant_id=tenant_id,
            commodity=commodity,
            amount_paid=amount_paid,
            grams=grams,
            locked_price_per_gram=locked_price_per_gram,
            status=BookingStatus.ACTIVE,
        )

    def get_booking(
        self, booking_id: uuid.UUID, tenant_id: Optional[str] = None
    ) -> Optional[BookingResponse]:
        query = self.db.query(Booking).populate_existing().filter(Booking.id == booking_id)
        if tenant_id is not None:
            query = query.filter(Booking.tenant_id == tenant_id)
        return self._to_schema(query.first())

    def get_user_bookings(
        self, user_id: str, tenant_id: str, limit: int = 20, offset: int = 0
    ) -> BookingListResponse:
        """사용자 예약 목록 (booked_at 내림차순)"""
        query = self.db.query(Booking).filter(
            Booking.user_id == user_id, Booking.tenant_id == tenant_id
        )
        return self._paginate(query, limit, offset)

    def get_tenant_bookings(
        self,
        tenant_id: str,
        status: Optional[BookingStatus] = None,
        commodity: Optional[Commodity] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> BookingListResponse:
        query = self.db.query(Booking).filter(Booking.tenant_id == tenant_id)
        if status is not None:
            query = query.filter(Booking.status == status)
        if commodity is not None:
            query = query.filter(Booking.commodity == commodity)
        return self._paginate(query, limit, offset)

    def _paginate(self, query, limit: int, offset: int) -> BookingListResponse:
        total_count = query.count()
        bookings = (
            query.order_by(desc(Booking.booked_at), desc(Booking.id))
            .limit(limit)
            .offset(offset)
            .all()
        )
        return BookingListResponse(
            bookings=[self._to_schema(b) for b in bookings],
            total_count=total_count,
            has_next=offset + limit < total_count,
        )

    def transition_status(
        self,
        booking_id: uuid.UUID,
        tenant_id: str,
        new_status: BookingStatus,
        commit: bool = True,
    ) -> bool:
        """
        ACTIVE 예약만 새 상태로 변경 (조건부 UPDATE)

        Returns:
            bool: 변경되었으면 True. 예약이 없거나 이미 종료 상태면 False
        """
        result = self.db.execute(
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.tenant_id == tenant_id,
                Booking.status == BookingStatus.ACTIVE,
            )
            .values(status=new_status, updated_at=utcnow())
        )
        self._finish(commit)
        return result.rowcount > 0

    def get_statistics(
        self, tenant_id: str, commodity: Commodity
    ) -> BookingStatisticsResponse:
        """테넌트/금속별 예약 합계 및 상태별 건수"""
        rows = (
            self.db.query(
                Booking.status,
                func.count(Booking.id),
                func.sum(Booking.amount_paid),
                func.sum(Booking.grams),
            )
            .filter(Booking.tenant_id == tenant_id, Booking.commodity == commodity)
            .group_by(Booking.status)
            .all()
        )

        stats = BookingStatisticsResponse(tenant_id=tenant_id, commodity=commodity)
        total_amount = Decimal("0")
        total_grams = Decimal("0")
        for status, count, amount_sum, grams_sum in rows:
            stats.total_bookings += count
            total_amount += round2(amount_sum or 0)
            total_grams += round4(grams_sum or 0)
            if status == BookingStatus.ACTIVE:
                stats.active_bookings = count
            elif status == BookingStatus.REDEEMED:
                stats.redeemed_bookings = count
            elif status == BookingStatus.CANCELLED:
                stats.cancelled_bookings = count

        stats.total_amount = round2(total_amount)
        stats.total_grams = round4(total_grams)
        return stats
