"""
금속 예약(Booking) 데이터 모델

예약은 지갑 현금 차감 + 예약 행 생성 + 그램 적립이 하나의 트랜잭션으로 처리된 결과입니다.
locked_price_per_gram은 생성 이후 변경할 수 없습니다.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
import uuid

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    Index,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from bullionapi.models.base import Base
from bullionapi.models.commodity import Commodity, commodity_column_type
from bullionapi.utils.timezone_utils import utcnow


class BookingStatus(str, Enum):
    """예약 상태 - ACTIVE에서만 REDEEMED/CANCELLED로 전이 가능 (둘 다 종료 상태)"""

    ACTIVE = "ACTIVE"
    REDEEMED = "REDEEMED"
    CANCELLED = "CANCELLED"

    def can_transition_to(self, new_status: "BookingStatus") -> bool:
        return self is BookingStatus.ACTIVE and new_status in (
            BookingStatus.REDEEMED,
            BookingStatus.CANCELLED,
        )


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("amount_paid > 0", name="ck_bookings_amount_paid"),
        CheckConstraint("grams > 0", name="ck_bookings_grams"),
        Index("ix_bookings_user_tenant", "user_id", "tenant_id"),
        Index("ix_bookings_booked_at", "booked_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    commodity: Mapped[Commodity] = mapped_column(commodity_column_type(), nullable=False)

    amount_paid: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    grams: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    locked_price_per_gram: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False
    )
    status: Mapped[BookingStatus] = mapped_column(
        SAEnum(BookingStatus, native_enum=False, length=16, name="booking_status"),
        nullable=False,
        default=BookingStatus.ACTIVE,
    )

    booked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    @validates("locked_price_per_gram")
    def _validate_locked_price(self, key, value):
        current = self.__dict__.get(key)
        if current is not None and Decimal(str(current)) != Decimal(str(value)):
            raise ValueError("locked_price_per_gram is immutable once set")
        return value

    def __repr__(self):
        return f"<Booking(id='{self.id}', commodity='{self.commodity}', grams={self.grams}, status='{self.status}')>"
