from datetime import datetime
from decimal import Decimal
from typing import List
import uuid

from pydantic import BaseModel, Field

from bullionapi.models.booking import BookingStatus
from bullionapi.models.commodity import Commodity


class BookingResponse(BaseModel):
    """예약 정보"""

    id: uuid.UUID = Field(..., description="예약 ID")
    user_id: str
    tenant_id: str
    commodity: Commodity = Field(..., description="금속 종류")
    amount_paid: Decimal = Field(..., description="결제 금액")
    grams: Decimal = Field(..., description="적립 그램")
    locked_price_per_gram: Decimal = Field(..., description="고정된 그램당 가격")
    status: BookingStatus = Field(..., description="예약 상태")
    booked_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse] = Field(..., description="예약 목록 (최신순)")
    total_count: int = Field(..., description="전체 예약 수")
    has_next: bool = Field(..., description="다음 페이지 존재 여부")


class BookingStatisticsResponse(BaseModel):
    """테넌트 예약 통계"""

    tenant_id: str
    commodity: Commodity
    total_bookings: int = 0
    total_amount: Decimal = Decimal("0")
    total_grams: Decimal = Decimal("0")
    active_bookings: int = 0
    redeemed_bookings: int = 0
    cancelled_bookings: int = 0
