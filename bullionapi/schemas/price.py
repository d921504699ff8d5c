from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
import uuid

from pydantic import BaseModel, Field

from bullionapi.models.commodity import Commodity


class MarketPrice(BaseModel):
    """외부 시세 제공자 기준가 (그램당, 마진 미적용)"""

    commodity: Commodity = Field(..., description="금속 종류")
    price_per_gram: Decimal = Field(..., description="그램당 시세")
    source: str = Field(..., description="시세 제공자 이름")
    fetched_at: datetime = Field(..., description="시세 수집 시각")
    from_cache: bool = Field(False, description="캐시에서 반환되었는지 여부")
    is_stale: bool = Field(False, description="TTL이 지난 캐시를 반환했는지 여부")


class PriceQuote(BaseModel):
    """테넌트 마진이 적용된 가격 (저장되지 않는 일시적 객체)"""

    tenant_id: str = Field(..., description="테넌트 ID")
    commodity: Commodity = Field(..., description="금속 종류")
    base_price: Decimal = Field(..., description="기준가")
    margin_percent: Decimal = Field(..., description="마진율 (%)")
    margin_fixed: Decimal = Field(..., description="고정 마진")
    final_price: Decimal = Field(..., description="최종가 (그램당)")
    source: str = Field(..., description="가격 출처 (live/snapshot)")
    fetched_at: datetime = Field(..., description="가격 기준 시각")


class PriceSnapshotResponse(BaseModel):
    """저장된 일별 가격 스냅샷"""

    id: uuid.UUID
    tenant_id: str
    commodity: Commodity
    effective_day: date
    base_price: Decimal
    margin_percent: Decimal
    margin_fixed: Decimal
    final_price: Decimal
    set_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    def to_quote(self) -> PriceQuote:
        """스냅샷을 가격 응답 형태로 변환 (라이브 시세 장애 시 대체용)"""
        return PriceQuote(
            tenant_id=self.tenant_id,
            commodity=self.commodity,
            base_price=self.base_price,
            margin_percent=self.margin_percent,
            margin_fixed=self.margin_fixed,
            final_price=self.final_price,
            source="snapshot",
            fetched_at=self.updated_at,
        )


class GramsCalculation(BaseModel):
    """금액 → 그램 환산 결과"""

    commodity: Commodity = Field(..., description="금속 종류")
    amount: Decimal = Field(..., description="결제 금액")
    grams: Decimal = Field(..., description="환산 그램 (소수점 4자리)")
    price_per_gram: Decimal = Field(..., description="적용 그램당 가격 (소수점 2자리)")
    price_source: str = Field(..., description="가격 출처 (live/snapshot)")
