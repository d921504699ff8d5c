"""
일별 가격 스냅샷 모델

테넌트/금속/날짜별로 한 행만 존재하며 (tenant_id, commodity, effective_day) 유니크 제약으로
동시 관리자 업데이트도 upsert 한 번으로 수렴합니다 (last-writer-wins).
"""

from datetime import date
from decimal import Decimal
import uuid
from typing import Optional

from sqlalchemy import Date, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from bullionapi.models.base import BaseModel
from bullionapi.models.commodity import Commodity, commodity_column_type


class PriceSnapshot(BaseModel):
    __tablename__ = "price_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "commodity",
            "effective_day",
            name="uq_price_snapshots_tenant_commodity_day",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.id"), nullable=False
    )
    commodity: Mapped[Commodity] = mapped_column(commodity_column_type(), nullable=False)
    effective_day: Mapped[date] = mapped_column(Date, nullable=False, comment="적용일")

    base_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, comment="시장 기준가 (그램당)"
    )
    margin_percent: Mapped[Decimal] = mapped_column(
        Numeric(6, 3), nullable=False, default=Decimal("0")
    )
    margin_fixed: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    final_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, comment="마진 적용 최종가 (그램당)"
    )
    set_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    def __repr__(self):
        return f"<PriceSnapshot(tenant='{self.tenant_id}', commodity='{self.commodity}', day='{self.effective_day}', final={self.final_price})>"
