"""
테넌트(주얼러) 데이터 모델

테넌트별 금속 마진은 commodity 키로 분리된 별도 테이블에 저장됩니다.
"""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from bullionapi.models.base import BaseModel, BigIntId
from bullionapi.models.commodity import Commodity, commodity_column_type


class Tenant(BaseModel):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<Tenant(id='{self.id}', active={self.is_active})>"


class TenantMargin(BaseModel):
    """
    테넌트 마진 설정 - 최종가 = 기준가 + 기준가 * margin_percent / 100 + margin_fixed
    """

    __tablename__ = "tenant_margins"
    __table_args__ = (
        UniqueConstraint("tenant_id", "commodity", name="uq_tenant_margins_commodity"),
        CheckConstraint(
            "margin_percent >= 0 AND margin_percent <= 100", name="ck_tenant_margins_percent"
        ),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.id"), nullable=False
    )
    commodity: Mapped[Commodity] = mapped_column(commodity_column_type(), nullable=False)
    margin_percent: Mapped[Decimal] = mapped_column(
        Numeric(6, 3), nullable=False, default=Decimal("0")
    )
    margin_fixed: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
