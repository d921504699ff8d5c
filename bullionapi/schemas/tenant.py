from decimal import Decimal

from pydantic import BaseModel, Field

from bullionapi.models.commodity import Commodity


class TenantResponse(BaseModel):
    id: str = Field(..., description="테넌트 ID")
    name: str = Field(..., description="테넌트 이름")
    is_active: bool = True

    class Config:
        from_attributes = True


class TenantMarginResponse(BaseModel):
    """테넌트 금속별 마진 설정"""

    tenant_id: str
    commodity: Commodity
    margin_percent: Decimal = Field(..., description="마진율 (%)")
    margin_fixed: Decimal = Field(..., description="고정 마진 (그램당)")

    class Config:
        from_attributes = True
