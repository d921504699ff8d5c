from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from bullionapi.models.commodity import Commodity
from bullionapi.models.tenant import Tenant, TenantMargin
from bullionapi.repositories.base import BaseRepository
from bullionapi.schemas.tenant import TenantMarginResponse, TenantResponse


class TenantRepository(BaseRepository[Tenant, TenantResponse]):
    """테넌트 및 금속별 마진 설정 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(Tenant, TenantResponse, db)

    def get_tenant(self, tenant_id: str) -> Optional[TenantResponse]:
        return self.get_by_id(tenant_id)

    def create_tenant(
        self, tenant_id: str, name: str, commit: bool = True
    ) -> TenantResponse:
        return self.create(commit=commit, id=tenant_id, name=name, is_active=True)

    def get_margin(
        self, tenant_id: str, commodity: Commodity
    ) -> Optional[TenantMarginResponse]:
        margin = (
            self.db.query(TenantMargin)
            .filter(
                TenantMargin.tenant_id == tenant_id,
                TenantMargin.commodity == commodity,
            )
            .first()
        )
        if margin is None:
            return None
        return TenantMarginResponse.model_validate(margin)

    def upsert_margin(
        self,
        tenant_id: str,
        commodity: Commodity,
        margin_percent: Optional[Decimal] = None,
        margin_fixed: Optional[Decimal] = None,
        commit: bool = True,
    ) -> TenantMarginResponse:
        """
        마진 설정 생성/수정 - None으로 전달된 값은 기존 값을 유지

        Returns:
            TenantMarginResponse: 저장된 마진 설정
        """
        margin = (
            self.db.query(TenantMargin)
            .filter(
                TenantMargin.tenant_id == tenant_id,
                TenantMargin.commodity == commodity,
            )
            .with_for_update()
            .first()
        )

        if margin is None:
            margin = TenantMargin(
                tenant_id=tenant_id,
                commodity=commodity,
                margin_percent=Decimal("0"),
                margin_fixed=Decimal("0"),
            )
            self.db.add(margin)

        if margin_percent is not None:
            margin.margin_percent = margin_percent
        if margin_fixed is not None:
            margin.margin_fixed = margin_fixed

        try:
            self.db.flush()
            self._finish(commit)
        except Exception:
            self.db.rollback()
            raise
        return TenantMarginResponse.model_validate(margin)
