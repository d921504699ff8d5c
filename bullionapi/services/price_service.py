from datetime import date
from decimal import Decimal
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from bullionapi.core.exceptions import (
    NotFoundError,
    PriceUnavailableError,
    ValidationError,
)
from bullionapi.models.commodity import Commodity
from bullionapi.repositories.price_repository import PriceRepository
from bullionapi.repositories.tenant_repository import TenantRepository
from bullionapi.schemas.price import GramsCalculation, PriceQuote, PriceSnapshotResponse
from bullionapi.schemas.tenant import TenantMarginResponse
from bullionapi.services.price_oracle import PriceOracle
from bullionapi.utils.money import (
    parse_amount,
    parse_decimal,
    round2,
    round4,
    to_decimal,
)
from bullionapi.utils.timezone_utils import get_business_today

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
MAX_MARGIN_PERCENT = Decimal("100")


def calculate_final_price(
    base_price: Decimal, margin_percent: Decimal, margin_fixed: Decimal
) -> Decimal:
    """최종가 = round2(기준가 + 기준가 * 마진율 / 100 + 고정 마진)"""
    base = to_decimal(base_price)
    return round2(base + base * to_decimal(margin_percent) / 100 + to_decimal(margin_fixed))


def calculate_grams_for_amount(amount: Decimal, price_per_gram: Decimal) -> Decimal:
    """금액을 그램당 가격으로 나눈 그램 (소수점 4자리)"""
    return round4(to_decimal(amount) / round2(price_per_gram))


class PriceService:
    """테넌트 마진 적용 가격 정책 서비스"""

    def __init__(self, db: Session, oracle: PriceOracle):
        self.db = db
        self.oracle = oracle
        self.price_repo = PriceRepository(db)
        self.tenant_repo = TenantRepository(db)

    def _margin_for(self, tenant_id: str, commodity: Commodity) -> TenantMarginResponse:
        margin = self.tenant_repo.get_margin(tenant_id, commodity)
        if margin is None:
            return TenantMarginResponse(
                tenant_id=tenant_id,
                commodity=commodity,
                margin_percent=ZERO,
                margin_fixed=ZERO,
            )
        return margin

    def get_current_price(
        self, tenant_id: str, commodity: Commodity, as_of: Optional[date] = None
    ) -> PriceSnapshotResponse:
        """
        저장된 스냅샷 중 적용일이 오늘(영업일) 이전인 가장 최근 가격

        Raises:
            NotFoundError: 스냅샷이 없는 경우
        """
        day = as_of or get_business_today()
        snapshot = self.price_repo.get_latest_snapshot(tenant_id, commodity, day)
        if snapshot is None:
            raise NotFoundError(
                f"No {commodity.value.lower()} price set for tenant {tenant_id}",
                details={"tenant_id": tenant_id, "commodity": commodity.value},
            )
        return snapshot

    def get_live_price(self, tenant_id: str, commodity: Commodity) -> PriceQuote:
        """
        실시간 시세에 테넌트 마진을 적용한 가격 (저장하지 않음)

        오라클이 실패하면 저장된 스냅샷으로 대체합니다.

        Args:
            tenant_id: 테넌트 ID
            commodity: 금속 종류

        Returns:
            PriceQuote: source가 "live" 또는 "snapshot"인 가격

        Raises:
            NotFoundError: 시세와 스냅샷 모두 없는 경우
        """
        try:
            market = self.oracle.fetch_market_price(commodity)
        except PriceUnavailableError as e:
            logger.warning(
                f"Live {commodity.value} price unavailable for tenant {tenant_id}, falling back to snapshot: {e}"
            )
            return self.get_current_price(tenant_id, commodity).to_quote()

        margin = self._margin_for(tenant_id, commodity)
        return PriceQuote(
            tenant_id=tenant_id,
            commodity=commodity,
            base_price=market.price_per_gram,
            margin_percent=margin.margin_percent,
            margin_fixed=margin.margin_fixed,
            final_price=calculate_final_price(
                market.price_per_gram, margin.margin_percent, margin.margin_fixed
            ),
            source="live",
            fetched_at=market.fetched_at,
        )

    def set_price(
        self,
        tenant_id: str,
        commodity: Commodity,
        base_price: Decimal,
        effective_date: Optional[date] = None,
        updated_by: Optional[str] = None,
    ) -> PriceSnapshotResponse:
        """
        관리자 기준가 설정 - (테넌트, 금속, 적용일) 스냅샷 upsert

        Args:
            tenant_id: 테넌트 ID
            commodity: 금속 종류
            base_price: 그램당 기준가 (양수)
            effective_date: 적용일 (기본값: 오늘)
            updated_by: 설정한 관리자 ID

        Returns:
            PriceSnapshotResponse: 저장된 스냅샷
        """
        base = parse_amount(base_price, field="Base price")

        if self.tenant_repo.get_tenant(tenant_id) is None:
            raise NotFoundError(f"Tenant {tenant_id} not found")

        margin = self._margin_for(tenant_id, commodity)
        day = effective_date or get_business_today()
        base = round2(base)

        snapshot = self.price_repo.upsert_snapshot(
            tenant_id=tenant_id,
            commodity=commodity,
            effective_day=day,
            base_price=base,
            margin_percent=margin.margin_percent,
            margin_fixed=margin.margin_fixed,
            final_price=calculate_final_price(
                base, margin.margin_percent, margin.margin_fixed
            ),
            set_by=updated_by,
        )
        logger.info(
            f"Set {commodity.value} price for tenant {tenant_id} on {day}: base={base}, final={snapshot.final_price}"
        )
        return snapshot

    def calculate_grams(
        self, tenant_id: str, commodity: Commodity, amount: Decimal
    ) -> GramsCalculation:
        """금액으로 살 수 있는 그램 계산 (예약과 같은 가격 출처 사용)"""
        amount = parse_amount(amount)

        quote = self.get_live_price(tenant_id, commodity)
        return self.grams_for_quote(quote, amount)

    @staticmethod
    def grams_for_quote(quote: PriceQuote, amount: Decimal) -> GramsCalculation:
        """가격 객체 하나로 고정가와 그램을 함께 계산

        Raises:
            ValidationError: 마진 적용 후 최종가가 0 이하인 경우
        """
        price = round2(quote.final_price)
        if price <= 0:
            raise ValidationError(
                f"Final {quote.commodity.value.lower()} price must be greater than 0",
                details={"final_price": str(price), "source": quote.source},
            )
        return GramsCalculation(
            commodity=quote.commodity,
            amount=round2(amount),
            grams=calculate_grams_for_amount(amount, price),
            price_per_gram=price,
            price_source=quote.source,
        )

    def update_tenant_margin(
        self,
        tenant_id: str,
        commodity: Commodity,
        margin_percent: Optional[Decimal] = None,
        margin_fixed: Optional[Decimal] = None,
    ) -> TenantMarginResponse:
        """
        테넌트 마진 변경 (이후 설정/조회되는 가격부터 적용)

        Raises:
            ValidationError: 값이 하나도 없거나 마진율이 0~100 범위를 벗어난 경우
            NotFoundError: 테넌트가 없는 경우
        """
        if margin_percent is None and margin_fixed is None:
            raise ValidationError("At least one of margin_percent or margin_fixed is required")

        pct = parse_decimal(margin_percent, "Margin percent") if margin_percent is not None else None
        fixed = (
            round2(parse_decimal(margin_fixed, "Margin fixed")) if margin_fixed is not None else None
        )
        if pct is not None and not (0 <= pct <= MAX_MARGIN_PERCENT):
            raise ValidationError(
                f"Margin percent must be between 0 and {MAX_MARGIN_PERCENT}"
            )

        if self.tenant_repo.get_tenant(tenant_id) is None:
            raise NotFoundError(f"Tenant {tenant_id} not found")

        margin = self.tenant_repo.upsert_margin(
            tenant_id, commodity, margin_percent=pct, margin_fixed=fixed
        )
        logger.info(
            f"Updated {commodity.value} margin for tenant {tenant_id}: {margin.margin_percent}% + {margin.margin_fixed}"
        )
        return margin

    def get_price_history(
        self, tenant_id: str, commodity: Commodity, limit: int = 30
    ) -> List[PriceSnapshotResponse]:
        """적용일 내림차순 가격 이력"""
        if limit > 100:
            limit = 100
        return self.price_repo.get_history(tenant_id, commodity, limit=limit)
