"""
가격 스냅샷 리포지토리

(tenant_id, commodity, effective_day) 유니크 제약을 기준으로 한 번의 INSERT ... ON CONFLICT DO UPDATE로
스냅샷을 저장합니다. 동시에 들어온 관리자 업데이트는 마지막 요청 값으로 수렴하고 중복 행은 생기지 않습니다.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from bullionapi.models.commodity import Commodity
from bullionapi.models.price import PriceSnapshot
from bullionapi.repositories.base import BaseRepository
from bullionapi.schemas.price import PriceSnapshotResponse
from bullionapi.utils.timezone_utils import utcnow

_UPSERT_BUILDERS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class PriceRepository(BaseRepository[PriceSnapshot, PriceSnapshotResponse]):
    def __init__(self, db: Session):
        super().__init__(PriceSnapshot, PriceSnapshotResponse, db)

    def _insert_builder(self):
        dialect = self.db.get_bind().dialect.name
        builder = _UPSERT_BUILDERS.get(dialect)
        if builder is None:
            raise NotImplementedError(f"Snapshot upsert is not supported on {dialect}")
        return builder

    def upsert_snapshot(
        self,
        tenant_id: str,
        commodity: Commodity,
        effective_day: date,
        base_price: Decimal,
        margin_percent: Decimal,
        margin_fixed: Decimal,
        final_price: Decimal,
        set_by: Optional[str] = None,
        commit: bool = True,
    ) -> PriceSnapshotResponse:
        """
        일별 스냅샷 upsert (원자적)

        Args:
            tenant_id: 테넌트 ID
            commodity: 금속 종류
            effective_day: 적용일
            base_price: 기준가
            margin_percent: 마진율
            margin_fixed: 고정 마진
            final_price: 최종가
            set_by: 설정한 관리자 ID

        Returns:
            PriceSnapshotResponse: 저장된 스냅샷
        """
        now = utcnow()
        insert = self._insert_builder()
        stmt = insert(PriceSnapshot).values(
            tenant_id=tenant_id,
            commodity=commodity,
            effective_day=effective_day,
            base_price=base_price,
            margin_percent=margin_percent,
            margin_fixed=margin_fixed,
            final_price=final_price,
            set_by=set_by,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "commodity", "effective_day"],
            set_={
                "base_price": stmt.excluded.base_price,
                "margin_percent": stmt.excluded.margin_percent,
                "margin_fixed": stmt.excluded.margin_fixed,
                "final_price": stmt.excluded.final_price,
                "set_by": stmt.excluded.set_by,
                "updated_at": stmt.excluded.updated_at,
            },
        )

        try:
            self.db.execute(stmt)
            self._finish(commit)
        except Exception:
            self.db.rollback()
            raise

        snapshot = self.get_snapshot(tenant_id, commodity, effective_day)
        if snapshot is None:
            raise RuntimeError(
                f"Snapshot upsert for {tenant_id}/{commodity.value}/{effective_day} returned no row"
            )
        return snapshot

    def get_snapshot(
        self, tenant_id: str, commodity: Commodity, effective_day: date
    ) -> Optional[PriceSnapshotResponse]:
        snapshot = (
            self.db.query(PriceSnapshot)
            .populate_existing()
            .filter(
                PriceSnapshot.tenant_id == tenant_id,
                PriceSnapshot.commodity == commodity,
                PriceSnapshot.effective_day == effective_day,
            )
            .first()
        )
        return self._to_schema(snapshot)

    def get_latest_snapshot(
        self, tenant_id: str, commodity: Commodity, as_of: date
    ) -> Optional[PriceSnapshotResponse]:
        """as_of 이전(포함) 가장 최근 적용일의 스냅샷"""
        snapshot = (
            self.db.query(PriceSnapshot)
            .filter(
                PriceSnapshot.tenant_id == tenant_id,
                PriceSnapshot.commodity == commodity,
                PriceSnapshot.effective_day <= as_of,
            )
            .order_by(desc(PriceSnapshot.effective_day))
            .first()
        )
        return self._to_schema(snapshot)

    def get_history(
        self, tenant_id: str, commodity: Commodity, limit: int = 30
    ) -> List[PriceSnapshotResponse]:
        snapshots = (
            self.db.query(PriceSnapshot)
            .filter(
                PriceSnapshot.tenant_id == tenant_id,
                PriceSnapshot.commodity == commodity,
            )
            .order_by(desc(PriceSnapshot.effective_day))
            .limit(limit)
            .all()
        )
        return [self._to_schema(s) for s in snapshots]
