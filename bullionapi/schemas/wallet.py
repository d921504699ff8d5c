from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
import uuid

from pydantic import BaseModel, Field

from bullionapi.models.commodity import Commodity
from bullionapi.models.wallet import TransactionStatus, TransactionType


class WalletResponse(BaseModel):
    """지갑 스냅샷"""

    user_id: str = Field(..., description="사용자 ID")
    tenant_id: str = Field(..., description="테넌트 ID")
    cash_balance: Decimal = Field(..., description="현금 잔액")
    gram_balances: Dict[Commodity, Decimal] = Field(
        default_factory=dict, description="금속별 보유 그램"
    )
    updated_at: datetime = Field(..., description="마지막 변경 시각")


class LedgerTransactionEntry(BaseModel):
    """원장 항목"""

    id: int = Field(..., description="원장 항목 ID")
    user_id: str
    tenant_id: str
    booking_id: Optional[uuid.UUID] = Field(None, description="예약 ID (DEBIT)")
    amount: Decimal = Field(..., description="금액")
    type: TransactionType = Field(..., description="거래 유형")
    status: TransactionStatus = Field(..., description="거래 상태")
    balance_after: Decimal = Field(..., description="거래 후 잔액")
    external_ref: Optional[str] = Field(None, description="게이트웨이 결제 ID")
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LedgerHistoryResponse(BaseModel):
    """원장 조회 응답 (페이징)"""

    entries: List[LedgerTransactionEntry] = Field(..., description="원장 항목 목록 (최신순)")
    total_count: int = Field(..., description="전체 항목 수")
    has_next: bool = Field(..., description="다음 페이지 존재 여부")


class CreditResult(BaseModel):
    """입금 처리 결과"""

    success: bool = Field(..., description="성공 여부")
    transaction_id: Optional[int] = Field(None, description="원장 항목 ID")
    amount: Decimal = Field(..., description="입금 금액")
    balance_after: Decimal = Field(..., description="입금 후 잔액")
    already_processed: bool = Field(False, description="이미 처리된 결제인지 여부 (멱등)")
    message: str = Field(..., description="응답 메시지")


class HoldingMismatch(BaseModel):
    commodity: Commodity
    recorded_grams: Decimal
    booked_grams: Decimal


class WalletIntegrityResponse(BaseModel):
    """지갑 정합성 검증 응답"""

    status: str = Field(..., description="검증 상태 (OK, MISMATCH)")
    user_id: str
    tenant_id: str
    recorded_cash_balance: Decimal = Field(..., description="지갑에 기록된 잔액")
    calculated_cash_balance: Decimal = Field(..., description="원장 합계로 계산한 잔액")
    booking_count: int = Field(..., description="예약 수")
    bookings_without_single_debit: List[uuid.UUID] = Field(
        default_factory=list, description="DEBIT이 정확히 1건이 아닌 예약"
    )
    holding_mismatches: List[HoldingMismatch] = Field(default_factory=list)
    verified_at: datetime
