"""
지갑 및 원장(Ledger) 데이터 모델

- Wallet: (user, tenant)당 하나, 현금 잔액 보유
- WalletHolding: 지갑별/금속별 그램 보유량 (commodity 키 맵)
- LedgerTransaction: 지갑에 영향을 주는 모든 금융 이벤트의 추가 전용(append-only) 기록

원칙:
1. 불변성(Immutable): 원장 레코드는 생성 후 수정/삭제되지 않음
2. 멱등성(Idempotent): external_ref 유니크 제약으로 동일 결제의 중복 입금 방지
3. 비음수(Non-negative): 잔액/보유량은 CHECK 제약으로 DB가 직접 보장
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from bullionapi.models.base import Base, BaseModel, BigIntId
from bullionapi.models.commodity import Commodity, commodity_column_type
from bullionapi.utils.timezone_utils import utcnow


class TransactionType(str, Enum):
    CREDIT = "CREDIT"  # 결제 게이트웨이 충전
    DEBIT = "DEBIT"  # 예약 결제
    REFUND = "REFUND"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Wallet(BaseModel):
    __tablename__ = "wallets"
    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_wallets_user_tenant"),
        CheckConstraint("cash_balance >= 0", name="ck_wallets_cash_balance"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    cash_balance: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )

    def __repr__(self):
        return f"<Wallet(user='{self.user_id}', tenant='{self.tenant_id}', cash={self.cash_balance})>"


class WalletHolding(BaseModel):
    __tablename__ = "wallet_holdings"
    __table_args__ = (
        UniqueConstraint("wallet_id", "commodity", name="uq_wallet_holdings_commodity"),
        CheckConstraint("grams >= 0", name="ck_wallet_holdings_grams"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("wallets.id"), nullable=False
    )
    commodity: Mapped[Commodity] = mapped_column(commodity_column_type(), nullable=False)
    grams: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=Decimal("0")
    )


class LedgerTransaction(Base):
    """
    원장 테이블 - 추가 전용이므로 updated_at이 없음

    external_ref는 결제 게이트웨이의 payment id이며 유니크합니다.
    동기 결제 확인과 웹훅이 서로 다른 프로세스에서 경합해도 CREDIT은 하나만 남습니다.
    DEBIT 행은 external_ref가 NULL이므로 제약에 걸리지 않습니다.
    """

    __tablename__ = "ledger_transactions"
    __table_args__ = (
        UniqueConstraint("external_ref", name="uq_ledger_transactions_external_ref"),
        CheckConstraint("amount > 0", name="ck_ledger_transactions_amount"),
        Index("ix_ledger_transactions_user_tenant", "user_id", "tenant_id"),
        Index("ix_ledger_transactions_booking", "booking_id"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("wallets.id"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    booking_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType, native_enum=False, length=16, name="transaction_type"),
        nullable=False,
    )
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(
            TransactionStatus, native_enum=False, length=16, name="transaction_status"
        ),
        nullable=False,
        default=TransactionStatus.SUCCESS,
    )
    # 거래 직후 현금 잔액 (감사 추적용)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    external_ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    gateway_payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self):
        return f"<LedgerTransaction(id={self.id}, type='{self.type}', amount={self.amount}, ref='{self.external_ref}')>"
