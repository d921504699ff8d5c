from decimal import Decimal
from typing import Any, Dict, Optional
import logging
import uuid

from sqlalchemy.orm import Session

from bullionapi.core.exceptions import (
    AuthorizationError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from bullionapi.models.commodity import Commodity
from bullionapi.repositories.wallet_repository import WalletRepository
from bullionapi.schemas.auth import Principal
from bullionapi.schemas.wallet import (
    CreditResult,
    LedgerHistoryResponse,
    LedgerTransactionEntry,
    WalletIntegrityResponse,
    WalletResponse,
)
from bullionapi.utils.money import parse_amount, round2, round4

logger = logging.getLogger(__name__)


class WalletService:
    """지갑(현금/그램) 원장 서비스"""

    def __init__(self, db: Session):
        self.db = db
        self.wallet_repo = WalletRepository(db)

    def create_wallet(self, user_id: str, tenant_id: str) -> WalletResponse:
        """지갑 생성 (가입 시, 멱등)"""
        wallet = self.wallet_repo.create_wallet(user_id, tenant_id)
        logger.info(f"Wallet ready for user {user_id} in tenant {tenant_id}")
        return wallet

    def get_wallet(self, user_id: str, tenant_id: str) -> WalletResponse:
        """지갑 조회

        Raises:
            NotFoundError: 지갑이 없는 경우
        """
        wallet = self.wallet_repo.get_wallet(user_id, tenant_id)
        if wallet is None:
            raise NotFoundError(
                "Wallet not found",
                details={"user_id": user_id, "tenant_id": tenant_id},
            )
        return wallet

    def credit(
        self,
        user_id: str,
        tenant_id: str,
        amount: Decimal,
        external_ref: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> CreditResult:
        """현금 입금 (결제 완료) - external_ref 기준 멱등

        같은 external_ref로 다시 호출되면 잔액을 바꾸지 않고 성공을 반환합니다.

        Args:
            user_id: 사용자 ID
            tenant_id: 테넌트 ID
            amount: 입금 금액
            external_ref: 게이트웨이 결제 ID
            meta: 게이트웨이 원본 응답 (감사용)

        Returns:
            CreditResult: 입금 결과
        """
        value = round2(parse_amount(amount))
        if not external_ref:
            raise ValidationError("External reference is required for credits")

        result = self.wallet_repo.credit_cash(
            user_id=user_id,
            tenant_id=tenant_id,
            amount=value,
            external_ref=external_ref,
            description=f"Wallet top-up via payment {external_ref}",
            gateway_payload=meta,
        )
        if result is None:
            raise NotFoundError(
                "Wallet not found",
                details={"user_id": user_id, "tenant_id": tenant_id},
            )

        if result.already_processed:
            logger.info(f"Credit for {external_ref} already processed, skipping")
        else:
            logger.info(
                f"Credited {value} to wallet of user {user_id} (tenant {tenant_id}) via {external_ref}"
            )
        return result

    def debit(
        self,
        user_id: str,
        tenant_id: str,
        amount: Decimal,
        booking_id: Optional[uuid.UUID] = None,
        commit: bool = True,
    ) -> LedgerTransactionEntry:
        """현금 차감 - 잔액 확인과 차감이 하나의 원자적 UPDATE

        Raises:
            NotFoundError: 지갑이 없는 경우
            InsufficientBalanceError: 잔액이 부족한 경우
        """
        value = round2(parse_amount(amount))

        entry = self.wallet_repo.debit_cash(
            user_id=user_id,
            tenant_id=tenant_id,
            amount=value,
            booking_id=booking_id,
            description=f"Booking {booking_id}" if booking_id else "Wallet debit",
            commit=commit,
        )
        if entry is None:
            if self.wallet_repo.get_wallet_id(user_id, tenant_id) is None:
                raise NotFoundError(
                    "Wallet not found",
                    details={"user_id": user_id, "tenant_id": tenant_id},
                )
            logger.info(f"Insufficient balance for user {user_id}: requested {value}")
            raise InsufficientBalanceError(
                "Insufficient wallet balance",
                details={"requested": str(value)},
            )
        return entry

    def credit_grams(
        self,
        user_id: str,
        tenant_id: str,
        commodity: Commodity,
        grams: Decimal,
        commit: bool = True,
    ) -> Decimal:
        """금속 그램 적립

        Returns:
            Decimal: 적립 후 보유량
        """
        value = round4(parse_amount(grams, field="Grams"))
        wallet_id = self.wallet_repo.get_wallet_id(user_id, tenant_id)
        if wallet_id is None:
            raise NotFoundError(
                "Wallet not found",
                details={"user_id": user_id, "tenant_id": tenant_id},
            )
        return self.wallet_repo.credit_grams(wallet_id, commodity, value, commit=commit)

    def get_transaction_history(
        self, user_id: str, tenant_id: str, limit: int = 50, offset: int = 0
    ) -> LedgerHistoryResponse:
        """사용자 거래 내역 (최신순, 최대 100건)"""
        if limit > 100:
            limit = 100
        return self.wallet_repo.get_ledger(user_id, tenant_id, limit=limit, offset=offset)

    def get_tenant_transactions(
        self, actor: Principal, tenant_id: str, limit: int = 50, offset: int = 0
    ) -> LedgerHistoryResponse:
        """테넌트 전체 거래 내역 (관리자 전용)"""
        if not actor.is_admin or actor.tenant_id != tenant_id:
            raise AuthorizationError(
                "Admin access to this tenant is required",
                details={"tenant_id": tenant_id},
            )
        if limit > 100:
            limit = 100
        return self.wallet_repo.get_tenant_ledger(tenant_id, limit=limit, offset=offset)

    def verify_wallet_integrity(
        self, user_id: str, tenant_id: str
    ) -> WalletIntegrityResponse:
        """지갑 정합성 검증 (잔액 vs 원장 합계, 예약별 DEBIT, 보유량 vs 예약 그램)"""
        result = self.wallet_repo.verify_integrity(user_id, tenant_id)
        if result is None:
            raise NotFoundError(
                "Wallet not found",
                details={"user_id": user_id, "tenant_id": tenant_id},
            )
        if result.status != "OK":
            logger.warning(
                f"Wallet integrity mismatch for user {user_id} in tenant {tenant_id}: {result.model_dump()}"
            )
        return result
