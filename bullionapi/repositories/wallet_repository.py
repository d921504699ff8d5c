"""
지갑 리포지토리 - 현금 잔액, 그램 보유량, 원장 기록

이 파일은 지갑의 모든 금액 변동을 담당합니다:
1. 현금 입금 (CREDIT) - external_ref로 멱등성 보장
2. 현금 차감 (DEBIT) - 조건부 UPDATE로 잔액 확인과 차감을 한 문장에서 처리
3. 그램 적립 - UPDATE ... SET grams = grams + :d
4. 거래 내역 조회 / 정합성 검증

핵심 특징:
- 잔액 검증을 애플리케이션 메모리에서 하지 않습니다. 여러 프로세스가 같은 지갑을 동시에 변경해도
  DB 행 잠금과 CHECK/UNIQUE 제약이 불변식을 보장합니다
- 각 거래 후 잔액이 원장 행의 balance_after에 기록됩니다
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional
import uuid

from sqlalchemy import desc, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bullionapi.models.booking import Booking
from bullionapi.models.commodity import Commodity
from bullionapi.models.wallet import (
    LedgerTransaction,
    TransactionStatus,
    TransactionType,
    Wallet,
    WalletHolding,
)
from bullionapi.repositories.base import BaseRepository
from bullionapi.schemas.wallet import (
    CreditResult,
    HoldingMismatch,
    LedgerHistoryResponse,
    LedgerTransactionEntry,
    WalletIntegrityResponse,
    WalletResponse,
)
from bullionapi.utils.money import round2, round4
from bullionapi.utils.timezone_utils import utcnow


class WalletRepository(BaseRepository[LedgerTransaction, LedgerTransactionEntry]):
    """
    지갑 리포지토리

    주요 기능:
    1. 멱등성 - external_ref 유니크 제약으로 같은 결제의 CREDIT은 하나만 남음
    2. 원자성 - 조건부 UPDATE와 원장 INSERT를 같은 트랜잭션에서 처리
    3. 조합 가능 - commit=False로 호출하면 예약 서비스의 트랜잭션에 참여
    """

    def __init__(self, db: Session):
        super().__init__(LedgerTransaction, LedgerTransactionEntry, db)

    # ------------------------------------------------------------------
    # 지갑 조회/생성
    # ------------------------------------------------------------------

    def _get_wallet_model(self, user_id: str, tenant_id: str) -> Optional[Wallet]:
        return (
            self.db.query(Wallet)
            .populate_existing()
            .filter(Wallet.user_id == user_id, Wallet.tenant_id == tenant_id)
            .first()
        )

    def _get_holdings(self, wallet_id: int) -> Dict[Commodity, Decimal]:
        holdings = (
            self.db.query(WalletHolding)
            .populate_existing()
            .filter(WalletHolding.wallet_id == wallet_id)
            .all()
        )
        return {h.commodity: round4(h.grams) for h in holdings}

    def _to_wallet_response(self, wallet: Wallet) -> WalletResponse:
        gram_balances = {commodity: Decimal("0.0000") for commodity in Commodity}
        gram_balances.update(self._get_holdings(wallet.id))
        return WalletResponse(
            user_id=wallet.user_id,
            tenant_id=wallet.tenant_id,
            cash_balance=round2(wallet.cash_balance),
            gram_balances=gram_balances,
            updated_at=wallet.updated_at,
        )

    def get_wallet_id(self, user_id: str, tenant_id: str) -> Optional[int]:
        return (
            self.db.query(Wallet.id)
            .filter(Wallet.user_id == user_id, Wallet.tenant_id == tenant_id)
            .scalar()
        )

    def get_wallet(self, user_id: str, tenant_id: str) -> Optional[WalletResponse]:
        wallet = self._get_wallet_model(user_id, tenant_id)
        if wallet is None:
            return None
        return self._to_wallet_response(wallet)

    def create_wallet(self, user_id: str, tenant_id: str) -> WalletResponse:
        """지갑 생성 (멱등) - 금속별 0g 보유량 행을 함께 생성"""
        existing = self._get_wallet_model(user_id, tenant_id)
        if existing is not None:
            return self._to_wallet_response(existing)

        try:
            wallet = Wallet(
                user_id=user_id, tenant_id=tenant_id, cash_balance=Decimal("0")
            )
            self.db.add(wallet)
            self.db.flush()
            for commodity in Commodity:
                self.db.add(
                    WalletHolding(
                        wallet_id=wallet.id, commodity=commodity, grams=Decimal("0")
                    )
                )
            self.db.flush()
            self.db.commit()
        except IntegrityError:
            # 동시 가입 요청으로 이미 생성된 경우
            self.db.rollback()
            wallet = self._get_wallet_model(user_id, tenant_id)
            if wallet is None:
                raise

        return self._to_wallet_response(wallet)

    # ------------------------------------------------------------------
    # 현금 입금/차감
    # ------------------------------------------------------------------

    def get_transaction_by_ref(self, external_ref: str) -> Optional[LedgerTransactionEntry]:
        transaction = (
            self.db.query(LedgerTransaction)
            .filter(LedgerTransaction.external_ref == external_ref)
            .first()
        )
        return self._to_schema(transaction)

    def _already_processed(self, existing: LedgerTransactionEntry, message: str) -> CreditResult:
        return CreditResult(
            success=True,
            transaction_id=existing.id,
            amount=existing.amount,
            balance_after=existing.balance_after,
            already_processed=True,
            message=message,
        )

    def credit_cash(
        self,
        user_id: str,
        tenant_id: str,
        amount: Decimal,
        external_ref: str,
        description: str = "",
        gateway_payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[CreditResult]:
        """
        현금 입금 처리의 핵심 로직 - 멱등성과 원자성 보장

        Args:
            user_id: 대상 사용자 ID
            tenant_id: 테넌트 ID
            amount: 입금 금액 (양수)
            external_ref: 게이트웨이 결제 ID (중복 방지 키)
            description: 거래 설명
            gateway_payload: 감사용 게이트웨이 원본 응답

        Returns:
            CreditResult: 입금 결과. 지갑이 없으면 None

        핵심 로직:
        1. external_ref 중복 체크 (빠른 경로)
        2. UPDATE wallets SET cash_balance = cash_balance + :amount
        3. 원장에 CREDIT 기록
        4. IntegrityError 처리 - 다른 프로세스가 먼저 기록한 경우 롤백 후 기존 항목 반환
        """
        existing = self.get_transaction_by_ref(external_ref)
        if existing is not None:
            return self._already_processed(
                existing, "Transaction already processed (idempotent)"
            )

        try:
            result = self.db.execute(
                update(Wallet)
                .where(Wallet.user_id == user_id, Wallet.tenant_id == tenant_id)
                .values(cash_balance=Wallet.cash_balance + amount, updated_at=utcnow())
            )
            if result.rowcount == 0:
                self.db.rollback()
                return None

            wallet_id, new_balance = (
                self.db.query(Wallet.id, Wallet.cash_balance)
                .filter(Wallet.user_id == user_id, Wallet.tenant_id == tenant_id)
                .one()
            )

            entry = LedgerTransaction(
                wallet_id=wallet_id,
                user_id=user_id,
                tenant_id=tenant_id,
                amount=amount,
                type=TransactionType.CREDIT,
                status=TransactionStatus.SUCCESS,
                balance_after=new_balance,
                external_ref=external_ref,
                description=description,
                gateway_payload=gateway_payload,
            )
            self.db.add(entry)
            self.db.flush()
            self.db.commit()

            return CreditResult(
                success=True,
                transaction_id=entry.id,
                amount=round2(amount),
                balance_after=round2(new_balance),
                already_processed=False,
                message="Transaction completed successfully",
            )

        except IntegrityError:
            self.db.rollback()
            # external_ref 중복인 경우 기존 항목 반환
            existing = self.get_transaction_by_ref(external_ref)
            if existing is not None:
                return self._already_processed(
                    existing,
                    "Transaction already processed (idempotent, integrity error handled)",
                )
            raise

    def debit_cash(
        self,
        user_id: str,
        tenant_id: str,
        amount: Decimal,
        booking_id: Optional[uuid.UUID] = None,
        description: str = "",
        commit: bool = True,
    ) -> Optional[LedgerTransactionEntry]:
        """
        현금 차감 - 잔액 확인과 차감을 하나의 조건부 UPDATE로 처리

        Returns:
            LedgerTransactionEntry: DEBIT 원장 항목. 잔액 부족(또는 지갑 없음)이면 None
        """
        result = self.db.execute(
            update(Wallet)
            .where(
                Wallet.user_id == user_id,
                Wallet.tenant_id == tenant_id,
                Wallet.cash_balance >= amount,
            )
            .values(cash_balance=Wallet.cash_balance - amount, updated_at=utcnow())
        )
        if result.rowcount == 0:
            return None

        wallet_id, new_balance = (
            self.db.query(Wallet.id, Wallet.cash_balance)
            .filter(Wallet.user_id == user_id, Wallet.tenant_id == tenant_id)
            .one()
        )

        entry = LedgerTransaction(
            wallet_id=wallet_id,
            user_id=user_id,
            tenant_id=tenant_id,
            booking_id=booking_id,
            amount=amount,
            type=TransactionType.DEBIT,
            status=TransactionStatus.SUCCESS,
            balance_after=new_balance,
            description=description,
        )
        self.db.add(entry)
        self.db.flush()
        self._finish(commit)
        return self._to_schema(entry)

    def credit_grams(
        self,
        wallet_id: int,
        commodity: Commodity,
        grams: Decimal,
        commit: bool = True,
    ) -> Decimal:
        """
        금속 그램 적립 (UPDATE ... SET grams = grams + :d)

        Returns:
            Decimal: 적립 후 해당 금속 보유량
        """
        result = self.db.execute(
            update(WalletHolding)
            .where(
                WalletHolding.wallet_id == wallet_id,
                WalletHolding.commodity == commodity,
            )
            .values(grams=WalletHolding.grams + grams, updated_at=utcnow())
        )
        if result.rowcount == 0:
            # 금속이 새로 추가된 이후 생성되지 않은 보유량 행
            self.db.add(WalletHolding(wallet_id=wallet_id, commodity=commodity, grams=grams))
            self.db.flush()

        self.db.execute(
            update(Wallet).where(Wallet.id == wallet_id).values(updated_at=utcnow())
        )
        self._finish(commit)

        return round4(
            self.db.query(WalletHolding.grams)
            .filter(
                WalletHolding.wallet_id == wallet_id,
                WalletHolding.commodity == commodity,
            )
            .scalar()
        )

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def get_ledger(
        self, user_id: str, tenant_id: str, limit: int = 50, offset: int = 0
    ) -> LedgerHistoryResponse:
        """사용자 원장 조회 (페이징, 최신순)"""
        query = self.db.query(LedgerTransaction).filter(
            LedgerTransaction.user_id == user_id,
            LedgerTransaction.tenant_id == tenant_id,
        )
        return self._paginate(query, limit, offset)

    def get_tenant_ledger(
        self, tenant_id: str, limit: int = 50, offset: int = 0
    ) -> LedgerHistoryResponse:
        """테넌트 전체 원장 조회 (관리자)"""
        query = self.db.query(LedgerTransaction).filter(
            LedgerTransaction.tenant_id == tenant_id
        )
        return self._paginate(query, limit, offset)

    def _paginate(self, query, limit: int, offset: int) -> LedgerHistoryResponse:
        total_count = query.count()
        transactions = (
            query.order_by(desc(LedgerTransaction.created_at), desc(LedgerTransaction.id))
            .limit(limit)
            .offset(offset)
            .all()
        )
        return LedgerHistoryResponse(
            entries=[self._to_schema(t) for t in transactions],
            total_count=total_count,
            has_next=offset + limit < total_count,
        )

    # ------------------------------------------------------------------
    # 정합성 검증
    # ------------------------------------------------------------------

    def verify_integrity(
        self, user_id: str, tenant_id: str
    ) -> Optional[WalletIntegrityResponse]:
        """
        지갑 정합성 검증

        검증 방식:
        1. SUCCESS 원장 합계 (CREDIT/REFUND 가산, DEBIT 차감)와 지갑 잔액 비교
        2. 예약마다 DEBIT이 정확히 1건인지 확인
        3. 금속별 보유량과 예약 그램 합계 비교

        Returns:
            WalletIntegrityResponse: 검증 결과 (OK/MISMATCH). 지갑이 없으면 None
        """
        wallet = self._get_wallet_model(user_id, tenant_id)
        if wallet is None:
            return None

        signed_sum = Decimal("0")
        sums = (
            self.db.query(LedgerTransaction.type, func.sum(LedgerTransaction.amount))
            .filter(
                LedgerTransaction.wallet_id == wallet.id,
                LedgerTransaction.status == TransactionStatus.SUCCESS,
            )
            .group_by(LedgerTransaction.type)
            .all()
        )
        for transaction_type, total in sums:
            total = round2(total or 0)
            if transaction_type == TransactionType.DEBIT:
                signed_sum -= total
            else:
                signed_sum += total

        bookings = (
            self.db.query(Booking.id, Booking.commodity, Booking.grams)
            .filter(Booking.user_id == user_id, Booking.tenant_id == tenant_id)
            .all()
        )
        debit_counts = dict(
            self.db.query(LedgerTransaction.booking_id, func.count(LedgerTransaction.id))
            .filter(
                LedgerTransaction.wallet_id == wallet.id,
                LedgerTransaction.type == TransactionType.DEBIT,
                LedgerTransaction.booking_id.isnot(None),
            )
            .group_by(LedgerTransaction.booking_id)
            .all()
        )
        bad_bookings: List[uuid.UUID] = [
            booking_id for booking_id, _, _ in bookings if debit_counts.get(booking_id) != 1
        ]

        booked_grams: Dict[Commodity, Decimal] = {c: Decimal("0") for c in Commodity}
        for _, commodity, grams in bookings:
            booked_grams[commodity] = booked_grams.get(commodity, Decimal("0")) + round4(grams)

        holdings = self._get_holdings(wallet.id)
        mismatches = []
        for commodity in set(booked_grams) | set(holdings):
            recorded = holdings.get(commodity, Decimal("0"))
            booked = round4(booked_grams.get(commodity, Decimal("0")))
            if recorded != booked:
                mismatches.append(
                    HoldingMismatch(
                        commodity=commodity, recorded_grams=recorded, booked_grams=booked
                    )
                )

        recorded_balance = round2(wallet.cash_balance)
        calculated_balance = round2(signed_sum)
        is_ok = (
            recorded_balance == calculated_balance and not bad_bookings and not mismatches
        )

        return WalletIntegrityResponse(
            status="OK" if is_ok else "MISMATCH",
            user_id=user_id,
            tenant_id=tenant_id,
            recorded_cash_balance=recorded_balance,
            calculated_cash_balance=calculated_balance,
            booking_count=len(bookings),
            bookings_without_single_debit=bad_bookings,
            holding_mismatches=mismatches,
            verified_at=utcnow(),
        )
