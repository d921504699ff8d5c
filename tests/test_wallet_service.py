from decimal import Decimal
from unittest.mock import patch

import pytest

from bullionapi.core.exceptions import (
    AuthorizationError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from bullionapi.models.commodity import Commodity
from bullionapi.models.wallet import LedgerTransaction, TransactionType, Wallet
from bullionapi.repositories.wallet_repository import WalletRepository
from bullionapi.schemas.auth import Principal, UserRole
from bullionapi.services.wallet_service import WalletService

TENANT_ID = "tenant-1"
USER_ID = "user-1"


@pytest.fixture
def wallet_service(db_session):
    return WalletService(db_session)


def _ledger_rows(db_session, **filters):
    query = db_session.query(LedgerTransaction)
    for key, value in filters.items():
        query = query.filter(getattr(LedgerTransaction, key) == value)
    return query.all()


class TestWalletLifecycle:
    """지갑 생성/조회 테스트"""

    def test_create_wallet_is_idempotent(self, wallet_service, db_session, tenant):
        # When
        first = wallet_service.create_wallet(USER_ID, TENANT_ID)
        second = wallet_service.create_wallet(USER_ID, TENANT_ID)

        # Then
        assert first.cash_balance == Decimal("0")
        assert second.cash_balance == Decimal("0")
        assert db_session.query(Wallet).count() == 1
        assert set(first.gram_balances) == set(Commodity)
        assert all(grams == Decimal("0") for grams in first.gram_balances.values())

    def test_get_missing_wallet_raises(self, wallet_service):
        with pytest.raises(NotFoundError):
            wallet_service.get_wallet("nobody", TENANT_ID)

    def test_wallets_are_scoped_per_tenant(self, wallet_service, funded_wallet):
        wallet_service.create_wallet(USER_ID, "tenant-2")

        other = wallet_service.get_wallet(USER_ID, "tenant-2")

        assert other.cash_balance == Decimal("0")
        assert wallet_service.get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("5000")


class TestCredit:
    """현금 입금 테스트"""

    def test_credit_increments_balance_and_records_transaction(self, wallet_service, db_session, wallet):
        # When
        result = wallet_service.credit(
            USER_ID, TENANT_ID, Decimal("1500.50"), "pay_001", meta={"id": "pay_001"}
        )

        # Then
        assert result.success is True
        assert result.already_processed is False
        assert result.balance_after == Decimal("1500.50")
        rows = _ledger_rows(db_session, external_ref="pay_001")
        assert len(rows) == 1
        assert rows[0].type == TransactionType.CREDIT
        assert rows[0].gateway_payload == {"id": "pay_001"}

    def test_credit_same_reference_twice_is_noop(self, wallet_service, db_session, wallet):
        """같은 결제 ID로 두 번 입금해도 잔액은 한 번만 증가"""
        wallet_service.credit(USER_ID, TENANT_ID, Decimal("1000"), "pay_dup")
        second = wallet_service.credit(USER_ID, TENANT_ID, Decimal("1000"), "pay_dup")

        assert second.success is True
        assert second.already_processed is True
        assert wallet_service.get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("1000")
        assert len(_ledger_rows(db_session, external_ref="pay_dup")) == 1

    def test_concurrent_duplicate_detected_by_unique_constraint(self, wallet_service, db_session, wallet):
        """사전 조회를 통과한 중복 입금은 유니크 제약 위반 후 롤백되어 성공으로 처리"""
        # Given
        wallet_service.credit(USER_ID, TENANT_ID, Decimal("700"), "pay_race")
        original = WalletRepository.get_transaction_by_ref
        calls = {"count": 0}

        def miss_first_lookup(self, external_ref):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return original(self, external_ref)

        # When
        with patch.object(WalletRepository, "get_transaction_by_ref", miss_first_lookup):
            result = wallet_service.credit(USER_ID, TENANT_ID, Decimal("700"), "pay_race")

        # Then
        assert result.success is True
        assert result.already_processed is True
        assert calls["count"] == 2
        assert wallet_service.get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("700")
        assert len(_ledger_rows(db_session, external_ref="pay_race")) == 1

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    def test_credit_rejects_non_positive_amount(self, wallet_service, wallet, amount):
        with pytest.raises(ValidationError):
            wallet_service.credit(USER_ID, TENANT_ID, amount, "pay_bad")

    @pytest.mark.parametrize("amount", ["abc", None, Decimal("NaN"), Decimal("Infinity")])
    def test_credit_rejects_non_numeric_amount(self, wallet_service, db_session, wallet, amount):
        with pytest.raises(ValidationError):
            wallet_service.credit(USER_ID, TENANT_ID, amount, "pay_bad")
        assert _ledger_rows(db_session) == []

    @pytest.mark.parametrize("amount", ["abc", Decimal("NaN"), Decimal("-Infinity")])
    def test_debit_rejects_non_numeric_amount(self, wallet_service, funded_wallet, amount):
        with pytest.raises(ValidationError):
            wallet_service.debit(USER_ID, TENANT_ID, amount)
        assert wallet_service.get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("5000")

    def test_credit_missing_wallet_raises(self, wallet_service, db_session, tenant):
        with pytest.raises(NotFoundError):
            wallet_service.credit("ghost", TENANT_ID, Decimal("100"), "pay_ghost")
        assert _ledger_rows(db_session) == []


class TestDebitAndGrams:
    """현금 차감/그램 적립 테스트"""

    def test_debit_decrements_balance(self, wallet_service, db_session, funded_wallet):
        entry = wallet_service.debit(USER_ID, TENANT_ID, Decimal("1200"))

        assert entry.type == TransactionType.DEBIT
        assert entry.balance_after == Decimal("3800")
        assert wallet_service.get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("3800")

    def test_debit_insufficient_balance_changes_nothing(self, wallet_service, db_session, funded_wallet):
        with pytest.raises(InsufficientBalanceError):
            wallet_service.debit(USER_ID, TENANT_ID, Decimal("5000.01"))

        assert wallet_service.get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("5000")
        assert _ledger_rows(db_session, type=TransactionType.DEBIT) == []

    def test_debit_exact_balance_reaches_zero(self, wallet_service, funded_wallet):
        wallet_service.debit(USER_ID, TENANT_ID, Decimal("5000"))

        assert wallet_service.get_wallet(USER_ID, TENANT_ID).cash_balance == Decimal("0")

    def test_debit_missing_wallet_raises_not_found(self, wallet_service, tenant):
        with pytest.raises(NotFoundError):
            wallet_service.debit("ghost", TENANT_ID, Decimal("1"))

    def test_credit_grams_accumulates_per_commodity(self, wallet_service, wallet):
        wallet_service.credit_grams(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("0.5"))
        total = wallet_service.credit_grams(USER_ID, TENANT_ID, Commodity.GOLD, Decimal("0.25"))

        balances = wallet_service.get_wallet(USER_ID, TENANT_ID).gram_balances
        assert total == Decimal("0.7500")
        assert balances[Commodity.GOLD] == Decimal("0.75")
        assert balances[Commodity.SILVER] == Decimal("0")

    def test_credit_grams_rejects_non_positive(self, wallet_service, wallet):
        with pytest.raises(ValidationError):
            wallet_service.credit_grams(USER_ID, TENANT_ID, Commodity.SILVER, Decimal("0"))


class TestHistoryAndIntegrity:
    """거래 내역 및 정합성 검증 테스트"""

    def test_transaction_history_is_paginated_newest_first(self, wallet_service, wallet):
        for i in range(3):
            wallet_service.credit(USER_ID, TENANT_ID, Decimal("100") * (i + 1), f"pay_{i}")

        page = wallet_service.get_transaction_history(USER_ID, TENANT_ID, limit=2, offset=0)

        assert page.total_count == 3
        assert page.has_next is True
        assert [e.external_ref for e in page.entries] == ["pay_2", "pay_1"]

    def test_tenant_transactions_require_admin(self, wallet_service, funded_wallet):
        customer = Principal(user_id=USER_ID, tenant_id=TENANT_ID, role=UserRole.CUSTOMER)
        other_admin = Principal(user_id="admin-9", tenant_id="tenant-2", role=UserRole.ADMIN)
        admin = Principal(user_id="admin-1", tenant_id=TENANT_ID, role=UserRole.ADMIN)

        with pytest.raises(AuthorizationError):
            wallet_service.get_tenant_transactions(customer, TENANT_ID)
        with pytest.raises(AuthorizationError):
            wallet_service.get_tenant_transactions(other_admin, TENANT_ID)

        history = wallet_service.get_tenant_transactions(admin, TENANT_ID)
        assert history.total_count == 1

    def test_integrity_ok_after_credits_and_debits(self, wallet_service, funded_wallet):
        wallet_service.debit(USER_ID, TENANT_ID, Decimal("750"))
        wallet_service.credit(USER_ID, TENANT_ID, Decimal("250"), "pay_more")

        result = wallet_service.verify_wallet_integrity(USER_ID, TENANT_ID)

        assert result.status == "OK"
        assert result.recorded_cash_balance == Decimal("4500.00")
        assert result.calculated_cash_balance == Decimal("4500.00")

    def test_integrity_detects_balance_drift(self, wallet_service, db_session, funded_wallet):
        # Given - 원장을 거치지 않고 잔액을 직접 수정
        db_session.query(Wallet).filter(Wallet.user_id == USER_ID).update(
            {Wallet.cash_balance: Decimal("9999")}
        )
        db_session.commit()

        # When
        result = wallet_service.verify_wallet_integrity(USER_ID, TENANT_ID)

        # Then
        assert result.status == "MISMATCH"
        assert result.calculated_cash_balance == Decimal("5000.00")

    def test_integrity_detects_grams_without_booking(self, wallet_service, wallet):
        wallet_service.credit_grams(USER_ID, TENANT_ID, Commodity.SILVER, Decimal("3"))

        result = wallet_service.verify_wallet_integrity(USER_ID, TENANT_ID)

        assert result.status == "MISMATCH"
        assert result.holding_mismatches[0].commodity == Commodity.SILVER
