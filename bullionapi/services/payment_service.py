"""
결제 게이트웨이(Razorpay) 연동 서비스

지갑 충전 흐름:
1. create_order - 게이트웨이 주문 생성 (notes에 user_id/tenant_id 기록)
2. 클라이언트 결제 완료 후 두 경로로 입금 확인이 들어올 수 있음
   - 동기: process_successful_payment (결제 서명 검증 + 결제 조회)
   - 비동기: handle_webhook (웹훅 서명 검증)
3. 두 경로 모두 결제 ID를 external_ref로 WalletService.credit 호출

두 경로가 어떤 순서로 경합해도 CREDIT은 하나만 남습니다. 중복 방지는 원장의 유니크 제약이 담당합니다.
"""

import hashlib
import hmac
import json
import logging
import time
from decimal import Decimal
from typing import Any, Dict, Union

from sqlalchemy.orm import Session

from bullionapi.config import Settings
from bullionapi.core.exceptions import PaymentVerificationError, ValidationError
from bullionapi.providers.payment.razorpay import RazorpayClient
from bullionapi.schemas.payment import (
    PaymentOrderResponse,
    PaymentResult,
    PaymentStatusResponse,
    WebhookAck,
)
from bullionapi.services.wallet_service import WalletService
from bullionapi.utils.money import from_minor_units, parse_amount, to_minor_units

logger = logging.getLogger(__name__)

SUCCESSFUL_PAYMENT_STATUSES = ("captured", "authorized")


def compute_signature(secret: str, message: Union[str, bytes]) -> str:
    """HMAC-SHA256 hex digest"""
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _signature_matches(secret: str, message: Union[str, bytes], signature: str) -> bool:
    if not secret or not signature:
        return False
    expected = compute_signature(secret, message)
    return hmac.compare_digest(expected, signature)


class PaymentService:
    """지갑 충전 결제 서비스"""

    def __init__(self, db: Session, gateway: RazorpayClient, settings: Settings):
        self.db = db
        self.gateway = gateway
        self.settings = settings
        self.wallet_service = WalletService(db)

    def create_order(
        self, user_id: str, tenant_id: str, amount: Decimal
    ) -> PaymentOrderResponse:
        """
        충전 주문 생성

        Args:
            user_id: 사용자 ID
            tenant_id: 테넌트 ID
            amount: 충전 금액 (통화 단위)

        Returns:
            PaymentOrderResponse: 주문 ID와 공개 클라이언트 키

        Raises:
            ValidationError: 금액이 허용 범위를 벗어난 경우
            GatewayError: 게이트웨이 호출 실패
        """
        value = parse_amount(amount)
        minimum = Decimal(self.settings.PAYMENT_MIN_AMOUNT)
        maximum = Decimal(self.settings.PAYMENT_MAX_AMOUNT)
        if value < minimum:
            raise ValidationError(f"Minimum amount is {minimum}")
        if value > maximum:
            raise ValidationError(f"Maximum amount is {maximum}")

        order = self.gateway.create_order(
            amount_minor=to_minor_units(value),
            currency=self.settings.CURRENCY,
            receipt=f"rcpt_{int(time.time() * 1000)}_{user_id[:8]}",
            notes={"user_id": user_id, "tenant_id": tenant_id},
        )
        logger.info(f"Payment order created: {order.get('id')} for user {user_id}")

        return PaymentOrderResponse(
            order_id=order["id"],
            key_id=self.settings.RAZORPAY_KEY_ID,
            amount=value,
            currency=self.settings.CURRENCY,
        )

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """결제 서명 검증 - HMAC-SHA256(order_id|payment_id, key_secret)"""
        return _signature_matches(
            self.settings.RAZORPAY_KEY_SECRET, f"{order_id}|{payment_id}", signature
        )

    def verify_webhook_signature(self, payload: Union[str, bytes], signature: str) -> bool:
        """웹훅 서명 검증 - HMAC-SHA256(원본 body, webhook_secret)"""
        return _signature_matches(self.settings.RAZORPAY_WEBHOOK_SECRET, payload, signature)

    def process_successful_payment(
        self, order_id: str, payment_id: str, signature: str
    ) -> PaymentResult:
        """
        클라이언트 결제 완료 확인 (동기 경로)

        Raises:
            PaymentVerificationError: 서명 불일치, 미완료 결제, 주문 불일치
            GatewayError: 게이트웨이 조회 실패
        """
        if not self.verify_signature(order_id, payment_id, signature):
            logger.warning(f"Invalid payment signature for {payment_id} (order {order_id})")
            raise PaymentVerificationError("Invalid payment signature")

        payment = self.gateway.fetch_payment(payment_id)
        status = payment.get("status")
        if status not in SUCCESSFUL_PAYMENT_STATUSES:
            raise PaymentVerificationError(
                "Payment not successful", details={"status": status}
            )
        if payment.get("order_id") and payment.get("order_id") != order_id:
            raise PaymentVerificationError(
                "Payment does not belong to this order",
                details={"order_id": order_id},
            )

        result = self._credit_payment(payment)
        logger.info(f"Payment processed successfully: {payment_id}")
        return result

    def handle_webhook(self, payload: Union[str, bytes], signature: str) -> WebhookAck:
        """
        게이트웨이 웹훅 처리 (비동기 경로)

        - payment.captured: 지갑 입금
        - payment.failed: 경고 로그만 남김
        - 그 외 이벤트: 수신 확인만 하고 무시

        Raises:
            PaymentVerificationError: 웹훅 서명 불일치
            ValidationError: body가 올바른 JSON이 아닌 경우
        """
        if not self.verify_webhook_signature(payload, signature):
            logger.warning("Rejected webhook with invalid signature")
            raise PaymentVerificationError("Invalid webhook signature")

        try:
            body = json.loads(payload)
        except ValueError:
            raise ValidationError("Webhook payload is not valid JSON")
        if not isinstance(body, dict):
            raise ValidationError("Webhook payload must be a JSON object")

        event = body.get("event")
        logger.info(f"Webhook received: {event}")
        entity = ((body.get("payload") or {}).get("payment") or {}).get("entity") or {}

        if event == "payment.captured":
            self._credit_payment(entity)
            return WebhookAck(event=event, handled=True)

        if event == "payment.failed":
            logger.warning(
                f"Payment failed: {entity.get('id')} ({entity.get('error_code')}: {entity.get('error_description')})"
            )
            return WebhookAck(event=event, handled=True)

        logger.info(f"Unhandled webhook event: {event}")
        return WebhookAck(event=event, handled=False)

    def get_payment_status(self, payment_id: str) -> PaymentStatusResponse:
        payment = self.gateway.fetch_payment(payment_id)
        return PaymentStatusResponse(
            id=payment["id"],
            amount=from_minor_units(payment.get("amount", 0)),
            status=payment.get("status", ""),
            method=payment.get("method"),
            created_at=payment.get("created_at"),
        )

    def _credit_payment(self, payment: Dict[str, Any]) -> PaymentResult:
        payment_id = payment.get("id")
        notes = payment.get("notes") or {}
        user_id = notes.get("user_id")
        tenant_id = notes.get("tenant_id")
        if not payment_id or not user_id or not tenant_id:
            raise PaymentVerificationError(
                "Payment is missing wallet reference",
                details={"payment_id": payment_id},
            )

        amount = from_minor_units(payment.get("amount", 0))
        credit = self.wallet_service.credit(
            user_id=user_id,
            tenant_id=tenant_id,
            amount=amount,
            external_ref=payment_id,
            meta=payment,
        )
        wallet = self.wallet_service.get_wallet(user_id, tenant_id)

        return PaymentResult(
            success=credit.success,
            payment_id=payment_id,
            amount=amount,
            status=payment.get("status", ""),
            already_processed=credit.already_processed,
            wallet=wallet,
        )
