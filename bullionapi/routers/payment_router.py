"""
결제 게이트웨이 웹훅 라우터

- POST /payments/webhook: Razorpay 이벤트 수신 (원본 body로 서명 검증)

응답:
- 200 {"status": "ok"}: 처리되었거나 무시된 이벤트
- 400: 서명 불일치
"""

import logging

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from bullionapi.deps import get_payment_service
from bullionapi.schemas.payment import WebhookAck
from bullionapi.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhook", response_model=WebhookAck)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str = Header(default=""),
    payment_service: PaymentService = Depends(get_payment_service),
) -> WebhookAck:
    """
    Razorpay 웹훅 수신

    서명은 JSON 재직렬화 결과가 아닌 수신한 원본 body 바이트로 검증합니다.
    """
    payload = await request.body()
    return await run_in_threadpool(
        payment_service.handle_webhook, payload, x_razorpay_signature
    )
