from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from bullionapi.schemas.wallet import WalletResponse


class PaymentOrderResponse(BaseModel):
    """게이트웨이 주문 생성 결과 - 클라이언트 결제창에 전달"""

    order_id: str = Field(..., description="게이트웨이 주문 ID")
    key_id: str = Field(..., description="공개 클라이언트 키")
    amount: Decimal = Field(..., description="충전 금액")
    currency: str = Field(..., description="통화")


class PaymentStatusResponse(BaseModel):
    id: str
    amount: Decimal
    status: str
    method: Optional[str] = None
    created_at: Optional[int] = Field(None, description="게이트웨이 생성 시각 (unix)")


class PaymentResult(BaseModel):
    """결제 확인 후 지갑 입금 결과"""

    success: bool
    payment_id: str
    amount: Decimal
    status: str
    already_processed: bool = Field(False, description="웹훅 등으로 이미 입금된 결제")
    wallet: WalletResponse


class WebhookAck(BaseModel):
    """웹훅 응답 - 알 수 없는 이벤트도 200으로 수신 확인"""

    status: str = "ok"
    event: Optional[str] = None
    handled: bool = False
