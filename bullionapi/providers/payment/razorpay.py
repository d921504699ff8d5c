"""
Razorpay REST API 클라이언트

주문 생성과 결제 조회만 사용합니다. 금액은 최소 화폐 단위(paise) 정수로 주고받습니다.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from bullionapi.core.exceptions import GatewayError

logger = logging.getLogger(__name__)


class RazorpayClient:
    """Razorpay 클라이언트 (Basic 인증: key_id / key_secret)"""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self._client = httpx.Client(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=httpx.Timeout(timeout_seconds, connect=5.0),
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        주문 생성

        Args:
            amount_minor: 금액 (paise)
            currency: 통화 코드
            receipt: 가맹점 영수증 번호
            notes: 결제에 그대로 전달되는 메타데이터

        Returns:
            Dict[str, Any]: Razorpay order 엔티티
        """
        body = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        return self._request("POST", "/orders", json=body)

    def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        """결제 엔티티 조회"""
        return self._request("GET", f"/payments/{payment_id}")

    def close(self) -> None:
        """Close underlying HTTP client (call on application shutdown)."""
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        if not self.is_configured:
            raise GatewayError("Payment gateway credentials are not configured")

        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Razorpay HTTP error for %s %s: %s (status=%s)",
                method,
                path,
                exc.response.text,
                exc.response.status_code,
            )
            raise GatewayError(
                "Payment gateway request failed",
                details={"status_code": exc.response.status_code, "path": path},
            ) from exc
        except httpx.RequestError as exc:
            logger.error("Razorpay request error for %s %s: %s", method, path, exc)
            raise GatewayError(
                "Payment gateway unreachable", details={"path": path}
            ) from exc
        except ValueError as exc:
            logger.error("Razorpay returned a non-JSON body for %s %s", method, path)
            raise GatewayError("Invalid payment gateway response") from exc
