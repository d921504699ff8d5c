"""
외부 시세 제공자 공통 로직

각 제공자는 HTTP 호출 결과를 그램당 Decimal 가격으로 변환하는 책임만 가집니다.
네트워크/HTTP/응답 형식 오류는 모두 PriceProviderError로 변환되어 오라클이 다음 제공자로 넘어갑니다.
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from bullionapi.core.exceptions import PriceProviderError
from bullionapi.models.commodity import Commodity
from bullionapi.utils.money import round2, to_decimal

logger = logging.getLogger(__name__)


class MarketPriceProvider(ABC):
    """그램당 시세 제공자 베이스 클래스"""

    name: str = "provider"

    def __init__(self, client: httpx.Client):
        self.client = client

    def fetch_price_per_gram(self, commodity: Commodity) -> Decimal:
        """
        시세 조회

        Args:
            commodity: 금속 종류

        Returns:
            Decimal: 그램당 시세 (소수점 2자리)

        Raises:
            PriceProviderError: 요청 실패 또는 응답 형식 오류
        """
        data = self._get_json(self._url(commodity), self._params(commodity))
        price = round2(self._extract_price(data, commodity))
        logger.info(f"{self.name} {commodity.value} price: {price}/gram")
        return price

    @abstractmethod
    def _url(self, commodity: Commodity) -> str:
        ...

    def _params(self, commodity: Commodity) -> Optional[Dict[str, Any]]:
        return None

    def _headers(self) -> Optional[Dict[str, str]]:
        return None

    @abstractmethod
    def _extract_price(self, data: Dict[str, Any], commodity: Commodity) -> Decimal:
        ...

    def _get_json(self, url: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            response = self.client.get(url, params=params, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise PriceProviderError(
                self.name, f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise PriceProviderError(self.name, f"request error: {exc}") from exc
        except ValueError as exc:
            raise PriceProviderError(self.name, "response is not valid JSON") from exc

        if not isinstance(data, dict):
            raise PriceProviderError(self.name, "unexpected response shape")
        return data

    def _decimal_field(self, value: Any, field: str) -> Decimal:
        if value is None:
            raise PriceProviderError(self.name, f"missing field '{field}'")
        try:
            result = to_decimal(value)
        except (TypeError, ValueError) as exc:
            raise PriceProviderError(self.name, f"invalid value for '{field}'") from exc
        if not result.is_finite():
            raise PriceProviderError(self.name, f"non-finite value for '{field}': {value}")
        return result
