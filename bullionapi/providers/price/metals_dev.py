"""
metals.dev 시세 제공자

- authority: 인도 공시 기관(MCX/IBJA) 기준가, 그램당 INR
- latest: 국제 시세, 그램당 INR
두 엔드포인트 모두 API 키가 필요합니다.
"""

from decimal import Decimal
from typing import Any, Dict

import httpx

from bullionapi.core.exceptions import PriceProviderError
from bullionapi.models.commodity import Commodity
from bullionapi.providers.price.base import MarketPriceProvider

METALS_DEV_BASE_URL = "https://api.metals.dev/v1"


class _MetalsDevProvider(MarketPriceProvider):
    def __init__(self, client: httpx.Client, api_key: str, currency: str = "INR"):
        super().__init__(client)
        self.api_key = api_key
        self.currency = currency

    def fetch_price_per_gram(self, commodity: Commodity) -> Decimal:
        if not self.api_key:
            raise PriceProviderError(self.name, "METALS_DEV_API_KEY not configured")
        return super().fetch_price_per_gram(commodity)


class MetalsDevAuthorityProvider(_MetalsDevProvider):
    """공시 기관 기준가 (rates.{authority}_{metal})"""

    def __init__(
        self,
        client: httpx.Client,
        api_key: str,
        authority: str = "mcx",
        currency: str = "INR",
    ):
        super().__init__(client, api_key, currency)
        self.authority = authority.lower()
        self.name = f"metals.dev/{self.authority}"

    def _url(self, commodity: Commodity) -> str:
        return f"{METALS_DEV_BASE_URL}/metal/authority"

    def _params(self, commodity: Commodity) -> Dict[str, Any]:
        return {
            "api_key": self.api_key,
            "authority": self.authority,
            "currency": self.currency,
            "unit": "g",
        }

    def _extract_price(self, data: Dict[str, Any], commodity: Commodity) -> Decimal:
        key = f"{self.authority}_{commodity.value.lower()}"
        rates = data.get("rates") or {}
        return self._decimal_field(rates.get(key), f"rates.{key}")


class MetalsDevLatestProvider(_MetalsDevProvider):
    """국제 시세 (metals.{metal})"""

    name = "metals.dev/latest"

    def _url(self, commodity: Commodity) -> str:
        return f"{METALS_DEV_BASE_URL}/latest"

    def _params(self, commodity: Commodity) -> Dict[str, Any]:
        return {"api_key": self.api_key, "currency": self.currency, "unit": "gram"}

    def _extract_price(self, data: Dict[str, Any], commodity: Commodity) -> Decimal:
        key = commodity.value.lower()
        metals = data.get("metals") or {}
        return self._decimal_field(metals.get(key), f"metals.{key}")
