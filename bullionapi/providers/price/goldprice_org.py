from decimal import Decimal
from typing import Any, Dict

import httpx

from bullionapi.core.exceptions import PriceProviderError
from bullionapi.models.commodity import Commodity
from bullionapi.providers.price.base import MarketPriceProvider
from bullionapi.utils.money import per_ounce_to_per_gram

# 응답의 가격 필드 (트로이 온스당)
_PRICE_FIELDS = {
    Commodity.GOLD: "xauPrice",
    Commodity.SILVER: "xagPrice",
}


class GoldPriceOrgProvider(MarketPriceProvider):
    """goldprice.org 공개 JSON 피드 - API 키 불필요, 온스당 가격을 그램당으로 환산"""

    name = "goldprice.org"
    BASE_URL = "https://data-asg.goldprice.org/dbXRates"

    def __init__(self, client: httpx.Client, currency: str = "INR"):
        super().__init__(client)
        self.currency = currency

    def _url(self, commodity: Commodity) -> str:
        return f"{self.BASE_URL}/{self.currency}"

    def _headers(self) -> Dict[str, str]:
        return {"User-Agent": "Mozilla/5.0"}

    def _extract_price(self, data: Dict[str, Any], commodity: Commodity) -> Decimal:
        field = _PRICE_FIELDS[commodity]
        items = data.get("items")
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            raise PriceProviderError(self.name, "missing field 'items'")
        per_ounce = self._decimal_field(items[0].get(field), f"items[0].{field}")
        return per_ounce_to_per_gram(per_ounce)
