from typing import List

import httpx

from bullionapi.config import Settings
from bullionapi.providers.price.base import MarketPriceProvider
from bullionapi.providers.price.goldprice_org import GoldPriceOrgProvider
from bullionapi.providers.price.metals_dev import (
    MetalsDevAuthorityProvider,
    MetalsDevLatestProvider,
)


def build_http_client(timeout_seconds: float) -> httpx.Client:
    """시세 제공자 공용 HTTP 클라이언트 (연결 풀 재사용)"""
    return httpx.Client(timeout=httpx.Timeout(timeout_seconds, connect=5.0))


def build_price_providers(
    settings: Settings, client: httpx.Client
) -> List[MarketPriceProvider]:
    """우선순위 순서의 시세 제공자 목록 - 공시 기관 기준가가 가장 먼저"""
    return [
        MetalsDevAuthorityProvider(
            client,
            api_key=settings.METALS_DEV_API_KEY,
            authority=settings.METALS_DEV_AUTHORITY,
            currency=settings.CURRENCY,
        ),
        MetalsDevLatestProvider(
            client, api_key=settings.METALS_DEV_API_KEY, currency=settings.CURRENCY
        ),
        GoldPriceOrgProvider(client, currency=settings.CURRENCY),
    ]
