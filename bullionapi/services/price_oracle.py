"""
가격 오라클 - 외부 시세 제공자 + 프로세스 로컬 캐시

동작:
1. 금속별 캐시가 TTL 이내면 제공자를 호출하지 않고 캐시 반환
2. 제공자를 우선순위 순서로 호출, 처음 성공한 값을 캐시에 저장 후 반환
3. 모든 제공자가 실패하면 만료된 캐시라도 반환 (경고 로그)
4. 캐시도 없으면 PriceUnavailableError

캐시는 오라클이 소유한 객체로 주입되며 인스턴스(프로세스)별로 독립적입니다.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from bullionapi.core.exceptions import PriceProviderError, PriceUnavailableError
from bullionapi.models.commodity import Commodity
from bullionapi.providers.price.base import MarketPriceProvider
from bullionapi.schemas.price import MarketPrice
from bullionapi.utils.timezone_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    price_per_gram: Decimal
    source: str
    fetched_at: datetime
    stored_at: float


class PriceCache:
    """금속별 (가격, 시각) 한 쌍만 보관하는 TTL 캐시"""

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Commodity, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, commodity: Commodity) -> Optional[_CacheEntry]:
        with self._lock:
            return self._entries.get(commodity)

    def put(self, commodity: Commodity, price_per_gram: Decimal, source: str) -> _CacheEntry:
        entry = _CacheEntry(
            price_per_gram=price_per_gram,
            source=source,
            fetched_at=utcnow(),
            stored_at=self._clock(),
        )
        with self._lock:
            self._entries[commodity] = entry
        return entry

    def is_fresh(self, entry: _CacheEntry) -> bool:
        return (self._clock() - entry.stored_at) < self.ttl_seconds

    def clear(self, commodity: Optional[Commodity] = None) -> None:
        with self._lock:
            if commodity is None:
                self._entries.clear()
            else:
                self._entries.pop(commodity, None)


class PriceOracle:
    """외부 시세 조회 오라클"""

    def __init__(self, providers: Sequence[MarketPriceProvider], cache: PriceCache):
        self.providers: List[MarketPriceProvider] = list(providers)
        self.cache = cache

    def fetch_market_price(self, commodity: Commodity) -> MarketPrice:
        """
        금속의 그램당 시장 기준가 조회

        Args:
            commodity: 금속 종류

        Returns:
            MarketPrice: 그램당 시세 (캐시 여부 포함)

        Raises:
            PriceUnavailableError: 모든 제공자가 실패하고 캐시도 없는 경우
        """
        cached = self.cache.get(commodity)
        if cached is not None and self.cache.is_fresh(cached):
            return self._from_cache(commodity, cached, is_stale=False)

        for provider in self.providers:
            try:
                price = provider.fetch_price_per_gram(commodity)
            except PriceProviderError as e:
                logger.warning(
                    f"Price provider {e.provider} failed for {commodity.value}: {e.detail}"
                )
                continue

            if not price.is_finite() or price <= 0:
                logger.warning(
                    f"Price provider {provider.name} returned unusable price for {commodity.value}: {price}"
                )
                continue

            entry = self.cache.put(commodity, price, provider.name)
            return MarketPrice(
                commodity=commodity,
                price_per_gram=entry.price_per_gram,
                source=entry.source,
                fetched_at=entry.fetched_at,
            )

        if cached is not None:
            logger.warning(
                f"All price providers failed for {commodity.value}, using stale cached price {cached.price_per_gram}"
            )
            return self._from_cache(commodity, cached, is_stale=True)

        logger.error(f"All price providers failed for {commodity.value} and no cached price exists")
        raise PriceUnavailableError(
            f"Unable to fetch live {commodity.value.lower()} price from any source",
            details={"commodity": commodity.value},
        )

    def cached_price(self, commodity: Commodity) -> Optional[MarketPrice]:
        """캐시된 시세 조회 (네트워크 호출 없음)"""
        cached = self.cache.get(commodity)
        if cached is None:
            return None
        return self._from_cache(commodity, cached, is_stale=not self.cache.is_fresh(cached))

    def clear_cache(self, commodity: Optional[Commodity] = None) -> None:
        self.cache.clear(commodity)

    @staticmethod
    def _from_cache(commodity: Commodity, entry: _CacheEntry, is_stale: bool) -> MarketPrice:
        return MarketPrice(
            commodity=commodity,
            price_per_gram=entry.price_per_gram,
            source=entry.source,
            fetched_at=entry.fetched_at,
            from_cache=True,
            is_stale=is_stale,
        )
