"""
타임존 유틸리티

가격 스냅샷의 effective_day는 테넌트 영업 시간대(기본 IST) 기준 날짜입니다.
"""

from datetime import date, datetime, timezone, timedelta
from typing import Optional

from bullionapi.config import settings


def business_timezone(offset_minutes: Optional[int] = None) -> timezone:
    """영업 시간대 (기본: IST = UTC+05:30)"""
    if offset_minutes is None:
        offset_minutes = settings.TIMEZONE_OFFSET_MINUTES
    return timezone(timedelta(minutes=offset_minutes))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_business_today(offset_minutes: Optional[int] = None) -> date:
    """현재 영업일 날짜를 반환합니다."""
    return datetime.now(business_timezone(offset_minutes)).date()


def to_business_date(dt: datetime, offset_minutes: Optional[int] = None) -> date:
    """datetime을 영업 시간대 날짜로 변환합니다."""
    if dt.tzinfo is None:
        # naive datetime은 UTC로 가정
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(business_timezone(offset_minutes)).date()
