from enum import Enum

from sqlalchemy import Enum as SAEnum


class Commodity(str, Enum):
    """취급 귀금속 종류

    모든 테넌트 마진, 가격 스냅샷, 지갑 보유량, 예약은 이 값으로 구분됩니다.
    새 금속은 여기에 멤버를 추가하는 것만으로 지원됩니다.
    """

    GOLD = "GOLD"
    SILVER = "SILVER"

    @classmethod
    def parse(cls, value) -> "Commodity":
        """대소문자 구분 없이 문자열/Commodity를 Commodity로 변환"""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


def commodity_column_type() -> SAEnum:
    return SAEnum(Commodity, native_enum=False, length=16, name="commodity")
