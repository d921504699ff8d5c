"""
금액/중량 계산 유틸리티

모든 금액은 Decimal로 다루며 float를 거치지 않습니다.
- 금액, 그램당 가격: 소수점 2자리
- 그램: 소수점 4자리
- 결제 게이트웨이 금액: 최소 화폐 단위 정수 (paise)
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

from bullionapi.core.exceptions import ValidationError

TWO_PLACES = Decimal("0.01")
FOUR_PLACES = Decimal("0.0001")

# 1 트로이 온스 = 31.1035 그램
TROY_OUNCE_GRAMS = Decimal("31.1035")


def to_decimal(value: Any) -> Decimal:
    """int/float/str/Decimal 값을 Decimal로 변환 (float는 문자열을 거쳐 변환)"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a valid amount")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid decimal value: {value!r}") from e


def parse_decimal(value: Any, field: str = "Amount") -> Decimal:
    """입력값을 유한한 Decimal로 변환 (숫자가 아니거나 NaN/Infinity면 ValidationError)"""
    try:
        result = to_decimal(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def parse_amount(value: Any, field: str = "Amount") -> Decimal:
    """양수 금액/중량 검증

    Raises:
        ValidationError: 숫자가 아니거나, 유한하지 않거나, 0 이하인 경우
    """
    result = parse_decimal(value, field)
    if result <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return result


def round2(value: Any) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def round4(value: Any) -> Decimal:
    return to_decimal(value).quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)


def per_ounce_to_per_gram(price_per_ounce: Any) -> Decimal:
    """트로이 온스당 시세를 그램당 시세로 변환"""
    return round2(to_decimal(price_per_ounce) / TROY_OUNCE_GRAMS)


def to_minor_units(amount: Any) -> int:
    """₹ 금액을 paise 정수로 변환 (게이트웨이 전송용)"""
    return int(round2(amount) * 100)


def from_minor_units(minor: Any) -> Decimal:
    """paise 정수를 ₹ 금액으로 변환"""
    return round2(to_decimal(minor) / 100)
