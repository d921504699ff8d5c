# 모든 모델을 임포트해야 Base.metadata에 테이블이 등록됨

from .base import Base
from .commodity import Commodity
from .tenant import Tenant, TenantMargin
from .price import PriceSnapshot
from .booking import Booking, BookingStatus
from .wallet import (
    LedgerTransaction,
    TransactionStatus,
    TransactionType,
    Wallet,
    WalletHolding,
)

__all__ = [
    "Base",
    "Commodity",
    "Tenant",
    "TenantMargin",
    "PriceSnapshot",
    "Booking",
    "BookingStatus",
    "LedgerTransaction",
    "TransactionStatus",
    "TransactionType",
    "Wallet",
    "WalletHolding",
]
