# Repository layer - Data access with Pydantic responses

from .base import BaseRepository
from .tenant_repository import TenantRepository
from .price_repository import PriceRepository
from .wallet_repository import WalletRepository
from .booking_repository import BookingRepository

__all__ = [
    "BaseRepository",
    "TenantRepository",
    "PriceRepository",
    "WalletRepository",
    "BookingRepository",
]
