from .auth import Principal, UserRole
from .booking import BookingResponse, BookingListResponse, BookingStatisticsResponse
from .payment import PaymentOrderResponse, PaymentResult, PaymentStatusResponse, WebhookAck
from .price import MarketPrice, PriceQuote, PriceSnapshotResponse, GramsCalculation
from .wallet import CreditResult, LedgerHistoryResponse, WalletResponse
from .tenant import TenantMarginResponse, TenantResponse
