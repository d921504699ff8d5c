from dependency_injector import containers, providers

from bullionapi.config import Settings
from bullionapi.providers.payment.razorpay import RazorpayClient
from bullionapi.providers.price.factory import build_http_client, build_price_providers
from bullionapi.services.booking_service import BookingService
from bullionapi.services.payment_service import PaymentService
from bullionapi.services.price_oracle import PriceCache, PriceOracle
from bullionapi.services.price_service import PriceService
from bullionapi.services.wallet_service import WalletService


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Singleton(Settings)


class ClientModule(containers.DeclarativeContainer):
    """Process-wide external clients and the price cache."""

    config = providers.DependenciesContainer()

    http_client = providers.Singleton(
        build_http_client,
        timeout_seconds=config.config.provided.PRICE_PROVIDER_TIMEOUT_SECONDS,
    )
    price_providers = providers.Singleton(
        build_price_providers, settings=config.config, client=http_client
    )
    price_cache = providers.Singleton(
        PriceCache, ttl_seconds=config.config.provided.PRICE_CACHE_TTL_SECONDS
    )
    price_oracle = providers.Singleton(
        PriceOracle, providers=price_providers, cache=price_cache
    )
    razorpay_client = providers.Singleton(
        RazorpayClient,
        key_id=config.config.provided.RAZORPAY_KEY_ID,
        key_secret=config.config.provided.RAZORPAY_KEY_SECRET,
        base_url=config.config.provided.RAZORPAY_API_BASE_URL,
        timeout_seconds=config.config.provided.GATEWAY_TIMEOUT_SECONDS,
    )


class ServiceModule(containers.DeclarativeContainer):
    """Service layer dependencies. The database session is passed per call: services.x(db=session)."""

    config = providers.DependenciesContainer()
    clients = providers.DependenciesContainer()

    wallet_service = providers.Factory(WalletService)
    price_service = providers.Factory(PriceService, oracle=clients.price_oracle)
    booking_service = providers.Factory(BookingService, oracle=clients.price_oracle)
    payment_service = providers.Factory(
        PaymentService, gateway=clients.razorpay_client, settings=config.config
    )


class Container(containers.DeclarativeContainer):
    """Application container."""

    config = providers.Container(ConfigModule)
    clients = providers.Container(ClientModule, config=config)
    services = providers.Container(ServiceModule, config=config, clients=clients)
