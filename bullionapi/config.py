from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from urllib.parse import quote_plus


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="bullionapi/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "Bullion Savings API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USERNAME: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DATABASE: str = "bullion"

    # 설정되어 있으면 POSTGRES_* 값보다 우선 (테스트에서는 sqlite:// 사용)
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @property
    def database_url(self) -> str:
        """Construct database URL from individual components"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        # URL encode the password to handle special characters
        encoded_password = quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+psycopg2://{self.POSTGRES_USERNAME}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DATABASE}"

    # Market price providers
    METALS_DEV_API_KEY: str = ""
    METALS_DEV_AUTHORITY: str = "mcx"  # mcx | ibja
    PRICE_CACHE_TTL_SECONDS: int = 300  # 5분
    PRICE_PROVIDER_TIMEOUT_SECONDS: float = 10.0

    # Payment gateway (Razorpay)
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""
    RAZORPAY_API_BASE_URL: str = "https://api.razorpay.com/v1"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0

    # Business Rules
    CURRENCY: str = "INR"
    PAYMENT_MIN_AMOUNT: int = 100  # 최소 충전 금액 (₹)
    PAYMENT_MAX_AMOUNT: int = 100000  # 최대 충전 금액 (₹)
    BOOKING_HISTORY_MAX_LIMIT: int = 100

    # Timezone
    TIMEZONE_OFFSET_MINUTES: int = 330  # IST (UTC+05:30)


settings = Settings()
