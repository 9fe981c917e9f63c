from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # project root
ENV_PATH = BASE_DIR / ".env"

# Load .env into the process environment before Settings reads it
load_dotenv(dotenv_path=ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=False,
    )

    DATABASE_URL: str

    JWT_SECRET: str
    JWT_ALG: str = "HS256"
    JWT_ACCESS_MINUTES: int = 60

    # Payment gateway
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""
    RAZORPAY_API_BASE_URL: str = "https://api.razorpay.com"
    RAZORPAY_TIMEOUT_SECONDS: float = 15.0

    CURRENCY: str = "INR"

    # Day boundary used by the ORD-YYYYMMDD-NNN allocator
    ORDER_NUMBER_TIMEZONE: str = "UTC"

    # Used only when no site_config row exists
    DEFAULT_SHIPPING_CHARGE_CENTS: int | None = 5000
    DEFAULT_FREE_SHIPPING_MIN_ORDER_CENTS: int | None = 50000

    # Comma separated; empty disables view revalidation
    REVALIDATE_URLS: str = ""

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def revalidate_urls(self) -> list[str]:
        return [u.strip() for u in self.REVALIDATE_URLS.split(",") if u.strip()]

    @property
    def cors_origins(self) -> list[str]:
        return [u.strip() for u in self.CORS_ORIGINS.split(",") if u.strip()]


settings = Settings()
