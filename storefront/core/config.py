"""
Storefront - Configuration
Environment-backed settings for the web tier and the monitor bot.
"""
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Storefront API"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production
    BASE_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./storefront.db"

    # Auth
    JWT_SECRET: str = "CHANGE_ME_JWT_SECRET"
    JWT_ALGORITHM: str = "HS256"
    ADMIN_API_KEY: str = ""
    CRON_SECRET: str = ""
    MONITOR_SECRET: str = ""

    # Outbound HTTP
    HTTP_TIMEOUT: float = 15.0

    # Discord bot bridge
    BOT_WEBHOOK_URL: str = "http://localhost:3001"
    DISCORD_BOT_TOKEN: str = ""
    STAFF_LOG_CHANNEL_ID: str = ""

    # iPaymu
    IPAYMU_API_KEY: str = ""
    IPAYMU_VA: str = ""
    IPAYMU_API_URL: str = "https://my.ipaymu.com/api/v2"

    # Pakasir
    PAKASIR_API_KEY: str = ""
    PAKASIR_PROJECT: str = "jambitopup-website"
    PAKASIR_API_URL: str = "https://app.pakasir.com/api"

    # Tokopay
    TOKOPAY_MERCHANT_ID: str = ""
    TOKOPAY_SECRET: str = ""
    TOKOPAY_API_URL: str = "https://api.tokopay.id/v1"

    # PayPal (USD)
    PAYPAL_CLIENT_ID: str = ""
    PAYPAL_SECRET: str = ""
    PAYPAL_MODE: str = "sandbox"  # sandbox, live

    # Email
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "noreply@jambitopup.com"
    SMTP_FROM_NAME: str = "Jambi Topup"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


class MonitorSettings(BaseSettings):
    """Settings for the standalone monitor bot process."""

    TARGET_URL: str = "http://localhost:3000"
    MONITOR_SECRET: str = ""
    DISCORD_TOKEN: str = ""
    ALERT_CHANNEL_ID: str = ""
    CHECK_INTERVAL: int = 30  # seconds
    ALERT_COOLDOWN: int = 5 * 60  # seconds per alert type
    HTTP_TIMEOUT: float = 10.0

    # Thresholds
    CPU_THRESHOLD: float = 85.0
    MEMORY_THRESHOLD: float = 85.0
    LATENCY_THRESHOLD: float = 1000.0  # ms

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


def load_settings(env_file: Optional[str] = ".env") -> Settings:
    """Build settings once at process start."""
    return Settings(_env_file=env_file)
