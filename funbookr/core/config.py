"""Application configuration from environment variables."""

from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "FunBookr"
    debug: bool = True
    secret_key: str = "dev-secret-change-in-production"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql+asyncpg://funbookr:funbookr@db:5432/funbookr"
    database_echo: bool = False

    # Redis
    redis_url: str = "redis://redis:6379/0"

    # Auth
    access_token_expire_minutes: int = 60
    jwt_algorithm: str = "HS256"

    # Email / SMTP
    smtp_host: str = "localhost"
    smtp_port: int = 1025
    smtp_from: str = "noreply@funbookr.in"
    frontend_url: str = "http://localhost:5173"

    # Razorpay (test mode)
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""
    razorpay_base_url: str = "https://api.razorpay.com/v1/"
    razorpay_timeout_seconds: float = 30.0
    payment_callback_url: str = "http://localhost:5173/payments/callback"

    # Marketplace
    timezone: str = "Asia/Kolkata"
    default_currency: str = "INR"
    tax_rate: Decimal = Decimal("0")
    commission_rate: Decimal = Decimal("0.10")

    model_config = {"env_prefix": "FB_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
