from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Hotel Ledger API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_TIMEZONE: str = "UTC"

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "frontdesk@hotel.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""

    # Stripe (REST, form-encoded)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com"
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_VERIFY: bool = False
    STRIPE_SANDBOX: bool = False  # If True, skip real Stripe calls and return deterministic fake results
    CURRENCY: str = "usd"
    GATEWAY_TIMEOUT_SECONDS: int = 30

    # Amount comparisons (payment vs. booking total)
    AMOUNT_EPSILON: Decimal = Decimal("0.01")

    # Bearer secret for the external cron hitting /cron/auto-checkout. Empty = no check.
    CRON_SECRET: str = ""
    AUTO_CHECKOUT_INTERVAL_SECONDS: float = 3600.0


settings = Settings()
