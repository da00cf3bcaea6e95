from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str
    JWT_SECRET: str
    LOG_LEVEL: str = "INFO"
    SLOW_REQUEST_THRESHOLD_MS: int = 1000  # 1 segundo
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Reglas de circulación
    BORROW_PERIOD_DAYS: int = 7
    RENEWAL_PERIOD_DAYS: int = 7
    MAX_RENEWALS: int = 2
    FINE_PER_DAY: Decimal = Decimal("1.00")
    FINE_PAYMENT_DAYS: int = 30
    RESERVATION_EXPIRY_DAYS: int = 7
    RESERVATION_PICKUP_DAYS: int = 3
    DUE_REMINDER_DAYS: int = 2

    # Email (Resend)
    RESEND_API_KEY: str | None = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    EMAIL_FROM: str = "University Library <library@sculib.com>"
    PUBLIC_BASE_URL: str = "http://localhost:3000"

    BUILTIN_ADMIN_EMAIL: str = "admin@library.local"
    BUILTIN_ADMIN_PASSWORD: str = "admin123"

    class Config:
        env_file = ".env"


settings = Settings()
