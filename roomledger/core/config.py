from dataclasses import dataclass

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_emails(raw: str) -> frozenset[str]:
    return frozenset(e.strip().lower() for e in raw.split(",") if e.strip())


@dataclass(frozen=True)
class LedgerConfig:
    """Explicit configuration handed to the registry, ledger and override gate.

    Business logic receives this object at construction time instead of
    reading the process environment.
    """

    environment: str = "development"
    coupons_enabled: bool = True
    dev_coupon_admin_emails: frozenset[str] = frozenset()
    override_admin_emails: frozenset[str] = frozenset()
    min_payment_amount_cents: int = 100
    refund_tolerance_min_cents: int = 100
    refund_tolerance_rate: float = 0.01

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "roomledger"
    version: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # "development", "test" or "production"
    APP_DATABASE_DSN: str = "sqlite:////tmp/roomledger.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Coupons
    COUPONS_ENABLED: bool = True
    DEV_COUPON_ADMIN_EMAILS: str = ""
    OVERRIDE_ADMIN_EMAILS: str = ""

    # Payment gateway minimum (PIX requires at least one currency unit)
    MIN_PAYMENT_AMOUNT_CENTS: int = 100

    # Refund reconciliation tolerance: max(min_cents, expected * rate)
    REFUND_TOLERANCE_MIN_CENTS: int = 100
    REFUND_TOLERANCE_RATE: float = 0.01

    # Gateway webhook authentication
    ASAAS_WEBHOOK_TOKEN: str = ""

    # Session tokens issued by the identity provider
    SESSION_SECRET: str = "change-me"
    SESSION_ALGORITHM: str = "HS256"

    # Unpaid bookings are released after this many minutes
    PENDING_BOOKING_TTL_MINUTES: int = 30

    CORS_ORIGINS: str = "http://localhost:3000"

    def ledger_config(self) -> LedgerConfig:
        return LedgerConfig(
            environment=self.ENVIRONMENT,
            coupons_enabled=self.COUPONS_ENABLED,
            dev_coupon_admin_emails=_split_emails(self.DEV_COUPON_ADMIN_EMAILS),
            override_admin_emails=_split_emails(self.OVERRIDE_ADMIN_EMAILS),
            min_payment_amount_cents=self.MIN_PAYMENT_AMOUNT_CENTS,
            refund_tolerance_min_cents=self.REFUND_TOLERANCE_MIN_CENTS,
            refund_tolerance_rate=self.REFUND_TOLERANCE_RATE,
        )


settings = Settings()
