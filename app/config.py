from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator
from functools import lru_cache
from typing import List, Set


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./lodging.db",
        alias="DATABASE_URL"
    )

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # CORS - Frontend URLs from environment (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        alias="ALLOWED_ORIGINS"
    )

    # ==============================================
    # Business calendar
    # ==============================================
    # All "today" / "current hour" decisions are made in this timezone
    business_timezone: str = Field(default="Asia/Taipei", alias="BUSINESS_TIMEZONE")

    # Weekend days as Python weekday numbers (Monday=0, Sunday=6)
    # Default: Saturday=5, Sunday=6
    weekend_days: str = Field(default="5,6", alias="WEEKEND_DAYS")

    # When False only HolidayCalendar entries carry the surcharge
    weekend_surcharge_enabled: bool = Field(default=True, alias="WEEKEND_SURCHARGE_ENABLED")

    # ==============================================
    # Booking policy
    # ==============================================
    deposit_percentage: int = Field(default=30, alias="DEPOSIT_PERCENTAGE")

    # Fallback hold period when no payment_reminder policy row exists
    default_hold_days: int = Field(default=3, alias="DEFAULT_HOLD_DAYS")

    enable_bank_transfer: bool = Field(default=True, alias="ENABLE_BANK_TRANSFER")
    enable_card_payment: bool = Field(default=True, alias="ENABLE_CARD_PAYMENT")

    booking_max_advance_days: int = Field(default=730, alias="BOOKING_MAX_ADVANCE_DAYS")
    booking_max_nights: int = Field(default=365, alias="BOOKING_MAX_NIGHTS")

    # ==============================================
    # Payment gateway (Server-Side Only!)
    # ==============================================
    payment_merchant_id: str = Field(default="2000132", alias="PAYMENT_MERCHANT_ID")
    payment_hash_key: str = Field(default="5294y06JbISpM5x9", alias="PAYMENT_HASH_KEY")
    payment_hash_iv: str = Field(default="v77hoKGq4kWxNNIS", alias="PAYMENT_HASH_IV")

    # Accept a bad checksum when RtnCode=1. Non-production only.
    payment_relaxed_verification: bool = Field(default=False, alias="PAYMENT_RELAXED_VERIFICATION")

    # ==============================================
    # Scheduler settings (runs inside FastAPI process)
    # ==============================================
    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")
    notification_poll_minutes: int = Field(default=60, alias="NOTIFICATION_POLL_MINUTES")
    expiration_sweep_minutes: int = Field(default=60, alias="EXPIRATION_SWEEP_MINUTES")

    # A claimed-but-unconfirmed ledger row older than this is reclaimable
    notification_claim_ttl_minutes: int = Field(default=30, alias="NOTIFICATION_CLAIM_TTL_MINUTES")

    # ==============================================
    # Outbound notification addressing
    # ==============================================
    sender_email: str = Field(default="noreply@localhost", alias="SENDER_EMAIL")
    admin_email: str = Field(default="", alias="ADMIN_EMAIL")

    @field_validator('deposit_percentage')
    @classmethod
    def validate_deposit_percentage(cls, v: int) -> int:
        if v < 0 or v > 100:
            raise ValueError("DEPOSIT_PERCENTAGE must be between 0 and 100")
        return v

    @model_validator(mode='after')
    def validate_production_payment(self):
        """Refuse insecure payment settings in production"""
        if self.is_production:
            if not self.payment_hash_key or not self.payment_hash_iv:
                raise ValueError("PAYMENT_HASH_KEY and PAYMENT_HASH_IV are required in production")
            if self.payment_relaxed_verification:
                raise ValueError("PAYMENT_RELAXED_VERIFICATION cannot be enabled in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    @property
    def weekend_day_numbers(self) -> Set[int]:
        """
        Parse weekend days into a set of weekday numbers.
        Default: {5, 6} (Saturday, Sunday)
        """
        try:
            return {int(d.strip()) for d in self.weekend_days.split(",") if d.strip()}
        except ValueError:
            return {5, 6}

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
