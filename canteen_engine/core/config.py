"""Application configuration."""

from decimal import Decimal
from os import getenv

from pydantic import BaseModel


class Settings(BaseModel):
    """Runtime settings for the settlement engine."""

    app_name: str = "canteen settlement engine"
    app_env: str = getenv("APP_ENV", "dev")
    debug: bool = getenv("DEBUG", "0") == "1"
    database_url: str = getenv("DATABASE_URL", "sqlite:///./canteen_engine.db")
    jwt_secret_key: str = getenv("JWT_SECRET_KEY", "dev-only-change-me-to-a-long-random-secret")
    jwt_algorithm: str = getenv("JWT_ALGORITHM", "HS256")
    jwt_expire_minutes: int = int(getenv("JWT_EXPIRE_MINUTES", "60"))
    booking_horizon_days: int = int(getenv("BOOKING_HORIZON_DAYS", "3"))
    loan_cancel_lock_minutes: int = int(getenv("LOAN_CANCEL_LOCK_MINUTES", "60"))
    business_utc_offset_minutes: int = int(getenv("BUSINESS_UTC_OFFSET_MINUTES", "0"))
    default_penalty_enabled: bool = getenv("DEFAULT_PENALTY_ENABLED", "0") == "1"
    default_penalty_rate: Decimal = Decimal(getenv("DEFAULT_PENALTY_RATE", "10"))
    default_penalty_threshold_hours: int = int(getenv("DEFAULT_PENALTY_THRESHOLD_HOURS", "6"))
    default_allow_negative_balance: bool = getenv("DEFAULT_ALLOW_NEGATIVE_BALANCE", "0") == "1"


settings: Settings = Settings()
