from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # --- Service ---
    PROJECT_NAME: str = "Fulfillment_Core"
    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "Asia/Kolkata"

    # --- Stores ---
    DATABASE_URL: str = "sqlite:///./fulfillment.db"
    REDIS_URL: str = "redis://localhost:6379/0"
    DB_CONNECT_RETRIES: int = 10
    DB_CONNECT_WAIT_SECONDS: int = 3

    # --- Pickup verification ---
    PICKUP_CODE_TTL_MINUTES: int = 15
    PICKUP_MAX_ATTEMPTS: int = 5
    VERIFY_CAS_RETRIES: int = 5

    # --- Settlement ---
    COMMISSION_RATE: Decimal = Decimal("0.05")
    SETTLEMENT_LOCK_TTL_SECONDS: int = 300

    # --- Demand ---
    DEMAND_VELOCITY_WINDOW_MINUTES: int = 15
    DEMAND_ALERT_THRESHOLD: int = 80
    DEFAULT_MAX_CAPACITY: int = 10
    DEFAULT_BASE_WAIT_MINUTES: int = 15

    # --- Notifications (optional, disabled when missing) ---
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_FROM_NUMBER: str | None = None
    ADMIN_PHONE_NUMBER: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"  # other services share the same .env
    )

settings = Settings()
