from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Courtside Booking API"
    API_V1_STR: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    SECRET_KEY: str = "changeme"
    # Shared secret the payment provider sends on confirmation callbacks
    PAYMENT_WEBHOOK_SECRET: str = "changeme-payments"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 8

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "12345"
    POSTGRES_DB: str = "courtside_db"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str = ""

    # Every store call runs under this timeout (pool checkout + statement)
    STORE_TIMEOUT_SECONDS: float = 5.0

    # Facility calendar
    FACILITY_TIMEZONE: str = "America/Mexico_City"
    SLOT_MINUTES: int = 60
    PENDING_PAYMENT_MINUTES: int = 10
    # Housekeeping loop: expired holds and elapsed closures; 0 disables it
    SWEEP_INTERVAL_SECONDS: int = 60
    DEFAULT_OPERATING_HOURS_START: int = 7
    DEFAULT_OPERATING_HOURS_END: int = 22
    MAX_RECURRENCE_OCCURRENCES: int = 366

    # Booking rule defaults, used when a sport type has no booking_rules row
    DEFAULT_MIN_ADVANCE_NOTICE_MINUTES: int = 120
    DEFAULT_MAX_DAYS_AHEAD: int = 7
    DEFAULT_MAX_ACTIVE_BOOKINGS: int = 4
    DEFAULT_ALLOW_CONSECUTIVE_BOOKINGS: bool = True
    DEFAULT_MIN_GAP_MINUTES: int = 0
    DEFAULT_ALLOW_CANCELLATION: bool = True
    DEFAULT_MIN_CANCELLATION_MINUTES: int = 0
    DEFAULT_ALLOW_RESCHEDULING: bool = True
    DEFAULT_MIN_RESCHEDULING_MINUTES: int = 0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def assemble_db_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

settings = Settings()
settings.DATABASE_URL = settings.assemble_db_url()
