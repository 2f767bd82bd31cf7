from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables and `.env`.
    """

    # API Configuration
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Practice Scheduling Lifecycle API"
    PROJECT_DESCRIPTION: str = "Cancellation, waitlist, confirmation and staff routing for booked appointments"
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = Field("development", description="Deployment environment name")
    DEBUG: bool = Field(False, description="Enable debug mode (docs, permissive CORS)")

    # Redis Settings
    REDIS_HOST: str = Field("localhost", description="Redis host")
    REDIS_PORT: int = Field(6379, description="Redis port")
    REDIS_DB: int = Field(0, description="Redis database index")
    REDIS_PASSWORD: str | None = Field(None, description="Redis password")

    # OpenEMR (FHIR system of record)
    OPENEMR_BASE_URL: str = Field("https://localhost:9300", description="OpenEMR base URL")
    OPENEMR_SITE: str = Field("default", description="OpenEMR site name")
    OPENEMR_CLIENT_ID: str = Field("", description="OAuth2 client id")
    OPENEMR_CLIENT_SECRET: str = Field("", description="OAuth2 client secret")
    OPENEMR_SCOPE: str = Field(
        "openid api:fhir user/Appointment.read user/Appointment.write user/Slot.read "
        "user/Practitioner.read user/Patient.read",
        description="OAuth2 scopes requested on token grant",
    )
    OPENEMR_TIMEOUT: float = Field(10.0, description="HTTP timeout for FHIR calls in seconds")
    OPENEMR_TOKEN_REFRESH_MARGIN_SECONDS: int = Field(
        300, description="Refresh the access token once it is this close to expiry"
    )

    # Cancellation policy
    CANCELLATION_MINIMUM_NOTICE_HOURS: int = Field(24, description="Minimum notice for reschedules")
    CANCELLATION_FEE_SAME_DAY: float = Field(75.0, description="Fee for same-day cancellations")
    CANCELLATION_FEE_LT_24H: float = Field(50.0, description="Fee for cancellations with < 24h notice")
    CANCELLATION_FEE_LT_48H: float = Field(25.0, description="Fee for cancellations with < 48h notice")
    CANCELLATION_FEE_GE_48H: float = Field(0.0, description="Fee for cancellations with >= 48h notice")
    NO_SHOW_FEE: float = Field(100.0, description="Fee charged for no-shows")
    EMERGENCY_EXCEPTIONS_ENABLED: bool = Field(True, description="Waive fees for emergency cancellations")

    # Confirmation numbers
    CONFIRMATION_PREFIX: str = Field("CE", description="Prefix for appointment confirmation numbers")
    CANCELLATION_REFERENCE_PREFIX: str = Field("CC", description="Prefix for cancellation reference numbers")
    CONFIRMATION_NUMBER_LENGTH: int = Field(8, description="Characters after the prefix")
    CONFIRMATION_INCLUDE_TIMESTAMP: bool = Field(True, description="Embed a compact timestamp")
    CONFIRMATION_VOICE_OPTIMIZED: bool = Field(True, description="Exclude confusable characters")
    CONFIRMATION_COLLISION_CHECK: bool = Field(True, description="Reserve numbers atomically before use")
    CONFIRMATION_MAX_ATTEMPTS: int = Field(10, description="Collision retries before giving up")
    CONFIRMATION_RETENTION_DAYS: int = Field(30, description="TTL for confirmation records")

    # Waitlist
    WAITLIST_MATCH_THRESHOLD: float = Field(0.3, description="Minimum score for a waitlist match")
    WAITLIST_MAX_NOTIFY: int = Field(3, description="Upper bound on entries notified per slot")
    WAITLIST_RESPONSE_MINUTES: int = Field(120, description="Response window for standard offers")
    WAITLIST_BUSINESS_HOURS_RESPONSE_MINUTES: int = Field(
        240, description="Response window for business-hours-only entries"
    )
    WAITLIST_URGENT_RESPONSE_MINUTES: int = Field(60, description="Response window for urgent offers")
    WAITLIST_SWEEP_ENABLED: bool = Field(False, description="Run the periodic waitlist expiry sweep")
    WAITLIST_SWEEP_INTERVAL_SECONDS: int = Field(300, description="Interval of the expiry sweep")

    # Staff notifications
    STAFF_API_TOKEN: str = Field("", description="Shared token required on staff endpoints")
    STAFF_NOTIFICATION_RETENTION_DAYS: int = Field(30, description="TTL for staff notification records")
    STAFF_METRICS_CACHE_SECONDS: int = Field(300, description="Cache lifetime for staff metrics")

    # Practice
    PRACTICE_NAME: str = Field("Capitol Eye Care", description="Practice name used in messages")
    PRACTICE_TIMEZONE: str = Field("America/New_York", description="Practice local timezone")
    OFFICE_PHONE: str = Field("(555) 123-4567", description="Office phone read to patients")
    BUSINESS_HOURS_START: int = Field(8, description="Business hours start (local hour)")
    BUSINESS_HOURS_END: int = Field(17, description="Business hours end (local hour)")

    # Notification channels
    SMS_GATEWAY_URL: str | None = Field(None, description="SMS gateway endpoint")
    EMAIL_GATEWAY_URL: str | None = Field(None, description="Email gateway endpoint")
    CHANNEL_TIMEOUT: float = Field(5.0, description="HTTP timeout for channel gateways")

    # Cache and audit
    APPOINTMENT_CACHE_SECONDS: int = Field(300, description="TTL for cached appointment snapshots")
    AUDIT_LOG_MAX_LENGTH: int = Field(10000, description="Length of the global audit list")
    AUDIT_RETENTION_DAYS: int = Field(2555, description="Retention of per-entity audit trails (7 years)")
    ANALYTICS_LOG_MAX_LENGTH: int = Field(1000, description="Length of bounded analytics lists")

    # Logging / monitoring
    LOG_LEVEL: str = Field("INFO", description="Root log level")
    LOG_FORMAT: str = Field("colored", description="Log format: colored, json or plain")
    LOG_FILE: str | None = Field(None, description="Optional JSON log file")
    SENTRY_DSN: str | None = Field(None, description="Sentry DSN (disabled when empty)")

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("CONFIRMATION_NUMBER_LENGTH")
    @classmethod
    def validate_confirmation_length(cls, v):
        if v < 6:
            raise ValueError("CONFIRMATION_NUMBER_LENGTH must be at least 6")
        return v

    @field_validator("BUSINESS_HOURS_START", "BUSINESS_HOURS_END")
    @classmethod
    def validate_business_hour(cls, v):
        if not 0 <= v <= 23:
            raise ValueError("Business hours must be between 0 and 23")
        return v

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("colored", "json", "plain"):
            raise ValueError("LOG_FORMAT must be one of: colored, json, plain")
        return v

    @computed_field
    @property
    def redis_url(self) -> str:
        """Build the Redis connection URL."""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @computed_field
    @property
    def fhir_base_url(self) -> str:
        """FHIR API root for the configured OpenEMR site."""
        return f"{self.OPENEMR_BASE_URL.rstrip('/')}/apis/{self.OPENEMR_SITE}/fhir"

    @computed_field
    @property
    def token_url(self) -> str:
        """OAuth2 token endpoint for the configured OpenEMR site."""
        return f"{self.OPENEMR_BASE_URL.rstrip('/')}/oauth2/{self.OPENEMR_SITE}/token"

    @computed_field
    @property
    def is_development(self) -> bool:
        """Whether the app runs in a development environment."""
        return self.DEBUG or self.ENVIRONMENT.lower() in ["development", "dev", "local"]


# Settings singleton
_settings_instance = None


def get_settings() -> Settings:
    """
    Return a cached settings instance.

    Avoids re-reading environment variables on every call.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
