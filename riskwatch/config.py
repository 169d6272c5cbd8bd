"""
RiskWatch Configuration.

Pydantic Settings v2: loads from .env, environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "RiskWatch"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── API ───────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8002, alias="API_PORT")
    api_prefix: str = "/api/v1"

    # ── Persistence sink ─────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite+aiosqlite:///./riskwatch.db",
        alias="DATABASE_URL",
    )
    persistence_enabled: bool = Field(default=False, alias="PERSISTENCE_ENABLED")

    # ── External providers ───────────────────────────────────────────────
    weather_api_key: str = Field(default="", alias="WEATHER_API_KEY")
    weather_url: str = Field(
        default="https://api.openweathermap.org/data/2.5/weather",
        alias="WEATHER_URL",
    )
    model_url: str = Field(default="", alias="MODEL_URL")
    model_api_token: str = Field(default="", alias="MODEL_API_TOKEN")
    geocode_url: str = Field(default="", alias="GEOCODE_URL")
    blob_storage_url: str = Field(default="", alias="BLOB_STORAGE_URL")
    notification_webhook_url: str = Field(default="", alias="NOTIFICATION_WEBHOOK_URL")

    # ── Timeouts / fan-out ───────────────────────────────────────────────
    provider_timeout_seconds: float = Field(default=5.0, alias="PROVIDER_TIMEOUT_SECONDS")
    provider_retry_attempts: int = Field(default=1, alias="PROVIDER_RETRY_ATTEMPTS")
    max_concurrency: int = Field(default=16, alias="MAX_CONCURRENCY")

    # ── Risk caches (seconds) ────────────────────────────────────────────
    weather_ttl_seconds: int = Field(default=1800, alias="WEATHER_TTL_SECONDS")
    crime_ttl_seconds: int = Field(default=3600, alias="CRIME_TTL_SECONDS")
    political_ttl_seconds: int = Field(default=7200, alias="POLITICAL_TTL_SECONDS")
    derived_risk_ttl_seconds: int = Field(default=600, alias="DERIVED_RISK_TTL_SECONDS")
    cache_max_entries: int = Field(default=50_000, alias="CACHE_MAX_ENTRIES")

    # ── Thresholds ───────────────────────────────────────────────────────
    anomaly_threshold: float = Field(default=0.7, alias="ANOMALY_THRESHOLD")
    area_cell_size: float = Field(default=0.01, alias="AREA_CELL_SIZE")
    group_min_members: int = Field(default=3, alias="GROUP_MIN_MEMBERS")
    group_incident_score: float = Field(default=0.8, alias="GROUP_INCIDENT_SCORE")

    # ── Dedup ledger ─────────────────────────────────────────────────────
    dedup_max_entries: int = Field(default=100_000, alias="DEDUP_MAX_ENTRIES")
    dedup_window_minutes: int = Field(default=60, alias="DEDUP_WINDOW_MINUTES")

    # ── Incidents ────────────────────────────────────────────────────────
    report_station_code: str = Field(default="001", alias="REPORT_STATION_CODE")
    geofence_path: str = Field(default="", alias="GEOFENCE_PATH")
    strict_status_transitions: bool = Field(default=False, alias="STRICT_STATUS_TRANSITIONS")
    notification_feed_size: int = Field(default=500, alias="NOTIFICATION_FEED_SIZE")

    # ── Update feed (worker mode) ────────────────────────────────────────
    feed_url: str = Field(default="", alias="FEED_URL")
    feed_poll_seconds: float = Field(default=5.0, alias="FEED_POLL_SECONDS")

    # ── Operational ──────────────────────────────────────────────────────
    local_timezone: str = Field(default="UTC", alias="LOCAL_TIMEZONE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")
    maintenance_interval_minutes: int = Field(default=10, alias="MAINTENANCE_INTERVAL_MINUTES")


settings = Settings()
