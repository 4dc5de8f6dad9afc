"""Process configuration read from environment variables (or a local .env file)."""
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite:///./portfolio_sync.db"
DEFAULT_EODHD_BASE_URL = "https://eodhd.com/api"


class Settings(BaseSettings):
    """Runtime settings. Build with Settings.from_env() or get_settings()."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    encryption_key: str | None = Field(
        default=None, repr=False, validation_alias="ENCRYPTION_KEY"
    )
    database_url: str = Field(default=DEFAULT_DATABASE_URL, validation_alias="DATABASE_URL")
    sql_echo: bool = Field(default=False, validation_alias="SQL_ECHO")
    service_token: str | None = Field(default=None, repr=False, validation_alias="SERVICE_TOKEN")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    scheduler_enabled: bool = Field(default=False, validation_alias="SYNC_SCHEDULER_ENABLED")
    sync_cron_hour: int = Field(default=2, ge=0, le=23, validation_alias="SYNC_CRON_HOUR")
    user_pacing_seconds: float = Field(
        default=2.0, ge=0, validation_alias="SYNC_USER_PACING_SECONDS"
    )
    scheduled_cost_basis: bool = Field(default=False, validation_alias="SCHEDULED_COST_BASIS")
    ibkr_manual_sync_once: bool = Field(default=False, validation_alias="IBKR_MANUAL_SYNC_ONCE")

    ibkr_poll_interval_seconds: float = Field(
        default=5.0, ge=0, validation_alias="IBKR_POLL_INTERVAL_SECONDS"
    )
    ibkr_max_poll_attempts: int = Field(default=30, ge=1, validation_alias="IBKR_MAX_POLL_ATTEMPTS")
    binance_trade_fetch_delay_seconds: float = Field(
        default=0.1, ge=0, validation_alias="BINANCE_TRADE_FETCH_DELAY_SECONDS"
    )

    # Fund prices; pricing and fund lookups are off while the token is unset
    eodhd_api_token: str | None = Field(default=None, repr=False, validation_alias="EODHD_API_TOKEN")
    eodhd_base_url: str = Field(default=DEFAULT_EODHD_BASE_URL, validation_alias="EODHD_BASE_URL")
    eodhd_request_delay_seconds: float = Field(
        default=0.2, ge=0, validation_alias="EODHD_REQUEST_DELAY_SECONDS"
    )

    @field_validator(
        "sql_echo",
        "scheduler_enabled",
        "scheduled_cost_basis",
        "ibkr_manual_sync_once",
        mode="before",
    )
    @classmethod
    def _parse_bool(cls, v):
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in ("1", "true", "yes", "on")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, v):
        return str(v or "INFO").strip().upper()

    @field_validator("database_url", "eodhd_base_url", mode="before")
    @classmethod
    def _blank_is_default(cls, v, info):
        if v is None or not str(v).strip():
            return cls.model_fields[info.field_name].default
        return v

    @field_validator("encryption_key", "service_token", "eodhd_api_token", mode="before")
    @classmethod
    def _blank_is_unset(cls, v):
        if v is None or not str(v).strip():
            return None
        return v

    @property
    def manual_sync_once(self) -> list[str]:
        """Brokers whose on-demand sync is refused once the user has history."""
        return ["ibkr"] if self.ibkr_manual_sync_once else []

    @classmethod
    def from_env(cls) -> "Settings":
        """Read every setting from the environment, falling back to defaults."""
        return cls()


@lru_cache
def get_settings() -> Settings:
    """Settings of the running process (read once)."""
    return Settings.from_env()
