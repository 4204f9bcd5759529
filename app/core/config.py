from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field(default="dev", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    telegram_bot_token: str = Field(alias="TELEGRAM_BOT_TOKEN")
    database_url: str = Field(alias="DATABASE_URL")

    encounter_request_timeout_seconds: float = Field(
        default=10.0,
        alias="ENCOUNTER_REQUEST_TIMEOUT_SECONDS",
    )
    encounter_min_request_interval_ms: int = Field(
        default=1200,
        alias="ENCOUNTER_MIN_REQUEST_INTERVAL_MS",
    )
    encounter_level_cache_ttl_seconds: float = Field(
        default=30.0,
        alias="ENCOUNTER_LEVEL_CACHE_TTL_SECONDS",
    )
    encounter_error_html_dir: str = Field(
        default="logs/encounter-html",
        alias="ENCOUNTER_ERROR_HTML_DIR",
    )
    encounter_user_agent: str = Field(default=DEFAULT_USER_AGENT, alias="ENCOUNTER_USER_AGENT")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
