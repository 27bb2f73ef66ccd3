from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"extra": "ignore", "env_file": ".env"}

    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DATABASE_URL: str = "sqlite+aiosqlite:///./dev.db"

    # External data sources
    COUNTRIES_API_URL: str = "https://restcountries.com/v2/all?fields=name,capital,region,population,flag,currencies"
    EXCHANGE_API_URL: str = "https://open.er-api.com/v6/latest/USD"
    EXTERNAL_TIMEOUT_MS: int = Field(default=10000, gt=0)

    # Where the summary image is written and served from
    CACHE_IMAGE_PATH: Path = Field(default_factory=lambda: Path.cwd() / "cache" / "summary.png")

    # Logging configuration used by country_api.logging
    LOG_LEVEL: str = "INFO"
    CONSOLE_LOG_LEVEL: str = "INFO"
    REQUEST_LOG_LEVEL: str = "INFO"
    # Unset means the refresh and client loggers follow LOG_LEVEL
    REFRESH_LOG_LEVEL: str | None = None
    CLIENTS_LOG_LEVEL: str | None = None
    QUERY_LOG_LEVEL: str = "INFO"
    SLOW_QUERY_THRESHOLD_MS: int = Field(default=200, ge=0)

    # Rate limiting / Redis configuration
    # If REDIS_URL is not provided, rate limiting is disabled.
    REDIS_URL: str | None = None
    RATE_LIMIT_DEFAULT_TIMES: int = 60
    RATE_LIMIT_DEFAULT_SECONDS: int = 60
    RATE_LIMIT_REFRESH_TIMES: int = 10
    RATE_LIMIT_REFRESH_SECONDS: int = 60
    RATE_LIMIT_IMAGE_TIMES: int = 30
    RATE_LIMIT_IMAGE_SECONDS: int = 60


settings = Settings()
