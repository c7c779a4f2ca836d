"""
Run configuration loaded from the environment (and a local .env file).

Numeric tunables that are missing, malformed or not positive fall back
to their defaults; only the city is strict.
"""

import os
from typing import Any, Literal, Mapping, Optional

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, ValidationInfo, field_validator

from ..errors import ConfigError

log = structlog.get_logger(__name__)

# Settings field -> environment variable
ENV_VARS = {
    "city": "SCRAPE_CITY",
    "until_days": "SCRAPE_UNTIL_DAYS",
    "request_delay_ms": "REQUEST_DELAY_MS",
    "request_timeout_ms": "REQUEST_TIMEOUT_MS",
    "retry_max": "RETRY_MAX",
    "rate_limit_pause_ms": "RATE_LIMIT_PAUSE_MS",
    "sympla_max_pages": "SYMPLA_MAX_PAGES",
    "elcabong_max_pages": "ELCABONG_MAX_PAGES",
    "sympla_detail_limit": "SYMPLA_DETAIL_LIMIT",
    "instagram_handle": "INSTAGRAM_HANDLE",
    "rsshub_url": "RSSHUB_URL",
    "database_url": "DATABASE_URL",
    "log_level": "LOG_LEVEL",
    "log_format": "LOG_FORMAT",
}

NUMERIC_FIELDS = (
    "until_days",
    "request_delay_ms",
    "request_timeout_ms",
    "retry_max",
    "rate_limit_pause_ms",
    "sympla_max_pages",
    "elcabong_max_pages",
    "sympla_detail_limit",
)


class Settings(BaseModel):
    """Tunables for one pipeline invocation."""

    city: Literal["salvador"] = "salvador"
    until_days: int = 90

    # HTTP behaviour, per source request
    request_delay_ms: int = 800
    request_timeout_ms: int = 15000
    retry_max: int = 3
    rate_limit_pause_ms: int = 30000

    # Pagination caps
    sympla_max_pages: int = 20
    elcabong_max_pages: int = 10
    sympla_detail_limit: int = 50

    instagram_handle: str = "agendaalternativasalvador"
    rsshub_url: str = "https://rsshub.app"

    database_url: str = "sqlite:///agenda.db"

    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    @field_validator("city", mode="before")
    @classmethod
    def _lowercase_city(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator(*NUMERIC_FIELDS, mode="before")
    @classmethod
    def _positive_or_default(cls, value: Any, info: ValidationInfo) -> int:
        default = cls.model_fields[info.field_name].default
        try:
            number = int(float(value))
        except (TypeError, ValueError):
            log.warning("invalid_setting", field=info.field_name, value=value, default=default)
            return default
        if number < 1:
            log.warning("invalid_setting", field=info.field_name, value=value, default=default)
            return default
        return number

    @field_validator("log_format", mode="before")
    @classmethod
    def _known_format(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in ("json", "console"):
            return value.strip().lower()
        return "json"

    @property
    def request_delay_s(self) -> float:
        return self.request_delay_ms / 1000

    @property
    def request_timeout_s(self) -> float:
        return self.request_timeout_ms / 1000

    @property
    def rate_limit_pause_s(self) -> float:
        return self.rate_limit_pause_ms / 1000


def load_settings(
    environ: Optional[Mapping[str, str]] = None, **overrides: Any
) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read instead of os.environ (skips .env loading)
        **overrides: Explicit values (e.g. from CLI flags) that win over the environment

    Raises:
        ConfigError: If the configuration is unusable (e.g. unsupported city)
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    values: dict[str, Any] = {
        field: environ[var]
        for field, var in ENV_VARS.items()
        if environ.get(var) not in (None, "")
    }
    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
