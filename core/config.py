import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError


@dataclass(frozen=True)
class Settings:
    """Настройки консоли; каждое поле переопределяется переменной окружения"""

    api_url: str = "http://localhost:5000/api"
    api_token: Optional[str] = None
    request_timeout: float = 10.0
    refresh_interval: float = 60.0  # 0 - без автообновления
    page_size: int = 10
    fetch_limit: int = 1000
    log_level: str = "INFO"


def _number(environ: Mapping[str, str], name: str, default, cast):
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Собирает Settings из окружения (по умолчанию os.environ)"""
    env = os.environ if environ is None else environ
    defaults = Settings()

    page_size = _number(env, "CONSOLE_PAGE_SIZE", defaults.page_size, int)
    if page_size == 0:
        raise ConfigError("CONSOLE_PAGE_SIZE must be positive")

    return Settings(
        api_url=env.get("CONSOLE_API_URL", defaults.api_url).rstrip("/"),
        api_token=env.get("CONSOLE_API_TOKEN") or None,
        request_timeout=_number(
            env, "CONSOLE_REQUEST_TIMEOUT", defaults.request_timeout, float
        ),
        refresh_interval=_number(
            env, "CONSOLE_REFRESH_INTERVAL", defaults.refresh_interval, float
        ),
        page_size=page_size,
        fetch_limit=_number(env, "CONSOLE_FETCH_LIMIT", defaults.fetch_limit, int),
        log_level=env.get("CONSOLE_LOG_LEVEL", defaults.log_level).upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    """Один раз настраивает stdlib logging для консоли"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
