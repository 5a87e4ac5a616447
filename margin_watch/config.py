"""Runtime configuration loaded from the environment and an optional .env file."""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import find_dotenv, load_dotenv


MARGIN_RATE_DAILY = 0.0003  # 0.03% per day
MARGIN_RATE_ANNUAL = MARGIN_RATE_DAILY * 365  # ~10.95% annually

DEFAULT_API_BASE = "https://api.manifold.markets/v0"
DEFAULT_PAGE_SIZE = 100
DEFAULT_TIMEOUT = 30.0


@dataclass
class Settings:
    """Settings for the API client, margin threshold and logging."""
    api_base: str = DEFAULT_API_BASE
    page_size: int = DEFAULT_PAGE_SIZE
    timeout: float = DEFAULT_TIMEOUT
    margin_rate_daily: float = MARGIN_RATE_DAILY
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "margin-watch"

    @property
    def margin_rate_annual(self) -> float:
        return self.margin_rate_daily * 365

    @property
    def log_level_value(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Invalid LOG_LEVEL: {self.log_level}")
        return level


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build Settings from the process environment.

    Values from env_file (or a .env in the working directory) are loaded
    first but never override variables that are already set.

    Raises:
        ValueError: If a numeric variable is malformed or out of range
    """
    load_dotenv(env_file or find_dotenv(usecwd=True))

    settings = Settings(
        api_base=os.getenv("MANIFOLD_API_BASE", DEFAULT_API_BASE).rstrip("/"),
        page_size=_get_int("MANIFOLD_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        timeout=_get_float("MANIFOLD_TIMEOUT", DEFAULT_TIMEOUT),
        margin_rate_daily=_get_float("MARGIN_RATE_DAILY", MARGIN_RATE_DAILY),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_format=os.getenv("LOG_FORMAT", "json").lower(),
        service_name=os.getenv("SERVICE_NAME", "margin-watch"),
    )

    if settings.page_size <= 0:
        raise ValueError("MANIFOLD_PAGE_SIZE must be positive")
    if settings.timeout <= 0:
        raise ValueError("MANIFOLD_TIMEOUT must be positive")
    if settings.log_format not in ("json", "text"):
        raise ValueError(f"LOG_FORMAT must be 'json' or 'text', got {settings.log_format!r}")

    return settings
