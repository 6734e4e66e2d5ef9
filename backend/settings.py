"""Safe Scroll - Process Settings
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Reads process-level settings from environment variables (populated from
.env by load_dotenv() in main.py). Invalid values fall back to defaults.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from config_store import DEFAULT_BLOCK_THRESHOLD
from pipeline import DEFAULT_MIN_INTERVAL

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 3


@dataclass(frozen=True)
class Settings:
    api_secret_key: str = ""
    block_threshold: int = DEFAULT_BLOCK_THRESHOLD
    min_interval: float = DEFAULT_MIN_INTERVAL
    workers: int = DEFAULT_WORKERS
    auto_scroll: bool = True
    webhook_url: Optional[str] = None
    trigger_db_path: Optional[str] = None


def _int_env(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} is not an integer, using {default}")
        return default
    if not minimum <= value <= maximum:
        logger.warning(f"{name}={value} outside [{minimum}, {maximum}], using {default}")
        return default
    return value


def _bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    logger.warning(f"{name}={raw!r} is not a boolean, using {default}")
    return default


def load_settings() -> Settings:
    """Build Settings from the current environment"""
    min_interval_ms = _int_env("SAFE_SCROLL_MIN_INTERVAL_MS", int(DEFAULT_MIN_INTERVAL * 1000), 0, 60000)
    return Settings(
        api_secret_key=os.environ.get("API_SECRET_KEY", "").strip(),
        block_threshold=_int_env("SAFE_SCROLL_BLOCK_THRESHOLD", DEFAULT_BLOCK_THRESHOLD, 0, 1000),
        min_interval=min_interval_ms / 1000,
        workers=_int_env("SAFE_SCROLL_WORKERS", DEFAULT_WORKERS, 1, 32),
        auto_scroll=_bool_env("SAFE_SCROLL_AUTO_SCROLL", True),
        webhook_url=os.environ.get("SAFE_SCROLL_WEBHOOK_URL", "").strip() or None,
        trigger_db_path=os.environ.get("SAFE_SCROLL_TRIGGER_DB", "").strip() or None,
    )
