"""
Environment Configuration Helper
================================
Centralized env var loading with fallbacks.
Values are read once at import; tests override attributes on Config directly.
"""

import os
import logging
from typing import Optional, Any

logger = logging.getLogger(__name__)


def get_env(*names: str, default: Any = None) -> Optional[str]:
    """
    First non-empty value among the given names, stripped.

    Auth accepts the legacy API_KEY_SECRET name as a fallback:
        get_env("API_AUTH_KEY", "API_KEY_SECRET")
    """
    for name in names:
        value = os.getenv(name)
        if value and str(value).strip():
            return value.strip()
    return default


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean env var (true/false/1/0)."""
    value = os.getenv(name, "").lower().strip()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def get_env_float(name: str, default: float) -> float:
    """Get float env var, falling back to default on missing or malformed values."""
    value = get_env(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Invalid float for %s=%r, using %s", name, value, default)
        return default


def get_env_int(name: str, default: int) -> int:
    value = get_env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Invalid int for %s=%r, using %s", name, value, default)
        return default


# ============================================================================
# CENTRALIZED CONFIG (loaded once at import)
# ============================================================================

class Config:
    """Centralized configuration from env vars."""

    API_VERSION = "1.0"

    # Database
    DATABASE_URL = get_env("DATABASE_URL", default="sqlite:///./ride_boost.db")

    # Auth
    API_AUTH_ENABLED = get_env_bool("API_AUTH_ENABLED", True)
    API_AUTH_KEY = get_env("API_AUTH_KEY", "API_KEY_SECRET")
    HMAC_SECRET = get_env("HMAC_SECRET", "API_AUTH_KEY", "API_KEY_SECRET")
    HMAC_MAX_SKEW_MS = get_env_int("HMAC_MAX_SKEW_MS", 300000)
    HMAC_REPLAY_CACHE_SIZE = get_env_int("HMAC_REPLAY_CACHE_SIZE", 10000)

    # Ride timing
    RIDE_MIN_DURATION_SECONDS = get_env_float("RIDE_MIN_DURATION_SECONDS", 6.0)
    RIDE_MAX_DURATION_SECONDS = get_env_float("RIDE_MAX_DURATION_SECONDS", 12.0)
    RIDE_MIN_CRASH_SECONDS = get_env_float("RIDE_MIN_CRASH_SECONDS", 2.0)
    RIDE_MIN_PEAK_DELAY_SECONDS = get_env_float("RIDE_MIN_PEAK_DELAY_SECONDS", 2.0)
    RIDE_PATH_SAMPLE_COUNT = get_env_int("RIDE_PATH_SAMPLE_COUNT", 60)

    # Logging
    LOG_LEVEL = get_env("LOG_LEVEL", default="INFO").upper()
    LOG_FORMAT = get_env("LOG_FORMAT", default="json")

    @classmethod
    def log_status(cls):
        """One INFO line at boot: which backends and ride timings are in effect, never secret values."""
        status = {
            "db": cls.DATABASE_URL.split(":", 1)[0],
            "auth": cls.API_AUTH_ENABLED,
            "api_key": bool(cls.API_AUTH_KEY),
            "hmac": bool(cls.HMAC_SECRET),
            "ride_duration": f"{cls.RIDE_MIN_DURATION_SECONDS}-{cls.RIDE_MAX_DURATION_SECONDS}s",
            "min_crash": f"{cls.RIDE_MIN_CRASH_SECONDS}s",
            "peak_delay": f"{cls.RIDE_MIN_PEAK_DELAY_SECONDS}s",
        }

        status_str = " ".join(f"{k}={v}" for k, v in status.items())
        logger.info(f"ENV OK: {status_str}")

        return status

    @classmethod
    def validate_required(cls):
        """Check required vars are set and ride timing is coherent."""
        problems = []

        if cls.API_AUTH_ENABLED and not cls.API_AUTH_KEY:
            problems.append("API_AUTH_KEY")
        if cls.RIDE_MIN_DURATION_SECONDS <= 0:
            problems.append("RIDE_MIN_DURATION_SECONDS must be > 0")
        if cls.RIDE_MAX_DURATION_SECONDS < cls.RIDE_MIN_DURATION_SECONDS:
            problems.append("RIDE_MAX_DURATION_SECONDS < RIDE_MIN_DURATION_SECONDS")

        if problems:
            logger.warning(f"Config problems: {problems}")

        return len(problems) == 0
