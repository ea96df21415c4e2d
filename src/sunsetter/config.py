"""Runtime settings read from SUNSETTER_* environment variables.

Entry points call python-dotenv's load_dotenv() first, so a local .env file
can supply the same variables.
"""

import logging
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
USER_AGENT = "SunSetter/1.0 (https://github.com/sunsetter-app/sunsetter)"
SUPPORTED_LANGS = ("en", "ko")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    location_timeout_ms: int = 10000  # Upper bound for one location request
    cache_max_age_s: float = 300.0  # Cached location reuse window at startup
    track_hours: float = 24.0
    track_step_min: float = 5.0
    lang: str = "en"
    nominatim_url: str = NOMINATIM_URL
    user_agent: str = USER_AGENT
    log_level: str = "WARNING"

    @property
    def cache_max_age(self) -> timedelta:
        return timedelta(seconds=self.cache_max_age_s)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables, keeping defaults for unset ones.

        Args:
            environ: Variable mapping. Defaults to os.environ.

        Raises:
            ValueError: If a variable holds an unusable value.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        lang = env.get("SUNSETTER_LANG", defaults.lang).strip().lower()
        if lang not in SUPPORTED_LANGS:
            raise ValueError(f"SUNSETTER_LANG must be one of {SUPPORTED_LANGS}, got {lang!r}")

        log_level = env.get("SUNSETTER_LOG", defaults.log_level).strip().upper()
        if log_level not in LOG_LEVELS:
            raise ValueError(f"SUNSETTER_LOG must be one of {LOG_LEVELS}, got {log_level!r}")

        return cls(
            location_timeout_ms=int(
                _number(env, "SUNSETTER_LOCATION_TIMEOUT_MS", defaults.location_timeout_ms)
            ),
            cache_max_age_s=_number(env, "SUNSETTER_CACHE_MAX_AGE_S", defaults.cache_max_age_s),
            track_hours=_number(env, "SUNSETTER_TRACK_HOURS", defaults.track_hours),
            track_step_min=_number(env, "SUNSETTER_TRACK_STEP_MIN", defaults.track_step_min),
            lang=lang,
            nominatim_url=env.get("SUNSETTER_NOMINATIM_URL", defaults.nominatim_url),
            user_agent=env.get("SUNSETTER_USER_AGENT", defaults.user_agent),
            log_level=log_level,
        )


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def configure_logging(level: str | int = "WARNING", verbose: bool = False) -> None:
    """Send package logs to stderr. verbose forces DEBUG."""
    if verbose:
        level = logging.DEBUG
    elif isinstance(level, str):
        level = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # Keep HTTP client chatter out of DEBUG output
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(max(logging.getLogger().level, logging.INFO))
