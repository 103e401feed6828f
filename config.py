"""Configuration and logging setup for Lapsewatch."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR / ".env"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _env_str(name: str, default: str | None = None) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    value = _env_str(name)
    return int(value) if value is not None else default


def _env_float(name: str, default: float) -> float:
    value = _env_str(name)
    return float(value) if value is not None else default


def _env_bool(name: str, default: bool = False) -> bool:
    value = _env_str(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Runtime settings read from the environment."""

    database_url: str = "sqlite:///lapsewatch.db"

    # Scoring
    scoring_scheme: str = "comprehensive"  # "comprehensive" | "archive_dns"
    archive_variant: str = "cdx"           # "cdx" | "availability"
    archive_recent_months: int = 12
    indexing_engine: str = "duckduckgo"    # "duckduckgo" | "google"
    whois_enabled: bool = False

    # Network
    probe_timeout: float = 10.0
    root_page_timeout: float = 5.0
    max_redirects: int = 5

    # Batching and caching
    batch_size: int = 3
    batch_pause: float = 0.3
    cache_ttl: int = 3600

    # Social platform credentials
    twitter_bearer_token: str | None = None
    facebook_access_token: str | None = None
    linkedin_access_token: str | None = None

    # Removed-domains feed
    domains_monitor_token: str | None = None
    update_interval_hours: int = 13
    update_delay: float = 1.0

    # API limits on probe-triggering routes, per client
    rate_limit_per_minute: int = 30
    rate_limit_per_hour: int = 200

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and .env if present)."""
        load_dotenv(ENV_PATH)
        defaults = cls()
        return cls(
            database_url=_env_str("DATABASE_URL", defaults.database_url),
            scoring_scheme=_env_str("SCORING_SCHEME", defaults.scoring_scheme).lower(),
            archive_variant=_env_str("ARCHIVE_VARIANT", defaults.archive_variant).lower(),
            archive_recent_months=_env_int("ARCHIVE_RECENT_MONTHS", defaults.archive_recent_months),
            indexing_engine=_env_str("INDEXING_ENGINE", defaults.indexing_engine).lower(),
            whois_enabled=_env_bool("WHOIS_ENABLED", defaults.whois_enabled),
            probe_timeout=_env_float("PROBE_TIMEOUT", defaults.probe_timeout),
            root_page_timeout=_env_float("ROOT_PAGE_TIMEOUT", defaults.root_page_timeout),
            max_redirects=_env_int("MAX_REDIRECTS", defaults.max_redirects),
            batch_size=_env_int("BATCH_SIZE", defaults.batch_size),
            batch_pause=_env_float("BATCH_PAUSE", defaults.batch_pause),
            cache_ttl=_env_int("CACHE_TTL", defaults.cache_ttl),
            twitter_bearer_token=_env_str("TWITTER_BEARER_TOKEN"),
            facebook_access_token=_env_str("FACEBOOK_ACCESS_TOKEN"),
            linkedin_access_token=_env_str("LINKEDIN_ACCESS_TOKEN"),
            domains_monitor_token=_env_str("DOMAINS_MONITOR_TOKEN"),
            update_interval_hours=_env_int("UPDATE_INTERVAL_HOURS", defaults.update_interval_hours),
            update_delay=_env_float("UPDATE_DELAY", defaults.update_delay),
            rate_limit_per_minute=_env_int("RATE_LIMIT_PER_MINUTE", defaults.rate_limit_per_minute),
            rate_limit_per_hour=_env_int("RATE_LIMIT_PER_HOUR", defaults.rate_limit_per_hour),
            log_level=_env_str("LOG_LEVEL", defaults.log_level).upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings (read once)."""
    return Settings.from_env()


def configure_logging(level: str | None = None) -> None:
    """Install the root log format. Safe to call more than once."""
    level = level or get_settings().log_level
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
