import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


FETCH_STRATEGIES = ('static', 'rendered')

DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36'
)


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass(frozen=True)
class Settings:
    """Runtime settings for fetching, matching and reconciliation."""

    fetch_strategy: str = 'static'
    user_agent: str = DEFAULT_USER_AGENT
    http_timeout_sec: float = 15.0
    navigation_timeout_ms: int = 30000
    content_timeout_ms: int = 10000
    selector_timeout_ms: int = 2000
    scroll_delay_ms: int = 1500
    settle_delay_ms: int = 2500
    search_delay_sec: float = 1.0
    market: Optional[str] = None
    playlist_description: str = 'Created from a mix tracklist'
    default_playlist_name: str = 'Mix tracklist'
    log_level: str = 'INFO'


def _read_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {value}")
    return value


def _read_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {value}")
    return value


def _read_str(env: Mapping[str, str], key: str, default: Optional[str]) -> Optional[str]:
    raw = env.get(key)
    if raw is None or not str(raw).strip():
        return default
    return str(raw).strip()


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from environment variables (``os.environ`` by default)."""
    env = os.environ if env is None else env
    defaults = Settings()

    strategy = (_read_str(env, 'MIXLIST_FETCH_STRATEGY', defaults.fetch_strategy) or '').lower()
    if strategy not in FETCH_STRATEGIES:
        raise ConfigError(
            f"MIXLIST_FETCH_STRATEGY must be one of {', '.join(FETCH_STRATEGIES)}, got {strategy!r}"
        )

    log_level = (_read_str(env, 'MIXLIST_LOG_LEVEL', defaults.log_level) or '').upper()
    if log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR'):
        raise ConfigError(f"MIXLIST_LOG_LEVEL is not a valid level: {log_level!r}")

    return Settings(
        fetch_strategy=strategy,
        user_agent=_read_str(env, 'MIXLIST_USER_AGENT', defaults.user_agent),
        http_timeout_sec=_read_float(env, 'MIXLIST_HTTP_TIMEOUT', defaults.http_timeout_sec),
        navigation_timeout_ms=_read_int(env, 'MIXLIST_NAVIGATION_TIMEOUT_MS', defaults.navigation_timeout_ms),
        content_timeout_ms=_read_int(env, 'MIXLIST_CONTENT_TIMEOUT_MS', defaults.content_timeout_ms),
        selector_timeout_ms=_read_int(env, 'MIXLIST_SELECTOR_TIMEOUT_MS', defaults.selector_timeout_ms),
        scroll_delay_ms=_read_int(env, 'MIXLIST_SCROLL_DELAY_MS', defaults.scroll_delay_ms),
        settle_delay_ms=_read_int(env, 'MIXLIST_SETTLE_DELAY_MS', defaults.settle_delay_ms),
        search_delay_sec=_read_float(env, 'MIXLIST_SEARCH_DELAY_SEC', defaults.search_delay_sec),
        market=_read_str(env, 'MIXLIST_MARKET', defaults.market),
        playlist_description=_read_str(env, 'MIXLIST_PLAYLIST_DESCRIPTION', defaults.playlist_description),
        default_playlist_name=_read_str(env, 'MIXLIST_DEFAULT_PLAYLIST_NAME', defaults.default_playlist_name),
        log_level=log_level,
    )


def load_env_file(path: Optional[str] = None) -> bool:
    """Load a ``.env`` file into the process environment without overriding set variables.

    Returns True if a file was found and loaded.
    """
    env_path = Path(path) if path else Path.cwd() / '.env'
    if not env_path.exists():
        return False
    return load_dotenv(env_path, override=False)
