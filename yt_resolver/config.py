import os
import shlex
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Sweeps must run at least once a minute
MAX_CHECK_PERIOD = 60


def _env_int(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _check_period():
    period = _env_float("CACHE_CHECK_PERIOD", MAX_CHECK_PERIOD)
    if period <= 0:
        raise ValueError(f"CACHE_CHECK_PERIOD must be positive, got {period!r}")
    return min(period, MAX_CHECK_PERIOD)


@dataclass(frozen=True)
class Settings:
    """Process configuration, read once at startup."""

    host: str = "0.0.0.0"
    port: int = 8080
    master_key: Optional[str] = None
    api_keys: Tuple[str, ...] = ()
    ytdlp_command: Tuple[str, ...] = ("yt-dlp",)
    user_agent: str = DEFAULT_USER_AGENT
    proxy_url: Optional[str] = None
    cookies_file: Optional[str] = "youtube_cookies.txt"
    cache_ttl: float = 300
    cache_check_period: float = MAX_CHECK_PERIOD
    info_timeout: float = 30
    audio_timeout: float = 45
    video_timeout: float = 60
    keep_alive_interval: float = 180
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv=True):
        if dotenv:
            load_dotenv()

        keys = os.getenv("API_KEYS", "")
        command = shlex.split(os.getenv("YTDLP_BIN", "yt-dlp")) or ["yt-dlp"]

        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 8080),
            master_key=os.getenv("MASTER_API_KEY") or None,
            api_keys=tuple(k.strip() for k in keys.split(",") if k.strip()),
            ytdlp_command=tuple(command),
            user_agent=os.getenv("USER_AGENT") or DEFAULT_USER_AGENT,
            proxy_url=os.getenv("PROXY_URL") or None,
            cookies_file=os.getenv("COOKIES_FILE", "youtube_cookies.txt") or None,
            cache_ttl=_env_float("CACHE_TTL", 300),
            cache_check_period=_check_period(),
            info_timeout=_env_float("INFO_TIMEOUT", 30),
            audio_timeout=_env_float("AUDIO_TIMEOUT", 45),
            video_timeout=_env_float("VIDEO_TIMEOUT", 60),
            keep_alive_interval=_env_float("KEEP_ALIVE_INTERVAL", 180),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
