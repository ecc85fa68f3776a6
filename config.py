"""Application configuration."""

import os
from pathlib import Path

from dotenv import load_dotenv


def _load_dotenv_safe(dotenv_path: str | None = None, *, override: bool = False) -> None:
    """Load dotenv using UTF-8-SIG so BOM-prefixed files don't break first key parsing."""
    try:
        load_dotenv(dotenv_path=dotenv_path, override=override, encoding="utf-8-sig")
    except TypeError:
        # Older python-dotenv versions may not expose the `encoding` argument.
        load_dotenv(dotenv_path=dotenv_path, override=override)


# Load base environment first, then optional per-instance override env file.
_load_dotenv_safe()
_BOT_ENV_FILE = os.getenv("BOT_ENV_FILE", "").strip()
if _BOT_ENV_FILE:
    _bot_env_path = Path(_BOT_ENV_FILE).expanduser()
    if not _bot_env_path.is_absolute():
        _bot_env_path = (Path.cwd() / _bot_env_path).resolve()
    if not _bot_env_path.exists():
        raise FileNotFoundError(f"BOT_ENV_FILE does not exist: {_bot_env_path}")
    if not _bot_env_path.is_file():
        raise IsADirectoryError(f"BOT_ENV_FILE is not a file: {_bot_env_path}")
    try:
        _load_dotenv_safe(str(_bot_env_path), override=True)
    except (OSError, UnicodeError, ValueError) as exc:
        raise RuntimeError(f"Failed to load BOT_ENV_FILE '{_bot_env_path}': {exc}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///honey_bot.db")

LOG_DIR = os.getenv("LOG_DIR", "logs")
APP_LOG_FILE = os.getenv("APP_LOG_FILE", os.path.join(LOG_DIR, "app.log"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Honey Points strategy
HONEY_MAX_TOKENS = max(1, int(os.getenv("HONEY_MAX_TOKENS", "10")))
HONEY_REPEAT_ON_ENTRY_DEFAULT = _env_bool("HONEY_REPEAT_ON_ENTRY_DEFAULT", True)
# A failed sell does not block higher stages in the same pass unless this is set.
HONEY_STOP_ON_STAGE_FAILURE = _env_bool("HONEY_STOP_ON_STAGE_FAILURE", False)
HONEY_CALL_TIMEOUT_SECONDS = max(0.0, float(os.getenv("HONEY_CALL_TIMEOUT_SECONDS", "0")))
HONEY_SCAN_INTERVAL_SECONDS = max(1, int(os.getenv("HONEY_SCAN_INTERVAL_SECONDS", "30")))
HONEY_MAX_CONCURRENT_USERS = max(1, int(os.getenv("HONEY_MAX_CONCURRENT_USERS", "10")))
HONEY_PAPER_MODE = _env_bool("HONEY_PAPER_MODE", True)

# Price oracle
CHAIN_ID = os.getenv("CHAIN_ID", "solana").strip().lower()
DEXSCREENER_API = os.getenv("DEXSCREENER_API", "https://api.dexscreener.com/latest/dex")
DEX_TIMEOUT = max(1, int(os.getenv("DEX_TIMEOUT", "10")))
HTTP_RETRY_ATTEMPTS = max(1, int(os.getenv("HTTP_RETRY_ATTEMPTS", "3")))
HTTP_BACKOFF_BASE_SECONDS = max(0.05, float(os.getenv("HTTP_BACKOFF_BASE_SECONDS", "0.5")))
HTTP_BACKOFF_MAX_SECONDS = max(0.05, float(os.getenv("HTTP_BACKOFF_MAX_SECONDS", "8.0")))
HTTP_JITTER_SECONDS = max(0.0, float(os.getenv("HTTP_JITTER_SECONDS", "0.25")))
HTTP_CONNECTOR_LIMIT = max(1, int(os.getenv("HTTP_CONNECTOR_LIMIT", "30")))
HTTP_DEFAULT_CONCURRENCY = max(1, int(os.getenv("HTTP_DEFAULT_CONCURRENCY", "8")))

# Sent-token dedup ledger
SENT_TOKENS_DIR = os.getenv("SENT_TOKENS_DIR", os.path.join("data", "sent_tokens"))
SENT_TOKENS_TTL_SECONDS = max(1, int(os.getenv("SENT_TOKENS_TTL_SECONDS", "86400")))
SENT_TOKENS_TRIM_AT = max(1, int(os.getenv("SENT_TOKENS_TRIM_AT", "3000")))
SENT_TOKENS_TRIM_COUNT = max(0, int(os.getenv("SENT_TOKENS_TRIM_COUNT", "10")))
SENT_TOKENS_MAX = max(1, int(os.getenv("SENT_TOKENS_MAX", "6000")))
ALERT_MAX_CONCURRENCY = max(1, int(os.getenv("ALERT_MAX_CONCURRENCY", "20")))

# Advisory state-file locks. The stale window trades strict exclusion for liveness.
STATE_LOCK_STALE_SECONDS = max(0.05, float(os.getenv("STATE_LOCK_STALE_SECONDS", "2.0")))
STATE_LOCK_POLL_SECONDS = max(0.001, float(os.getenv("STATE_LOCK_POLL_SECONDS", "0.02")))
STATE_LOCK_SETTLE_SECONDS = max(0.0, float(os.getenv("STATE_LOCK_SETTLE_SECONDS", "0.01")))
STATE_WRITE_RETRIES = max(1, int(os.getenv("STATE_WRITE_RETRIES", "3")))
STATE_WRITE_RETRY_BASE_SECONDS = max(0.0, float(os.getenv("STATE_WRITE_RETRY_BASE_SECONDS", "0.05")))
