"""Configuration and helper utilities for CoinPulseBot.

Settings are read from a dotenv style config file (``CONFIG_FILE``, default
``.env``). Variables already present in the environment take precedence over
the file. This module also configures logging and exposes the constants used
across the bot.
"""

import logging
import os
import re
from logging.handlers import WatchedFileHandler

from dotenv import load_dotenv

CONFIG_FILE = os.getenv("CONFIG_FILE", ".env")
load_dotenv(CONFIG_FILE, override=False)


def parse_duration(value: str) -> int:
    """Return seconds for a duration string like '15m' or '1h'."""
    if value.isdigit():
        return int(value)
    match = re.fullmatch(r"(\d+)([dhms])", value.lower())
    if not match:
        raise ValueError("invalid interval format")
    num, unit = match.groups()
    factor = {"d": 86400, "h": 3600, "m": 60, "s": 1}[unit]
    return int(num) * factor


def format_interval(seconds: int) -> str:
    """Return a short string representation for a duration in seconds."""
    if seconds % 86400 == 0:
        return f"{seconds // 86400}d"
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


BOT_NAME = "CoinPulseBot"
DB_FILE = os.getenv("DB_PATH", "rates.db")
TELEGRAM_TOKEN = os.getenv("TELEGRAM_TOKEN")

COINGECKO_API_KEY = os.getenv("COINGECKO_API_KEY")
COINGECKO_BASE_URL = (
    os.getenv("COINGECKO_BASE_URL") or "https://api.coingecko.com/api/v3"
)
HTTP_TIMEOUT = parse_duration(os.getenv("HTTP_TIMEOUT", "30s"))

HTTP_HOST = os.getenv("HTTP_HOST", "0.0.0.0")
HTTP_PORT = int(os.getenv("HTTP_PORT", "8080"))

FETCH_INTERVAL = parse_duration(os.getenv("FETCH_INTERVAL", "5m"))
NOTIFY_INTERVAL = parse_duration(os.getenv("NOTIFY_INTERVAL", "1m"))
# minutes between auto updates when /start_auto is given no argument
DEFAULT_SEND_INTERVAL = int(os.getenv("DEFAULT_SEND_INTERVAL", "10"))

DB_CONNECT_ATTEMPTS = int(os.getenv("DB_CONNECT_ATTEMPTS", "5"))
DB_CONNECT_BACKOFF = parse_duration(os.getenv("DB_CONNECT_BACKOFF", "5s"))
SHUTDOWN_TIMEOUT = parse_duration(os.getenv("SHUTDOWN_TIMEOUT", "5s"))

LOG_FILE = os.getenv("LOG_FILE")
_handlers = [logging.StreamHandler()]
if LOG_FILE:
    _handlers.append(WatchedFileHandler(LOG_FILE))

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    handlers=_handlers,
    force=True,
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)
