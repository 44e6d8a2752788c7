"""Domain objects and the list of supported coins."""

from dataclasses import dataclass
from datetime import date, datetime

# CoinGecko ids of every coin the bot tracks
COINS = [
    "bitcoin",
    "ethereum",
    "tether",
    "binancecoin",
    "solana",
    "usd-coin",
    "ripple",
    "the-open-network",
    "dogecoin",
    "cardano",
    "shiba-inu",
    "avalanche-2",
    "polkadot",
    "tron",
    "chainlink",
    "polygon-pos",
    "bitcoin-cash",
    "litecoin",
    "uniswap",
    "dai",
]
_SUPPORTED = frozenset(COINS)


def is_supported(coin: str) -> bool:
    """Return ``True`` if ``coin`` is one of the tracked CoinGecko ids."""
    return coin in _SUPPORTED


@dataclass
class CurrencyRate:
    """Latest price statistics for a single coin.

    ``min_price``/``max_price`` cover the current UTC day identified by
    ``date``; ``hour_min_price``/``hour_max_price`` cover the hour window
    that started at ``time_stamp``.
    """

    currency_id: str
    current_price: float
    min_price: float
    max_price: float
    change_percent: float
    hour_min_price: float
    hour_max_price: float
    time_stamp: datetime
    date: date


@dataclass
class User:
    telegram_id: int
    auto_subscribe: bool
    send_interval: int
