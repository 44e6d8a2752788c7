"""Price statistics maintenance and rate formatting.

:func:`record_price` keeps the daily and hourly extrema of a coin up to date
and persists the result through the store's merging upsert. The query and
formatting helpers below are shared by the HTTP API and the Telegram bot.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from . import config
from .db import Store
from .errors import NotFoundError
from .models import CurrencyRate, is_supported

HOUR = timedelta(hours=1)

TREND_UP = "\U0001f4c8"
TREND_DOWN = "\U0001f4c9"
TREND_FLAT = "➡️"
COIN_EMOJI = "\U0001f4b0"


def change_percent(hour_min: float, hour_max: float) -> float:
    """Return the hourly range as a percentage of the hourly low."""
    if hour_min == 0:
        return 0.0
    return (hour_max - hour_min) / hour_min * 100


def new_rate(coin: str, price: float, now: datetime) -> CurrencyRate:
    """Return the first row for ``coin`` seeded with ``price``."""
    return CurrencyRate(
        currency_id=coin,
        current_price=price,
        min_price=price,
        max_price=price,
        change_percent=0.0,
        hour_min_price=price,
        hour_max_price=price,
        time_stamp=now,
        date=now.date(),
    )


def update_daily(rate: CurrencyRate, now: datetime) -> None:
    """Reset the daily extrema when the day changed, otherwise widen them."""
    today = now.date()
    if rate.date < today:
        rate.min_price = rate.current_price
        rate.max_price = rate.current_price
        rate.date = today
    else:
        rate.min_price = min(rate.min_price, rate.current_price)
        rate.max_price = max(rate.max_price, rate.current_price)


def update_hourly(rate: CurrencyRate, now: datetime) -> None:
    """Reset or widen the hourly extrema and recompute ``change_percent``."""
    if now - rate.time_stamp >= HOUR:
        rate.hour_min_price = rate.current_price
        rate.hour_max_price = rate.current_price
        rate.time_stamp = now
    else:
        rate.hour_min_price = min(rate.hour_min_price, rate.current_price)
        rate.hour_max_price = max(rate.hour_max_price, rate.current_price)
    rate.change_percent = change_percent(rate.hour_min_price, rate.hour_max_price)


def apply_price(
    rate: Optional[CurrencyRate], coin: str, price: float, now: datetime
) -> CurrencyRate:
    """Return ``rate`` updated with a new observation of ``price``."""
    if rate is None:
        return new_rate(coin, price, now)
    rate.current_price = price
    update_daily(rate, now)
    update_hourly(rate, now)
    return rate


async def record_price(
    store: Store, coin: str, price: float, now: Optional[datetime] = None
) -> CurrencyRate:
    """Update the statistics of ``coin`` with ``price`` observed at ``now``.

    The read and the write are separate statements. Concurrent writers for the
    same coin can overwrite each other's current price and window markers, the
    store's upsert only guarantees that same-day extrema never shrink.
    """
    now = now or datetime.now(timezone.utc)
    existing = await store.get_rate(coin)
    rate = apply_price(existing, coin, price, now)
    await store.upsert_rate(rate)
    config.logger.debug(
        "recorded %s price=%s change=%.2f%%", coin, price, rate.change_percent
    )
    return rate


async def get_rate(store: Store, coin: str) -> CurrencyRate:
    """Return the latest rate for ``coin`` or raise :class:`NotFoundError`."""
    if not is_supported(coin):
        raise NotFoundError(f"currency not found: {coin}")
    rate = await store.get_rate(coin)
    if rate is None:
        raise NotFoundError(f"currency not found: {coin}")
    return rate


async def get_all_rates(store: Store) -> List[CurrencyRate]:
    """Return the latest rate of every observed coin ordered by id."""
    return await store.get_rates()


def trend_emoji(change: float) -> str:
    """Return a trend marker based on the sign of ``change``."""
    if change > 0:
        return TREND_UP
    if change < 0:
        return TREND_DOWN
    return TREND_FLAT


def format_rate(rate: CurrencyRate) -> str:
    """Return the plain-text block used by the HTTP API."""
    return (
        f"CurrencyID: {rate.currency_id}\r\n"
        f"CurrentPrice: {rate.current_price:.2f}\r\n"
        f"MinPrice: {rate.min_price:.2f}\r\n"
        f"MaxPrice: {rate.max_price:.2f}\r\n"
        f"ChangePercent: {rate.change_percent:.2f}%"
    )


def format_rates(rates: List[CurrencyRate]) -> str:
    return "\r\n\r\n".join(format_rate(rate) for rate in rates)


def format_rate_line(rate: CurrencyRate) -> str:
    """Return a one-line summary used in chat lists."""
    return (
        f"{COIN_EMOJI} {rate.currency_id}: ${rate.current_price:.2f} "
        f"{trend_emoji(rate.change_percent)}({rate.change_percent:.2f}%)"
    )


def format_rate_detail(rate: CurrencyRate) -> str:
    """Return the detailed chat message for a single coin."""
    return (
        f"{COIN_EMOJI} {rate.currency_id} rate:\n"
        f"\U0001f4ca Current: ${rate.current_price:.2f}\n"
        f"{TREND_DOWN} Day low: ${rate.min_price:.2f}\n"
        f"{TREND_UP} Day high: ${rate.max_price:.2f}\n"
        f"{trend_emoji(rate.change_percent)} Hourly change: "
        f"{rate.change_percent:.2f}%"
    )


def format_summary(rates: List[CurrencyRate], title: str) -> str:
    """Return ``title`` followed by one line per rate."""
    return title + "\n\n" + "\n".join(format_rate_line(rate) for rate in rates)
