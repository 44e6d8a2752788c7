"""Asynchronous helpers for fetching prices from CoinGecko.

:func:`get_prices` performs one batched request for a list of coins and
:func:`update_prices` is the periodic job that stores the result.
"""

import asyncio
import math
import time
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Optional, Tuple

import aiohttp
from aiolimiter import AsyncLimiter

from . import config, rates
from .db import Store
from .errors import StorageError, UpstreamError
from .models import COINS

COINGECKO_LIMITER = AsyncLimiter(30, 60)
STATUS_HISTORY: Deque[Tuple[float, int]] = deque(maxlen=1000)


def status_counts() -> Dict[int, int]:
    """Return a mapping of HTTP status codes to occurrence counts."""
    counts: Dict[int, int] = {}
    for _, status in STATUS_HISTORY:
        counts[status] = counts.get(status, 0) + 1
    return counts


def parse_price(value: object) -> Optional[float]:
    """Return ``value`` as a finite float or ``None`` when it is unusable."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        price = float(value)
    except ValueError:
        return None
    if not math.isfinite(price):
        return None
    return price


def new_session() -> aiohttp.ClientSession:
    return aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=config.HTTP_TIMEOUT)
    )


async def api_get(
    session: aiohttp.ClientSession,
    url: str,
    params: Optional[dict] = None,
) -> object:
    """Perform a rate limited GET request and return the decoded JSON body.

    Raises
    ------
    UpstreamError
        On transport errors, timeouts, non-200 responses or invalid JSON.
    """
    try:
        async with COINGECKO_LIMITER:
            async with session.get(url, params=params) as resp:
                STATUS_HISTORY.append((time.time(), resp.status))
                config.logger.info("api_request url=%s status=%s", url, resp.status)
                if resp.status != 200:
                    raise UpstreamError(f"{url} returned HTTP {resp.status}")
                return await resp.json()
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        if not isinstance(exc, aiohttp.ContentTypeError):
            STATUS_HISTORY.append((time.time(), 0))
        raise UpstreamError(f"request to {url} failed: {exc!r}") from exc
    except ValueError as exc:
        raise UpstreamError(f"invalid JSON from {url}: {exc}") from exc


async def get_prices(
    coins: List[str],
    session: Optional[aiohttp.ClientSession] = None,
) -> Dict[str, float]:
    """Fetch USD prices for multiple coins at once.

    Parameters
    ----------
    coins:
        List of coin IDs to query.
    session:
        Optional session used for the HTTP request.

    Returns
    -------
    dict[str, float]
        Mapping of coin ID to its current price. Coins missing from the
        response are logged and left out.
    """
    params = {"ids": ",".join(coins), "vs_currencies": "usd"}
    if config.COINGECKO_API_KEY:
        params["x_cg_demo_api_key"] = config.COINGECKO_API_KEY
    url = f"{config.COINGECKO_BASE_URL}/simple/price"
    owns_session = session is None
    if owns_session:
        session = new_session()
    try:
        data = await api_get(session, url, params=params)
    finally:
        if owns_session:
            await session.close()
    if not isinstance(data, dict):
        raise UpstreamError(f"unexpected response from {url}: {data!r}")

    result: Dict[str, float] = {}
    for coin in coins:
        entry = data.get(coin)
        price = entry.get("usd") if isinstance(entry, dict) else None
        if price is None:
            config.logger.warning("price not found for coin %s", coin)
            continue
        value = parse_price(price)
        if value is None:
            config.logger.warning("unusable price for coin %s: %r", coin, price)
            continue
        result[coin] = value
    return result


async def update_prices(
    store: Store,
    session: Optional[aiohttp.ClientSession] = None,
    now: Optional[datetime] = None,
) -> int:
    """Fetch all supported coins and record their prices.

    Returns the number of coins stored. Upstream failures abandon the run;
    a storage failure only skips the affected coin.
    """
    config.logger.info("starting currency update")
    try:
        prices = await get_prices(COINS, session=session)
    except UpstreamError as exc:
        config.logger.error("failed to update prices: %s", exc)
        return 0
    saved = 0
    for coin, price in prices.items():
        try:
            await rates.record_price(store, coin, price, now)
        except StorageError as exc:
            config.logger.error("failed to save price for %s: %s", coin, exc)
            continue
        saved += 1
    config.logger.info("currency update completed: %s/%s coins", saved, len(COINS))
    return saved
