"""Storage backends for coin rates and user subscriptions.

Two interchangeable stores expose the same coroutine methods:
:class:`SQLiteStore` persists to an SQLite file through ``aiosqlite`` and
:class:`MemoryStore` keeps everything in dictionaries for tests and local runs.
"""

import asyncio
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from typing import Dict, List, Optional, Protocol

import aiosqlite

from . import config
from .errors import NotFoundError, StorageError
from .models import CurrencyRate, User

RATE_COLUMNS = (
    "currency_id, current_price, min_price, max_price, change_percent, "
    "hour_min_price, hour_max_price, time_stamp, date"
)

# min/max only merge with the stored row while it still covers the same day,
# otherwise a day reset computed by the caller would be undone
UPSERT_RATE = f"""
    INSERT INTO currencies ({RATE_COLUMNS})
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT (currency_id) DO UPDATE SET
        current_price = excluded.current_price,
        min_price = CASE WHEN currencies.date = excluded.date
            THEN MIN(currencies.min_price, excluded.min_price)
            ELSE excluded.min_price END,
        max_price = CASE WHEN currencies.date = excluded.date
            THEN MAX(currencies.max_price, excluded.max_price)
            ELSE excluded.max_price END,
        change_percent = excluded.change_percent,
        hour_min_price = excluded.hour_min_price,
        hour_max_price = excluded.hour_max_price,
        time_stamp = excluded.time_stamp,
        date = excluded.date
"""


@contextmanager
def _storage_errors(action: str):
    """Translate ``aiosqlite`` failures into :class:`StorageError`."""
    try:
        yield
    except aiosqlite.Error as exc:
        config.logger.error("%s failed: %s", action, exc)
        raise StorageError(f"{action} failed: {exc}") from exc


def _row_to_rate(row) -> CurrencyRate:
    return CurrencyRate(
        currency_id=row[0],
        current_price=row[1],
        min_price=row[2],
        max_price=row[3],
        change_percent=row[4],
        hour_min_price=row[5],
        hour_max_price=row[6],
        time_stamp=datetime.fromisoformat(row[7]),
        date=date.fromisoformat(row[8]),
    )


def _rate_params(rate: CurrencyRate) -> tuple:
    return (
        rate.currency_id,
        rate.current_price,
        rate.min_price,
        rate.max_price,
        rate.change_percent,
        rate.hour_min_price,
        rate.hour_max_price,
        rate.time_stamp.isoformat(),
        rate.date.isoformat(),
    )


class Store(Protocol):
    """Operations shared by every storage backend."""

    async def connect(
        self, attempts: Optional[int] = None, backoff: Optional[float] = None
    ) -> None: ...

    async def close(self) -> None: ...

    async def get_rate(self, coin: str) -> Optional[CurrencyRate]: ...

    async def get_rates(self) -> List[CurrencyRate]: ...

    async def upsert_rate(self, rate: CurrencyRate) -> None: ...

    async def set_auto_subscribe(self, user_id: int, interval: int) -> None: ...

    async def disable_auto_subscribe(self, user_id: int) -> None: ...

    async def list_subscribed(self) -> Dict[int, int]: ...

    async def get_send_interval(self, user_id: int) -> int: ...


class SQLiteStore:
    """Rate and subscription storage backed by a single SQLite connection."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or config.DB_FILE
        self._db: Optional[aiosqlite.Connection] = None

    async def connect(
        self, attempts: Optional[int] = None, backoff: Optional[float] = None
    ) -> None:
        """Open the database, retrying a fixed number of times, and create tables."""
        attempts = attempts or config.DB_CONNECT_ATTEMPTS
        backoff = config.DB_CONNECT_BACKOFF if backoff is None else backoff
        for attempt in range(1, attempts + 1):
            try:
                self._db = await aiosqlite.connect(self.path)
                await self.init_db()
                config.logger.info("connected to database %s", self.path)
                return
            except (aiosqlite.Error, OSError) as exc:
                config.logger.warning(
                    "database connection failed (attempt %s/%s): %s",
                    attempt,
                    attempts,
                    exc,
                )
                if self._db is not None:
                    await self._db.close()
                    self._db = None
                if attempt < attempts:
                    await asyncio.sleep(backoff)
        raise StorageError(f"could not connect to database {self.path}")

    async def init_db(self) -> None:
        """Create database tables if they do not already exist."""
        await self.db.execute(
            """
            CREATE TABLE IF NOT EXISTS currencies (
                currency_id TEXT PRIMARY KEY,
                current_price REAL NOT NULL,
                min_price REAL NOT NULL,
                max_price REAL NOT NULL,
                change_percent REAL NOT NULL DEFAULT 0,
                hour_min_price REAL NOT NULL,
                hour_max_price REAL NOT NULL,
                time_stamp TEXT NOT NULL,
                date TEXT NOT NULL
            )
            """
        )
        await self.db.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                telegram_id INTEGER PRIMARY KEY,
                auto_subscribe INTEGER NOT NULL DEFAULT 0,
                send_interval INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        await self.db.commit()

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError("database is not connected")
        return self._db

    async def get_rate(self, coin: str) -> Optional[CurrencyRate]:
        """Return the stored row for ``coin`` or ``None``."""
        with _storage_errors(f"reading rate for {coin}"):
            cursor = await self.db.execute(
                f"SELECT {RATE_COLUMNS} FROM currencies WHERE currency_id=?",
                (coin,),
            )
            row = await cursor.fetchone()
            await cursor.close()
        return _row_to_rate(row) if row else None

    async def get_rates(self) -> List[CurrencyRate]:
        """Return every stored row ordered by currency id."""
        with _storage_errors("reading rates"):
            cursor = await self.db.execute(
                f"SELECT {RATE_COLUMNS} FROM currencies ORDER BY currency_id"
            )
            rows = await cursor.fetchall()
            await cursor.close()
        return [_row_to_rate(row) for row in rows]

    async def upsert_rate(self, rate: CurrencyRate) -> None:
        """Insert ``rate`` or merge it into the existing row."""
        with _storage_errors(f"saving rate for {rate.currency_id}"):
            await self.db.execute(UPSERT_RATE, _rate_params(rate))
            await self.db.commit()

    async def set_auto_subscribe(self, user_id: int, interval: int) -> None:
        """Enable auto updates for ``user_id`` every ``interval`` minutes."""
        with _storage_errors(f"subscribing chat {user_id}"):
            await self.db.execute(
                (
                    "INSERT INTO users (telegram_id, auto_subscribe, send_interval) "
                    "VALUES (?, 1, ?) ON CONFLICT (telegram_id) DO UPDATE SET "
                    "auto_subscribe=excluded.auto_subscribe, "
                    "send_interval=excluded.send_interval"
                ),
                (user_id, interval),
            )
            await self.db.commit()
        config.logger.info("chat %s subscribed every %s min", user_id, interval)

    async def disable_auto_subscribe(self, user_id: int) -> None:
        """Turn off auto updates for ``user_id``."""
        with _storage_errors(f"unsubscribing chat {user_id}"):
            await self.db.execute(
                "UPDATE users SET auto_subscribe=0, send_interval=0 WHERE telegram_id=?",
                (user_id,),
            )
            await self.db.commit()
        config.logger.info("chat %s unsubscribed", user_id)

    async def list_subscribed(self) -> Dict[int, int]:
        """Return a mapping of subscribed chat ids to their interval in minutes."""
        with _storage_errors("reading subscribed users"):
            cursor = await self.db.execute(
                "SELECT telegram_id, send_interval FROM users WHERE auto_subscribe=1"
            )
            rows = await cursor.fetchall()
            await cursor.close()
        return {row[0]: row[1] for row in rows}

    async def get_send_interval(self, user_id: int) -> int:
        with _storage_errors(f"reading interval for chat {user_id}"):
            cursor = await self.db.execute(
                "SELECT send_interval FROM users WHERE telegram_id=?", (user_id,)
            )
            row = await cursor.fetchone()
            await cursor.close()
        if row is None:
            raise NotFoundError(f"user not found: {user_id}")
        return row[0]


class MemoryStore:
    """In-process store with the same interface and merge rules as SQLiteStore."""

    def __init__(self) -> None:
        self.rates: Dict[str, CurrencyRate] = {}
        self.users: Dict[int, User] = {}

    async def connect(
        self, attempts: Optional[int] = None, backoff: Optional[float] = None
    ) -> None:
        pass

    async def close(self) -> None:
        pass

    async def get_rate(self, coin: str) -> Optional[CurrencyRate]:
        rate = self.rates.get(coin)
        return replace(rate) if rate else None

    async def get_rates(self) -> List[CurrencyRate]:
        return [replace(self.rates[coin]) for coin in sorted(self.rates)]

    async def upsert_rate(self, rate: CurrencyRate) -> None:
        stored = self.rates.get(rate.currency_id)
        min_price, max_price = rate.min_price, rate.max_price
        if stored is not None and stored.date == rate.date:
            min_price = min(stored.min_price, min_price)
            max_price = max(stored.max_price, max_price)
        self.rates[rate.currency_id] = CurrencyRate(
            currency_id=rate.currency_id,
            current_price=rate.current_price,
            min_price=min_price,
            max_price=max_price,
            change_percent=rate.change_percent,
            hour_min_price=rate.hour_min_price,
            hour_max_price=rate.hour_max_price,
            time_stamp=rate.time_stamp,
            date=rate.date,
        )

    async def set_auto_subscribe(self, user_id: int, interval: int) -> None:
        self.users[user_id] = User(user_id, True, interval)

    async def disable_auto_subscribe(self, user_id: int) -> None:
        if user_id in self.users:
            self.users[user_id] = User(user_id, False, 0)

    async def list_subscribed(self) -> Dict[int, int]:
        return {
            user_id: user.send_interval
            for user_id, user in self.users.items()
            if user.auto_subscribe
        }

    async def get_send_interval(self, user_id: int) -> int:
        if user_id not in self.users:
            raise NotFoundError(f"user not found: {user_id}")
        return self.users[user_id].send_interval
