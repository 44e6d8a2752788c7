"""Periodic rate summaries for chats with auto updates enabled."""

import asyncio
import time
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from typing import Deque, Dict, Optional

from telegram import Bot
from telegram.error import TelegramError

from . import config, rates
from .db import Store
from .errors import StorageError

BELL = "\U0001f514"
SUMMARY_TITLE = f"{BELL} Rates update:"


class Notifier:
    """Sends the rates summary to each subscriber once per their interval.

    ``last_sent`` lives only as long as the process, so after a restart every
    subscriber is due on the first tick. Only :meth:`tick` touches it.
    """

    def __init__(self, bot: Bot, store: Store) -> None:
        self.bot = bot
        self.store = store
        self.last_sent: Dict[int, datetime] = {}
        self.user_messages: Dict[int, Deque[float]] = defaultdict(deque)
        self.global_messages: Deque[float] = deque()

    def is_due(self, user_id: int, interval: int, now: datetime) -> bool:
        last = self.last_sent.get(user_id)
        return last is None or now - last >= timedelta(minutes=interval)

    async def tick(self, now: Optional[datetime] = None) -> int:
        """Send the summary to every due subscriber and return the send count."""
        now = now or datetime.now(timezone.utc)
        try:
            users = await self.store.list_subscribed()
            if not users:
                return 0
            latest = await rates.get_all_rates(self.store)
        except StorageError as exc:
            config.logger.error("skipping notification tick: %s", exc)
            return 0
        if not latest:
            config.logger.info("no rates stored yet, skipping notification tick")
            return 0

        text = rates.format_summary(latest, SUMMARY_TITLE)
        sent = 0
        for user_id, interval in users.items():
            if not self.is_due(user_id, interval, now):
                continue
            # failed sends still count so an unreachable chat is not retried
            # every tick
            self.last_sent[user_id] = now
            try:
                await self.send_rate_limited(user_id, text)
            except TelegramError as exc:
                config.logger.error("failed to send update to %s: %s", user_id, exc)
                continue
            sent += 1
        config.logger.info("sent rate updates to %s/%s chats", sent, len(users))
        return sent

    async def send_rate_limited(self, chat_id: int, text: str) -> None:
        """Send a message while enforcing per-chat and global rate limits."""
        now = time.time()
        user_q = self.user_messages[chat_id]
        while user_q and now - user_q[0] > 60:
            user_q.popleft()
        while self.global_messages and now - self.global_messages[0] > 1:
            self.global_messages.popleft()
        if len(user_q) >= 20:
            await asyncio.sleep(max(0, 60 - (now - user_q[0])))
        if len(self.global_messages) >= 30:
            await asyncio.sleep(max(0, 1 - (now - self.global_messages[0])))
        await self.bot.send_message(chat_id=chat_id, text=text)
        user_q.append(time.time())
        self.global_messages.append(time.time())
