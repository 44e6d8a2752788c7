from datetime import datetime, timedelta, timezone

import pytest
from telegram.error import NetworkError

from coinpulsebot import rates
from coinpulsebot.db import MemoryStore
from coinpulsebot.errors import StorageError
from coinpulsebot.notifier import SUMMARY_TITLE, Notifier

T0 = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class DummyBot:
    def __init__(self):
        self.sent = []

    async def send_message(self, chat_id, text, **kwargs):
        self.sent.append((chat_id, text))


class FailingBot:
    def __init__(self):
        self.calls = 0

    async def send_message(self, chat_id, text, **kwargs):
        self.calls += 1
        raise NetworkError("unreachable")


async def seeded_store():
    store = MemoryStore()
    await rates.record_price(store, "bitcoin", 100.0, T0)
    await rates.record_price(store, "ethereum", 10.0, T0)
    return store


@pytest.mark.asyncio
async def test_interval_respected():
    store = await seeded_store()
    await store.set_auto_subscribe(42, 10)
    bot = DummyBot()
    notifier = Notifier(bot, store)

    assert await notifier.tick(T0) == 1
    assert await notifier.tick(T0 + timedelta(minutes=5)) == 0
    assert len(bot.sent) == 1
    assert await notifier.tick(T0 + timedelta(minutes=11)) == 1
    assert len(bot.sent) == 2


@pytest.mark.asyncio
async def test_summary_contains_every_coin():
    store = await seeded_store()
    await store.set_auto_subscribe(1, 1)
    bot = DummyBot()
    await Notifier(bot, store).tick(T0)
    chat_id, text = bot.sent[0]
    assert chat_id == 1
    assert text.startswith(SUMMARY_TITLE)
    assert "bitcoin: $100.00" in text
    assert "ethereum: $10.00" in text


@pytest.mark.asyncio
async def test_each_user_has_own_interval():
    store = await seeded_store()
    await store.set_auto_subscribe(1, 1)
    await store.set_auto_subscribe(2, 30)
    bot = DummyBot()
    notifier = Notifier(bot, store)
    await notifier.tick(T0)
    await notifier.tick(T0 + timedelta(minutes=1))
    assert [chat for chat, _ in bot.sent] == [1, 2, 1]


@pytest.mark.asyncio
async def test_unsubscribed_users_skipped():
    store = await seeded_store()
    await store.set_auto_subscribe(5, 1)
    await store.disable_auto_subscribe(5)
    bot = DummyBot()
    assert await Notifier(bot, store).tick(T0) == 0
    assert bot.sent == []


@pytest.mark.asyncio
async def test_failed_send_counts_as_sent():
    store = await seeded_store()
    await store.set_auto_subscribe(42, 10)
    bot = FailingBot()
    notifier = Notifier(bot, store)
    assert await notifier.tick(T0) == 0
    assert notifier.last_sent[42] == T0
    await notifier.tick(T0 + timedelta(minutes=1))
    assert bot.calls == 1


@pytest.mark.asyncio
async def test_no_rates_skips_tick():
    store = MemoryStore()
    await store.set_auto_subscribe(42, 10)
    bot = DummyBot()
    notifier = Notifier(bot, store)
    assert await notifier.tick(T0) == 0
    assert notifier.last_sent == {}


@pytest.mark.asyncio
async def test_storage_failure_abandons_tick():
    class BrokenStore(MemoryStore):
        async def list_subscribed(self):
            raise StorageError("db gone")

    bot = DummyBot()
    assert await Notifier(bot, BrokenStore()).tick(T0) == 0
    assert bot.sent == []
