import logging
from datetime import datetime, timezone

import pytest

import coinpulsebot.handlers as handlers
from coinpulsebot import rates
from coinpulsebot.db import MemoryStore
from coinpulsebot.errors import StorageError, ValidationError
from coinpulsebot.models import COINS

T0 = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class DummyMessage:
    def __init__(self):
        self.texts = []

    async def reply_text(self, text, **kwargs):
        self.texts.append(text)


class DummyUpdate:
    def __init__(self, chat_id=1):
        self.message = DummyMessage()
        self.effective_chat = type("Chat", (), {"id": chat_id})()


class DummyContext:
    def __init__(self, store, args=None):
        self.args = args or []
        self.bot_data = {"store": store}


class UntouchableStore:
    def __getattr__(self, name):
        raise AssertionError(f"store.{name} called")


class BrokenStore(MemoryStore):
    async def get_rates(self):
        raise StorageError("db gone")

    async def set_auto_subscribe(self, user_id, interval):
        raise StorageError("db gone")


@pytest.mark.asyncio
async def test_start_lists_commands():
    update = DummyUpdate()
    await handlers.start(update, DummyContext(MemoryStore()))
    text = update.message.texts[0]
    for name, _ in handlers.COMMANDS:
        assert f"/{name}" in text


@pytest.mark.asyncio
async def test_rates_all():
    store = MemoryStore()
    await rates.record_price(store, "bitcoin", 100.0, T0)
    await rates.record_price(store, "dai", 1.0, T0)
    update = DummyUpdate()
    await handlers.rates_cmd(update, DummyContext(store))
    text = update.message.texts[0]
    assert "bitcoin: $100.00" in text
    assert "dai: $1.00" in text


@pytest.mark.asyncio
async def test_rates_single():
    store = MemoryStore()
    await rates.record_price(store, "bitcoin", 100.0, T0)
    update = DummyUpdate()
    await handlers.rates_cmd(update, DummyContext(store, ["Bitcoin"]))
    text = update.message.texts[0]
    assert "bitcoin rate" in text
    assert "Current: $100.00" in text


@pytest.mark.asyncio
async def test_rates_unknown_coin_skips_store():
    update = DummyUpdate()
    await handlers.rates_cmd(update, DummyContext(UntouchableStore(), ["xrp"]))
    assert "not found" in update.message.texts[0]


@pytest.mark.asyncio
async def test_rates_not_observed_yet():
    update = DummyUpdate()
    await handlers.rates_cmd(update, DummyContext(MemoryStore(), ["bitcoin"]))
    assert "No data" in update.message.texts[0]


@pytest.mark.asyncio
async def test_rates_missing_coin_is_logged(caplog):
    caplog.set_level(logging.INFO, logger="coinpulsebot.config")
    for coin in ("xrp", "bitcoin"):
        await handlers.rates_cmd(DummyUpdate(), DummyContext(MemoryStore(), [coin]))
    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO]
    assert any("xrp" in m for m in messages)
    assert any("bitcoin" in m for m in messages)


@pytest.mark.asyncio
async def test_rates_storage_failure():
    update = DummyUpdate()
    await handlers.rates_cmd(update, DummyContext(BrokenStore()))
    assert "Failed" in update.message.texts[0]


@pytest.mark.asyncio
async def test_coins_lists_supported():
    update = DummyUpdate()
    await handlers.coins_cmd(update, DummyContext(MemoryStore()))
    for coin in COINS:
        assert coin in update.message.texts[0]


@pytest.mark.asyncio
async def test_start_auto_default_interval():
    store = MemoryStore()
    update = DummyUpdate(chat_id=42)
    await handlers.start_auto_cmd(update, DummyContext(store))
    assert await store.list_subscribed() == {42: 10}
    assert "10 min" in update.message.texts[0]


@pytest.mark.asyncio
async def test_start_auto_custom_interval():
    store = MemoryStore()
    update = DummyUpdate(chat_id=42)
    await handlers.start_auto_cmd(update, DummyContext(store, ["25"]))
    assert await store.list_subscribed() == {42: 25}


@pytest.mark.asyncio
@pytest.mark.parametrize("arg", ["0", "-3", "ten"])
async def test_start_auto_rejects_bad_interval(arg):
    update = DummyUpdate()
    await handlers.start_auto_cmd(update, DummyContext(UntouchableStore(), [arg]))
    assert "Invalid interval" in update.message.texts[0]


@pytest.mark.asyncio
async def test_start_auto_storage_failure():
    update = DummyUpdate()
    await handlers.start_auto_cmd(update, DummyContext(BrokenStore(), ["5"]))
    assert "Failed" in update.message.texts[0]


@pytest.mark.asyncio
async def test_stop_auto_and_status():
    store = MemoryStore()
    ctx = DummyContext(store)
    await store.set_auto_subscribe(1, 60)

    update = DummyUpdate()
    await handlers.status_cmd(update, ctx)
    assert "every 1h" in update.message.texts[0]

    update = DummyUpdate()
    await handlers.stop_auto_cmd(update, ctx)
    assert await store.list_subscribed() == {}

    update = DummyUpdate()
    await handlers.status_cmd(update, ctx)
    assert "off" in update.message.texts[0]


@pytest.mark.asyncio
async def test_unknown_command_sends_help():
    update = DummyUpdate()
    await handlers.unknown_cmd(update, DummyContext(MemoryStore()))
    assert "Unknown command" in update.message.texts[0]
    assert update.message.texts[1] == handlers.help_text()


def test_parse_send_interval():
    assert handlers.parse_send_interval([]) == 10
    assert handlers.parse_send_interval(["3"]) == 3
    with pytest.raises(ValidationError):
        handlers.parse_send_interval(["0"])
