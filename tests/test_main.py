import asyncio
from datetime import datetime, timedelta, timezone

import pytest

import coinpulsebot.config as config
import coinpulsebot.main as main
from coinpulsebot.db import MemoryStore
from coinpulsebot.errors import ShutdownTimeoutError
from coinpulsebot.notifier import Notifier


class DummyRunner:
    def __init__(self, delay=0):
        self.delay = delay
        self.cleaned = False

    async def cleanup(self):
        await asyncio.sleep(self.delay)
        self.cleaned = True


class ClosingStore(MemoryStore):
    closed = False

    async def close(self):
        self.closed = True


def test_parse_duration_and_format_interval():
    assert config.parse_duration("300") == 300
    assert config.parse_duration("5m") == 300
    assert config.parse_duration("1h") == 3600
    with pytest.raises(ValueError):
        config.parse_duration("soon")
    assert config.format_interval(600) == "10m"
    assert config.format_interval(86400) == "1d"
    assert config.format_interval(45) == "45s"


def test_build_application_registers_store():
    store = MemoryStore()
    app = main.build_application("123456:TEST-TOKEN", store)
    assert app.bot_data["store"] is store
    assert len(app.handlers[0]) == 8


@pytest.mark.asyncio
async def test_build_scheduler_jobs():
    store = MemoryStore()
    notifier = Notifier(bot=None, store=store)
    scheduler = main.build_scheduler(store, notifier)
    jobs = {job.func: job for job in scheduler.get_jobs()}
    assert set(jobs) == {main.api.update_prices, notifier.tick}
    first_fetch = jobs[main.api.update_prices].next_run_time
    assert first_fetch <= datetime.now(timezone.utc)
    assert datetime.now(timezone.utc) - first_fetch < timedelta(minutes=1)


@pytest.mark.asyncio
async def test_close_resources():
    runner, store = DummyRunner(), ClosingStore()
    await main.close_resources(runner, store)
    assert runner.cleaned and store.closed


@pytest.mark.asyncio
async def test_close_resources_deadline(monkeypatch):
    monkeypatch.setattr(config, "SHUTDOWN_TIMEOUT", 0.01)
    with pytest.raises(ShutdownTimeoutError):
        await main.close_resources(DummyRunner(delay=1), ClosingStore())
