"""Main entry point for starting the bot, the price updater and the HTTP API."""

import asyncio
import signal
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from telegram import BotCommand
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    MessageHandler,
    filters,
)

from . import api, config, handlers, server
from .db import SQLiteStore, Store
from .errors import ShutdownTimeoutError
from .notifier import Notifier


def build_application(token: str, store: Store) -> Application:
    """Return the Telegram application with every command registered."""
    app = ApplicationBuilder().token(token).build()
    app.bot_data["store"] = store
    app.add_handler(CommandHandler("start", handlers.start))
    app.add_handler(CommandHandler("help", handlers.help_cmd))
    app.add_handler(CommandHandler("rates", handlers.rates_cmd))
    app.add_handler(CommandHandler("coins", handlers.coins_cmd))
    app.add_handler(CommandHandler("start_auto", handlers.start_auto_cmd))
    app.add_handler(CommandHandler("stop_auto", handlers.stop_auto_cmd))
    app.add_handler(CommandHandler("status", handlers.status_cmd))
    app.add_handler(MessageHandler(filters.COMMAND, handlers.unknown_cmd))
    return app


def build_scheduler(store: Store, notifier: Notifier) -> AsyncIOScheduler:
    """Return a scheduler running the price updater and the notifier."""
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    scheduler.add_job(
        api.update_prices,
        "interval",
        seconds=config.FETCH_INTERVAL,
        args=(store,),
        next_run_time=datetime.now(timezone.utc),
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        notifier.tick,
        "interval",
        seconds=config.NOTIFY_INTERVAL,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def close_resources(runner, store: Store) -> None:
    """Stop the HTTP server and close the store within the shutdown deadline."""
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=config.SHUTDOWN_TIMEOUT)
        await asyncio.wait_for(store.close(), timeout=config.SHUTDOWN_TIMEOUT)
    except asyncio.TimeoutError as exc:
        raise ShutdownTimeoutError(
            f"shutdown did not finish within {config.SHUTDOWN_TIMEOUT}s"
        ) from exc


async def main() -> None:
    """Run every component until the process receives a stop signal."""
    token = config.TELEGRAM_TOKEN
    if not token:
        raise RuntimeError("TELEGRAM_TOKEN not set")

    store = SQLiteStore(config.DB_FILE)
    await store.connect()

    app = build_application(token, store)
    notifier = Notifier(app.bot, store)
    scheduler = build_scheduler(store, notifier)

    await app.initialize()
    await app.bot.set_my_commands(
        [BotCommand(name, desc) for name, desc in handlers.COMMANDS]
    )
    runner = await server.start_server(store, config.HTTP_HOST, config.HTTP_PORT)
    scheduler.start()
    await app.start()
    await app.updater.start_polling()
    config.logger.info(f"{config.BOT_NAME} started")

    stop_event = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        asyncio.get_running_loop().add_signal_handler(sig, stop_event.set)

    await stop_event.wait()
    config.logger.info("shutdown signal received")
    await app.updater.stop()
    await app.stop()
    await app.shutdown()
    scheduler.shutdown(wait=False)
    await close_resources(runner, store)
    config.logger.info(f"{config.BOT_NAME} stopped")
