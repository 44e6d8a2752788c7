"""Telegram command handlers used by the bot.

Handlers find the store in ``context.bot_data["store"]``; it is put there by
:func:`coinpulsebot.main.build_application`.
"""

from typing import List

from telegram import Update
from telegram.ext import ContextTypes

from . import config, rates
from .errors import NotFoundError, StorageError, ValidationError
from .models import COINS, is_supported

WELCOME_EMOJI = "\U0001f916"
LIST_EMOJI = "\U0001f4cb"
HELP_EMOJI = "❓"
ERROR_EMOJI = "❌"
BELL_EMOJI = "\U0001f514"
MUTE_EMOJI = "\U0001f515"

COMMANDS: list[tuple[str, str]] = [
    ("rates", "Show all rates, or one with /rates <coin>"),
    ("coins", "List supported coins"),
    ("start_auto", "Send rates every N minutes (default 10)"),
    ("stop_auto", "Stop automatic updates"),
    ("status", "Show automatic update settings"),
    ("help", "Show help"),
]


def help_text() -> str:
    lines = [f"/{name} - {desc}" for name, desc in COMMANDS]
    return f"{HELP_EMOJI} Commands:\n" + "\n".join(lines)


def parse_send_interval(args: List[str]) -> int:
    """Return the interval in minutes requested by ``/start_auto``.

    Raises :class:`ValidationError` unless the argument is a positive integer.
    """
    if not args:
        return config.DEFAULT_SEND_INTERVAL
    try:
        minutes = int(args[0])
    except ValueError:
        raise ValidationError("interval must be a whole number of minutes")
    if minutes < 1:
        raise ValidationError("interval must be greater than 0")
    return minutes


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Send a welcome message with the command list."""
    await update.message.reply_text(
        f"{WELCOME_EMOJI} Welcome to {config.BOT_NAME}!\n\n{help_text()}"
    )


async def help_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(help_text())


async def rates_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Show every rate, or the detailed rate of the coin given as argument."""
    store = context.bot_data["store"]
    if context.args:
        coin = context.args[0].lower()
        if not is_supported(coin):
            config.logger.info(
                "chat %s asked for unknown coin %s", update.effective_chat.id, coin
            )
            await update.message.reply_text(f"{ERROR_EMOJI} Coin {coin} not found")
            return
        try:
            rate = await rates.get_rate(store, coin)
        except NotFoundError as exc:
            config.logger.info("chat %s: %s", update.effective_chat.id, exc)
            await update.message.reply_text(
                f"{ERROR_EMOJI} No data for {coin} yet, try again later"
            )
            return
        except StorageError:
            await update.message.reply_text(
                f"{ERROR_EMOJI} Failed to load the rate, try again later"
            )
            return
        await update.message.reply_text(rates.format_rate_detail(rate))
        return

    try:
        latest = await rates.get_all_rates(store)
    except StorageError as exc:
        config.logger.error("failed to get rates: %s", exc)
        await update.message.reply_text(f"{ERROR_EMOJI} Failed to load rates")
        return
    if not latest:
        await update.message.reply_text(f"{ERROR_EMOJI} No rates collected yet")
        return
    await update.message.reply_text(
        rates.format_summary(latest, "\U0001f4ca Current rates:")
    )


async def coins_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(
        f"{LIST_EMOJI} Supported coins:\n" + "\n".join(COINS)
    )


async def start_auto_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Enable automatic rate updates for the chat."""
    try:
        interval = parse_send_interval(context.args)
    except ValidationError as exc:
        await update.message.reply_text(
            f"{ERROR_EMOJI} Invalid interval: {exc}. Use a number greater than 0"
        )
        return
    store = context.bot_data["store"]
    try:
        await store.set_auto_subscribe(update.effective_chat.id, interval)
    except StorageError:
        await update.message.reply_text(
            f"{ERROR_EMOJI} Failed to enable automatic updates"
        )
        return
    await update.message.reply_text(
        f"{BELL_EMOJI} Automatic updates enabled every {interval} min"
    )


async def stop_auto_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Disable automatic rate updates for the chat."""
    store = context.bot_data["store"]
    try:
        await store.disable_auto_subscribe(update.effective_chat.id)
    except StorageError:
        await update.message.reply_text(
            f"{ERROR_EMOJI} Failed to disable automatic updates"
        )
        return
    await update.message.reply_text(f"{MUTE_EMOJI} Automatic updates disabled")


async def status_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Show whether automatic updates are on for the chat."""
    store = context.bot_data["store"]
    try:
        interval = await store.get_send_interval(update.effective_chat.id)
    except NotFoundError:
        interval = 0
    except StorageError:
        await update.message.reply_text(f"{ERROR_EMOJI} Failed to load settings")
        return
    if interval:
        text = (
            f"{BELL_EMOJI} Automatic updates every "
            f"{config.format_interval(interval * 60)}"
        )
    else:
        text = f"{MUTE_EMOJI} Automatic updates are off"
    await update.message.reply_text(text)


async def unknown_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(
        f"{ERROR_EMOJI} Unknown command. Choose one of the commands below."
    )
    await update.message.reply_text(help_text())
