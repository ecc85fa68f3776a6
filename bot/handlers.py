"""Telegram handlers."""

import asyncio
import logging
from html import escape

from telegram import Update
from telegram.ext import ContextTypes

from bot.messages import HONEY_ADD_USAGE, WELCOME_MESSAGE, format_honey_summary
from database.db import SqlUserRecordStore
from trading.strategy_store import InvalidToken, StrategyConfigError, StrategyStore, TrackedToken

logger = logging.getLogger(__name__)

RECORD_STORE_KEY = "record_store"
STRATEGY_STORE_KEY = "strategy_store"
SCHEDULER_KEY = "honey_scheduler"
ALERTER_KEY = "token_alerter"


def _parse_percent_list(raw: str) -> list[float]:
    out: list[float] = []
    for chunk in str(raw or "").split(","):
        item = chunk.strip().rstrip("%")
        if not item:
            continue
        try:
            out.append(float(item))
        except ValueError as exc:
            raise InvalidToken(f"Not a number: {chunk.strip()}") from exc
    return out


def parse_honey_add_args(args: list[str]) -> TrackedToken:
    if len(args) != 4:
        raise InvalidToken("Expected 4 arguments.")
    address, amount_raw, profits_raw, solds_raw = args
    try:
        buy_amount = float(amount_raw)
    except ValueError as exc:
        raise InvalidToken(f"Not a number: {amount_raw}") from exc
    return TrackedToken(
        address=address.strip(),
        buy_amount=buy_amount,
        profit_percents=_parse_percent_list(profits_raw),
        sold_percents=_parse_percent_list(solds_raw),
    )


def _stores(context: ContextTypes.DEFAULT_TYPE) -> tuple[SqlUserRecordStore, StrategyStore]:
    data = context.application.bot_data
    return data[RECORD_STORE_KEY], data[STRATEGY_STORE_KEY]


def _settings_lock(context: ContextTypes.DEFAULT_TYPE, user_id: str) -> asyncio.Lock:
    # Settings edits wait for an in-flight pass so its end-of-pass save cannot overwrite them.
    scheduler = context.application.bot_data.get(SCHEDULER_KEY)
    if scheduler is None:
        return asyncio.Lock()
    return scheduler.user_lock(user_id)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    if not user or not update.message:
        return

    records, _ = _stores(context)
    records.get_or_create(str(user.id), user.username)
    await update.message.reply_text(WELCOME_MESSAGE, parse_mode="HTML")


async def setwallet_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    if not user or not update.message:
        return
    args = list(context.args or [])
    if len(args) != 2:
        await update.message.reply_text("Usage: /setwallet <address> <secret>")
        return

    records, _ = _stores(context)
    records.get_or_create(str(user.id), user.username)
    records.set_wallet(str(user.id), args[0].strip(), args[1].strip())
    try:
        await update.message.delete()
    except Exception as exc:
        logger.warning("Wallet message delete failed for user=%s: %s", user.id, exc)
    await update.effective_chat.send_message(
        f"✅ Wallet saved: <code>{escape(args[0].strip())}</code>\nYour message with the secret was removed.",
        parse_mode="HTML",
    )


async def honey_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    if not user or not update.message:
        return
    _, store = _stores(context)
    settings = store.get_settings(str(user.id))
    await update.message.reply_text(format_honey_summary(settings), parse_mode="HTML")


async def honey_add_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    if not user or not update.message:
        return
    _, store = _stores(context)
    try:
        token = parse_honey_add_args(list(context.args or []))
        async with _settings_lock(context, str(user.id)):
            settings = store.add(str(user.id), token)
    except InvalidToken as exc:
        await update.message.reply_text(f"❌ {exc}\n\n{HONEY_ADD_USAGE}", parse_mode="HTML")
        return
    except StrategyConfigError as exc:
        await update.message.reply_text(f"❌ {exc}")
        return
    await update.message.reply_text(
        "✅ Token added.\n\n" + format_honey_summary(settings),
        parse_mode="HTML",
    )


async def honey_remove_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    if not user or not update.message:
        return
    args = list(context.args or [])
    if len(args) != 1:
        await update.message.reply_text("Usage: /honey_remove <address>")
        return
    _, store = _stores(context)
    async with _settings_lock(context, str(user.id)):
        removed = store.remove(str(user.id), args[0])
    await update.message.reply_text("🗑 Token removed." if removed else "Token was not tracked.")


async def honey_reset_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    if not user or not update.message:
        return
    _, store = _stores(context)
    async with _settings_lock(context, str(user.id)):
        store.reset(str(user.id))
    await update.message.reply_text("🍯 Honey Points reset. All tokens cleared.")


async def honey_repeat_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    if not user or not update.message:
        return
    args = [a.strip().lower() for a in (context.args or [])]
    if len(args) != 1 or args[0] not in ("on", "off"):
        await update.message.reply_text("Usage: /honey_repeat on|off")
        return
    _, store = _stores(context)
    async with _settings_lock(context, str(user.id)):
        settings = store.set_repeat_on_entry(str(user.id), args[0] == "on")
    await update.message.reply_text(f"Repeat on entry: {'on' if settings.repeat_on_entry else 'off'}")
