"""Entry point for Honey Points Bot."""

import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler

import config
from telegram.ext import Application, CommandHandler

from bot.handlers import (
    ALERTER_KEY,
    RECORD_STORE_KEY,
    SCHEDULER_KEY,
    STRATEGY_STORE_KEY,
    honey_add_command,
    honey_command,
    honey_remove_command,
    honey_repeat_command,
    honey_reset_command,
    setwallet_command,
    start_command,
)
from config import APP_LOG_FILE, LOG_DIR, LOG_LEVEL, TELEGRAM_BOT_TOKEN
from database.db import SqlUserRecordStore
from monitor.alerter import TokenAlerter
from monitor.dedup_ledger import DedupLedger
from monitor.notification_gate import NotificationGate
from trading.honey_trader import HoneyTrader
from trading.paper_executor import PaperTradeExecutor
from trading.price_oracle import DexScreenerPriceOracle
from trading.scheduler import HoneyScheduler
from trading.strategy_store import StrategyStore


def configure_logging() -> None:
    os.makedirs(LOG_DIR, exist_ok=True)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = RotatingFileHandler(APP_LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(file_handler)
    root.addHandler(console_handler)

    # Avoid leaking bot token in verbose transport logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("telegram").setLevel(logging.INFO)


logger = logging.getLogger(__name__)


def build_scheduler(record_store: SqlUserRecordStore) -> HoneyScheduler:
    store = StrategyStore(record_store)
    if not bool(config.HONEY_PAPER_MODE):
        raise RuntimeError("Live trade execution is not configured; set HONEY_PAPER_MODE=true")
    return HoneyScheduler(
        HoneyTrader(store),
        store,
        DexScreenerPriceOracle(),
        PaperTradeExecutor(),
    )


def build_alerter() -> TokenAlerter:
    return TokenAlerter(NotificationGate(DedupLedger()))


async def post_init(application: Application) -> None:
    record_store: SqlUserRecordStore = application.bot_data[RECORD_STORE_KEY]
    scheduler = build_scheduler(record_store)
    application.bot_data[STRATEGY_STORE_KEY] = scheduler.store
    application.bot_data[SCHEDULER_KEY] = scheduler
    # Discovery feeds call bot_data[ALERTER_KEY].send_alert(application.bot, token, user_ids).
    application.bot_data[ALERTER_KEY] = build_alerter()
    application.bot_data["honey_task"] = asyncio.create_task(
        scheduler.run_forever(config.HONEY_SCAN_INTERVAL_SECONDS)
    )
    logger.info(
        "HONEY_SCHEDULER started interval=%ss paper=%s stop_on_stage_failure=%s",
        config.HONEY_SCAN_INTERVAL_SECONDS,
        config.HONEY_PAPER_MODE,
        config.HONEY_STOP_ON_STAGE_FAILURE,
    )


async def post_shutdown(application: Application) -> None:
    task = application.bot_data.get("honey_task")
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    scheduler: HoneyScheduler | None = application.bot_data.get(SCHEDULER_KEY)
    if scheduler:
        await scheduler.oracle.close()


def main() -> None:
    configure_logging()

    if not TELEGRAM_BOT_TOKEN:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

    record_store = SqlUserRecordStore()
    record_store.init_db()

    app = Application.builder().token(TELEGRAM_BOT_TOKEN).post_init(post_init).post_shutdown(post_shutdown).build()
    app.bot_data[RECORD_STORE_KEY] = record_store

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("setwallet", setwallet_command))
    app.add_handler(CommandHandler("honey", honey_command))
    app.add_handler(CommandHandler("honey_add", honey_add_command))
    app.add_handler(CommandHandler("honey_remove", honey_remove_command))
    app.add_handler(CommandHandler("honey_reset", honey_reset_command))
    app.add_handler(CommandHandler("honey_repeat", honey_repeat_command))

    app.run_polling()


if __name__ == "__main__":
    main()
