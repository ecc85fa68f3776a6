"""Alert delivery for discovered tokens."""

import asyncio
import logging
from html import escape
from typing import Any, Iterable

import config

from monitor.notification_gate import NotificationGate

logger = logging.getLogger(__name__)


class TokenAlerter:
    def __init__(self, gate: NotificationGate | None = None, max_concurrency: int | None = None) -> None:
        self.gate = gate or NotificationGate()
        self.max_concurrency = int(max_concurrency or getattr(config, "ALERT_MAX_CONCURRENCY", 20))

    async def send_alert(self, bot, token_data: dict[str, Any], user_ids: Iterable[str]) -> int:
        address = str(token_data.get("address", "") or "").strip()
        if not address:
            return 0

        message = self._format_alert_message(token_data)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _send(user_id: str) -> str:
            async with semaphore:
                if not await self.gate.is_new(user_id, address):
                    return "skipped"
                try:
                    await bot.send_message(
                        chat_id=user_id,
                        text=message,
                        parse_mode="HTML",
                        disable_web_page_preview=True,
                    )
                except Exception as exc:
                    logger.warning("Alert send failed for chat_id=%s: %s", user_id, exc)
                    return "failed"
                # Only a delivered alert counts as surfaced.
                await self.gate.mark_sent(user_id, address)
                return "sent"

        targets = [str(u) for u in user_ids]
        results = await asyncio.gather(*[_send(u) for u in targets])
        success = sum(1 for r in results if r == "sent")
        failed = sum(1 for r in results if r == "failed")
        skipped = sum(1 for r in results if r == "skipped")
        logger.info(
            "Alert dispatch token=%s users=%s success=%s failed=%s skipped=%s",
            token_data.get("symbol", "N/A"),
            len(targets),
            success,
            failed,
            skipped,
        )
        return success

    @staticmethod
    def _format_alert_message(token_data: dict[str, Any]) -> str:
        name = escape(str(token_data.get("name", "Unknown")))
        symbol = escape(str(token_data.get("symbol", "N/A")))
        address = escape(str(token_data.get("address", "")))
        liquidity = float(token_data.get("liquidity", 0) or 0)
        price = float(token_data.get("price_usd", 0) or 0)
        return (
            "\U0001F680 NEW TOKEN\n\n"
            f"Name: {name}\n"
            f"Symbol: {symbol}\n"
            f"Address: <code>{address}</code>\n\n"
            f"\U0001F4B0 Liquidity: ${liquidity:,.0f}\n"
            f"\U0001F4B2 Price: ${price:.8g}"
        )
