"""Message templates."""

from html import escape

from trading.strategy_store import StrategySettings

WELCOME_MESSAGE = (
    "👋 <b>Welcome to Honey Points Bot</b>\n\n"
    "Track up to 10 tokens: the bot buys each one, then sells in stages as your profit targets are hit.\n\n"
    "/setwallet &lt;address&gt; &lt;secret&gt; - attach a wallet\n"
    "/honey - show tracked tokens\n"
    "/honey_add &lt;address&gt; &lt;buy_amount&gt; &lt;profit%,...&gt; &lt;sell%,...&gt;\n"
    "/honey_remove &lt;address&gt;\n"
    "/honey_reset\n"
    "/honey_repeat on|off"
)

HONEY_ADD_USAGE = (
    "Usage: /honey_add &lt;address&gt; &lt;buy_amount&gt; &lt;profit%,...&gt; &lt;sell%,...&gt;\n"
    "Example: <code>/honey_add So1aNa... 0.5 10,25 50,50</code>"
)

HONEY_EMPTY = "🍯 <b>Honey Points</b>\n\nNo tokens tracked yet. Use /honey_add to start."

_STATUS_ICONS = {
    "pending": "⏳",
    "active": "🟢",
    "sold": "✅",
    "error": "⚠️",
}


def _fmt_percents(values: list[float]) -> str:
    return ",".join(f"{v:g}" for v in values)


def format_honey_summary(settings: StrategySettings) -> str:
    if not settings.tokens:
        return HONEY_EMPTY
    lines = [
        "🍯 <b>Honey Points</b>",
        f"Repeat on entry: <b>{'on' if settings.repeat_on_entry else 'off'}</b>",
        "<i>Status reflects the latest pass only.</i>",
        "",
    ]
    for idx, token in enumerate(settings.tokens, start=1):
        icon = _STATUS_ICONS.get(token.status, "•")
        entry = f"{token.entry_price:.8g}" if token.entry_price else "-"
        lines.append(f"{idx}. {icon} <code>{escape(token.address)}</code>")
        lines.append(
            f"   status: <b>{escape(token.status)}</b> | stage: {token.current_stage}/{token.stage_count}"
            f" | entry: {entry} | buy: {token.buy_amount:g}"
        )
        lines.append(
            f"   profit%: {_fmt_percents(token.profit_percents)} | sell%: {_fmt_percents(token.sold_percents)}"
        )
        if token.last_tx_id:
            lines.append(f"   last tx: <code>{escape(token.last_tx_id)}</code>")
    return "\n".join(lines)
