"""Staged auto-trading for Honey Points tokens.

One ``evaluate`` call is one pass over a user's tracked tokens: buy tokens that
have no entry yet, sell configured tranches as profit targets are reached, and
re-arm fully planned tokens when price returns to the entry level.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

import config
from trading.strategy_store import (
    STATUS_ACTIVE,
    STATUS_ERROR,
    STATUS_SOLD,
    StrategySettings,
    StrategyStore,
    TrackedToken,
)

logger = logging.getLogger(__name__)

PriceLookup = Callable[[str], Awaitable[float]]
TradeAction = Callable[[str, float, str], Awaitable[str]]
SecretProvider = Callable[[str, dict[str, dict[str, Any]]], "str | None"]


class WalletNotFound(RuntimeError):
    """The user has no signing secret, so no token can trade this pass."""


class StageResult(str, Enum):
    FIRED = "fired"
    SKIPPED = "skipped"
    FAILED = "failed"


class TokenOutcome(str, Enum):
    INVALID = "invalid"
    IDLE = "idle"
    PRICE_FAILED = "price_failed"
    BOUGHT = "bought"
    BUY_FAILED = "buy_failed"
    EVALUATED = "evaluated"


@dataclass
class TokenReport:
    address: str
    outcome: TokenOutcome
    price: float | None = None
    stages: list[tuple[int, StageResult]] = field(default_factory=list)
    repeated: bool = False

    def stages_with(self, result: StageResult) -> list[int]:
        return [i for i, r in self.stages if r == result]


@dataclass
class PassReport:
    user_id: str
    tokens: list[TokenReport] = field(default_factory=list)

    def for_token(self, address: str) -> TokenReport | None:
        for row in self.tokens:
            if row.address == address:
                return row
        return None

    def summary(self) -> dict[str, int]:
        out: dict[str, int] = {}
        for row in self.tokens:
            out[row.outcome.value] = out.get(row.outcome.value, 0) + 1
        return out


def stage_target_price(entry_price: float, profit_percent: float) -> float:
    # entry + entry*pct/100 keeps round targets exact (100 at 10% is 110.0, not 110.00000000000001).
    return entry_price + entry_price * profit_percent / 100


class HoneyTrader:
    def __init__(
        self,
        store: StrategyStore,
        *,
        stop_on_stage_failure: bool | None = None,
        call_timeout_seconds: float | None = None,
        secret_provider: SecretProvider | None = None,
    ) -> None:
        self.store = store
        self.stop_on_stage_failure = bool(
            stop_on_stage_failure
            if stop_on_stage_failure is not None
            else getattr(config, "HONEY_STOP_ON_STAGE_FAILURE", False)
        )
        self.call_timeout_seconds = max(
            0.0,
            float(
                call_timeout_seconds
                if call_timeout_seconds is not None
                else getattr(config, "HONEY_CALL_TIMEOUT_SECONDS", 0.0)
            ),
        )
        self._secret_provider = secret_provider or (lambda user_id, records: store.user_secret(user_id, records))

    async def _call(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        if self.call_timeout_seconds > 0:
            return await asyncio.wait_for(fn(*args), timeout=self.call_timeout_seconds)
        return await fn(*args)

    async def _fetch_price(self, get_price: PriceLookup, address: str) -> float:
        price = float(await self._call(get_price, address))
        if not math.isfinite(price) or price <= 0:
            raise ValueError(f"invalid price {price!r}")
        return price

    async def evaluate(
        self,
        user_id: str,
        get_price: PriceLookup,
        buy: TradeAction,
        sell: TradeAction,
    ) -> PassReport:
        user_id = str(user_id)
        records = self.store.load_records()
        secret = self._secret_provider(user_id, records)
        if not secret:
            logger.warning("HONEY_PASS user=%s rejected=wallet_not_found", user_id)
            raise WalletNotFound("Wallet not found")

        settings = self.store.get_settings(user_id, records)
        report = PassReport(user_id=user_id)
        for token in settings.tokens:
            report.tokens.append(await self._evaluate_token(user_id, token, settings, get_price, buy, sell, secret))

        self.store.set_settings(user_id, settings)
        logger.info("HONEY_PASS user=%s tokens=%s outcomes=%s", user_id, len(settings.tokens), report.summary())
        return report

    async def _evaluate_token(
        self,
        user_id: str,
        token: TrackedToken,
        settings: StrategySettings,
        get_price: PriceLookup,
        buy: TradeAction,
        sell: TradeAction,
        secret: str,
    ) -> TokenReport:
        if not token.is_well_formed():
            token.status = STATUS_ERROR
            logger.warning("HONEY_TOKEN_INVALID user=%s token=%s", user_id, token.address or "<missing>")
            return TokenReport(token.address, TokenOutcome.INVALID)

        repeat_armed = settings.repeat_on_entry and sum(token.sold_percents) >= 100
        if token.finished:
            token.status = STATUS_SOLD
            if not repeat_armed or not token.entry_price:
                return TokenReport(token.address, TokenOutcome.IDLE)

        try:
            price = await self._fetch_price(get_price, token.address)
        except Exception as exc:
            if token.finished:
                # Sold tokens stay sold; the re-entry check simply waits for the next pass.
                logger.info("HONEY_PRICE_FAILED user=%s token=%s state=sold err=%s", user_id, token.address, exc)
            else:
                token.status = STATUS_ERROR
                logger.warning("HONEY_PRICE_FAILED user=%s token=%s err=%s", user_id, token.address, exc)
            return TokenReport(token.address, TokenOutcome.PRICE_FAILED)

        if not token.entry_price:
            try:
                tx_id = await self._call(buy, token.address, token.buy_amount, secret)
            except Exception as exc:
                token.status = STATUS_ERROR
                logger.warning(
                    "HONEY_BUY_FAILED user=%s token=%s amount=%s err=%s", user_id, token.address, token.buy_amount, exc
                )
                return TokenReport(token.address, TokenOutcome.BUY_FAILED, price=price)
            token.entry_price = price
            token.status = STATUS_ACTIVE
            token.current_stage = 0
            token.last_tx_id = str(tx_id) if tx_id else None
            logger.info(
                "HONEY_BUY user=%s token=%s amount=%s entry=%s tx=%s",
                user_id,
                token.address,
                token.buy_amount,
                price,
                token.last_tx_id,
            )
            return TokenReport(token.address, TokenOutcome.BOUGHT, price=price)

        token_report = TokenReport(token.address, TokenOutcome.EVALUATED, price=price)
        if not token.finished:
            if token.status == STATUS_ERROR:
                # Error reflects the latest pass; a clean price fetch re-activates the position.
                token.status = STATUS_ACTIVE
            token_report.stages = await self.evaluate_stages(token, price, sell, secret, user_id=user_id)

        if repeat_armed and price <= (token.entry_price or 0):
            logger.info(
                "HONEY_REPEAT user=%s token=%s price=%s entry=%s stage=%s",
                user_id,
                token.address,
                price,
                token.entry_price,
                token.current_stage,
            )
            token.reset_cycle()
            token_report.repeated = True
        return token_report

    async def evaluate_stages(
        self,
        token: TrackedToken,
        price: float,
        sell: TradeAction,
        secret: str,
        *,
        user_id: str = "",
    ) -> list[tuple[int, StageResult]]:
        results: list[tuple[int, StageResult]] = []
        entry = float(token.entry_price or 0.0)
        for i in range(token.current_stage, token.stage_count):
            target = stage_target_price(entry, token.profit_percents[i])
            if price < target or (token.last_sell_price and price <= token.last_sell_price):
                results.append((i, StageResult.SKIPPED))
                continue

            sell_amount = token.buy_amount * (token.sold_percents[i] / 100)
            try:
                tx_id = await self._call(sell, token.address, sell_amount, secret)
            except Exception as exc:
                token.status = STATUS_ERROR
                results.append((i, StageResult.FAILED))
                logger.warning(
                    "HONEY_STAGE user=%s token=%s stage=%s result=failed amount=%s price=%s err=%s",
                    user_id,
                    token.address,
                    i,
                    sell_amount,
                    price,
                    exc,
                )
                if self.stop_on_stage_failure:
                    break
                continue

            token.last_sell_price = price
            token.current_stage = i + 1
            token.last_tx_id = str(tx_id) if tx_id else None
            results.append((i, StageResult.FIRED))
            logger.info(
                "HONEY_STAGE user=%s token=%s stage=%s result=fired amount=%s price=%s target=%s tx=%s",
                user_id,
                token.address,
                i,
                sell_amount,
                price,
                target,
                token.last_tx_id,
            )
            if token.current_stage >= token.stage_count:
                token.finished = True
                token.status = STATUS_SOLD
        return results
