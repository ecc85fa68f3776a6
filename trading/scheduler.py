"""Periodic Honey Points passes, one in flight per user."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import config
from trading.honey_trader import HoneyTrader, PassReport, WalletNotFound
from trading.strategy_store import StrategyStore

logger = logging.getLogger(__name__)


class HoneyScheduler:
    def __init__(
        self,
        trader: HoneyTrader,
        store: StrategyStore,
        oracle: Any,
        executor: Any,
        *,
        max_concurrent_users: int | None = None,
    ) -> None:
        self.trader = trader
        self.store = store
        self.oracle = oracle
        self.executor = executor
        self.max_concurrent_users = int(max_concurrent_users or getattr(config, "HONEY_MAX_CONCURRENT_USERS", 10))
        self._user_locks: dict[str, asyncio.Lock] = {}

    def user_lock(self, user_id: str) -> asyncio.Lock:
        """Lock held by a pass for ``user_id``; settings writers take it too."""
        user_id = str(user_id)
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock

    async def run_user(self, user_id: str) -> PassReport | None:
        """Run one pass for ``user_id``; skipped if a pass is already running."""
        user_id = str(user_id)
        lock = self.user_lock(user_id)
        if lock.locked():
            logger.info("HONEY_PASS user=%s skipped=in_flight", user_id)
            return None
        async with lock:
            return await self.trader.evaluate(
                user_id,
                self.oracle.get_price,
                self.executor.buy,
                self.executor.sell,
            )

    async def run_all(self) -> dict[str, PassReport | None]:
        user_ids = self.store.users_with_tokens()
        if not user_ids:
            return {}
        semaphore = asyncio.Semaphore(self.max_concurrent_users)

        async def _run(user_id: str) -> tuple[str, PassReport | None]:
            async with semaphore:
                try:
                    return user_id, await self.run_user(user_id)
                except WalletNotFound:
                    logger.warning("HONEY_PASS user=%s skipped=wallet_not_found", user_id)
                except Exception:
                    logger.exception("HONEY_PASS user=%s failed", user_id)
                return user_id, None

        results = await asyncio.gather(*[_run(u) for u in user_ids])
        return dict(results)

    async def run_forever(self, interval_seconds: float | None = None) -> None:
        interval = float(interval_seconds or getattr(config, "HONEY_SCAN_INTERVAL_SECONDS", 30))
        while True:
            try:
                reports = await self.run_all()
                logger.info(
                    "Honey scan users=%s completed=%s",
                    len(reports),
                    sum(1 for r in reports.values() if r is not None),
                )
            except Exception:
                logger.exception("Honey scheduler loop error")
            await asyncio.sleep(interval)
