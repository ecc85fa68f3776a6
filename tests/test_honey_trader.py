from __future__ import annotations

import asyncio
import copy
import unittest

from trading.honey_trader import HoneyTrader, StageResult, TokenOutcome, WalletNotFound, stage_target_price
from trading.strategy_store import (
    SETTINGS_KEY,
    STATUS_ACTIVE,
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_SOLD,
    StrategySettings,
    StrategyStore,
    TrackedToken,
)

USER = "7"


class MemoryRecordStore:
    def __init__(self, records: dict | None = None) -> None:
        self.records = copy.deepcopy(records or {})
        self.saves = 0

    def load(self) -> dict:
        return copy.deepcopy(self.records)

    def save(self, records: dict) -> None:
        self.saves += 1
        self.records = copy.deepcopy(records)


class FakeMarket:
    """Scripted price feed plus a recording buy/sell executor."""

    def __init__(self) -> None:
        self.prices: dict[str, float] = {}
        self.price_errors: dict[str, Exception] = {}
        self.sell_failures: set[int] = set()
        self.buy_error: Exception | None = None
        self.price_calls: list[str] = []
        self.buys: list[tuple[str, float, str]] = []
        self.sells: list[tuple[str, float, str]] = []

    async def get_price(self, address: str) -> float:
        self.price_calls.append(address)
        if address in self.price_errors:
            raise self.price_errors[address]
        return self.prices[address]

    async def buy(self, address: str, amount: float, secret: str) -> str:
        if self.buy_error is not None:
            raise self.buy_error
        self.buys.append((address, amount, secret))
        return f"buy-{len(self.buys)}"

    async def sell(self, address: str, amount: float, secret: str) -> str:
        call_no = len(self.sells) + 1
        self.sells.append((address, amount, secret))
        if call_no in self.sell_failures:
            raise RuntimeError("sell rejected")
        return f"sell-{call_no}"


def _token(address: str = "TokenA", **kwargs) -> TrackedToken:
    params = {"buy_amount": 1.0, "profit_percents": [10.0, 25.0], "sold_percents": [50.0, 50.0]}
    params.update(kwargs)
    return TrackedToken(address=address, **params)


class HoneyTraderTestBase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.records = MemoryRecordStore({USER: {"secret": "s3cret"}})
        self.store = StrategyStore(self.records)
        self.market = FakeMarket()
        self.trader = HoneyTrader(self.store, stop_on_stage_failure=False, call_timeout_seconds=0)

    def seed(self, *tokens: TrackedToken, repeat_on_entry: bool = True) -> None:
        self.store.set_settings(USER, StrategySettings(tokens=list(tokens), repeat_on_entry=repeat_on_entry))
        self.records.saves = 0

    def token(self, address: str = "TokenA") -> TrackedToken:
        found = self.store.get_settings(USER).find(address)
        assert found is not None
        return found

    async def run_pass(self, price: float | None = None, address: str = "TokenA"):
        if price is not None:
            self.market.prices[address] = price
        return await self.trader.evaluate(USER, self.market.get_price, self.market.buy, self.market.sell)


class StageTargetTests(unittest.TestCase):
    def test_round_targets_are_exact(self) -> None:
        self.assertEqual(stage_target_price(100.0, 10.0), 110.0)
        self.assertEqual(stage_target_price(100.0, 25.0), 125.0)


class StagedLifecycleTests(HoneyTraderTestBase):
    async def test_stage_monotonicity_scenario(self) -> None:
        self.seed(_token())

        report = await self.run_pass(100.0)
        self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.BOUGHT)
        token = self.token()
        self.assertEqual(token.entry_price, 100.0)
        self.assertEqual(token.status, STATUS_ACTIVE)
        self.assertEqual(token.last_tx_id, "buy-1")
        self.assertEqual(self.market.buys, [("TokenA", 1.0, "s3cret")])

        await self.run_pass(109.0)
        self.assertEqual(self.market.sells, [])
        self.assertEqual(self.token().current_stage, 0)

        report = await self.run_pass(110.0)
        self.assertEqual(report.for_token("TokenA").stages_with(StageResult.FIRED), [0])
        self.assertEqual(self.market.sells, [("TokenA", 0.5, "s3cret")])
        token = self.token()
        self.assertEqual(token.current_stage, 1)
        self.assertEqual(token.last_sell_price, 110.0)

        report = await self.run_pass(110.0)
        self.assertEqual(len(self.market.sells), 1)
        self.assertEqual(report.for_token("TokenA").stages_with(StageResult.FIRED), [])

        await self.run_pass(126.0)
        self.assertEqual(len(self.market.sells), 2)
        token = self.token()
        self.assertTrue(token.finished)
        self.assertEqual(token.status, STATUS_SOLD)
        self.assertEqual(token.current_stage, 2)
        self.assertEqual(token.last_tx_id, "sell-2")

    async def test_later_stage_needs_a_higher_price_than_the_last_sale(self) -> None:
        self.seed(_token(entry_price=100.0, status=STATUS_ACTIVE))
        report = await self.run_pass(130.0)
        self.assertEqual(report.for_token("TokenA").stages, [(0, StageResult.FIRED), (1, StageResult.SKIPPED)])
        self.assertFalse(self.token().finished)

        await self.run_pass(131.0)
        self.assertTrue(self.token().finished)
        self.assertEqual(len(self.market.sells), 2)

    async def test_stage_index_never_moves_backwards(self) -> None:
        self.seed(_token(entry_price=100.0, status=STATUS_ACTIVE))
        await self.run_pass(112.0)
        await self.run_pass(105.0)
        await self.run_pass(111.0)
        token = self.token()
        self.assertEqual(token.current_stage, 1)
        self.assertEqual(token.last_sell_price, 112.0)
        self.assertEqual(len(self.market.sells), 1)


class RepeatOnEntryTests(HoneyTraderTestBase):
    async def test_finished_token_rearms_at_entry_and_rebuys(self) -> None:
        self.seed(
            _token(
                entry_price=100.0,
                last_sell_price=126.0,
                finished=True,
                status=STATUS_SOLD,
                current_stage=2,
                last_tx_id="sell-x",
            )
        )

        report = await self.run_pass(130.0)
        self.assertFalse(report.for_token("TokenA").repeated)
        self.assertEqual(self.token().status, STATUS_SOLD)

        report = await self.run_pass(100.0)
        self.assertTrue(report.for_token("TokenA").repeated)
        token = self.token()
        self.assertFalse(token.finished)
        self.assertIsNone(token.entry_price)
        self.assertIsNone(token.last_sell_price)
        self.assertIsNone(token.last_tx_id)
        self.assertEqual(token.current_stage, 0)
        self.assertEqual(token.status, STATUS_PENDING)

        report = await self.run_pass(95.0)
        self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.BOUGHT)
        self.assertEqual(self.token().entry_price, 95.0)

    async def test_finished_token_is_idle_when_repeat_disabled(self) -> None:
        self.seed(_token(entry_price=100.0, finished=True, status=STATUS_ACTIVE, current_stage=2), repeat_on_entry=False)
        report = await self.run_pass(50.0)
        self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.IDLE)
        self.assertEqual(self.market.price_calls, [])
        self.assertEqual(self.token().status, STATUS_SOLD)

    async def test_partial_plan_does_not_rearm_finished_token(self) -> None:
        self.seed(_token(sold_percents=[30.0, 30.0], entry_price=100.0, finished=True, status=STATUS_SOLD))
        report = await self.run_pass(90.0)
        self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.IDLE)
        self.assertEqual(self.token().entry_price, 100.0)

    async def test_price_failure_keeps_finished_token_sold(self) -> None:
        self.seed(_token(entry_price=100.0, finished=True, status=STATUS_SOLD, current_stage=2))
        self.market.price_errors["TokenA"] = RuntimeError("feed down")
        report = await self.run_pass()
        self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.PRICE_FAILED)
        self.assertEqual(self.token().status, STATUS_SOLD)

    async def test_active_token_rearms_when_price_returns_to_entry(self) -> None:
        self.seed(_token(entry_price=100.0, status=STATUS_ACTIVE, current_stage=1, last_sell_price=111.0))
        report = await self.run_pass(98.0)
        self.assertTrue(report.for_token("TokenA").repeated)
        self.assertIsNone(self.token().entry_price)
        self.assertEqual(self.token().status, STATUS_PENDING)


class FailureHandlingTests(HoneyTraderTestBase):
    async def test_malformed_token_is_flagged_without_calls(self) -> None:
        self.seed(_token(profit_percents=[10.0], sold_percents=[]))
        report = await self.run_pass(100.0)
        self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.INVALID)
        self.assertEqual(self.market.price_calls, [])
        self.assertEqual(self.token().status, STATUS_ERROR)

    async def test_price_failure_marks_error(self) -> None:
        self.seed(_token())
        self.market.price_errors["TokenA"] = RuntimeError("feed down")
        report = await self.run_pass()
        self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.PRICE_FAILED)
        self.assertEqual(self.token().status, STATUS_ERROR)
        self.assertEqual(self.market.buys, [])

    async def test_non_positive_price_is_a_price_failure(self) -> None:
        for bad in (0.0, -1.0, float("nan")):
            with self.subTest(price=bad):
                self.seed(_token())
                report = await self.run_pass(bad)
                self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.PRICE_FAILED)
        self.assertEqual(self.market.buys, [])

    async def test_buy_failure_leaves_entry_unset(self) -> None:
        self.seed(_token())
        self.market.buy_error = RuntimeError("insufficient funds")
        report = await self.run_pass(100.0)
        self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.BUY_FAILED)
        token = self.token()
        self.assertIsNone(token.entry_price)
        self.assertEqual(token.status, STATUS_ERROR)

        self.market.buy_error = None
        await self.run_pass(101.0)
        self.assertEqual(self.token().entry_price, 101.0)
        self.assertEqual(self.token().status, STATUS_ACTIVE)

    async def test_failed_stage_does_not_block_later_stages(self) -> None:
        self.seed(_token(entry_price=100.0, status=STATUS_ACTIVE))
        self.market.sell_failures = {1}
        report = await self.run_pass(130.0)
        self.assertEqual(report.for_token("TokenA").stages, [(0, StageResult.FAILED), (1, StageResult.FIRED)])
        token = self.token()
        self.assertTrue(token.finished)
        self.assertEqual(token.status, STATUS_SOLD)

    async def test_stop_on_stage_failure_halts_the_token(self) -> None:
        self.trader = HoneyTrader(self.store, stop_on_stage_failure=True, call_timeout_seconds=0)
        self.seed(_token(entry_price=100.0, status=STATUS_ACTIVE))
        self.market.sell_failures = {1}
        report = await self.run_pass(130.0)
        self.assertEqual(report.for_token("TokenA").stages, [(0, StageResult.FAILED)])
        token = self.token()
        self.assertEqual(token.current_stage, 0)
        self.assertEqual(token.status, STATUS_ERROR)
        self.assertEqual(len(self.market.sells), 1)

    async def test_error_status_recovers_on_clean_price(self) -> None:
        self.seed(_token(entry_price=100.0, status=STATUS_ERROR))
        report = await self.run_pass(105.0)
        self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.EVALUATED)
        self.assertEqual(self.token().status, STATUS_ACTIVE)

    async def test_slow_price_lookup_times_out(self) -> None:
        self.trader = HoneyTrader(self.store, stop_on_stage_failure=False, call_timeout_seconds=0.01)
        self.seed(_token())

        async def slow_price(address: str) -> float:
            await asyncio.sleep(1.0)
            return 100.0

        report = await self.trader.evaluate(USER, slow_price, self.market.buy, self.market.sell)
        self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.PRICE_FAILED)

    async def test_one_bad_token_does_not_stop_others(self) -> None:
        self.seed(_token("TokenA"), _token("TokenB"))
        self.market.price_errors["TokenA"] = RuntimeError("feed down")
        self.market.prices["TokenB"] = 2.0
        report = await self.run_pass()
        self.assertEqual(report.for_token("TokenA").outcome, TokenOutcome.PRICE_FAILED)
        self.assertEqual(report.for_token("TokenB").outcome, TokenOutcome.BOUGHT)


class PassContractTests(HoneyTraderTestBase):
    async def test_missing_wallet_aborts_before_any_work(self) -> None:
        self.records.records[USER] = {SETTINGS_KEY: StrategySettings(tokens=[_token()]).to_dict()}
        with self.assertRaisesRegex(WalletNotFound, "Wallet not found"):
            await self.run_pass(100.0)
        self.assertEqual(self.market.price_calls, [])
        self.assertEqual(self.records.saves, 0)

    async def test_one_save_per_pass(self) -> None:
        self.seed(_token("TokenA"), _token("TokenB"), _token("TokenC"))
        for address in ("TokenA", "TokenB", "TokenC"):
            self.market.prices[address] = 1.0
        await self.run_pass()
        self.assertEqual(self.records.saves, 1)

    async def test_tokens_are_evaluated_in_configured_order(self) -> None:
        self.seed(_token("TokenC"), _token("TokenA"), _token("TokenB"))
        for address in ("TokenA", "TokenB", "TokenC"):
            self.market.prices[address] = 1.0
        report = await self.run_pass()
        self.assertEqual(self.market.price_calls, ["TokenC", "TokenA", "TokenB"])
        self.assertEqual([row.address for row in report.tokens], ["TokenC", "TokenA", "TokenB"])

    async def test_pass_preserves_other_users(self) -> None:
        self.records.records["8"] = {"secret": "other", "username": "bob"}
        self.seed(_token())
        await self.run_pass(1.0)
        self.assertEqual(self.records.records["8"], {"secret": "other", "username": "bob"})


if __name__ == "__main__":
    unittest.main()
