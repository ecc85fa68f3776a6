"""Simulated trade execution used when live trading is not wired in."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


@dataclass
class PaperFill:
    side: str
    token_address: str
    amount: float
    tx_id: str
    filled_at: datetime


class PaperTradeExecutor:
    def __init__(self, max_journal: int = 1000) -> None:
        self.max_journal = max(1, int(max_journal))
        self.fills: list[PaperFill] = []

    async def buy(self, address: str, amount: float, secret: str) -> str:
        return self._fill("buy", address, amount, secret)

    async def sell(self, address: str, amount: float, secret: str) -> str:
        return self._fill("sell", address, amount, secret)

    def _fill(self, side: str, address: str, amount: float, secret: str) -> str:
        if not secret:
            raise RuntimeError("signing secret is required")
        if float(amount) <= 0:
            raise ValueError(f"{side} amount must be positive")
        tx_id = f"paper-{uuid.uuid4().hex}"
        self.fills.append(
            PaperFill(
                side=side,
                token_address=str(address),
                amount=float(amount),
                tx_id=tx_id,
                filled_at=datetime.now(timezone.utc),
            )
        )
        self.fills = self.fills[-self.max_journal :]
        logger.info("PAPER_FILL side=%s token=%s amount=%s tx=%s", side, address, amount, tx_id)
        return tx_id
