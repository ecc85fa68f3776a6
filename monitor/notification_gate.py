"""Suppress repeat notifications of the same token to the same user."""

from __future__ import annotations

import logging
from typing import Iterable

from monitor.dedup_ledger import DedupLedger
from utils.addressing import hash_token_address

logger = logging.getLogger(__name__)


class NotificationGate:
    def __init__(self, ledger: DedupLedger | None = None) -> None:
        self.ledger = ledger or DedupLedger()

    async def is_new(self, user_id: str, address: str) -> bool:
        seen = await self.ledger.read_valid(str(user_id))
        return hash_token_address(address) not in seen

    async def filter_new(self, user_id: str, addresses: Iterable[str]) -> list[str]:
        """Addresses not surfaced to ``user_id`` within the TTL, in input order."""
        seen = set(await self.ledger.read_valid(str(user_id)))
        fresh: list[str] = []
        for address in addresses:
            digest = hash_token_address(address)
            if not address or digest in seen:
                continue
            seen.add(digest)
            fresh.append(address)
        return fresh

    async def mark_sent(self, user_id: str, address: str) -> None:
        await self.ledger.append(str(user_id), hash_token_address(address))

    async def claim(self, user_id: str, address: str) -> bool:
        if not await self.is_new(user_id, address):
            return False
        added = await self.ledger.append(str(user_id), hash_token_address(address))
        if not added:
            logger.debug("NOTIFY_GATE_RACE user=%s action=skip", user_id)
        return added
