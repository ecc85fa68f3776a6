"""DexScreener-backed price lookups for tracked tokens."""

from __future__ import annotations

import logging
from typing import Any

import config
from utils.http_client import ResilientHttpClient

logger = logging.getLogger(__name__)


class PriceUnavailable(RuntimeError):
    pass


class DexScreenerPriceOracle:
    def __init__(self, http: ResilientHttpClient | None = None) -> None:
        self._http = http or ResilientHttpClient(
            timeout_seconds=float(getattr(config, "DEX_TIMEOUT", 10)),
            source_limits={"dex_price": 6},
        )

    async def close(self) -> None:
        await self._http.close()

    async def get_price(self, address: str) -> float:
        token_address = str(address or "").strip()
        if not token_address:
            raise PriceUnavailable("empty token address")
        url = f"{config.DEXSCREENER_API}/tokens/{token_address}"
        result = await self._http.get_json(url, source="dex_price")
        if not result.ok or not isinstance(result.data, dict):
            raise PriceUnavailable(f"price lookup failed token={token_address} err={result.error or result.status}")
        price = self.best_pair_price(result.data)
        if price <= 0:
            raise PriceUnavailable(f"no priced pair token={token_address} chain={config.CHAIN_ID}")
        return price

    @staticmethod
    def best_pair_price(data: dict[str, Any]) -> float:
        """Price of the most liquid pair on the configured chain, 0.0 if none."""
        best_liq = -1.0
        best_price = 0.0
        for pair in data.get("pairs", []) or []:
            if str(pair.get("chainId", "")).lower() != str(config.CHAIN_ID).lower():
                continue
            try:
                liq = float((pair.get("liquidity") or {}).get("usd") or 0)
                price = float(pair.get("priceUsd") or 0)
            except (TypeError, ValueError):
                continue
            if price <= 0:
                continue
            if liq > best_liq:
                best_liq = liq
                best_price = price
        return best_price
