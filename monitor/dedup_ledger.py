"""Per-user ledger of recently surfaced tokens.

Each identity owns one JSON file holding a flat list of ``{"hash", "ts"}``
records (``ts`` in epoch milliseconds). Records expire after a fixed TTL and
the list is capacity bounded. Every read-modify-write runs under the advisory
``<file>.lock`` marker from ``utils.state_file``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from typing import Any, Callable

import config
from utils.addressing import hash_token_address
from utils.state_file import atomic_write_json, read_json, state_file_lock

logger = logging.getLogger(__name__)

_IDENTITY_SAFE_RE = re.compile(r"[^A-Za-z0-9_.-]")


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class DedupLedger:
    def __init__(self, base_dir: str | None = None, *, clock_ms: Callable[[], int] | None = None) -> None:
        self.base_dir = str(base_dir or getattr(config, "SENT_TOKENS_DIR", os.path.join("data", "sent_tokens")))
        self._clock_ms = clock_ms or _wall_clock_ms
        os.makedirs(self.base_dir, exist_ok=True)

    @staticmethod
    def hash(address: str) -> str:
        return hash_token_address(address)

    def path_for(self, identity: str) -> str:
        safe = _IDENTITY_SAFE_RE.sub("_", str(identity).strip()) or "_"
        return os.path.join(self.base_dir, f"{safe}.json")

    @property
    def ttl_ms(self) -> int:
        return int(getattr(config, "SENT_TOKENS_TTL_SECONDS", 86400)) * 1000

    async def read_valid(self, identity: str) -> set[str]:
        path = self.path_for(identity)
        async with state_file_lock(path):
            records = self._load(path)
            valid = self._prune_expired(records, self._clock_ms())
            if len(valid) != len(records):
                await self._persist(path, valid)
        return {row["hash"] for row in valid}

    async def append(self, identity: str, digest: str) -> bool:
        """Record ``digest`` for ``identity``. Returns False if it was already present."""
        path = self.path_for(identity)
        async with state_file_lock(path):
            now = self._clock_ms()
            records = self._prune_expired(self._load(path), now)
            if any(row["hash"] == digest for row in records):
                return False
            records.append({"hash": digest, "ts": now})
            records = self._apply_capacity(records)
            await self._persist(path, records)
        return True

    def _load(self, path: str) -> list[dict[str, Any]]:
        if not os.path.exists(path):
            return []
        try:
            payload = read_json(path)
        except (OSError, UnicodeError, json.JSONDecodeError) as exc:
            logger.warning("SENT_TOKENS_READ_FAILED path=%s err=%s action=treat_empty", path, exc)
            return []
        if not isinstance(payload, list):
            logger.warning("SENT_TOKENS_MALFORMED path=%s type=%s action=treat_empty", path, type(payload).__name__)
            return []
        return list(payload)

    def _prune_expired(self, records: list[Any], now_ms: int) -> list[dict[str, Any]]:
        ttl = self.ttl_ms
        valid: list[dict[str, Any]] = []
        for row in records:
            if not isinstance(row, dict) or not row.get("hash"):
                continue
            try:
                ts = int(row.get("ts") or 0)
            except (TypeError, ValueError):
                ts = 0
            if now_ms - ts < ttl:
                valid.append({"hash": str(row["hash"]), "ts": ts})
        return valid

    @staticmethod
    def _apply_capacity(records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        trim_at = int(getattr(config, "SENT_TOKENS_TRIM_AT", 3000))
        trim_count = int(getattr(config, "SENT_TOKENS_TRIM_COUNT", 10))
        hard_max = int(getattr(config, "SENT_TOKENS_MAX", 6000))
        if len(records) >= trim_at:
            records = records[trim_count:]
        if len(records) > hard_max:
            records = records[len(records) - hard_max :]
        return records

    async def _persist(self, path: str, records: list[dict[str, Any]]) -> bool:
        retries = int(getattr(config, "STATE_WRITE_RETRIES", 3))
        base_delay = float(getattr(config, "STATE_WRITE_RETRY_BASE_SECONDS", 0.05))
        for attempt in range(1, retries + 1):
            try:
                atomic_write_json(path, records)
                return True
            except (OSError, TypeError, ValueError) as exc:
                if attempt >= retries:
                    logger.warning(
                        "SENT_TOKENS_WRITE_FAILED path=%s attempts=%s records=%s err=%s",
                        path,
                        attempt,
                        len(records),
                        exc,
                    )
                    return False
                await asyncio.sleep(base_delay * attempt)
        return False
