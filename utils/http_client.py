"""Shared HTTP client with retry/backoff and per-source concurrency limits."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

import aiohttp

import config

logger = logging.getLogger(__name__)


@dataclass
class HttpResult:
    ok: bool
    status: int
    data: Any | None
    error: str = ""


class ResilientHttpClient:
    def __init__(
        self,
        timeout_seconds: float,
        headers: dict[str, str] | None = None,
        source_limits: dict[str, int] | None = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=max(1.0, float(timeout_seconds)))
        self._headers = dict(headers or {})
        self._source_limits = dict(source_limits or {})
        self._session: aiohttp.ClientSession | None = None
        self._semaphores: dict[str, asyncio.Semaphore] = {}

    async def close(self) -> None:
        session = self._session
        self._session = None
        if session is not None and not session.closed:
            await session.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=int(getattr(config, "HTTP_CONNECTOR_LIMIT", 30)))
            self._session = aiohttp.ClientSession(timeout=self._timeout, connector=connector)
        return self._session

    @staticmethod
    def _source_key(source: str) -> str:
        return str(source or "default").strip().lower() or "default"

    def _get_semaphore(self, key: str) -> asyncio.Semaphore:
        sem = self._semaphores.get(key)
        if sem is None:
            default_limit = int(getattr(config, "HTTP_DEFAULT_CONCURRENCY", 8))
            sem = asyncio.Semaphore(max(1, int(self._source_limits.get(key, default_limit))))
            self._semaphores[key] = sem
        return sem

    @staticmethod
    def _compute_delay(attempt: int) -> float:
        base = float(getattr(config, "HTTP_BACKOFF_BASE_SECONDS", 0.5))
        cap = max(base, float(getattr(config, "HTTP_BACKOFF_MAX_SECONDS", 8.0)))
        jitter = float(getattr(config, "HTTP_JITTER_SECONDS", 0.25))
        exp = min(cap, base * (2 ** max(0, attempt - 1)))
        return max(0.01, exp + random.uniform(0.0, jitter))

    async def get_json(
        self,
        url: str,
        *,
        source: str = "default",
        params: dict[str, Any] | None = None,
        max_attempts: int | None = None,
    ) -> HttpResult:
        attempts = max(1, int(max_attempts or getattr(config, "HTTP_RETRY_ATTEMPTS", 3)))
        key = self._source_key(source)
        sem = self._get_semaphore(key)
        for attempt in range(1, attempts + 1):
            status = 0
            async with sem:
                try:
                    session = await self._get_session()
                    async with session.get(url, params=params, headers=self._headers) as response:
                        status = int(response.status or 0)
                        if status == 200:
                            payload = await response.json(content_type=None)
                            return HttpResult(ok=True, status=status, data=payload)
                        retryable = status == 429 or (500 <= status <= 599)
                        if not retryable or attempt >= attempts:
                            return HttpResult(ok=False, status=status, data=None, error=f"http_status_{status}")
                except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                    if attempt >= attempts:
                        return HttpResult(ok=False, status=status, data=None, error=f"http_error:{exc}")

            delay = self._compute_delay(attempt)
            logger.debug(
                "HTTP_RETRY source=%s attempt=%s/%s status=%s delay=%.2fs url=%s",
                key,
                attempt,
                attempts,
                status,
                delay,
                url,
            )
            await asyncio.sleep(delay)

        return HttpResult(ok=False, status=0, data=None, error="http_exhausted")
