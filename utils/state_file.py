"""Shared helpers for advisory state-file locking and atomic JSON writes."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import config

logger = logging.getLogger(__name__)

E_STATE_LOCKED = "E_STATE_LOCKED"


class StateFileLockError(RuntimeError):
    """Raised when the state-file lock cannot be acquired in time."""

    code = E_STATE_LOCKED


def lock_path_for(target_path: str) -> str:
    return f"{str(target_path)}.lock"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _try_create_marker(lock_path: str) -> bool:
    try:
        fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        return False
    try:
        os.write(fd, str(_now_ms()).encode("ascii"))
    finally:
        os.close(fd)
    return True


def marker_age_seconds(lock_path: str, max_future_seconds: float = 0.0) -> float | None:
    """Age of an existing marker, or None if it disappeared meanwhile.

    A payload dated more than ``max_future_seconds`` ahead of the local clock
    is not trusted and the file mtime is used instead.
    """
    try:
        with open(lock_path, "r", encoding="ascii") as f:
            raw = f.read().strip()
        age = (_now_ms() - int(raw)) / 1000.0
        if age >= -max(0.0, float(max_future_seconds)):
            return max(0.0, age)
    except FileNotFoundError:
        return None
    except (OSError, ValueError):
        pass
    # Payload not written yet, garbled or future-dated: fall back to the file mtime.
    try:
        return max(0.0, time.time() - os.path.getmtime(lock_path))
    except OSError:
        return None


def release_marker(lock_path: str) -> None:
    try:
        os.remove(lock_path)
    except FileNotFoundError:
        pass


@asynccontextmanager
async def state_file_lock(
    target_path: str,
    *,
    stale_seconds: float | None = None,
    poll_seconds: float | None = None,
    settle_seconds: float | None = None,
    timeout_seconds: float | None = None,
) -> AsyncIterator[None]:
    """Hold the advisory `<state>.lock` marker for a state file.

    The marker is created atomically and carries its acquisition time. A
    marker older than ``stale_seconds`` is treated as left behind by a crashed
    holder and reclaimed. Without ``timeout_seconds`` acquisition waits until
    the marker is released or goes stale.
    """

    stale = float(stale_seconds if stale_seconds is not None else getattr(config, "STATE_LOCK_STALE_SECONDS", 2.0))
    poll = max(0.001, float(poll_seconds if poll_seconds is not None else getattr(config, "STATE_LOCK_POLL_SECONDS", 0.02)))
    settle = max(
        0.0,
        float(settle_seconds if settle_seconds is not None else getattr(config, "STATE_LOCK_SETTLE_SECONDS", 0.01)),
    )
    lock_path = lock_path_for(target_path)
    os.makedirs(os.path.dirname(lock_path) or ".", exist_ok=True)
    deadline = (time.monotonic() + max(0.0, float(timeout_seconds))) if timeout_seconds is not None else None

    while True:
        if _try_create_marker(lock_path):
            break
        age = marker_age_seconds(lock_path, max_future_seconds=stale)
        if age is not None and age > stale:
            logger.warning("STATE_LOCK_STALE path=%s age=%.2fs action=reclaim", lock_path, age)
            release_marker(lock_path)
            continue
        if deadline is not None and time.monotonic() >= deadline:
            raise StateFileLockError(f"{E_STATE_LOCKED}: state lock timeout path={target_path}")
        await asyncio.sleep(poll)

    try:
        if settle > 0:
            await asyncio.sleep(settle)
        yield
    finally:
        release_marker(lock_path)


def atomic_write_json(
    path: str,
    payload: Any,
    *,
    encoding: str = "utf-8",
    ensure_ascii: bool = False,
    indent: int | None = None,
    sort_keys: bool = False,
) -> None:
    """Write JSON atomically via temp file + replace in the same directory.

    A single attempt; callers own the retry policy.
    """

    abs_path = str(path)
    state_dir = os.path.dirname(abs_path) or "."
    os.makedirs(state_dir, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        prefix=f"{os.path.basename(abs_path)}.",
        suffix=".tmp",
        dir=state_dir,
        text=True,
    )
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            json.dump(payload, f, ensure_ascii=ensure_ascii, indent=indent, sort_keys=sort_keys)
            f.flush()
            try:
                os.fsync(f.fileno())
            except OSError:
                pass
        os.replace(tmp_path, abs_path)
    except Exception:
        try:
            os.remove(tmp_path)
        except OSError:
            pass
        raise


def read_json(path: str, *, encoding: str = "utf-8-sig") -> Any:
    with open(path, "r", encoding=encoding) as f:
        return json.load(f)
