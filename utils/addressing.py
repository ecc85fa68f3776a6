"""Address normalization helpers."""

from __future__ import annotations

import hashlib


def normalize_address(value: str | None) -> str:
    """Normalize on-chain address keys for internal maps/dedup."""
    return str(value or "").strip().lower()


def hash_token_address(value: str | None) -> str:
    """One-way digest of a normalized address, used as the dedup key."""
    return hashlib.sha256(normalize_address(value).encode("utf-8")).hexdigest()
