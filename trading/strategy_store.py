"""Honey Points strategy settings: tracked tokens and their lifecycle state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import config
from utils.addressing import normalize_address

logger = logging.getLogger(__name__)

SETTINGS_KEY = "honey_settings"

STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_SOLD = "sold"
STATUS_ERROR = "error"
TOKEN_STATUSES = (STATUS_PENDING, STATUS_ACTIVE, STATUS_SOLD, STATUS_ERROR)


class StrategyConfigError(ValueError):
    """Permanent configuration problem that needs a user correction."""


class CapacityExceeded(StrategyConfigError):
    pass


class DuplicateToken(StrategyConfigError):
    pass


class InvalidToken(StrategyConfigError):
    pass


class UserRecordStore(Protocol):
    def load(self) -> dict[str, dict[str, Any]]: ...

    def save(self, records: dict[str, dict[str, Any]]) -> None: ...


def _opt_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return False


def _float_list(value: Any) -> list[float]:
    if not isinstance(value, (list, tuple)):
        return []
    out: list[float] = []
    for item in value:
        try:
            out.append(float(item))
        except (TypeError, ValueError):
            continue
    return out


@dataclass
class TrackedToken:
    address: str
    buy_amount: float
    profit_percents: list[float]
    sold_percents: list[float]
    entry_price: float | None = None
    last_sell_price: float | None = None
    finished: bool = False
    status: str = STATUS_PENDING
    current_stage: int = 0
    last_tx_id: str | None = None

    @property
    def stage_count(self) -> int:
        return len(self.profit_percents)

    def is_well_formed(self) -> bool:
        return bool(
            self.address
            and self.buy_amount
            and self.profit_percents
            and self.sold_percents
            and len(self.profit_percents) == len(self.sold_percents)
        )

    def reset_cycle(self) -> None:
        self.finished = False
        self.entry_price = None
        self.last_sell_price = None
        self.status = STATUS_PENDING
        self.current_stage = 0
        self.last_tx_id = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "buyAmount": self.buy_amount,
            "profitPercents": list(self.profit_percents),
            "soldPercents": list(self.sold_percents),
            "entryPrice": self.entry_price,
            "lastSellPrice": self.last_sell_price,
            "finished": self.finished,
            "status": self.status,
            "currentStage": self.current_stage,
            "lastTxId": self.last_tx_id,
        }

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "TrackedToken":
        entry = row.get("entryPrice", row.get("lastEntryPrice"))
        status = str(row.get("status") or STATUS_PENDING)
        if status not in TOKEN_STATUSES:
            status = STATUS_ERROR
        try:
            current_stage = max(0, int(row.get("currentStage") or 0))
        except (TypeError, ValueError):
            current_stage = 0
        try:
            buy_amount = float(row.get("buyAmount") or 0.0)
        except (TypeError, ValueError):
            buy_amount = 0.0
        last_tx = row.get("lastTxId")
        return cls(
            address=str(row.get("address") or "").strip(),
            buy_amount=buy_amount,
            profit_percents=_float_list(row.get("profitPercents")),
            sold_percents=_float_list(row.get("soldPercents")),
            entry_price=_opt_float(entry),
            last_sell_price=_opt_float(row.get("lastSellPrice")),
            finished=_as_bool(row.get("finished", False)),
            status=status,
            current_stage=current_stage,
            last_tx_id=str(last_tx) if last_tx else None,
        )


@dataclass
class StrategySettings:
    tokens: list[TrackedToken] = field(default_factory=list)
    repeat_on_entry: bool = True

    def find(self, address: str) -> TrackedToken | None:
        key = normalize_address(address)
        for token in self.tokens:
            if normalize_address(token.address) == key:
                return token
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tokens": [t.to_dict() for t in self.tokens],
            "repeatOnEntry": bool(self.repeat_on_entry),
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "StrategySettings":
        default_repeat = bool(getattr(config, "HONEY_REPEAT_ON_ENTRY_DEFAULT", True))
        if not isinstance(payload, dict):
            return cls(tokens=[], repeat_on_entry=default_repeat)
        raw_tokens = payload.get("tokens")
        tokens = [TrackedToken.from_dict(row) for row in raw_tokens if isinstance(row, dict)] if isinstance(raw_tokens, list) else []
        repeat = payload.get("repeatOnEntry")
        return cls(tokens=tokens, repeat_on_entry=repeat if isinstance(repeat, bool) else default_repeat)


def validate_new_token(token: TrackedToken) -> None:
    if not token.address:
        raise InvalidToken("Token address is required.")
    if token.buy_amount <= 0:
        raise InvalidToken("Buy amount must be positive.")
    if not token.profit_percents or not token.sold_percents:
        raise InvalidToken("At least one profit stage is required.")
    if len(token.profit_percents) != len(token.sold_percents):
        raise InvalidToken("Profit and sell percentages must have the same number of stages.")
    if any(p <= 0 for p in token.profit_percents) or any(s <= 0 for s in token.sold_percents):
        raise InvalidToken("Stage percentages must be positive.")


class StrategyStore:
    """Reads and writes Honey Points settings through a whole-snapshot record store."""

    def __init__(self, records: UserRecordStore, *, max_tokens: int | None = None) -> None:
        self.records = records
        self.max_tokens = int(max_tokens or getattr(config, "HONEY_MAX_TOKENS", 10))

    def load_records(self) -> dict[str, dict[str, Any]]:
        return self.records.load()

    def get_settings(self, user_id: str, records: dict[str, dict[str, Any]] | None = None) -> StrategySettings:
        if records is None:
            records = self.load_records()
        record = records.get(str(user_id)) or {}
        return StrategySettings.from_dict(record.get(SETTINGS_KEY))

    def set_settings(self, user_id: str, settings: StrategySettings) -> None:
        records = self.load_records()
        record = dict(records.get(str(user_id)) or {})
        record[SETTINGS_KEY] = settings.to_dict()
        records[str(user_id)] = record
        self.records.save(records)

    def user_secret(self, user_id: str, records: dict[str, dict[str, Any]] | None = None) -> str | None:
        if records is None:
            records = self.load_records()
        record = records.get(str(user_id)) or {}
        secret = record.get("secret")
        return str(secret) if secret else None

    def users_with_tokens(self) -> list[str]:
        records = self.load_records()
        return [
            user_id
            for user_id, record in records.items()
            if StrategySettings.from_dict((record or {}).get(SETTINGS_KEY)).tokens
        ]

    def add(self, user_id: str, token: TrackedToken) -> StrategySettings:
        validate_new_token(token)
        settings = self.get_settings(user_id)
        if len(settings.tokens) >= self.max_tokens:
            raise CapacityExceeded(f"Maximum {self.max_tokens} tokens allowed.")
        if settings.find(token.address) is not None:
            raise DuplicateToken("Token already exists in strategy.")
        settings.tokens.append(token)
        self.set_settings(user_id, settings)
        logger.info("HONEY_TOKEN_ADD user=%s token=%s stages=%s", user_id, token.address, token.stage_count)
        return settings

    def remove(self, user_id: str, address: str) -> bool:
        settings = self.get_settings(user_id)
        key = normalize_address(address)
        kept = [t for t in settings.tokens if normalize_address(t.address) != key]
        removed = len(kept) != len(settings.tokens)
        settings.tokens = kept
        self.set_settings(user_id, settings)
        if removed:
            logger.info("HONEY_TOKEN_REMOVE user=%s token=%s", user_id, address)
        return removed

    def reset(self, user_id: str) -> None:
        self.set_settings(user_id, StrategySettings(tokens=[], repeat_on_entry=True))
        logger.info("HONEY_RESET user=%s", user_id)

    def set_repeat_on_entry(self, user_id: str, enabled: bool) -> StrategySettings:
        settings = self.get_settings(user_id)
        settings.repeat_on_entry = bool(enabled)
        self.set_settings(user_id, settings)
        return settings
