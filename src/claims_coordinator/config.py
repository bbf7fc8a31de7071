from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    account: str
    ledger_api_base: str
    ledger_ws_url: str | None
    network: str
    discovery_concurrency: int
    read_timeout_seconds: float
    submit_timeout_seconds: float
    submit_grace_seconds: float
    discovery_interval_seconds: int
    max_seasons: int
    redemption_fee_bps: int
    token_decimals: int
    token_symbol: str
    explorer_tx_base: str
    telegram_bot_token: str | None
    telegram_chat_id: str | None
    event_dedup_ttl_seconds: int
    health_log_interval_seconds: int
    log_level: str


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def _optional(name: str) -> str | None:
    return os.getenv(name, "").strip() or None


def _optional_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _optional_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def load_settings() -> Settings:
    load_dotenv()
    fee_bps = _optional_int("REDEMPTION_FEE_BPS", 200)
    if not 0 <= fee_bps <= 10_000:
        raise ValueError("REDEMPTION_FEE_BPS must be between 0 and 10000")
    return Settings(
        account=_required("CLAIMS_ACCOUNT"),
        ledger_api_base=_required("LEDGER_API_BASE"),
        ledger_ws_url=_optional("LEDGER_WS_URL"),
        network=os.getenv("NETWORK", "LOCAL").strip().upper(),
        discovery_concurrency=_optional_int("DISCOVERY_CONCURRENCY", 8),
        read_timeout_seconds=_optional_float("READ_TIMEOUT_SECONDS", 10.0),
        submit_timeout_seconds=_optional_float("SUBMIT_TIMEOUT_SECONDS", 120.0),
        submit_grace_seconds=_optional_float("SUBMIT_GRACE_SECONDS", 30.0),
        discovery_interval_seconds=_optional_int("DISCOVERY_INTERVAL_SECONDS", 15),
        max_seasons=_optional_int("MAX_SEASONS", 10),
        redemption_fee_bps=fee_bps,
        token_decimals=_optional_int("TOKEN_DECIMALS", 18),
        token_symbol=os.getenv("TOKEN_SYMBOL", "SOF").strip(),
        explorer_tx_base=os.getenv("EXPLORER_TX_BASE", "").strip(),
        telegram_bot_token=_optional("TELEGRAM_BOT_TOKEN"),
        telegram_chat_id=_optional("TELEGRAM_CHAT_ID"),
        event_dedup_ttl_seconds=_optional_int("EVENT_DEDUP_TTL_SECONDS", 3600),
        health_log_interval_seconds=_optional_int("HEALTH_LOG_INTERVAL_SECONDS", 60),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
