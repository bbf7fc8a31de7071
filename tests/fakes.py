from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace

from claims_coordinator.config import Settings
from claims_coordinator.types import (
    ClaimIdentity,
    MarketSummary,
    PositionRead,
    SeasonPayoutState,
    Side,
)

WINNER = "0xAAA0000000000000000000000000000000000AAA"
PLAYER = "0xBBB0000000000000000000000000000000000BBB"
OUTSIDER = "0xCCC0000000000000000000000000000000000CCC"


def season_one() -> SeasonPayoutState:
    return SeasonPayoutState(
        funded=True,
        grand_winner=WINNER,
        grand_amount=1000,
        grand_claimed=False,
        consolation_amount=3000,
        total_participants=4,
    )


class FakeGateway:
    def __init__(
        self,
        markets: list[MarketSummary] | None = None,
        positions: dict[tuple[str, str, Side], PositionRead] | None = None,
        seasons: dict[int, SeasonPayoutState] | None = None,
        participants: set[tuple[int, str]] | None = None,
        consolation_claimed: set[tuple[int, str]] | None = None,
        current_season: int | None = None,
    ) -> None:
        self.markets = markets or []
        self.positions = {(m, a.lower(), s): p for (m, a, s), p in (positions or {}).items()}
        self.seasons = seasons or {}
        self.participants = {(sid, a.lower()) for sid, a in (participants or set())}
        self.consolation_claimed = {(sid, a.lower()) for sid, a in (consolation_claimed or set())}
        self.current_season = current_season

        self.fail_enumerate = False
        self.failing_markets: set[str] = set()
        self.slow_markets: set[str] = set()
        self.enumerate_calls = 0
        self.position_reads: list[tuple[str, Side]] = []
        self.season_reads: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

        self.submissions: list[tuple[ClaimIdentity, dict]] = []
        self.submit_gate: asyncio.Event | None = None
        self.submit_delay = 0.0
        self.submit_error: Exception | None = None
        self.tx_hash = "0xfeed"

    async def enumerate_markets(self, season_ids: list[int] | None = None) -> list[MarketSummary]:
        self.enumerate_calls += 1
        if self.fail_enumerate:
            raise ConnectionError("ledger unreachable")
        if season_ids is None:
            return list(self.markets)
        return [m for m in self.markets if m.season_id in season_ids]

    async def read_position(self, market_id: str, account: str, side: Side) -> PositionRead:
        self.position_reads.append((market_id, side))
        if market_id in self.failing_markets:
            raise RuntimeError(f"read failed for {market_id}")
        if market_id in self.slow_markets:
            await asyncio.sleep(5)
        return self.positions.get((market_id, account.lower(), side), PositionRead(0, 0, False))

    async def read_season_payout_state(self, season_id: int) -> SeasonPayoutState:
        self.season_reads.append(season_id)
        async with self._reading():
            if season_id not in self.seasons:
                raise LookupError(f"season {season_id} not found")
            return self.seasons[season_id]

    async def is_participant(self, season_id: int, account: str) -> bool:
        async with self._reading():
            return (season_id, account.lower()) in self.participants

    async def is_consolation_claimed(self, season_id: int, account: str) -> bool:
        async with self._reading():
            return (season_id, account.lower()) in self.consolation_claimed

    @asynccontextmanager
    async def _reading(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            yield
        finally:
            self.in_flight -= 1

    async def current_season_id(self) -> int | None:
        return self.current_season

    async def submit_claim(self, identity: ClaimIdentity, params: dict) -> str:
        self.submissions.append((identity, params))
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.submit_delay:
            await asyncio.sleep(self.submit_delay)
        if self.submit_error is not None:
            raise self.submit_error
        return self.tx_hash


class DummyNotifier:
    def __init__(self) -> None:
        self.messages: list[str] = []

    async def send(self, text: str) -> None:
        self.messages.append(text)

    async def close(self) -> None:
        return None


def make_settings(**overrides) -> Settings:
    settings = Settings(
        account=PLAYER,
        ledger_api_base="https://relay.example",
        ledger_ws_url=None,
        network="LOCAL",
        discovery_concurrency=4,
        read_timeout_seconds=1.0,
        submit_timeout_seconds=1.0,
        submit_grace_seconds=0.5,
        discovery_interval_seconds=1000,
        max_seasons=10,
        redemption_fee_bps=200,
        token_decimals=18,
        token_symbol="SOF",
        explorer_tx_base="https://explorer.example/tx",
        telegram_bot_token=None,
        telegram_chat_id=None,
        event_dedup_ttl_seconds=3600,
        health_log_interval_seconds=1000,
        log_level="INFO",
    )
    return replace(settings, **overrides)
