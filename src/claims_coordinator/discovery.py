from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from . import calculator
from .errors import GatewayUnavailable
from .gateway import LedgerGateway
from .state import SubmissionStateStore
from .types import ClaimRecord, MarketKind, MarketSummary, Side

logger = logging.getLogger(__name__)


class ClaimDiscovery:
    """Finds every payable claim for an account across all claim domains.

    Only enumerating markets is fatal. Every per-market and per-season read
    is isolated: a failure or timeout is logged and that unit contributes no
    records.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        store: SubmissionStateStore,
        concurrency: int = 8,
        read_timeout: float = 10.0,
        redemption_fee_bps: int = 0,
        max_seasons: int = 10,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.concurrency = max(1, concurrency)
        self.read_timeout = read_timeout
        self.redemption_fee_bps = redemption_fee_bps
        self.max_seasons = max_seasons
        self.failed_reads = 0

    async def discover(self, account: str, active_seasons: Iterable[int] | None = None) -> list[ClaimRecord]:
        season_filter = sorted(set(active_seasons)) if active_seasons is not None else None
        try:
            markets = await asyncio.wait_for(
                self.gateway.enumerate_markets(season_filter), timeout=self.read_timeout
            )
        except GatewayUnavailable:
            raise
        except Exception as exc:
            raise GatewayUnavailable(f"Could not enumerate markets: {exc}") from exc

        seasons = await self._seasons_to_scan(markets, season_filter)
        semaphore = asyncio.Semaphore(self.concurrency)
        jobs: list[Awaitable[list[ClaimRecord]]] = []

        for market in markets:
            if market.kind is MarketKind.FIXED_ODDS:
                for side in (Side.YES, Side.NO):
                    jobs.append(
                        self._guarded(
                            semaphore,
                            f"market {market.market_id} {side.value}",
                            lambda m=market, s=side: self._market_payout(m, account, s),
                        )
                    )
            elif market.kind is MarketKind.MARKET_MAKER and market.settled:
                jobs.append(
                    self._guarded(
                        semaphore,
                        f"redemption {market.market_id}",
                        lambda m=market: self._position_redemption(m, account),
                    )
                )

        for season_id in seasons:
            jobs.append(
                self._guarded(
                    semaphore,
                    f"raffle season {season_id}",
                    lambda sid=season_id: self._raffle(sid, account),
                )
            )

        batches = await asyncio.gather(*jobs)
        records: list[ClaimRecord] = []
        for batch in batches:
            for record in batch:
                if not record.payable or self.store.is_confirmed(record.identity):
                    continue
                self.store.track(record.identity)
                records.append(record)

        logger.info(
            "Discovered %d claims for %s across %d markets and %d seasons",
            len(records),
            account,
            len(markets),
            len(seasons),
        )
        return records

    async def _seasons_to_scan(
        self, markets: list[MarketSummary], season_filter: list[int] | None
    ) -> list[int]:
        if season_filter is not None:
            return season_filter
        seasons = {market.season_id for market in markets if market.season_id > 0}
        try:
            current = await asyncio.wait_for(self.gateway.current_season_id(), timeout=self.read_timeout)
        except Exception as exc:
            logger.warning("Could not read current season: %s", exc)
            current = None
        if current:
            first = max(1, current - self.max_seasons + 1)
            seasons.update(range(first, current + 1))
        return sorted(seasons)

    async def _guarded(
        self,
        semaphore: asyncio.Semaphore,
        label: str,
        read: Callable[[], Awaitable[list[ClaimRecord]]],
    ) -> list[ClaimRecord]:
        async with semaphore:
            try:
                return await asyncio.wait_for(read(), timeout=self.read_timeout)
            except asyncio.TimeoutError:
                self.failed_reads += 1
                logger.warning("Discovery read timed out for %s; treating as no claim", label)
            except Exception as exc:
                self.failed_reads += 1
                logger.warning("Discovery read failed for %s: %s", label, exc)
        return []

    async def _market_payout(self, market: MarketSummary, account: str, side: Side) -> list[ClaimRecord]:
        position = await self.gateway.read_position(market.market_id, account, side)
        record = calculator.market_payout_record(market, side, position)
        return [record] if record else []

    async def _position_redemption(self, market: MarketSummary, account: str) -> list[ClaimRecord]:
        if market.winning_side is None or not market.player:
            return []
        position = await self.gateway.read_position(market.market_id, account, market.winning_side)
        record = calculator.position_redemption_record(market, position, self.redemption_fee_bps)
        return [record] if record else []

    async def _raffle(self, season_id: int, account: str) -> list[ClaimRecord]:
        state = await self.gateway.read_season_payout_state(season_id)
        if not state.funded:
            return []

        grand = calculator.grand_record(season_id, account, state)
        if grand is not None or calculator.is_grand_winner(account, state):
            return [grand] if grand else []

        if not calculator.consolation_may_apply(account, state):
            return []
        # One read at a time per semaphore slot.
        participant = await self.gateway.is_participant(season_id, account)
        claimed = await self.gateway.is_consolation_claimed(season_id, account)
        record = calculator.consolation_record(season_id, account, state, participant, claimed)
        return [record] if record else []
