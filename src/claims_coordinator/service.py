from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .config import Settings
from .dedupe import EventDeduper
from .discovery import ClaimDiscovery
from .errors import GatewayUnavailable
from .event_stream import SettlementEventStream
from .formatting import format_claims_summary, group_by_season
from .gateway import HttpLedgerGateway, LedgerGateway
from .invalidation import CacheTopic, Invalidation, InvalidationBus
from .listener import SettlementEventListener
from .notifier import LogNotifier, Notifier, TelegramNotifier
from .state import StateListener, SubmissionStateStore
from .submission import ClaimSubmitter, SubmitResult
from .types import ClaimIdentity, ClaimRecord

logger = logging.getLogger(__name__)


@dataclass
class Metrics:
    discovery_runs: int = 0
    discovery_failures: int = 0
    claims_found: int = 0
    submissions: int = 0
    confirmed: int = 0
    failed: int = 0
    rejected: int = 0
    balance_invalidations: int = 0


def build_notifier(settings: Settings) -> Notifier:
    if settings.telegram_bot_token and settings.telegram_chat_id:
        return TelegramNotifier(settings.telegram_bot_token, settings.telegram_chat_id)
    return LogNotifier()


class ClaimsCoordinator:
    """Owns every claim-related cache and collaborator for one account session."""

    def __init__(
        self,
        settings: Settings,
        gateway: LedgerGateway | None = None,
        notifier: Notifier | None = None,
        stream: SettlementEventStream | None = None,
    ) -> None:
        self.settings = settings
        self.metrics = Metrics()
        self.gateway = gateway or HttpLedgerGateway(settings.ledger_api_base, timeout=settings.read_timeout_seconds)
        self.notifier = notifier or build_notifier(settings)
        self.bus = InvalidationBus()
        self.bus.subscribe(CacheTopic.CLAIMS, self._on_claims_invalidated)
        self.bus.subscribe(CacheTopic.BALANCE, self._on_balance_invalidated)
        self.balance_version = 0

        self._fixed_stream = stream
        self._state_listeners: list[StateListener] = []
        self._stream_unsubscribes: list[Callable[[], None]] = []
        self._refresh_task: asyncio.Task | None = None
        self._listen_task: asyncio.Task | None = None
        self._running = False
        self._start_session(settings.account, settings.network)

    @property
    def pending_refresh(self) -> asyncio.Task | None:
        if self._refresh_task is not None and not self._refresh_task.done():
            return self._refresh_task
        return None

    @property
    def is_stale(self) -> bool:
        return self._stale

    def _start_session(self, account: str, network: str) -> None:
        self.account = account
        self.network = network
        self.store = SubmissionStateStore()
        for listener in self._state_listeners:
            self.store.subscribe(listener)

        self.discovery = ClaimDiscovery(
            self.gateway,
            self.store,
            concurrency=self.settings.discovery_concurrency,
            read_timeout=self.settings.read_timeout_seconds,
            redemption_fee_bps=self.settings.redemption_fee_bps,
            max_seasons=self.settings.max_seasons,
        )
        self.submitter = ClaimSubmitter(
            self.gateway,
            self.store,
            self.bus,
            self.notifier,
            timeout=self.settings.submit_timeout_seconds,
            grace_period=self.settings.submit_grace_seconds,
            explorer_tx_base=self.settings.explorer_tx_base,
        )
        self.listener = SettlementEventListener(
            account,
            self.store,
            self.bus,
            self.notifier,
            EventDeduper(self.settings.event_dedup_ttl_seconds),
            decimals=self.settings.token_decimals,
            symbol=self.settings.token_symbol,
        )

        for unsubscribe in self._stream_unsubscribes:
            unsubscribe()
        self.stream = self._fixed_stream
        if self.stream is None and self.settings.ledger_ws_url:
            self.stream = SettlementEventStream(self.settings.ledger_ws_url, account)
        self._stream_unsubscribes = self.listener.attach(self.stream) if self.stream else []

        self._claims: list[ClaimRecord] = []
        self._stale = True

    async def switch_session(self, account: str, network: str | None = None) -> None:
        """Discard all session state when the active account or network changes."""
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            await asyncio.gather(self._refresh_task, return_exceptions=True)
            self._refresh_task = None
        restart_listener = self._listen_task is not None
        if self._listen_task is not None:
            self._listen_task.cancel()
            await asyncio.gather(self._listen_task, return_exceptions=True)
            self._listen_task = None

        logger.info("Switching claims session to %s on %s", account, network or self.network)
        self._start_session(account, network or self.network)
        if restart_listener and self.stream is not None:
            self._listen_task = asyncio.create_task(self.stream.run())

    def subscribe_state(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.append(listener)
        store_unsubscribe = self.store.subscribe(listener)

        def unsubscribe() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)
            store_unsubscribe()

        return unsubscribe

    async def discover_claims(self, active_seasons: Iterable[int] | None = None) -> list[ClaimRecord]:
        self.metrics.discovery_runs += 1
        store = self.store
        try:
            records = await self.discovery.discover(self.account, active_seasons)
        except GatewayUnavailable:
            self.metrics.discovery_failures += 1
            raise
        if store is not self.store:
            # The session changed while this run was in flight.
            return []
        self._claims = records
        self._stale = False
        self.metrics.claims_found = len(records)
        return list(records)

    async def claims(self) -> list[ClaimRecord]:
        if self._stale:
            return await self.discover_claims()
        return [record for record in self._claims if not self.store.is_confirmed(record.identity)]

    def grouped_claims(self) -> dict[int, list[ClaimRecord]]:
        return group_by_season(r for r in self._claims if not self.store.is_confirmed(r.identity))

    async def submit(self, identity: ClaimIdentity) -> SubmitResult:
        writes = self.submitter.writes
        result = await self.submitter.submit(identity)
        if self.submitter.writes == writes:
            # Rejected before any write was sent.
            self.metrics.rejected += 1
            return result
        self.metrics.submissions += 1
        if result.ok:
            self.metrics.confirmed += 1
        else:
            self.metrics.failed += 1
        return result

    def _on_claims_invalidated(self, signal: Invalidation) -> None:
        self._stale = True
        if signal.urgent or self._running:
            self._schedule_refresh(signal.reason)

    def _on_balance_invalidated(self, signal: Invalidation) -> None:
        self.balance_version += 1
        self.metrics.balance_invalidations += 1

    def _schedule_refresh(self, reason: str) -> None:
        if self.pending_refresh is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        logger.debug("Scheduling claims refresh (%s)", reason)
        self._refresh_task = loop.create_task(self._refresh())

    async def _refresh(self) -> None:
        # Yield once so the invalidating call finishes its own bookkeeping first.
        await asyncio.sleep(0)
        try:
            await self.discover_claims()
        except GatewayUnavailable as exc:
            logger.warning("Claims refresh failed: %s", exc)

    async def run(self) -> None:
        self._running = True
        tasks = [
            asyncio.create_task(self._poll_loop()),
            asyncio.create_task(self._health_loop()),
        ]
        if self.stream is not None:
            self._listen_task = asyncio.create_task(self.stream.run())
        try:
            await asyncio.gather(*tasks)
        finally:
            self._running = False
            if self._refresh_task is not None:
                tasks.append(self._refresh_task)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.close()

    async def close(self) -> None:
        if self._listen_task is not None:
            self._listen_task.cancel()
            await asyncio.gather(self._listen_task, return_exceptions=True)
            self._listen_task = None
        await self.notifier.close()
        close = getattr(self.gateway, "close", None)
        if close is not None:
            await close()

    async def _poll_loop(self) -> None:
        while True:
            try:
                records = await self.discover_claims()
                logger.info(
                    "Claims for %s:\n%s",
                    self.account,
                    format_claims_summary(records, self.settings.token_decimals, self.settings.token_symbol),
                )
            except GatewayUnavailable as exc:
                logger.warning("Discovery skipped, ledger unavailable: %s", exc)
            await asyncio.sleep(self.settings.discovery_interval_seconds)

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.health_log_interval_seconds)
            logger.info(
                (
                    "health discovery_runs=%d discovery_failures=%d claims=%d submissions=%d "
                    "confirmed=%d failed=%d rejected=%d settlement_events=%d failed_reads=%d"
                ),
                self.metrics.discovery_runs,
                self.metrics.discovery_failures,
                self.metrics.claims_found,
                self.metrics.submissions,
                self.metrics.confirmed,
                self.metrics.failed,
                self.metrics.rejected,
                self.listener.events_applied,
                self.discovery.failed_reads,
            )
