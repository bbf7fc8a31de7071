from __future__ import annotations

import logging
from collections.abc import Callable

from .calculator import same_address
from .dedupe import EventDeduper
from .event_stream import SettlementEventStream
from .formatting import format_settlement_message
from .invalidation import CacheTopic, InvalidationBus
from .notifier import Notifier
from .state import SubmissionStateStore
from .types import ClaimIdentity, SettlementEvent, SettlementKind

logger = logging.getLogger(__name__)


def identity_for_event(event: SettlementEvent) -> ClaimIdentity:
    if event.kind is SettlementKind.GRAND:
        return ClaimIdentity.raffle_grand(event.season_id)
    return ClaimIdentity.raffle_consolation(event.season_id)


class SettlementEventListener:
    """Reconciles local claim state with prize claims seen on the ledger."""

    def __init__(
        self,
        account: str,
        store: SubmissionStateStore,
        bus: InvalidationBus,
        notifier: Notifier,
        deduper: EventDeduper,
        decimals: int = 18,
        symbol: str = "SOF",
    ) -> None:
        self.account = account
        self.store = store
        self.bus = bus
        self.notifier = notifier
        self.deduper = deduper
        self.decimals = decimals
        self.symbol = symbol
        self.events_seen = 0
        self.events_applied = 0

    def attach(self, stream: SettlementEventStream) -> list[Callable[[], None]]:
        return [
            stream.on_grand_claimed(self.handle),
            stream.on_consolation_claimed(self.handle),
        ]

    async def handle(self, event: SettlementEvent) -> bool:
        self.events_seen += 1
        if not same_address(event.account, self.account):
            return False
        if not self.deduper.is_new(event):
            logger.debug("Duplicate settlement event %s season %s", event.kind.value, event.season_id)
            return False

        identity = identity_for_event(event)
        if not self.store.mark_settled(identity):
            # Confirmed by a local submission, which already notified and invalidated.
            logger.debug("Settlement event for already confirmed claim %s", identity.key)
            return False
        self.events_applied += 1
        logger.info(
            "Settlement event %s season=%s amount=%d",
            event.kind.value,
            event.season_id,
            event.amount,
        )
        self.bus.invalidate(CacheTopic.CLAIMS, f"{event.kind.value} event", identity)
        self.bus.invalidate(CacheTopic.BALANCE, f"{event.kind.value} event", identity)
        try:
            await self.notifier.send(format_settlement_message(event, self.decimals, self.symbol))
        except Exception as exc:
            logger.exception("Failed to send settlement notification: %s", exc)
        return True
