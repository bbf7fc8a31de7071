from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import websockets

from .calculator import to_amount
from .types import SettlementEvent, SettlementKind

logger = logging.getLogger(__name__)

EventCallback = Callable[[SettlementEvent], Awaitable[None] | None]

_ADDRESS_KEYS = ("participant", "winner", "account")


class SettlementEventStream:
    """Prize-claim events from the ledger relay websocket, filtered by participant."""

    def __init__(
        self,
        ws_url: str,
        participant: str,
        kinds: tuple[SettlementKind, ...] = (SettlementKind.GRAND, SettlementKind.CONSOLATION),
        max_backoff: float = 30.0,
    ) -> None:
        self.ws_url = ws_url
        self.participant = participant
        self.kinds = kinds
        self.max_backoff = max_backoff
        self._callbacks: dict[SettlementKind, list[EventCallback]] = {kind: [] for kind in SettlementKind}

    def on_grand_claimed(self, callback: EventCallback) -> Callable[[], None]:
        return self._register(SettlementKind.GRAND, callback)

    def on_consolation_claimed(self, callback: EventCallback) -> Callable[[], None]:
        return self._register(SettlementKind.CONSOLATION, callback)

    def _register(self, kind: SettlementKind, callback: EventCallback) -> Callable[[], None]:
        self._callbacks[kind].append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks[kind]:
                self._callbacks[kind].remove(callback)

        return unsubscribe

    async def run(self) -> None:
        async for event in self.events():
            await self.dispatch(event)

    async def dispatch(self, event: SettlementEvent) -> None:
        for callback in list(self._callbacks[event.kind]):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Settlement callback failed for %s season %s", event.kind.value, event.season_id)

    async def events(self) -> AsyncIterator[SettlementEvent]:
        backoff = 1.0
        while True:
            try:
                async with websockets.connect(self.ws_url, ping_interval=20, ping_timeout=20) as ws:
                    await ws.send(json.dumps(self.subscribe_message()))
                    logger.info("Subscribed to settlement events at %s for %s", self.ws_url, self.participant)
                    backoff = 1.0

                    async for raw in ws:
                        for event in parse_event_message(raw):
                            if event.kind in self.kinds:
                                yield event
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Settlement stream disconnected (%s). Reconnecting in %.1fs", exc, backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self.max_backoff)

    def subscribe_message(self) -> dict[str, Any]:
        return {
            "type": "subscribe",
            "events": [kind.value for kind in self.kinds],
            "filter": {"participant": self.participant},
        }


def parse_event_message(raw: str | bytes) -> list[SettlementEvent]:
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return []

    events: list[SettlementEvent] = []
    for record in _extract_event_records(payload):
        event = _normalize_event(record)
        if event is not None:
            events.append(event)
    return events


def _extract_event_records(payload: Any) -> list[dict[str, Any]]:
    results: list[dict[str, Any]] = []

    def visit(node: Any) -> None:
        if isinstance(node, list):
            for item in node:
                visit(item)
            return
        if not isinstance(node, dict):
            return
        if _looks_like_event(node):
            results.append(node)
            return
        for key in ("data", "logs", "events", "payload", "result"):
            if key in node:
                visit(node[key])

    visit(payload)
    return results


def _looks_like_event(record: dict[str, Any]) -> bool:
    name = record.get("eventName") or record.get("event")
    return isinstance(name, str) and name in {kind.value for kind in SettlementKind}


def _normalize_event(record: dict[str, Any]) -> SettlementEvent | None:
    kind = SettlementKind(record.get("eventName") or record.get("event"))
    args = record.get("args") if isinstance(record.get("args"), dict) else record

    account = next((str(args[k]).strip() for k in _ADDRESS_KEYS if args.get(k)), "")
    if not account:
        return None
    if args.get("seasonId") is None:
        return None
    try:
        season_id = to_amount(args["seasonId"])
        amount = to_amount(args.get("amount"))
    except (TypeError, ValueError):
        return None

    tx_hash = record.get("transactionHash") or record.get("txHash")
    log_index = record.get("logIndex")
    try:
        log_index = int(log_index) if log_index is not None else None
    except (TypeError, ValueError):
        log_index = None

    return SettlementEvent(
        kind=kind,
        account=account,
        season_id=season_id,
        amount=amount,
        tx_hash=str(tx_hash) if tx_hash else None,
        log_index=log_index,
        raw=record,
    )
