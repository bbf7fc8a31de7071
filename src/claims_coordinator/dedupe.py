from __future__ import annotations

import time
from collections import OrderedDict

from .types import SettlementEvent


def event_key(event: SettlementEvent) -> str:
    if event.tx_hash:
        return f"{event.tx_hash.lower()}:{event.log_index if event.log_index is not None else '-'}"
    return f"{event.kind.value}:{event.season_id}:{event.account.lower()}"


class EventDeduper:
    """Drops settlement events redelivered after a stream reconnect."""

    def __init__(self, ttl_seconds: int) -> None:
        self.ttl_seconds = ttl_seconds
        self._seen: OrderedDict[str, float] = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def is_new(self, event: SettlementEvent) -> bool:
        now = time.monotonic()
        self._expire(now)
        key = event_key(event)
        if key in self._seen:
            return False
        self._seen[key] = now
        return True

    def clear(self) -> None:
        self._seen.clear()

    def _expire(self, now: float) -> None:
        cutoff = now - self.ttl_seconds
        while self._seen:
            oldest = next(iter(self._seen.values()))
            if oldest >= cutoff:
                break
            self._seen.popitem(last=False)
