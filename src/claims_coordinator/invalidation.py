from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .types import ClaimIdentity

logger = logging.getLogger(__name__)


class CacheTopic(str, Enum):
    CLAIMS = "claims"
    BALANCE = "balance"


@dataclass(frozen=True)
class Invalidation:
    topic: CacheTopic
    reason: str
    identity: ClaimIdentity | None = None
    urgent: bool = False


Subscriber = Callable[[Invalidation], None]


class InvalidationBus:
    """Publishes cache invalidation signals to whoever owns the caches."""

    def __init__(self) -> None:
        self._subscribers: dict[CacheTopic, list[Subscriber]] = {topic: [] for topic in CacheTopic}
        self.published: int = 0

    def subscribe(self, topic: CacheTopic, callback: Subscriber) -> Callable[[], None]:
        self._subscribers[topic].append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers[topic].remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, signal: Invalidation) -> None:
        self.published += 1
        logger.debug("invalidate topic=%s reason=%s", signal.topic.value, signal.reason)
        for callback in list(self._subscribers[signal.topic]):
            try:
                callback(signal)
            except Exception:
                logger.exception("Invalidation subscriber failed for topic %s", signal.topic.value)

    def invalidate(
        self,
        topic: CacheTopic,
        reason: str,
        identity: ClaimIdentity | None = None,
        urgent: bool = False,
    ) -> None:
        self.publish(Invalidation(topic=topic, reason=reason, identity=identity, urgent=urgent))
