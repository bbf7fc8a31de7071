"""Session-scoped claim submission state.

The store is the only place that mutates submission status. Discovery and
presentation code read it; transitions go through ``track``, ``begin_submit``,
``confirm``, ``fail``, ``mark_settled`` and ``reset``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from enum import Enum
from types import MappingProxyType

from .errors import ClaimError, ClaimErrorKind
from .types import ClaimIdentity

logger = logging.getLogger(__name__)


class SubmissionStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


StateListener = Callable[[ClaimIdentity, SubmissionStatus], None]


class SubmissionStateStore:
    def __init__(self) -> None:
        self._status: dict[ClaimIdentity, SubmissionStatus] = {}
        self._tx_hashes: dict[ClaimIdentity, str] = {}
        self._last_errors: dict[ClaimIdentity, ClaimError] = {}
        self._listeners: list[StateListener] = []

    def status(self, identity: ClaimIdentity) -> SubmissionStatus | None:
        return self._status.get(identity)

    def is_pending(self, identity: ClaimIdentity) -> bool:
        return self._status.get(identity) is SubmissionStatus.PENDING

    def is_confirmed(self, identity: ClaimIdentity) -> bool:
        return self._status.get(identity) is SubmissionStatus.CONFIRMED

    def tx_hash(self, identity: ClaimIdentity) -> str | None:
        return self._tx_hashes.get(identity)

    def last_error(self, identity: ClaimIdentity) -> ClaimError | None:
        return self._last_errors.get(identity)

    def snapshot(self) -> Mapping[ClaimIdentity, SubmissionStatus]:
        return MappingProxyType(dict(self._status))

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def track(self, identity: ClaimIdentity) -> None:
        if identity not in self._status:
            self._set(identity, SubmissionStatus.IDLE)

    def begin_submit(self, identity: ClaimIdentity) -> None:
        current = self._status.get(identity)
        if current is None:
            # Only claims surfaced by discovery (or previously submitted) are actionable.
            raise ClaimError(ClaimErrorKind.NOT_ELIGIBLE, f"Claim {identity.key} was not discovered")
        if current is SubmissionStatus.PENDING:
            raise ClaimError(ClaimErrorKind.ALREADY_SUBMITTING, f"Claim {identity.key} is already submitting")
        if current is SubmissionStatus.CONFIRMED:
            raise ClaimError(ClaimErrorKind.ALREADY_CLAIMED, f"Claim {identity.key} is already confirmed")
        self._last_errors.pop(identity, None)
        self._set(identity, SubmissionStatus.PENDING)

    def confirm(self, identity: ClaimIdentity, tx_hash: str | None = None) -> None:
        if tx_hash:
            self._tx_hashes[identity] = tx_hash
        self._set(identity, SubmissionStatus.CONFIRMED)

    def fail(self, identity: ClaimIdentity, error: ClaimError) -> None:
        if self._status.get(identity) is SubmissionStatus.CONFIRMED:
            # A settlement event may have confirmed the claim while the local write was failing.
            logger.info("Ignoring failure for already confirmed claim %s", identity.key)
            return
        self._last_errors[identity] = error
        self._set(identity, SubmissionStatus.FAILED)
        self._set(identity, SubmissionStatus.IDLE)

    def mark_settled(self, identity: ClaimIdentity) -> bool:
        """Record a claim settled outside this session; returns False if already known."""
        if self._status.get(identity) is SubmissionStatus.CONFIRMED:
            return False
        self._set(identity, SubmissionStatus.CONFIRMED)
        return True

    def reset(self) -> None:
        self._status.clear()
        self._tx_hashes.clear()
        self._last_errors.clear()

    def _set(self, identity: ClaimIdentity, status: SubmissionStatus) -> None:
        self._status[identity] = status
        for listener in list(self._listeners):
            try:
                listener(identity, status)
            except Exception:
                logger.exception("Submission state listener failed for %s", identity.key)
