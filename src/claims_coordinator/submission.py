from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .errors import ClaimError, ClaimErrorKind, classify_error
from .formatting import build_tx_link, format_error_message, format_success_message
from .gateway import LedgerGateway, claim_params
from .invalidation import CacheTopic, InvalidationBus
from .notifier import Notifier
from .state import SubmissionStateStore
from .types import ClaimIdentity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmitResult:
    identity: ClaimIdentity
    tx_hash: str | None = None
    error: ClaimError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.tx_hash is not None


class ClaimSubmitter:
    """Submits claim transactions with at most one write in flight per identity."""

    def __init__(
        self,
        gateway: LedgerGateway,
        store: SubmissionStateStore,
        bus: InvalidationBus,
        notifier: Notifier,
        timeout: float = 120.0,
        grace_period: float = 30.0,
        explorer_tx_base: str = "",
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.bus = bus
        self.notifier = notifier
        self.timeout = timeout
        self.grace_period = grace_period
        self.explorer_tx_base = explorer_tx_base
        self.writes = 0

    async def submit(self, identity: ClaimIdentity) -> SubmitResult:
        try:
            self.store.begin_submit(identity)
        except ClaimError as exc:
            # Nothing was sent; the in-flight submission (or the confirmed one)
            # already owns the user-facing outcome for this identity.
            logger.info("Rejected claim %s: %s", identity.key, exc.kind.value)
            return SubmitResult(identity, error=exc)

        try:
            tx_hash = await self._write(identity)
        except ClaimError as exc:
            return await self._on_failure(identity, exc)
        except Exception as exc:
            return await self._on_failure(identity, classify_error(exc))

        self.store.confirm(identity, tx_hash)
        logger.info("Claim %s confirmed tx=%s", identity.key, tx_hash)
        self.bus.invalidate(CacheTopic.CLAIMS, "claim confirmed", identity)
        self.bus.invalidate(CacheTopic.BALANCE, "claim confirmed", identity)
        await self._notify(format_success_message(identity, build_tx_link(self.explorer_tx_base, tx_hash)))
        return SubmitResult(identity, tx_hash=tx_hash)

    async def _write(self, identity: ClaimIdentity) -> str:
        self.writes += 1
        task = asyncio.ensure_future(self.gateway.submit_claim(identity, claim_params(identity)))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Claim %s not acknowledged after %.1fs; waiting up to %.1fs more",
                identity.key,
                self.timeout,
                self.grace_period,
            )
        try:
            return await asyncio.wait_for(task, timeout=self.grace_period)
        except asyncio.TimeoutError:
            raise ClaimError(
                ClaimErrorKind.TIMEOUT,
                f"Claim {identity.key} not acknowledged within {self.timeout + self.grace_period:.0f}s",
            ) from None

    async def _on_failure(self, identity: ClaimIdentity, error: ClaimError) -> SubmitResult:
        self.store.fail(identity, error)
        logger.warning("Claim %s failed: %s %s", identity.key, error.kind.value, error.message)
        # Timeouts stay silent and retryable; the listener and next discovery reconcile them.
        if error.kind is not ClaimErrorKind.TIMEOUT:
            await self._notify(format_error_message(identity, error))
        self.bus.invalidate(
            CacheTopic.CLAIMS,
            f"claim failed: {error.kind.value}",
            identity,
            urgent=error.kind is ClaimErrorKind.ALREADY_CLAIMED,
        )
        return SubmitResult(identity, error=error)

    async def _notify(self, text: str) -> None:
        try:
            await self.notifier.send(text)
        except Exception as exc:
            logger.exception("Failed to send claim notification: %s", exc)
