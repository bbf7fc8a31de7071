from __future__ import annotations

import asyncio
from enum import Enum

import httpx

MAX_MESSAGE_LENGTH = 150


class ClaimErrorKind(str, Enum):
    ALREADY_CLAIMED = "AlreadyClaimed"
    NOT_ELIGIBLE = "NotEligible"
    SEASON_NOT_FINALIZED = "SeasonNotFinalized"
    NOT_FUNDED = "NotFunded"
    USER_REJECTED = "UserRejectedSubmission"
    INSUFFICIENT_GAS_FUNDS = "InsufficientGasFunds"
    GATEWAY_UNAVAILABLE = "GatewayUnavailable"
    ALREADY_SUBMITTING = "AlreadySubmitting"
    TIMEOUT = "Timeout"
    UNKNOWN = "Unknown"


class ClaimError(Exception):
    def __init__(self, kind: ClaimErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value


class GatewayUnavailable(ClaimError):
    def __init__(self, message: str = "Ledger gateway unavailable") -> None:
        super().__init__(ClaimErrorKind.GATEWAY_UNAVAILABLE, message)


class GatewayRevert(Exception):
    """Raised by gateway adapters when the ledger rejects a write.

    ``code`` is the structured error name when the ledger client can decode
    one (custom error selector, RPC error code), otherwise ``None`` and only
    the raw revert text is available.
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


# Structured codes as reported by the ledger client (custom error names and
# EIP-1193 provider codes).
REVERT_CODES: dict[str, ClaimErrorKind] = {
    "AlreadyClaimed": ClaimErrorKind.ALREADY_CLAIMED,
    "GrandAlreadyClaimed": ClaimErrorKind.ALREADY_CLAIMED,
    "ConsolationAlreadyClaimed": ClaimErrorKind.ALREADY_CLAIMED,
    "NotEligible": ClaimErrorKind.NOT_ELIGIBLE,
    "NotWinner": ClaimErrorKind.NOT_ELIGIBLE,
    "NotParticipant": ClaimErrorKind.NOT_ELIGIBLE,
    "SeasonNotFinalized": ClaimErrorKind.SEASON_NOT_FINALIZED,
    "MarketNotResolved": ClaimErrorKind.SEASON_NOT_FINALIZED,
    "NotFunded": ClaimErrorKind.NOT_FUNDED,
    "UserRejected": ClaimErrorKind.USER_REJECTED,
    "4001": ClaimErrorKind.USER_REJECTED,
    "InsufficientFunds": ClaimErrorKind.INSUFFICIENT_GAS_FUNDS,
    "-32000": ClaimErrorKind.INSUFFICIENT_GAS_FUNDS,
}


def truncate_message(message: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    if len(message) > limit:
        return message[:limit] + "..."
    return message


def match_legacy_revert(message: str) -> ClaimErrorKind | None:
    """Fallback for untyped revert strings from older ledger clients.

    Only consulted when no structured code is available. Keep every substring
    rule here so nothing else in the package inspects revert text.
    """
    lowered = message.lower()
    if "already claimed" in lowered or "alreadyclaimed" in lowered:
        return ClaimErrorKind.ALREADY_CLAIMED
    if "not eligible" in lowered or "noteligible" in lowered:
        return ClaimErrorKind.NOT_ELIGIBLE
    if "not finalized" in lowered or "seasonnotfinalized" in lowered:
        return ClaimErrorKind.SEASON_NOT_FINALIZED
    if "not funded" in lowered or "notfunded" in lowered:
        return ClaimErrorKind.NOT_FUNDED
    if "user rejected" in lowered or "user denied" in lowered:
        return ClaimErrorKind.USER_REJECTED
    if "insufficient funds" in lowered:
        return ClaimErrorKind.INSUFFICIENT_GAS_FUNDS
    return None


def classify_error(exc: BaseException) -> ClaimError:
    if isinstance(exc, ClaimError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ClaimError(ClaimErrorKind.TIMEOUT, "Claim submission timed out")
    if isinstance(exc, httpx.TransportError):
        return GatewayUnavailable(truncate_message(str(exc) or type(exc).__name__))

    message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
    if isinstance(exc, GatewayRevert) and exc.code is not None:
        kind = REVERT_CODES.get(exc.code)
        if kind is not None:
            return ClaimError(kind, truncate_message(message))

    kind = match_legacy_revert(message)
    if kind is not None:
        return ClaimError(kind, truncate_message(message))
    return ClaimError(ClaimErrorKind.UNKNOWN, truncate_message(message))
