from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from .calculator import to_amount
from .errors import ClaimError, ClaimErrorKind, GatewayRevert, GatewayUnavailable
from .types import (
    ClaimDomain,
    ClaimIdentity,
    MarketKind,
    MarketSummary,
    PositionRead,
    SeasonPayoutState,
    Side,
)

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class LedgerGateway(Protocol):
    async def enumerate_markets(self, season_ids: list[int] | None = None) -> list[MarketSummary]: ...

    async def read_position(self, market_id: str, account: str, side: Side) -> PositionRead: ...

    async def read_season_payout_state(self, season_id: int) -> SeasonPayoutState: ...

    async def is_participant(self, season_id: int, account: str) -> bool: ...

    async def is_consolation_claimed(self, season_id: int, account: str) -> bool: ...

    async def current_season_id(self) -> int | None: ...

    async def submit_claim(self, identity: ClaimIdentity, params: dict[str, Any]) -> str: ...


def claim_params(identity: ClaimIdentity) -> dict[str, Any]:
    """Arguments for the domain-specific ledger write."""
    params: dict[str, Any] = {"type": identity.domain.value, "seasonId": identity.season_id}
    if identity.domain is ClaimDomain.MARKET_PAYOUT:
        params["marketId"] = identity.market_id
        params["prediction"] = identity.side is Side.YES
    elif identity.domain is ClaimDomain.POSITION_REDEMPTION:
        params["player"] = identity.player
    return params


def parse_market(row: dict[str, Any]) -> MarketSummary:
    winning = row.get("winningSide", row.get("outcome"))
    player = row.get("player") or None
    return MarketSummary(
        market_id=str(row["id"]),
        season_id=int(row.get("seasonId", row.get("raffleId", 0))),
        kind=MarketKind(str(row.get("kind", MarketKind.FIXED_ODDS.value)).lower()),
        settled=bool(row.get("settled", row.get("resolved", False))),
        player=str(player) if player else None,
        winning_side=Side.parse(winning) if winning is not None else None,
    )


def parse_position(row: dict[str, Any]) -> PositionRead:
    return PositionRead(
        amount=to_amount(row.get("amount")),
        payout=to_amount(row.get("payout")),
        claimed=bool(row.get("claimed", False)),
    )


def parse_season_payout_state(row: dict[str, Any]) -> SeasonPayoutState:
    winner = row.get("grandWinner")
    if not winner or str(winner).lower() == ZERO_ADDRESS:
        winner = None
    return SeasonPayoutState(
        funded=bool(row.get("funded", False)),
        grand_winner=str(winner) if winner else None,
        grand_amount=to_amount(row.get("grandAmount")),
        grand_claimed=bool(row.get("grandClaimed", False)),
        consolation_amount=to_amount(row.get("consolationAmount")),
        total_participants=int(row.get("totalParticipants", 0) or 0),
    )


class HttpLedgerGateway:
    """LedgerGateway backed by a ledger relay service speaking JSON over HTTP."""

    def __init__(
        self,
        api_base: str,
        timeout: float = 15.0,
        retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.retries = max(1, retries)
        self._client = httpx.AsyncClient(base_url=self.api_base, timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def enumerate_markets(self, season_ids: list[int] | None = None) -> list[MarketSummary]:
        if season_ids is None:
            rows = await self._get("/markets")
        elif not season_ids:
            return []
        else:
            rows = []
            for season_id in season_ids:
                rows.extend(await self._get("/markets", params={"season": season_id}))
        if isinstance(rows, dict):
            rows = rows.get("markets", [])
        markets: list[MarketSummary] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                markets.append(parse_market(row))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed market row %s: %s", row.get("id"), exc)
        return markets

    async def read_position(self, market_id: str, account: str, side: Side) -> PositionRead:
        data = await self._get(f"/markets/{market_id}/positions/{account}", params={"side": side.value})
        return parse_position(data)

    async def read_season_payout_state(self, season_id: int) -> SeasonPayoutState:
        return parse_season_payout_state(await self._get(f"/seasons/{season_id}/payouts"))

    async def is_participant(self, season_id: int, account: str) -> bool:
        data = await self._get(f"/seasons/{season_id}/participants/{account}")
        return bool(data.get("participant", False))

    async def is_consolation_claimed(self, season_id: int, account: str) -> bool:
        data = await self._get(f"/seasons/{season_id}/consolation/{account}")
        return bool(data.get("claimed", False))

    async def current_season_id(self) -> int | None:
        data = await self._get("/seasons/current")
        value = data.get("seasonId") if isinstance(data, dict) else None
        return int(value) if value is not None else None

    async def submit_claim(self, identity: ClaimIdentity, params: dict[str, Any]) -> str:
        # Writes are never retried here; a repeated POST could pay gas twice.
        # The submitter owns the deadline, so the client read timeout is lifted.
        try:
            response = await self._client.post("/claims", json=params, timeout=None)
        except httpx.TimeoutException as exc:
            raise ClaimError(ClaimErrorKind.TIMEOUT, f"Claim submission timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise GatewayUnavailable(f"Claim submission failed to reach ledger: {exc}") from exc

        payload = _json_or_none(response)
        if response.is_error or (isinstance(payload, dict) and payload.get("error")):
            raise _revert_from_payload(payload, response)
        if not isinstance(payload, dict) or not payload.get("txHash"):
            raise GatewayRevert(f"Ledger relay returned no transaction hash for {identity.key}")
        return str(payload["txHash"])

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        delay = 0.5
        for attempt in range(self.retries):
            try:
                response = await self._client.get(path, params=params)
            except httpx.TransportError as exc:
                failure = str(exc) or type(exc).__name__
            else:
                if response.status_code != 429 and response.status_code < 500:
                    # Other 4xx responses are not transient; let the caller see them.
                    response.raise_for_status()
                    return response.json()
                failure = f"HTTP {response.status_code}"

            if attempt == self.retries - 1:
                raise GatewayUnavailable(f"GET {path} failed: {failure}")
            logger.warning("Ledger read %s attempt %d failed: %s", path, attempt + 1, failure)
            await asyncio.sleep(delay)
            delay *= 2
        raise GatewayUnavailable(f"GET {path} failed")


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _revert_from_payload(payload: Any, response: httpx.Response) -> GatewayRevert:
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        code = error.get("code")
        message = str(error.get("message") or error.get("reason") or code or "Claim reverted")
        return GatewayRevert(message, code=str(code) if code is not None else None)
    if isinstance(error, str):
        return GatewayRevert(error)
    return GatewayRevert(f"Ledger relay returned HTTP {response.status_code}: {response.text[:200]}")
