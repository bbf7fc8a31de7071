"""Eligibility and amount derivation for every claim domain.

Everything here is pure: raw ledger reads in, ``ClaimRecord`` (or ``None``)
out. Amounts are Python ints in the smallest ledger unit and never pass
through float.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from .types import (
    ClaimIdentity,
    ClaimRecord,
    MarketSummary,
    PositionRead,
    SeasonPayoutState,
    Side,
    normalize_address,
)

BPS_DENOMINATOR = 10_000


def to_amount(value: Any) -> int:
    """Parse a ledger amount (int or integer string) without float coercion."""
    if isinstance(value, bool):
        raise TypeError("Boolean is not a ledger amount")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        amount = int(text, 16) if text.lower().startswith("0x") else int(text)
    elif isinstance(value, Decimal) and value == value.to_integral_value():
        amount = int(value)
    elif value is None:
        return 0
    else:
        raise TypeError(f"Unsupported ledger amount type: {type(value).__name__}")
    if amount < 0:
        raise ValueError(f"Ledger amount must be non-negative, got {amount}")
    return amount


def same_address(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return normalize_address(a) == normalize_address(b)


def market_payout_record(
    market: MarketSummary, side: Side, position: PositionRead
) -> ClaimRecord | None:
    if position.amount <= 0 or position.payout <= 0 or position.claimed:
        return None
    return ClaimRecord(
        identity=ClaimIdentity.market_payout(market.season_id, market.market_id, side),
        amount=position.payout,
        already_claimed=False,
        counterpart=market.player,
        winning_side=side,
        market_id=market.market_id,
    )


def redemption_fee(shares: int, fee_bps: int) -> int:
    if not 0 <= fee_bps <= BPS_DENOMINATOR:
        raise ValueError(f"Fee must be between 0 and {BPS_DENOMINATOR} bps, got {fee_bps}")
    return shares * fee_bps // BPS_DENOMINATOR


def position_redemption_record(
    market: MarketSummary, position: PositionRead, fee_bps: int = 0
) -> ClaimRecord | None:
    # Only the winning side is ever read for redemptions.
    if not market.settled or market.winning_side is None or not market.player:
        return None
    if position.amount <= 0 or position.claimed:
        return None
    fee = redemption_fee(position.amount, fee_bps)
    net = position.amount - fee
    if net <= 0:
        return None
    return ClaimRecord(
        identity=ClaimIdentity.position_redemption(market.season_id, market.player),
        amount=net,
        already_claimed=False,
        counterpart=market.player,
        winning_side=market.winning_side,
        market_id=market.market_id,
        gross_amount=position.amount,
        fee=fee,
    )


def is_grand_winner(account: str, state: SeasonPayoutState) -> bool:
    return same_address(account, state.grand_winner)


def grand_record(season_id: int, account: str, state: SeasonPayoutState) -> ClaimRecord | None:
    if not state.funded or state.grand_claimed or not is_grand_winner(account, state):
        return None
    if state.grand_amount <= 0:
        return None
    return ClaimRecord(
        identity=ClaimIdentity.raffle_grand(season_id),
        amount=state.grand_amount,
        already_claimed=False,
        counterpart=state.grand_winner,
    )


def consolation_amount(pool: int, total_participants: int) -> int:
    """Per-claimant share of the consolation pool; the remainder is dust."""
    if total_participants <= 1 or pool <= 0:
        return 0
    return pool // (total_participants - 1)


def consolation_record(
    season_id: int,
    account: str,
    state: SeasonPayoutState,
    is_participant: bool,
    already_claimed: bool,
) -> ClaimRecord | None:
    if not state.funded or not is_participant or already_claimed:
        return None
    if is_grand_winner(account, state):
        return None
    amount = consolation_amount(state.consolation_amount, state.total_participants)
    if amount <= 0:
        return None
    return ClaimRecord(
        identity=ClaimIdentity.raffle_consolation(season_id),
        amount=amount,
        already_claimed=False,
        counterpart=state.grand_winner,
    )


def consolation_may_apply(account: str, state: SeasonPayoutState) -> bool:
    """Cheap pre-check so discovery can skip the participant/claimed reads."""
    return (
        state.funded
        and state.total_participants > 1
        and state.consolation_amount > 0
        and not is_grand_winner(account, state)
    )
