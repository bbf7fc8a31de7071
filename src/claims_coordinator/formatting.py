from __future__ import annotations

from collections.abc import Iterable
from html import escape

from .errors import ClaimError, ClaimErrorKind
from .types import ClaimDomain, ClaimIdentity, ClaimRecord, SettlementEvent, SettlementKind

DOMAIN_LABELS = {
    ClaimDomain.MARKET_PAYOUT: "Market payout",
    ClaimDomain.POSITION_REDEMPTION: "Position redemption",
    ClaimDomain.RAFFLE_GRAND: "Grand prize",
    ClaimDomain.RAFFLE_CONSOLATION: "Consolation prize",
}

ERROR_TEXT = {
    ClaimErrorKind.ALREADY_CLAIMED: "This prize has already been claimed.",
    ClaimErrorKind.NOT_ELIGIBLE: "You are not eligible to claim this prize.",
    ClaimErrorKind.SEASON_NOT_FINALIZED: (
        "The season has not been finalized yet. Please wait for the raffle to complete."
    ),
    ClaimErrorKind.NOT_FUNDED: "The prize pool has not been funded yet.",
    ClaimErrorKind.USER_REJECTED: "Transaction was cancelled.",
    ClaimErrorKind.INSUFFICIENT_GAS_FUNDS: "Insufficient funds for gas fees.",
    ClaimErrorKind.GATEWAY_UNAVAILABLE: "The ledger could not be reached. Try again shortly.",
    ClaimErrorKind.ALREADY_SUBMITTING: "A claim for this prize is already in progress.",
    ClaimErrorKind.TIMEOUT: "The claim did not confirm in time. You can retry.",
}


def format_units(amount: int, decimals: int = 18) -> str:
    """Render a fixed-point integer amount, trimming trailing zeros."""
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(amount), 10**decimals)
    if decimals == 0 or frac == 0:
        return f"{sign}{whole}"
    frac_text = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{frac_text}"


def short_address(address: str | None) -> str:
    if not address:
        return "Unknown"
    addr = address.strip()
    if len(addr) <= 12:
        return addr
    return f"{addr[:6]}...{addr[-4:]}"


def build_tx_link(explorer_base: str, tx_hash: str | None) -> str | None:
    if not tx_hash or not explorer_base:
        return None
    return f"{explorer_base.rstrip('/')}/{tx_hash}"


def group_by_season(records: Iterable[ClaimRecord]) -> dict[int, list[ClaimRecord]]:
    grouped: dict[int, list[ClaimRecord]] = {}
    for record in sorted(records, key=lambda r: r.season_id):
        grouped.setdefault(record.season_id, []).append(record)
    return grouped


def season_subtotal(records: Iterable[ClaimRecord]) -> int:
    return sum(record.amount for record in records)


def describe_claim(identity: ClaimIdentity) -> str:
    label = DOMAIN_LABELS[identity.domain]
    if identity.domain is ClaimDomain.MARKET_PAYOUT:
        side = identity.side.value.upper() if identity.side else "?"
        return f"{label} (season #{identity.season_id}, market {identity.market_id}, {side})"
    if identity.domain is ClaimDomain.POSITION_REDEMPTION:
        return f"{label} (season #{identity.season_id}, player {short_address(identity.player)})"
    return f"{label} (season #{identity.season_id})"


def format_claim_line(record: ClaimRecord, decimals: int = 18, symbol: str = "SOF") -> str:
    line = f"{describe_claim(record.identity)}: {format_units(record.amount, decimals)} {symbol}"
    if record.fee:
        line += f" (after {format_units(record.fee, decimals)} {symbol} fee)"
    return line


def format_claims_summary(
    records: Iterable[ClaimRecord], decimals: int = 18, symbol: str = "SOF"
) -> str:
    grouped = group_by_season(records)
    if not grouped:
        return "Nothing to claim."
    lines: list[str] = []
    for season_id, rows in grouped.items():
        subtotal = format_units(season_subtotal(rows), decimals)
        lines.append(f"Season #{season_id} (subtotal {subtotal} {symbol})")
        lines.extend(f"  - {format_claim_line(r, decimals, symbol)}" for r in rows)
    return "\n".join(lines)


def describe_error(error: ClaimError) -> str:
    return ERROR_TEXT.get(error.kind, error.message)


def format_success_message(
    identity: ClaimIdentity, tx_url: str | None = None, amount_text: str | None = None
) -> str:
    text = f"✅ <b>Claim confirmed</b>\n\n{escape(describe_claim(identity))}"
    if amount_text:
        text += f"\n💵 <b>Amount:</b> {escape(amount_text)}"
    if tx_url:
        text += f'\n\n🔗 <a href="{escape(tx_url, quote=True)}">View transaction</a>'
    return text


def format_error_message(identity: ClaimIdentity, error: ClaimError) -> str:
    return (
        "⚠️ <b>Claim failed</b>\n\n"
        f"{escape(describe_claim(identity))}\n"
        f"<b>Reason:</b> {escape(describe_error(error))}"
    )


def format_settlement_message(event: SettlementEvent, decimals: int = 18, symbol: str = "SOF") -> str:
    label = "Grand prize" if event.kind is SettlementKind.GRAND else "Consolation prize"
    return (
        f"🏆 <b>{label} claimed</b>\n\n"
        f"Season #{event.season_id}\n"
        f"💵 <b>Amount:</b> {format_units(event.amount, decimals)} {escape(symbol)}\n"
        f"👤 <b>Account:</b> {escape(short_address(event.account))}"
    )
