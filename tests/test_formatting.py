from claims_coordinator.errors import ClaimError, ClaimErrorKind
from claims_coordinator.formatting import (
    build_tx_link,
    describe_error,
    format_claims_summary,
    format_error_message,
    format_settlement_message,
    format_success_message,
    format_units,
    group_by_season,
    short_address,
)
from claims_coordinator.types import ClaimIdentity, ClaimRecord, SettlementEvent, SettlementKind, Side


def test_format_units() -> None:
    assert format_units(1500000000000000000) == "1.5"
    assert format_units(2 * 10**18) == "2"
    assert format_units(1) == "0.000000000000000001"
    assert format_units(1234, decimals=0) == "1234"


def test_short_address() -> None:
    assert short_address("0x1234567890abcdef") == "0x1234...cdef"
    assert short_address(None) == "Unknown"


def test_links() -> None:
    assert build_tx_link("https://explorer.example/tx/", "0xabc") == "https://explorer.example/tx/0xabc"
    assert build_tx_link("", "0xabc") is None
    assert build_tx_link("https://explorer.example/tx", None) is None


def test_claims_summary_groups_by_season_with_subtotals() -> None:
    records = [
        ClaimRecord(ClaimIdentity.raffle_consolation(2), amount=10**18),
        ClaimRecord(ClaimIdentity.market_payout(1, "7", Side.YES), amount=3 * 10**18),
        ClaimRecord(ClaimIdentity.raffle_grand(2), amount=5 * 10**17),
    ]

    assert list(group_by_season(records)) == [1, 2]
    text = format_claims_summary(records)
    assert text.splitlines()[0] == "Season #1 (subtotal 3 SOF)"
    assert "Season #2 (subtotal 1.5 SOF)" in text
    assert "Market payout (season #1, market 7, YES): 3 SOF" in text


def test_claims_summary_when_empty() -> None:
    assert format_claims_summary([]) == "Nothing to claim."


def test_success_message_contains_link() -> None:
    text = format_success_message(ClaimIdentity.raffle_grand(3), "https://explorer.example/tx/0xabc", "1 SOF")
    assert "Claim confirmed" in text
    assert "Grand prize (season #3)" in text
    assert "View transaction" in text
    assert "1 SOF" in text


def test_error_message_uses_friendly_text() -> None:
    error = ClaimError(ClaimErrorKind.SEASON_NOT_FINALIZED, "execution reverted: SeasonNotFinalized()")
    text = format_error_message(ClaimIdentity.raffle_consolation(1), error)
    assert "Claim failed" in text
    assert "has not been finalized yet" in text


def test_unknown_error_falls_back_to_message() -> None:
    assert describe_error(ClaimError(ClaimErrorKind.UNKNOWN, "weird revert")) == "weird revert"


def test_settlement_message() -> None:
    event = SettlementEvent(SettlementKind.GRAND, "0x1234567890abcdef", 4, 25 * 10**17)
    text = format_settlement_message(event)
    assert "Grand prize claimed" in text
    assert "2.5 SOF" in text
    assert "0x1234...cdef" in text
