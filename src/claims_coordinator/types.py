from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ClaimDomain(str, Enum):
    MARKET_PAYOUT = "market-payout"
    POSITION_REDEMPTION = "position-redemption"
    RAFFLE_GRAND = "raffle-grand"
    RAFFLE_CONSOLATION = "raffle-consolation"


class Side(str, Enum):
    YES = "yes"
    NO = "no"

    @classmethod
    def parse(cls, value: object) -> Side:
        if isinstance(value, Side):
            return value
        if isinstance(value, bool):
            return cls.YES if value else cls.NO
        text = str(value).strip().lower()
        if text in ("yes", "true", "1"):
            return cls.YES
        if text in ("no", "false", "0"):
            return cls.NO
        raise ValueError(f"Unrecognized outcome side: {value!r}")


class MarketKind(str, Enum):
    FIXED_ODDS = "fixed"
    MARKET_MAKER = "amm"


class SettlementKind(str, Enum):
    GRAND = "GrandPrizeClaimed"
    CONSOLATION = "ConsolationClaimed"


def normalize_address(address: str) -> str:
    return address.strip().lower()


@dataclass(frozen=True)
class ClaimIdentity:
    domain: ClaimDomain
    season_id: int
    market_id: str | None = None
    side: Side | None = None
    player: str | None = None

    @classmethod
    def market_payout(cls, season_id: int, market_id: str, side: Side) -> ClaimIdentity:
        return cls(ClaimDomain.MARKET_PAYOUT, int(season_id), market_id=str(market_id), side=side)

    @classmethod
    def position_redemption(cls, season_id: int, player: str) -> ClaimIdentity:
        return cls(
            ClaimDomain.POSITION_REDEMPTION,
            int(season_id),
            player=normalize_address(player),
        )

    @classmethod
    def raffle_grand(cls, season_id: int) -> ClaimIdentity:
        return cls(ClaimDomain.RAFFLE_GRAND, int(season_id))

    @classmethod
    def raffle_consolation(cls, season_id: int) -> ClaimIdentity:
        return cls(ClaimDomain.RAFFLE_CONSOLATION, int(season_id))

    @property
    def key(self) -> str:
        if self.domain is ClaimDomain.MARKET_PAYOUT:
            return f"{self.domain.value}-{self.market_id}-{self.side.value if self.side else '?'}"
        if self.domain is ClaimDomain.POSITION_REDEMPTION:
            return f"{self.domain.value}-{self.season_id}-{self.player}"
        return f"{self.domain.value}-{self.season_id}"


@dataclass(frozen=True)
class ClaimRecord:
    identity: ClaimIdentity
    amount: int
    already_claimed: bool = False
    counterpart: str | None = None
    winning_side: Side | None = None
    market_id: str | None = None
    gross_amount: int | None = None
    fee: int | None = None

    @property
    def season_id(self) -> int:
        return self.identity.season_id

    @property
    def domain(self) -> ClaimDomain:
        return self.identity.domain

    @property
    def payable(self) -> bool:
        return self.amount > 0 and not self.already_claimed


@dataclass(frozen=True)
class MarketSummary:
    market_id: str
    season_id: int
    kind: MarketKind = MarketKind.FIXED_ODDS
    settled: bool = False
    player: str | None = None
    winning_side: Side | None = None


@dataclass(frozen=True)
class PositionRead:
    amount: int
    payout: int
    claimed: bool


@dataclass(frozen=True)
class SeasonPayoutState:
    funded: bool
    grand_winner: str | None
    grand_amount: int
    grand_claimed: bool
    consolation_amount: int
    total_participants: int


@dataclass(frozen=True)
class SettlementEvent:
    kind: SettlementKind
    account: str
    season_id: int
    amount: int
    tx_hash: str | None = None
    log_index: int | None = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)
