"""
Event Aggregator - who bet, who bailed, who got rekt.

Folds the contract's bet / cashout / round event logs into per-round stats
and per-wallet histories.

The logs are read as "most recent N entries per handle". A bet whose crash
event has already scrolled out of that window stays Active, and a cashout
whose bet scrolled out is dropped. Reading older history needs paginated
fetches, which this module does not do.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence

from crash_pilot.ledger.client import BET_EVENTS, CASHOUT_EVENTS, ROUND_EVENTS, LedgerClient

DEFAULT_HANDLES = (BET_EVENTS, CASHOUT_EVENTS, ROUND_EVENTS)
UNITS_PER_COIN = 100_000_000


def _as_int(value) -> int:
    return int(value) if value not in (None, "") else 0


@dataclass(frozen=True)
class GameEvent:
    kind: str  # one of the event handles
    round_id: int
    player: str = ""
    amount: int = 0       # stake, smallest unit
    multiplier: int = 0   # x100
    win_amount: int = 0   # smallest unit
    crash_point: int = 0  # x100
    timestamp: Optional[int] = None

    @classmethod
    def from_raw(cls, raw: dict) -> "GameEvent":
        data = raw.get("data", {})
        return cls(
            kind=raw["type"],
            round_id=_as_int(data.get("round_id")),
            player=data.get("player", ""),
            amount=_as_int(data.get("amount")),
            multiplier=_as_int(data.get("multiplier")),
            win_amount=_as_int(data.get("win_amount")),
            crash_point=_as_int(data.get("crash_point")),
            timestamp=raw.get("timestamp"),
        )


@dataclass(frozen=True)
class RoundStats:
    round_id: int
    total_bets: float = 0.0
    total_payouts: float = 0.0
    bet_count: int = 0
    cashout_count: int = 0
    participants: frozenset = frozenset()
    crash_point: Optional[float] = None

    @property
    def profit(self) -> float:
        """House profit for the round."""
        return self.total_bets - self.total_payouts


@dataclass
class Participant:
    address: str
    bet_amount: float
    cashout_multiplier: Optional[float] = None
    claimed: bool = False


class BetStatus(Enum):
    ACTIVE = "Active"
    WON = "Won"
    LOST = "Lost"


@dataclass(frozen=True)
class BetOutcome:
    round_id: int
    bet_amount: float
    status: BetStatus = BetStatus.ACTIVE
    cashout_multiplier: Optional[float] = None
    win_amount: Optional[float] = None
    timestamp: Optional[int] = None

    @property
    def profit(self) -> float:
        if self.status is BetStatus.WON:
            return (self.win_amount or 0.0) - self.bet_amount
        if self.status is BetStatus.LOST:
            return -self.bet_amount
        return 0.0


@dataclass(frozen=True)
class WalletHistory:
    wallet: str
    outcomes: tuple = field(default_factory=tuple)  # newest round first

    def __getitem__(self, round_id: int) -> BetOutcome:
        for outcome in self.outcomes:
            if outcome.round_id == round_id:
                return outcome
        raise KeyError(round_id)

    def __contains__(self, round_id: int) -> bool:
        return any(o.round_id == round_id for o in self.outcomes)

    def __iter__(self):
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    @property
    def wins(self) -> int:
        return sum(1 for o in self.outcomes if o.status is BetStatus.WON)

    @property
    def losses(self) -> int:
        return sum(1 for o in self.outcomes if o.status is BetStatus.LOST)

    @property
    def win_rate(self) -> float:
        settled = self.wins + self.losses
        if settled == 0:
            return 0.0
        return self.wins / settled

    @property
    def profit(self) -> float:
        return sum(o.profit for o in self.outcomes)

    def get_summary(self) -> dict:
        return {
            "total_rounds": len(self.outcomes),
            "wins": self.wins,
            "losses": self.losses,
            "win_rate": f"{self.win_rate:.1%}",
            "profit": self.profit,
        }


class EventAggregator:
    """Reads the event logs and turns them into stats."""

    def __init__(self, ledger: LedgerClient, units_per_coin: int = UNITS_PER_COIN):
        self.ledger = ledger
        self.units_per_coin = units_per_coin

    def to_coins(self, units: int) -> float:
        return units / self.units_per_coin

    def fetch_window(self, handles: Sequence[str] = DEFAULT_HANDLES,
                     limit: int = 100) -> list[GameEvent]:
        """Up to `limit` most recent events per handle, in handle order."""
        events = []
        for handle in handles:
            events.extend(GameEvent.from_raw(raw) for raw in self.ledger.read_events(handle, limit))
        return events

    def aggregate(self, events: Iterable[GameEvent], round_id: int,
                  crash_point: Optional[int] = None) -> RoundStats:
        """
        Per-round totals in display units.

        `crash_point` (x100, from the round record) wins over a round event
        found in the window.
        """
        total_bets = 0
        total_payouts = 0
        bet_count = 0
        cashout_count = 0
        participants = set()
        window_crash = None

        for event in events:
            if event.round_id != round_id:
                continue
            if event.kind == BET_EVENTS:
                total_bets += event.amount
                bet_count += 1
                participants.add(event.player.lower())
            elif event.kind == CASHOUT_EVENTS:
                total_payouts += event.win_amount
                cashout_count += 1
            elif event.kind == ROUND_EVENTS and event.crash_point > 0:
                window_crash = event.crash_point

        if crash_point is None:
            crash_point = window_crash

        return RoundStats(
            round_id=round_id,
            total_bets=self.to_coins(total_bets),
            total_payouts=self.to_coins(total_payouts),
            bet_count=bet_count,
            cashout_count=cashout_count,
            participants=frozenset(participants),
            crash_point=crash_point / 100 if crash_point is not None else None,
        )

    def participants(self, events: Iterable[GameEvent], round_id: int) -> list[Participant]:
        """Bettors of one round, in the order they bet."""
        by_address: dict[str, Participant] = {}
        cashouts = []

        for event in events:
            if event.round_id != round_id:
                continue
            if event.kind == BET_EVENTS:
                by_address[event.player.lower()] = Participant(
                    address=event.player,
                    bet_amount=self.to_coins(event.amount),
                )
            elif event.kind == CASHOUT_EVENTS:
                cashouts.append(event)

        for event in cashouts:
            participant = by_address.get(event.player.lower())
            if participant:
                participant.cashout_multiplier = event.multiplier / 100
                participant.claimed = True

        return list(by_address.values())

    def build_wallet_history(self, events: Iterable[GameEvent], wallet: str) -> WalletHistory:
        """
        One outcome per round the wallet bet in.

        A bet without a cashout only counts as Lost once a round event with a
        crash point shows up for that round. Otherwise it is still Active.
        """
        wallet_key = wallet.lower()
        events = list(events)
        outcomes: dict[int, BetOutcome] = {}

        for event in events:
            if event.kind == BET_EVENTS and event.player.lower() == wallet_key:
                outcomes[event.round_id] = BetOutcome(
                    round_id=event.round_id,
                    bet_amount=self.to_coins(event.amount),
                    timestamp=event.timestamp,
                )

        for event in events:
            if event.kind != CASHOUT_EVENTS or event.player.lower() != wallet_key:
                continue
            bet = outcomes.get(event.round_id)
            if bet:
                outcomes[event.round_id] = BetOutcome(
                    round_id=bet.round_id,
                    bet_amount=bet.bet_amount,
                    status=BetStatus.WON,
                    cashout_multiplier=event.multiplier / 100,
                    win_amount=self.to_coins(event.win_amount),
                    timestamp=bet.timestamp,
                )

        crashed_rounds = {
            e.round_id for e in events if e.kind == ROUND_EVENTS and e.crash_point > 0
        }
        for round_id, bet in outcomes.items():
            if bet.status is BetStatus.ACTIVE and round_id in crashed_rounds:
                outcomes[round_id] = BetOutcome(
                    round_id=bet.round_id,
                    bet_amount=bet.bet_amount,
                    status=BetStatus.LOST,
                    timestamp=bet.timestamp,
                )

        ordered = sorted(outcomes.values(), key=lambda o: o.round_id, reverse=True)
        return WalletHistory(wallet=wallet, outcomes=tuple(ordered))
