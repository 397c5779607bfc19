"""
Session Ledger - the running scoreboard.

Rounds played, won, lost and the running P&L. Fed only by the outcomes the
session controller emits; the controller itself never touches it.
"""

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path

from crash_pilot.trading.session import SessionOutcome


@dataclass
class RoundResult:
    round_id: int
    won: bool
    stake: int
    profit: int
    target_multiplier: int
    closed_at: str


class SessionLedger:
    def __init__(self, units_per_coin: int = 100_000_000, data_dir: str = "data"):
        self.units_per_coin = units_per_coin
        self.rounds_placed = 0
        self.results: list[RoundResult] = []
        self.data_dir = Path(data_dir)

    def record_placed(self):
        self.rounds_placed += 1

    def record(self, outcome: SessionOutcome) -> RoundResult:
        result = RoundResult(
            round_id=outcome.round_id,
            won=outcome.won,
            stake=outcome.stake,
            profit=outcome.profit,
            target_multiplier=outcome.target_multiplier,
            closed_at=datetime.now().isoformat(),
        )
        self.results.append(result)
        return result

    @property
    def rounds_played(self) -> int:
        return max(self.rounds_placed, len(self.results))

    @property
    def rounds_won(self) -> int:
        return sum(1 for r in self.results if r.won)

    @property
    def rounds_lost(self) -> int:
        return sum(1 for r in self.results if not r.won)

    @property
    def total_profit(self) -> int:
        return sum(r.profit for r in self.results)

    @property
    def win_rate(self) -> float:
        if not self.results:
            return 0.0
        return self.rounds_won / len(self.results)

    @property
    def largest_win(self) -> int:
        return max((r.profit for r in self.results), default=0)

    @property
    def largest_loss(self) -> int:
        return min((r.profit for r in self.results), default=0)

    def get_summary(self) -> dict:
        """Display-ready numbers."""
        coins = self.units_per_coin
        return {
            "rounds_played": self.rounds_played,
            "rounds_won": self.rounds_won,
            "rounds_lost": self.rounds_lost,
            "win_rate": f"{self.win_rate:.1%}",
            "total_profit": f"{self.total_profit / coins:+.6f}",
            "largest_win": f"{self.largest_win / coins:+.6f}",
            "largest_loss": f"{self.largest_loss / coins:+.6f}",
        }

    def save_state(self):
        self.data_dir.mkdir(parents=True, exist_ok=True)
        state = {
            "rounds_placed": self.rounds_placed,
            "results": [asdict(r) for r in self.results],
        }
        with open(self.data_dir / "session_ledger.json", "w") as f:
            json.dump(state, f, indent=2)

    def load_state(self):
        state_file = self.data_dir / "session_ledger.json"
        if not state_file.exists():
            return

        with open(state_file) as f:
            state = json.load(f)

        self.rounds_placed = state.get("rounds_placed", 0)
        self.results = [RoundResult(**r) for r in state.get("results", [])]
