"""
Shared test fixtures for pytest
"""

import pytest

from crash_pilot.config import AgentConfig
from crash_pilot.game.rounds import RoundTracker
from crash_pilot.ledger.client import (
    BET_EVENTS,
    CASHOUT_EVENTS,
    CONFIRMED,
    GET_CURRENT_ROUND_ID,
    GET_ROUND_DATA,
    ROUND_EVENTS,
)

NOW = 1_700_000_000
BETTOR = "0x00000000000000000000000000000000000000B1"


class ManualClock:
    def __init__(self, now: int = NOW):
        self.current = now

    def now(self) -> int:
        return self.current

    def advance(self, seconds: int):
        self.current += seconds


class FakeLedger:
    """In-memory stand-in for the chain. Everything confirms unless told otherwise."""

    def __init__(self, address: str = BETTOR):
        self.address = address
        self.current_round_id = 0
        self.rounds: dict[int, list] = {}
        self.balance = 0
        self.events = {BET_EVENTS: [], CASHOUT_EVENTS: [], ROUND_EVENTS: []}
        self.submitted: list[tuple] = []
        self.confirmation: dict[str, str] = {}   # function id -> status
        self.submit_errors: dict[str, Exception] = {}
        self.view_errors: list[Exception] = []
        self.balance_errors: list[Exception] = []
        self.on_submit: dict = {}                # function id -> hook(ledger, args)
        self._statuses: dict[str, str] = {}

    # -- setup helpers --

    def add_round(self, round_id: int, start_time: int, crash_point: int = 0,
                  crashed: bool = False):
        self.rounds[round_id] = [round_id, start_time, crash_point, crashed]
        self.current_round_id = max(self.current_round_id, round_id)

    def crash(self, round_id: int, crash_point: int):
        self.rounds[round_id][2] = crash_point
        self.rounds[round_id][3] = True

    def add_bet(self, player: str, round_id: int, amount: int, timestamp=None):
        self.events[BET_EVENTS].append({
            "type": BET_EVENTS,
            "data": {"player": player, "round_id": round_id, "amount": amount},
            "timestamp": timestamp,
        })

    def add_cashout(self, player: str, round_id: int, multiplier: int, win_amount: int):
        self.events[CASHOUT_EVENTS].append({
            "type": CASHOUT_EVENTS,
            "data": {"player": player, "round_id": round_id,
                     "multiplier": multiplier, "win_amount": win_amount},
        })

    def add_round_end(self, round_id: int, crash_point: int):
        self.events[ROUND_EVENTS].append({
            "type": ROUND_EVENTS,
            "data": {"round_id": round_id, "crash_point": crash_point},
        })

    def calls(self, function_id: str) -> list:
        return [args for fn, args in self.submitted if fn == function_id]

    # -- LedgerClient --

    def read_view(self, function_id, args=()):
        if self.view_errors:
            raise self.view_errors.pop(0)
        if function_id == GET_CURRENT_ROUND_ID:
            return [self.current_round_id]
        if function_id == GET_ROUND_DATA:
            return list(self.rounds[args[0]])
        raise ValueError(function_id)

    def submit(self, function_id, args=()):
        if function_id in self.submit_errors:
            raise self.submit_errors[function_id]
        self.submitted.append((function_id, list(args)))
        handle = f"0xtx{len(self.submitted)}"
        self._statuses[handle] = self.confirmation.get(function_id, CONFIRMED)
        hook = self.on_submit.get(function_id)
        if hook and self._statuses[handle] == CONFIRMED:
            hook(self, list(args))
        return handle

    def await_confirmation(self, handle, timeout_seconds):
        return self._statuses[handle]

    def read_events(self, handle, limit):
        return self.events[handle][-limit:] if limit > 0 else []

    def read_balance(self, address):
        if self.balance_errors:
            raise self.balance_errors.pop(0)
        return self.balance


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def tracker(ledger, clock, sleeps):
    return RoundTracker(ledger, clock, sleep=sleeps.append)


@pytest.fixture
def config(tmp_path):
    cfg = AgentConfig()
    cfg.game.contract_address = "0x00000000000000000000000000000000000000C0"
    cfg.wallet.private_key = ""
    cfg.data_dir = str(tmp_path)
    return cfg
