"""
Round Tracker - where are we in the game right now?

Reads the current round id and that round's record from the contract views,
classifies the phase against the ledger clock, and can kick a crashed round
over to the next one.

Phase is never cached. It is recomputed from (record, now) on every call,
because the start time is set by the chain and a local clock drifting a
little must not push the state machine out of sync.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from crash_pilot.clock import Clock
from crash_pilot.errors import (
    InvalidRoundDataError,
    RoundTransitionTimeout,
    SubmissionError,
    TransientReadError,
)
from crash_pilot.ledger.client import (
    CONFIRMED,
    GET_CURRENT_ROUND_ID,
    GET_ROUND_DATA,
    PROCESS_ROUND,
    LedgerClient,
)

SKIPPED = "skipped"


class RoundPhase(Enum):
    SCHEDULED = "scheduled"  # betting window open
    ACTIVE = "active"        # multiplier climbing
    CRASHED = "crashed"      # over, waiting for process_round


def _parse_uint(value, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidRoundDataError(f"{name} is a bool, expected an integer")
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    if not isinstance(value, int) or value < 0:
        raise InvalidRoundDataError(f"{name} is not a non-negative integer: {value!r}")
    return value


@dataclass(frozen=True)
class RoundRecord:
    round_id: int
    start_time: int   # seconds, ledger clock
    crash_point: int  # multiplier x100, meaningful once crashed
    crashed: bool

    @classmethod
    def from_view(cls, values: Sequence, expected_id: Optional[int] = None) -> "RoundRecord":
        """Validate the (id, start_time, crash_point, crashed) view tuple."""
        if not isinstance(values, (list, tuple)) or len(values) != 4:
            raise InvalidRoundDataError(f"Expected 4 round fields, got {values!r}")

        raw_id, raw_start, raw_crash, crashed = values
        round_id = _parse_uint(raw_id, "round_id")
        start_time = _parse_uint(raw_start, "start_time")
        crash_point = _parse_uint(raw_crash, "crash_point")

        if not isinstance(crashed, bool):
            raise InvalidRoundDataError(f"crashed flag is not a bool: {crashed!r}")
        if expected_id is not None and round_id != expected_id:
            raise InvalidRoundDataError(
                f"Asked for round {expected_id}, contract returned round {round_id}"
            )

        return cls(round_id, start_time, crash_point, crashed)

    @property
    def crash_multiplier(self) -> Optional[float]:
        return self.crash_point / 100 if self.crashed else None


def classify_phase(record: RoundRecord, now: int) -> RoundPhase:
    if record.crashed:
        return RoundPhase.CRASHED
    if now < record.start_time:
        return RoundPhase.SCHEDULED
    return RoundPhase.ACTIVE


@dataclass(frozen=True)
class PhaseChange:
    round_id: int
    phase: RoundPhase


@dataclass
class TransactionOutcome:
    status: str  # "confirmed" or "skipped"
    tx_hash: Optional[str] = None
    new_round_id: Optional[int] = None


class RoundTracker:
    """Polls the contract views and reports phase transitions."""

    def __init__(self, ledger: LedgerClient, clock: Clock,
                 confirmation_timeout: int = 20,
                 transition_attempts: int = 5,
                 transition_delay: float = 3.0,
                 sleep=time.sleep):
        self.ledger = ledger
        self.clock = clock
        self.confirmation_timeout = confirmation_timeout
        self.transition_attempts = transition_attempts
        self.transition_delay = transition_delay
        self.sleep = sleep
        self._last_seen: Optional[PhaseChange] = None

    def current_round_id(self) -> int:
        values = self.ledger.read_view(GET_CURRENT_ROUND_ID)
        if len(values) != 1:
            raise InvalidRoundDataError(f"Expected a single round id, got {values!r}")
        return _parse_uint(values[0], "current_round_id")

    def read_round(self, round_id: int) -> RoundRecord:
        values = self.ledger.read_view(GET_ROUND_DATA, [round_id])
        return RoundRecord.from_view(values, expected_id=round_id)

    def poll_current_round(self) -> RoundRecord:
        return self.read_round(self.current_round_id())

    def phase(self, record: RoundRecord) -> RoundPhase:
        return classify_phase(record, self.clock.now())

    def observe(self, record: RoundRecord) -> Optional[PhaseChange]:
        """Return a PhaseChange if (round, phase) differs from the last observation."""
        current = PhaseChange(record.round_id, self.phase(record))
        if current == self._last_seen:
            return None
        self._last_seen = current
        return current

    def advance_if_stalled(self, record: RoundRecord) -> TransactionOutcome:
        """
        Submit process_round for a crashed round and wait for the next one.

        Raises SubmissionError if the call is not confirmed and
        RoundTransitionTimeout if the id does not move within the budget.
        """
        if self.phase(record) is not RoundPhase.CRASHED:
            return TransactionOutcome(SKIPPED)

        tx_hash = self.ledger.submit(PROCESS_ROUND)
        status = self.ledger.await_confirmation(tx_hash, self.confirmation_timeout)
        if status != CONFIRMED:
            raise SubmissionError(f"process_round {status}", PROCESS_ROUND, tx_hash)

        new_round_id = self.wait_for_transition(record.round_id)
        return TransactionOutcome(CONFIRMED, tx_hash, new_round_id)

    def wait_for_transition(self, round_id: int) -> int:
        for _ in range(self.transition_attempts):
            self.sleep(self.transition_delay)
            try:
                new_round_id = self.current_round_id()
            except (TransientReadError, InvalidRoundDataError):
                continue
            if new_round_id > round_id:
                return new_round_id

        raise RoundTransitionTimeout(round_id, self.transition_attempts)
