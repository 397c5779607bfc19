"""
Bet Session Controller - place it, ride it, bail out (or don't).

One wager at a time:

    IDLE -> PLACED -> WON_CASHED_OUT -> IDLE
                   -> LOST_TO_CRASH  -> IDLE

Each call to step() is one iteration of the decision loop: it takes the
round record just read, may submit a transaction, and returns what happened.
The controller never sleeps and never keeps score; the runner does both.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from crash_pilot.errors import (
    CrashPilotError,
    InvalidRoundDataError,
    SubmissionError,
    TransientReadError,
)
from crash_pilot.game.multiplier import estimate
from crash_pilot.game.rounds import RoundPhase, RoundRecord, RoundTracker
from crash_pilot.ledger.client import CASHOUT, CONFIRMED, PLACE_BET, LedgerClient


class SessionState(Enum):
    IDLE = "idle"
    PLACED = "placed"
    WON_CASHED_OUT = "won_cashed_out"
    LOST_TO_CRASH = "lost_to_crash"


@dataclass
class BetSession:
    round_id: int
    stake: int               # smallest unit
    target_multiplier: int   # x100
    initial_balance: int     # balance right before place_bet
    state: SessionState = SessionState.PLACED
    cashout_tx: Optional[str] = None  # set once a cashout confirmed


@dataclass(frozen=True)
class SessionOutcome:
    round_id: int
    outcome: SessionState
    stake: int
    profit: int  # signed, smallest unit
    target_multiplier: int

    @property
    def won(self) -> bool:
        return self.outcome is SessionState.WON_CASHED_OUT


@dataclass
class StepResult:
    phase: Optional[RoundPhase] = None
    submitted: Optional[str] = None  # function id of the call sent this step
    outcome: Optional[SessionOutcome] = None
    error: Optional[CrashPilotError] = None


class BetPolicy(Protocol):
    def choose(self, record: RoundRecord) -> tuple[int, int]:
        """Return (stake, target_multiplier) for a round."""
        ...


class RandomBetPolicy:
    """Uniform stake in [min_stake, max_stake], target in [min_target, max_target]."""

    def __init__(self, min_stake: int = 1_000_000, max_stake: int = 10_000_000,
                 min_target: int = 110, max_target: int = 200,
                 rng: Optional[random.Random] = None):
        self.min_stake = min_stake
        self.max_stake = max_stake
        self.min_target = min_target
        self.max_target = max_target
        self.rng = rng or random.Random()

    def choose(self, record: RoundRecord) -> tuple[int, int]:
        stake = self.rng.randint(self.min_stake, self.max_stake)
        target = self.rng.randint(self.min_target, self.max_target)
        return stake, target


class FixedBetPolicy:
    def __init__(self, stake: int, target_multiplier: int):
        self.stake = stake
        self.target_multiplier = target_multiplier

    def choose(self, record: RoundRecord) -> tuple[int, int]:
        return self.stake, self.target_multiplier


class BetSessionController:
    """Owns the single in-flight BetSession of one wallet."""

    def __init__(self, ledger: LedgerClient, tracker: RoundTracker, policy: BetPolicy,
                 estimator: Callable[[int], int] = estimate,
                 confirmation_timeout: int = 20):
        self.ledger = ledger
        self.tracker = tracker
        self.policy = policy
        self.estimator = estimator
        self.confirmation_timeout = confirmation_timeout
        self.session: Optional[BetSession] = None

    @property
    def state(self) -> SessionState:
        return self.session.state if self.session else SessionState.IDLE

    def step(self, record: RoundRecord) -> StepResult:
        phase = self.tracker.phase(record)
        session = self.session

        if session is None:
            if phase is RoundPhase.SCHEDULED:
                return self._place_bet(record, phase)
            return StepResult(phase)

        if session.cashout_tx:
            return self._settle_win(phase)

        if record.round_id > session.round_id:
            # The round ended and was processed between two polls.
            return self._close_lost(phase)

        if record.round_id == session.round_id:
            if phase is RoundPhase.CRASHED:
                return self._close_lost(phase)
            if phase is RoundPhase.ACTIVE:
                elapsed = self.tracker.clock.now() - record.start_time
                if self.estimator(elapsed) >= session.target_multiplier:
                    return self._cashout(phase)

        return StepResult(phase)

    def _confirm(self, function_id: str, args=()) -> str:
        tx_hash = self.ledger.submit(function_id, args)
        status = self.ledger.await_confirmation(tx_hash, self.confirmation_timeout)
        if status != CONFIRMED:
            raise SubmissionError(f"{function_id} {status}", function_id, tx_hash)
        return tx_hash

    def _place_bet(self, record: RoundRecord, phase: RoundPhase) -> StepResult:
        stake, target = self.policy.choose(record)

        try:
            balance = self.ledger.read_balance(self.ledger.address)
        except TransientReadError as e:
            return StepResult(phase, error=e)

        try:
            self._confirm(PLACE_BET, [stake])
        except (SubmissionError, TransientReadError) as e:
            return StepResult(phase, submitted=PLACE_BET, error=e)

        self.session = BetSession(
            round_id=record.round_id,
            stake=stake,
            target_multiplier=target,
            initial_balance=balance,
        )
        return StepResult(phase, submitted=PLACE_BET)

    def _cashout(self, phase: RoundPhase) -> StepResult:
        session = self.session
        try:
            session.cashout_tx = self._confirm(CASHOUT)
        except (SubmissionError, TransientReadError) as e:
            # A cashout sent after the crash landed on-chain is expected to
            # fail. Check before deciding whether to retry.
            try:
                latest = self.tracker.read_round(session.round_id)
            except (TransientReadError, InvalidRoundDataError):
                return StepResult(phase, submitted=CASHOUT, error=e)
            if latest.crashed:
                result = self._close_lost(RoundPhase.CRASHED)
                result.submitted = CASHOUT
                result.error = e
                return result
            return StepResult(phase, submitted=CASHOUT, error=e)

        result = self._settle_win(phase)
        result.submitted = CASHOUT
        return result

    def _settle_win(self, phase: RoundPhase) -> StepResult:
        session = self.session
        try:
            final_balance = self.ledger.read_balance(self.ledger.address)
        except TransientReadError as e:
            # Cashout is confirmed, only the balance snapshot is missing.
            return StepResult(phase, error=e)

        session.state = SessionState.WON_CASHED_OUT
        outcome = SessionOutcome(
            round_id=session.round_id,
            outcome=SessionState.WON_CASHED_OUT,
            stake=session.stake,
            profit=final_balance - session.initial_balance,
            target_multiplier=session.target_multiplier,
        )
        self.session = None
        return StepResult(phase, outcome=outcome)

    def _close_lost(self, phase: RoundPhase) -> StepResult:
        session = self.session
        session.state = SessionState.LOST_TO_CRASH
        outcome = SessionOutcome(
            round_id=session.round_id,
            outcome=SessionState.LOST_TO_CRASH,
            stake=session.stake,
            profit=-session.stake,
            target_multiplier=session.target_multiplier,
        )
        self.session = None
        return StepResult(phase, outcome=outcome)
