import pytest

from crash_pilot.errors import (
    InvalidRoundDataError,
    RoundTransitionTimeout,
    SubmissionError,
    TransientReadError,
)
from crash_pilot.game.rounds import PhaseChange, RoundPhase, RoundRecord, classify_phase
from crash_pilot.ledger.client import PROCESS_ROUND, REJECTED, TIMED_OUT

from conftest import NOW


def test_record_from_view() -> None:
    record = RoundRecord.from_view([41, NOW, 0, False], expected_id=41)
    assert record == RoundRecord(41, NOW, 0, False)
    assert record.crash_multiplier is None


def test_record_accepts_numeric_strings() -> None:
    record = RoundRecord.from_view(["7", str(NOW), "132", True])
    assert record.round_id == 7
    assert record.crash_multiplier == pytest.approx(1.32)


@pytest.mark.parametrize("values", [
    [41, NOW, 0],                 # missing field
    [41, NOW, 0, False, 1],       # extra field
    [-1, NOW, 0, False],          # negative id
    [True, NOW, 0, False],        # bool where an int belongs
    [41, "soon", 0, False],       # not a number
    [41, NOW, 0, "false"],        # flag not a bool
    "41,0,0,false",
])
def test_record_rejects_bad_shapes(values) -> None:
    with pytest.raises(InvalidRoundDataError):
        RoundRecord.from_view(values)


def test_record_rejects_mismatched_id() -> None:
    with pytest.raises(InvalidRoundDataError):
        RoundRecord.from_view([40, NOW, 0, False], expected_id=41)


@pytest.mark.parametrize("start,crashed,expected", [
    (NOW + 10, False, RoundPhase.SCHEDULED),
    (NOW, False, RoundPhase.ACTIVE),
    (NOW - 30, False, RoundPhase.ACTIVE),
    (NOW + 10, True, RoundPhase.CRASHED),
    (NOW - 30, True, RoundPhase.CRASHED),
])
def test_phase_classification(start, crashed, expected) -> None:
    record = RoundRecord(41, start, 150 if crashed else 0, crashed)
    phase = classify_phase(record, NOW)
    assert phase is expected
    assert sum(phase is p for p in RoundPhase) == 1


def test_poll_current_round(ledger, tracker) -> None:
    ledger.add_round(41, NOW + 10)
    record = tracker.poll_current_round()
    assert record.round_id == 41
    assert tracker.phase(record) is RoundPhase.SCHEDULED


def test_poll_propagates_transient_errors(ledger, tracker) -> None:
    ledger.add_round(41, NOW + 10)
    ledger.view_errors.append(TransientReadError("node unreachable"))
    with pytest.raises(TransientReadError):
        tracker.poll_current_round()
    assert tracker.poll_current_round().round_id == 41


def test_phase_follows_the_clock(ledger, tracker, clock) -> None:
    ledger.add_round(41, NOW + 10)
    record = tracker.poll_current_round()
    assert tracker.phase(record) is RoundPhase.SCHEDULED
    clock.advance(10)
    assert tracker.phase(record) is RoundPhase.ACTIVE


def test_observe_reports_only_changes(ledger, tracker, clock) -> None:
    ledger.add_round(41, NOW + 5)
    record = tracker.poll_current_round()

    assert tracker.observe(record) == PhaseChange(41, RoundPhase.SCHEDULED)
    assert tracker.observe(record) is None

    clock.advance(5)
    assert tracker.observe(record) == PhaseChange(41, RoundPhase.ACTIVE)

    ledger.crash(41, 132)
    assert tracker.observe(tracker.poll_current_round()) == PhaseChange(41, RoundPhase.CRASHED)


def test_advance_skips_live_rounds(ledger, tracker) -> None:
    ledger.add_round(41, NOW - 3)
    outcome = tracker.advance_if_stalled(tracker.poll_current_round())
    assert outcome.status == "skipped"
    assert ledger.submitted == []


def test_advance_processes_crashed_round(ledger, tracker, sleeps) -> None:
    ledger.add_round(41, NOW - 20, crash_point=132, crashed=True)
    ledger.on_submit[PROCESS_ROUND] = lambda l, args: l.add_round(42, NOW + 10)

    outcome = tracker.advance_if_stalled(tracker.poll_current_round())

    assert outcome.status == "confirmed"
    assert outcome.new_round_id == 42
    assert outcome.tx_hash == "0xtx1"
    assert ledger.calls(PROCESS_ROUND) == [[]]
    assert sleeps == [3.0]


def test_advance_times_out_after_budget(ledger, tracker, sleeps) -> None:
    ledger.add_round(41, NOW - 20, crash_point=132, crashed=True)

    with pytest.raises(RoundTransitionTimeout) as exc:
        tracker.advance_if_stalled(tracker.poll_current_round())

    assert exc.value.round_id == 41
    assert exc.value.attempts == 5
    assert sleeps == [3.0] * 5


def test_read_errors_while_waiting_use_up_attempts(ledger, tracker, sleeps) -> None:
    ledger.add_round(41, NOW - 20, crash_point=132, crashed=True)

    def process(l, args):
        l.view_errors.append(TransientReadError("flaky"))
        l.add_round(42, NOW + 10)

    ledger.on_submit[PROCESS_ROUND] = process
    outcome = tracker.advance_if_stalled(tracker.poll_current_round())
    assert outcome.new_round_id == 42
    assert len(sleeps) == 2


@pytest.mark.parametrize("status", [REJECTED, TIMED_OUT])
def test_advance_unconfirmed_raises(ledger, tracker, sleeps, status) -> None:
    ledger.add_round(41, NOW - 20, crash_point=132, crashed=True)
    ledger.confirmation[PROCESS_ROUND] = status

    with pytest.raises(SubmissionError) as exc:
        tracker.advance_if_stalled(tracker.poll_current_round())
    assert exc.value.function_id == PROCESS_ROUND
    assert sleeps == []
