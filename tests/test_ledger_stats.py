import pytest

from crash_pilot.clock import Backoff
from crash_pilot.trading.ledger_stats import SessionLedger
from crash_pilot.trading.session import SessionOutcome, SessionState


def _outcome(round_id, won, profit, stake=1_000_000):
    state = SessionState.WON_CASHED_OUT if won else SessionState.LOST_TO_CRASH
    return SessionOutcome(round_id, state, stake, profit, 150)


def test_scoreboard_counts(tmp_path) -> None:
    board = SessionLedger(data_dir=str(tmp_path))
    board.record_placed()
    board.record_placed()
    board.record(_outcome(1, True, 500_000))
    board.record(_outcome(2, False, -1_000_000))

    assert board.rounds_played == 2
    assert board.rounds_won == 1
    assert board.rounds_lost == 1
    assert board.win_rate == pytest.approx(0.5)
    assert board.total_profit == -500_000
    assert board.largest_win == 500_000
    assert board.largest_loss == -1_000_000
    assert board.get_summary()["total_profit"] == "-0.005000"


def test_scoreboard_persists(tmp_path) -> None:
    board = SessionLedger(data_dir=str(tmp_path))
    board.record_placed()
    board.record(_outcome(9, True, 250_000))
    board.save_state()

    restored = SessionLedger(data_dir=str(tmp_path))
    restored.load_state()
    assert restored.rounds_played == 1
    assert restored.results == board.results


def test_empty_scoreboard(tmp_path) -> None:
    board = SessionLedger(data_dir=str(tmp_path))
    board.load_state()
    assert board.win_rate == 0.0
    assert board.largest_win == 0


def test_backoff_is_capped_linear() -> None:
    backoff = Backoff(base=0.5, step=0.5, cap=1.5)
    assert [backoff.next_delay() for _ in range(5)] == [0.5, 1.0, 1.5, 1.5, 1.5]
    backoff.reset()
    assert backoff.next_delay() == 0.5
