"""
The runners - loops that poll the chain and act on what they see.

BettingAgent:  poll round -> step the bet session -> record outcome -> wait
RoundMonitor:  poll round -> show countdown / live multiplier -> process
               crashed rounds so the game keeps moving
BankMonitor:   every N seconds, show the current round's house stats
ParticipantsMonitor: every N seconds, show who is in the current round

Every iteration resolves fully (success, failure or timeout) before the next
read. Failures are printed, handed to on_failure as a FailureSignal and
followed by a capped backoff. Nothing short of Ctrl-C stops a loop.
"""

import signal
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import schedule
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from crash_pilot.clock import Backoff, Clock, SystemClock
from crash_pilot.config import AgentConfig
from crash_pilot.errors import (
    InvalidRoundDataError,
    RoundTransitionTimeout,
    SubmissionError,
    TransientReadError,
)
from crash_pilot.game.events import EventAggregator, RoundStats
from crash_pilot.game.multiplier import estimate, format_multiplier
from crash_pilot.game.rounds import PhaseChange, RoundPhase, RoundRecord, RoundTracker
from crash_pilot.ledger.client import PLACE_BET, LedgerClient
from crash_pilot.trading.ledger_stats import SessionLedger
from crash_pilot.trading.session import BetPolicy, BetSessionController, SessionOutcome

console = Console()

FAILURE_KINDS = {
    TransientReadError: "transient_read",
    InvalidRoundDataError: "invalid_round_data",
    SubmissionError: "submission",
    RoundTransitionTimeout: "round_transition_timeout",
}


@dataclass(frozen=True)
class FailureSignal:
    kind: str
    message: str
    round_id: Optional[int] = None
    attempt: Optional[int] = None


def failure_kind(error: Exception) -> str:
    for error_type, kind in FAILURE_KINDS.items():
        if isinstance(error, error_type):
            return kind
    return "unexpected"


class _LoopRunner:
    """Shared loop plumbing: running flag, backoff, failure reporting."""

    def __init__(self, config: AgentConfig, ledger: LedgerClient,
                 clock: Optional[Clock] = None, sleep=time.sleep,
                 on_failure: Optional[Callable[[FailureSignal], None]] = None):
        self.config = config
        self.ledger = ledger
        self.clock = clock or SystemClock()
        self.sleep = sleep
        self.on_failure = on_failure
        self.running = False
        self.iteration = 0
        self.failures: list[FailureSignal] = []
        self.backoff = Backoff(
            config.polling.backoff_base,
            config.polling.backoff_step,
            config.polling.backoff_cap,
        )
        self.tracker = RoundTracker(
            ledger,
            self.clock,
            confirmation_timeout=config.rpc.confirmation_timeout,
            transition_attempts=config.polling.transition_attempts,
            transition_delay=config.polling.transition_delay,
            sleep=sleep,
        )

    def _report(self, error: Exception, round_id: Optional[int] = None,
                attempt: Optional[int] = None) -> FailureSignal:
        failure = FailureSignal(failure_kind(error), str(error), round_id, attempt)
        self.failures.append(failure)
        console.print(f"[red]{failure.kind}: {failure.message}[/red]")
        if self.on_failure:
            self.on_failure(failure)
        return failure

    def _install_signal_handlers(self):
        signal.signal(signal.SIGINT, self._shutdown_handler)
        signal.signal(signal.SIGTERM, self._shutdown_handler)

    def _shutdown_handler(self, signum, frame):
        console.print("\n[yellow]Shutdown signal received...[/yellow]")
        self.running = False

    def run_once(self) -> float:
        raise NotImplementedError

    def run(self, max_iterations: Optional[int] = None):
        """Loop until stopped. Returns after max_iterations when given."""
        self.running = True
        while self.running:
            if max_iterations is not None and self.iteration >= max_iterations:
                break
            try:
                delay = self.run_once()
            except KeyboardInterrupt:
                break
            except Exception as e:
                self._report(e)
                delay = self.backoff.next_delay()
            if self.running and (max_iterations is None or self.iteration < max_iterations):
                self.sleep(delay)
        self.running = False

    def _poll(self) -> Optional[RoundRecord]:
        try:
            return self.tracker.poll_current_round()
        except (TransientReadError, InvalidRoundDataError) as e:
            self._report(e)
            return None


class BettingAgent(_LoopRunner):
    """
    Places one bet per round and cashes out at the policy's target.

    Scorekeeping lives in self.scoreboard and is only updated from the
    outcomes the session controller emits.
    """

    def __init__(self, config: AgentConfig, ledger: LedgerClient, policy: BetPolicy,
                 clock: Optional[Clock] = None, sleep=time.sleep,
                 estimator: Callable[[int], int] = estimate,
                 on_failure: Optional[Callable[[FailureSignal], None]] = None,
                 on_outcome: Optional[Callable[[SessionOutcome], None]] = None):
        super().__init__(config, ledger, clock, sleep, on_failure)
        self.controller = BetSessionController(
            ledger,
            self.tracker,
            policy,
            estimator=estimator,
            confirmation_timeout=config.rpc.confirmation_timeout,
        )
        self.scoreboard = SessionLedger(config.game.units_per_coin, config.data_dir)
        self.on_outcome = on_outcome
        self.max_rounds: Optional[int] = None
        self.rounds_settled = 0

    def start(self, max_rounds: Optional[int] = None):
        coins = self.config.to_coins
        symbol = self.config.game.coin_symbol
        console.print(Panel(
            f"Wallet: [cyan]{self.ledger.address}[/cyan]\n"
            f"Contract: {self.config.game.contract_address}\n"
            f"Stake range: {coins(self.config.betting.min_stake):.4f} - "
            f"{coins(self.config.betting.max_stake):.4f} {symbol}\n"
            f"Poll interval: {self.config.polling.bet_poll_interval}s",
            title="[bold]CrashPilot - auto-bet session[/bold]",
        ))
        self.max_rounds = max_rounds
        self.scoreboard.load_state()
        self._install_signal_handlers()
        self.run()
        self._shutdown()

    def run_once(self) -> float:
        self.iteration += 1
        interval = self.config.polling.bet_poll_interval

        record = self._poll()
        if record is None:
            return self.backoff.next_delay()

        change = self.tracker.observe(record)
        if change:
            self._show_phase(change)

        result = self.controller.step(record)

        if result.submitted == PLACE_BET and result.error is None:
            session = self.controller.session
            self.scoreboard.record_placed()
            console.print(
                f"[bold green]Bet placed[/bold green] round {session.round_id}: "
                f"{self.config.to_coins(session.stake):.4f} {self.config.game.coin_symbol} "
                f"@ target {format_multiplier(session.target_multiplier)}"
            )

        if result.outcome:
            self._handle_outcome(result.outcome)

        if result.error:
            self._report(result.error, record.round_id)
            return self.backoff.next_delay()

        self.backoff.reset()
        return interval

    def _show_phase(self, change: PhaseChange):
        if change.phase is RoundPhase.SCHEDULED:
            console.rule(f"[bold cyan]Round {change.round_id}[/bold cyan] - betting open")
        elif change.phase is RoundPhase.ACTIVE:
            console.print(f"[cyan]Round {change.round_id} is live[/cyan]")
        else:
            console.print(f"[magenta]Round {change.round_id} crashed[/magenta]")

    def _handle_outcome(self, outcome: SessionOutcome):
        self.scoreboard.record(outcome)
        self.rounds_settled += 1
        profit = self.config.to_coins(outcome.profit)
        symbol = self.config.game.coin_symbol
        if outcome.won:
            console.print(f"[bold green]Round {outcome.round_id} won![/bold green] "
                          f"Profit: {profit:+.6f} {symbol}")
        else:
            console.print(f"[bold red]Round {outcome.round_id} lost.[/bold red] "
                          f"Lost bet: {-profit:.6f} {symbol}")
            self._display_status()

        if self.on_outcome:
            self.on_outcome(outcome)
        if self.max_rounds is not None and self.rounds_settled >= self.max_rounds:
            self.running = False

    def _display_status(self):
        summary = self.scoreboard.get_summary()
        table = Table(title="Session Stats", show_header=True)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Rounds Played", str(summary["rounds_played"]))
        table.add_row("Wins", str(summary["rounds_won"]))
        table.add_row("Losses", str(summary["rounds_lost"]))
        table.add_row("Win Rate", summary["win_rate"])
        table.add_row("Total P&L", f"{summary['total_profit']} {self.config.game.coin_symbol}")
        console.print(table)

    def _shutdown(self):
        console.print("\n[yellow]Stopping auto-bet session...[/yellow]")
        if self.controller.session:
            console.print(f"[yellow]Bet in round {self.controller.session.round_id} is still open. "
                          f"Check `crash-pilot history` to see how it ended.[/yellow]")
        self.scoreboard.save_state()
        self._display_status()


class RoundMonitor(_LoopRunner):
    """
    Keeper loop. Shows the betting countdown and the live multiplier, and
    submits process_round whenever the current round has crashed.
    """

    def __init__(self, config: AgentConfig, ledger: LedgerClient,
                 clock: Optional[Clock] = None, sleep=time.sleep,
                 estimator: Callable[[int], int] = estimate,
                 on_failure: Optional[Callable[[FailureSignal], None]] = None,
                 on_phase: Optional[Callable[[PhaseChange], None]] = None):
        super().__init__(config, ledger, clock, sleep, on_failure)
        self.estimator = estimator
        self.on_phase = on_phase
        self.last_multiplier = 0

    def start(self):
        console.print(Panel(
            f"Keeper: [cyan]{self.ledger.address}[/cyan]\n"
            f"Contract: {self.config.game.contract_address}",
            title="[bold]CrashPilot - round monitor[/bold]",
        ))
        self._install_signal_handlers()
        self.run()
        console.print("\n[yellow]Round monitor stopped.[/yellow]")

    def run_once(self) -> float:
        self.iteration += 1
        interval = self.config.polling.monitor_poll_interval

        record = self._poll()
        if record is None:
            return self.backoff.next_delay()

        change = self.tracker.observe(record)
        if change:
            self._show_phase(change, record)
            if self.on_phase:
                self.on_phase(change)

        phase = change.phase if change else self.tracker.phase(record)
        now = self.clock.now()

        if phase is RoundPhase.SCHEDULED:
            console.print(f"[dim]Betting window: {record.start_time - now}s remaining[/dim]")
        elif phase is RoundPhase.ACTIVE:
            multiplier = self.estimator(now - record.start_time)
            if multiplier > self.last_multiplier:
                console.print(f"Multiplier: [bold]{format_multiplier(multiplier)}[/bold]")
                self.last_multiplier = multiplier
        else:
            return self._advance(record)

        self.backoff.reset()
        return interval

    def _show_phase(self, change: PhaseChange, record: RoundRecord):
        if change.phase is RoundPhase.SCHEDULED:
            console.rule(f"[bold cyan]Round {change.round_id}[/bold cyan] - betting period")
        elif change.phase is RoundPhase.ACTIVE:
            console.print(f"[cyan]Round {change.round_id} started[/cyan]")
        else:
            duration = self.clock.now() - record.start_time
            console.print(f"[bold magenta]CRASHED at {record.crash_multiplier:.2f}x "
                          f"after {duration}s[/bold magenta]")
        self.last_multiplier = 0

    def _advance(self, record: RoundRecord) -> float:
        console.print(f"[dim]Processing round {record.round_id}...[/dim]")
        try:
            outcome = self.tracker.advance_if_stalled(record)
        except RoundTransitionTimeout as e:
            self._report(e, e.round_id, e.attempts)
            return self.backoff.next_delay()
        except (SubmissionError, TransientReadError) as e:
            self._report(e, record.round_id)
            return self.backoff.next_delay()

        console.print(f"[green]Transitioned to round {outcome.new_round_id}[/green] "
                      f"[dim]({outcome.tx_hash})[/dim]")
        self.backoff.reset()
        return self.config.polling.monitor_poll_interval


class _PeriodicReporter(_LoopRunner):
    """A job that re-renders on a fixed schedule."""

    def __init__(self, config: AgentConfig, ledger: LedgerClient, interval: float,
                 clock: Optional[Clock] = None, sleep=time.sleep,
                 on_failure: Optional[Callable[[FailureSignal], None]] = None):
        super().__init__(config, ledger, clock, sleep, on_failure)
        self.interval = interval
        self.aggregator = EventAggregator(ledger, config.game.units_per_coin)
        self.scheduler = schedule.Scheduler()

    def report(self):
        raise NotImplementedError

    def run_once(self) -> float:
        self.iteration += 1
        try:
            self.report()
        except Exception as e:
            self._report(e)
            return self.backoff.next_delay()
        self.backoff.reset()
        return self.interval

    def _tick(self):
        # One-shot job: each run books the next one after the delay it returned.
        delay = self.run_once()
        self.scheduler.every(delay).seconds.do(self._tick)
        return schedule.CancelJob

    def start(self):
        self._install_signal_handlers()
        self.scheduler.every(self.interval).seconds.do(self._tick)
        self.running = True
        self.scheduler.run_all()
        while self.running:
            self.scheduler.run_pending()
            self.sleep(max(min(self.scheduler.idle_seconds or 0, self.interval), 0.1))
        self.scheduler.clear()


class BankMonitor(_PeriodicReporter):
    """House-side view: how much came in, how much went out, per round."""

    def snapshot(self) -> tuple[RoundRecord, RoundStats]:
        record = self.tracker.poll_current_round()
        events = self.aggregator.fetch_window(limit=self.config.game.event_limit)
        crash_point = record.crash_point if record.crashed else None
        return record, self.aggregator.aggregate(events, record.round_id, crash_point)

    def report(self):
        record, stats = self.snapshot()
        symbol = self.config.game.coin_symbol

        table = Table(show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        if record.crashed:
            title = "Cooldown - previous round summary"
            table.add_row("Crash Point", f"{stats.crash_point:.2f}x")
        else:
            title = "Active round stats"
        table.add_row("Total Bets", f"{stats.total_bets:.4f} {symbol}")
        table.add_row("Number of Bets", str(stats.bet_count))
        table.add_row("Players", str(len(stats.participants)))
        if record.crashed or stats.cashout_count > 0:
            table.add_row("Total Payouts", f"{stats.total_payouts:.4f} {symbol}")
            table.add_row("Number of Cashouts", str(stats.cashout_count))
        if record.crashed:
            table.add_row("Round Profit", f"{stats.profit:.4f} {symbol}")

        console.rule(f"[bold]Round {record.round_id}[/bold] - {datetime.now().strftime('%H:%M:%S')}")
        console.print(Panel(table, title=title))
        return stats


class ParticipantsMonitor(_PeriodicReporter):
    """Who is in a round and who has already cashed out."""

    def __init__(self, config: AgentConfig, ledger: LedgerClient, interval: float,
                 round_id: Optional[int] = None, **kwargs):
        super().__init__(config, ledger, interval, **kwargs)
        self.round_id = round_id

    def report(self):
        round_id = self.round_id
        if round_id is None:
            round_id = self.tracker.current_round_id()
        events = self.aggregator.fetch_window(limit=self.config.game.event_limit)
        participants = self.aggregator.participants(events, round_id)

        table = Table(title=f"Round {round_id} Participants")
        table.add_column("Address", style="cyan")
        table.add_column(f"Bet ({self.config.game.coin_symbol})")
        table.add_column("Cashout Multiplier")
        table.add_column("Status")
        for p in participants:
            table.add_row(
                p.address,
                f"{p.bet_amount:.4f}",
                f"{p.cashout_multiplier:.2f}x" if p.cashout_multiplier else "Not cashed out",
                "[green]Cashed out[/green]" if p.claimed else "Active",
            )
        console.print(table)
        return participants
