"""
CLI Entry Point for CrashPilot.

Commands:
  bet           - Auto-bet: one bet per round, cash out at a target
  monitor       - Keeper: live multiplier + process crashed rounds
  bank          - House stats for the current round
  history       - Betting history of a wallet
  participants  - Who is in a round
  config        - Show current configuration
"""

import sys
from datetime import datetime

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from crash_pilot import __version__
from crash_pilot.config import AgentConfig
from crash_pilot.errors import ConfigurationError, TransientReadError
from crash_pilot.game.events import BetStatus, EventAggregator
from crash_pilot.game.multiplier import estimate, linear_estimate
from crash_pilot.ledger.client import Web3LedgerClient

console = Console()


def _load(require_signer: bool = False):
    """Config + ledger client, or exit with a readable error."""
    config = AgentConfig()
    try:
        config.validate(require_signer=require_signer)
        ledger = Web3LedgerClient(config)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        console.print("Set up your .env file first.")
        sys.exit(1)
    return config, ledger


@click.group()
@click.version_option(version=__version__, prog_name="CrashPilot")
def cli():
    """CrashPilot - on-chain crash game monitor and auto-bettor."""
    pass


@cli.command()
@click.option("--stake", type=int, default=None,
              help="Fixed stake in the smallest unit (default: random in range)")
@click.option("--target", type=int, default=None,
              help="Fixed cashout target, x100 (150 = 1.50x)")
@click.option("--once", is_flag=True, help="Play a single round and stop")
@click.option("--max-rounds", type=int, default=None, help="Stop after N settled rounds")
@click.option("--poll-interval", type=float, default=None,
              help="Seconds between round polls (default: BET_POLL_INTERVAL)")
@click.option("--linear-curve", is_flag=True,
              help="Trigger cashouts on a flat +0.10x/s curve instead of the contract's")
def bet(stake, target, once, max_rounds, poll_interval, linear_curve):
    """Auto-bet on every betting window."""
    from crash_pilot.agent import BettingAgent
    from crash_pilot.trading.session import FixedBetPolicy, RandomBetPolicy

    config, ledger = _load(require_signer=True)
    betting = config.betting
    if poll_interval is not None:
        config.polling.bet_poll_interval = poll_interval

    if stake is not None or target is not None:
        policy = FixedBetPolicy(
            stake if stake is not None else betting.fixed_stake,
            target if target is not None else betting.fixed_target,
        )
    else:
        policy = RandomBetPolicy(betting.min_stake, betting.max_stake,
                                 betting.min_target, betting.max_target)

    agent = BettingAgent(
        config, ledger, policy,
        estimator=linear_estimate if linear_curve else estimate,
    )
    agent.start(max_rounds=1 if once else max_rounds)


@cli.command()
def monitor():
    """Watch rounds and process crashed ones so the game keeps moving."""
    from crash_pilot.agent import RoundMonitor

    config, ledger = _load(require_signer=True)
    RoundMonitor(config, ledger).start()


@cli.command()
@click.option("--interval", type=float, default=None, help="Seconds between refreshes")
def bank(interval):
    """Show per-round bet and payout totals."""
    from crash_pilot.agent import BankMonitor

    config, ledger = _load()
    console.print("[cyan]Starting bank monitor...[/cyan]")
    BankMonitor(config, ledger, interval or config.polling.bank_poll_interval).start()


@cli.command()
@click.option("--round", "round_id", type=int, default=None, help="Round id (default: current)")
@click.option("--interval", type=float, default=2.0, help="Seconds between refreshes")
@click.option("--watch", is_flag=True, help="Keep refreshing")
def participants(round_id, interval, watch):
    """List the players of a round."""
    from crash_pilot.agent import ParticipantsMonitor

    config, ledger = _load()
    reporter = ParticipantsMonitor(config, ledger, interval, round_id=round_id)
    if watch:
        reporter.start()
    else:
        reporter.run(max_iterations=1)


@cli.command()
@click.option("--wallet", default=None, help="Wallet address (default: WALLET_ADDRESS / signer)")
@click.option("--limit", type=int, default=None, help="Events to read per log")
def history(wallet, limit):
    """Betting history of a wallet, newest round first."""
    config, ledger = _load()
    wallet = wallet or config.wallet.wallet_address or ledger.address
    if not wallet:
        console.print("[red]No wallet given. Use --wallet or set WALLET_ADDRESS.[/red]")
        sys.exit(1)

    symbol = config.game.coin_symbol
    aggregator = EventAggregator(ledger, config.game.units_per_coin)
    console.print(f"[cyan]Fetching betting history for {wallet}...[/cyan]\n")
    try:
        events = aggregator.fetch_window(limit=limit or config.game.event_limit)
    except TransientReadError as e:
        console.print(f"[red]Could not read event logs: {e}[/red]")
        sys.exit(1)
    wallet_history = aggregator.build_wallet_history(events, wallet)

    if not len(wallet_history):
        console.print("[yellow]No bets found in the recent event window.[/yellow]")
        return

    table = Table(title="Betting History")
    table.add_column("Round", style="cyan")
    table.add_column("Time")
    table.add_column(f"Bet ({symbol})")
    table.add_column("Cashout")
    table.add_column(f"Win ({symbol})")
    table.add_column("Profit")
    table.add_column("Status")

    for outcome in wallet_history:
        when = (datetime.fromtimestamp(outcome.timestamp).strftime("%Y-%m-%d %H:%M:%S")
                if outcome.timestamp else "Unknown")
        if outcome.status is BetStatus.WON:
            status = "[green]Won[/green]"
        elif outcome.status is BetStatus.LOST:
            status = "[red]Lost[/red]"
        else:
            status = "[yellow]Active[/yellow]"
        table.add_row(
            str(outcome.round_id),
            when,
            f"{outcome.bet_amount:.6f}",
            f"{outcome.cashout_multiplier:.2f}x" if outcome.cashout_multiplier else "-",
            f"{outcome.win_amount:.6f}" if outcome.win_amount is not None else "-",
            f"{outcome.profit:+.6f}",
            status,
        )
    console.print(table)

    summary = wallet_history.get_summary()
    console.print(Panel(
        f"Total Rounds: {summary['total_rounds']}\n"
        f"Wins: {summary['wins']}\n"
        f"Losses: {summary['losses']}\n"
        f"Win Rate: {summary['win_rate']}\n"
        f"Total Profit/Loss: {summary['profit']:+.6f} {symbol}",
        title="[bold]Summary[/bold]",
    ))


@cli.command()
def config():
    """Show current configuration."""
    cfg = AgentConfig()
    coins = cfg.to_coins
    symbol = cfg.game.coin_symbol

    console.print(Panel(
        f"RPC: {cfg.rpc.rpc_url} (chain {cfg.rpc.chain_id})\n"
        f"Contract: {cfg.game.contract_address or '[red]Not set[/red]'}\n"
        f"Token: {cfg.game.token_address or 'native'}\n"
        f"Units per {symbol}: {cfg.game.units_per_coin:,}\n"
        f"Stake range: {coins(cfg.betting.min_stake):.4f} - {coins(cfg.betting.max_stake):.4f} {symbol}\n"
        f"Target range: {cfg.betting.min_target / 100:.2f}x - {cfg.betting.max_target / 100:.2f}x\n"
        f"Transition retries: {cfg.polling.transition_attempts} x {cfg.polling.transition_delay}s\n"
        f"Event window: {cfg.game.event_limit} per log\n"
        f"Wallet: {'Configured' if cfg.wallet.private_key else 'Not set'}",
        title="[bold]CrashPilot Configuration[/bold]",
    ))


def main():
    cli()


if __name__ == "__main__":
    main()
