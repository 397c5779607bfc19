"""
Configuration for CrashPilot.

Every knob reads its default from the environment (a .env file is loaded on
import). Retry counts and delays live here rather than in the loops so the
agent can be tuned for slower or faster nodes.
"""

import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

from crash_pilot.errors import ConfigurationError

load_dotenv()


@dataclass
class WalletConfig:
    private_key: str = os.getenv("PRIVATE_KEY", "")
    wallet_address: str = os.getenv("WALLET_ADDRESS", "")


@dataclass
class RPCConfig:
    rpc_url: str = os.getenv("RPC_URL", "http://127.0.0.1:8545")
    chain_id: int = int(os.getenv("CHAIN_ID", "31337"))
    log_lookback_blocks: int = int(os.getenv("LOG_LOOKBACK_BLOCKS", "50000"))
    confirmation_timeout: int = int(os.getenv("CONFIRMATION_TIMEOUT", "20"))


@dataclass
class GameConfig:
    contract_address: str = os.getenv("CONTRACT_ADDRESS", "")
    token_address: str = os.getenv("TOKEN_ADDRESS", "")  # empty = native coin
    units_per_coin: int = int(os.getenv("UNITS_PER_COIN", "100000000"))
    coin_symbol: str = os.getenv("COIN_SYMBOL", "APT")
    event_limit: int = int(os.getenv("EVENT_LIMIT", "100"))


@dataclass
class PollingConfig:
    bet_poll_interval: float = float(os.getenv("BET_POLL_INTERVAL", "0.1"))
    monitor_poll_interval: float = float(os.getenv("MONITOR_POLL_INTERVAL", "1.0"))
    bank_poll_interval: float = float(os.getenv("BANK_POLL_INTERVAL", "1.0"))
    backoff_base: float = 0.5
    backoff_step: float = 0.5
    backoff_cap: float = 5.0
    transition_attempts: int = int(os.getenv("TRANSITION_ATTEMPTS", "5"))
    transition_delay: float = float(os.getenv("TRANSITION_DELAY", "3.0"))


@dataclass
class BettingConfig:
    min_stake: int = int(os.getenv("MIN_STAKE", "1000000"))      # 0.01 coin
    max_stake: int = int(os.getenv("MAX_STAKE", "10000000"))     # 0.1 coin
    min_target: int = int(os.getenv("MIN_TARGET", "110"))        # 1.10x
    max_target: int = int(os.getenv("MAX_TARGET", "200"))        # 2.00x
    fixed_stake: int = int(os.getenv("FIXED_STAKE", "10000000"))
    fixed_target: int = int(os.getenv("FIXED_TARGET", "150"))


@dataclass
class AgentConfig:
    wallet: WalletConfig = field(default_factory=WalletConfig)
    rpc: RPCConfig = field(default_factory=RPCConfig)
    game: GameConfig = field(default_factory=GameConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    betting: BettingConfig = field(default_factory=BettingConfig)
    data_dir: str = os.getenv("CRASH_PILOT_DATA_DIR", "data")

    def to_coins(self, units: int) -> float:
        """Smallest ledger unit -> display coins."""
        return units / self.game.units_per_coin

    def validate(self, require_signer: bool = False):
        """
        Fail fast on missing identity.

        Readers only need the contract address. Anything that submits
        transactions also needs a private key.
        """
        if not self.game.contract_address:
            raise ConfigurationError("CONTRACT_ADDRESS is not set")
        if require_signer and not self.wallet.private_key:
            raise ConfigurationError("PRIVATE_KEY is not set")
        if self.game.units_per_coin <= 0:
            raise ConfigurationError("UNITS_PER_COIN must be positive")
        if self.betting.min_stake > self.betting.max_stake:
            raise ConfigurationError("MIN_STAKE is greater than MAX_STAKE")
        if not 100 < self.betting.min_target <= self.betting.max_target:
            raise ConfigurationError("Target multipliers must satisfy 100 < MIN_TARGET <= MAX_TARGET")
        if self.polling.transition_attempts < 1:
            raise ConfigurationError("TRANSITION_ATTEMPTS must be at least 1")
