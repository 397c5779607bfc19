"""
Ledger client - the only place that talks to the chain.

Handles:
- Read-only view calls against the crash contract
- Building, signing and sending transactions via web3 + eth-account
- Waiting for receipts
- Pulling the most recent N entries of each event log

Everything above this module is written against the LedgerClient protocol,
so the game logic never sees web3 types or web3 exceptions.
"""

from typing import Optional, Protocol, Sequence

import requests
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception
from eth_account import Account

from crash_pilot.config import AgentConfig
from crash_pilot.errors import ConfigurationError, SubmissionError, TransientReadError


# Logical function ids used by the game layer
GET_CURRENT_ROUND_ID = "get_current_round_id"
GET_ROUND_DATA = "get_round_data"
PLACE_BET = "place_bet"
CASHOUT = "cashout"
PROCESS_ROUND = "process_round"

# Event handles
BET_EVENTS = "bet_events"
CASHOUT_EVENTS = "cashout_events"
ROUND_EVENTS = "round_events"

CONFIRMED = "confirmed"
TIMED_OUT = "timed_out"
REJECTED = "rejected"

FUNCTION_NAMES = {
    GET_CURRENT_ROUND_ID: "getCurrentRoundId",
    GET_ROUND_DATA: "getRoundData",
    PLACE_BET: "placeBet",
    CASHOUT: "cashout",
    PROCESS_ROUND: "processRound",
}

EVENT_SIGNATURES = {
    BET_EVENTS: ("BetPlaced", "BetPlaced(address,uint256,uint256)"),
    CASHOUT_EVENTS: ("CashedOut", "CashedOut(address,uint256,uint256,uint256)"),
    ROUND_EVENTS: ("RoundEnded", "RoundEnded(uint256,uint256)"),
}

# Event arg name -> payload key
EVENT_FIELDS = {
    "player": "player",
    "roundId": "round_id",
    "amount": "amount",
    "multiplier": "multiplier",
    "winAmount": "win_amount",
    "crashPoint": "crash_point",
}

CRASH_GAME_ABI = [
    {
        "type": "function", "name": "getCurrentRoundId", "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function", "name": "getRoundData", "stateMutability": "view",
        "inputs": [{"name": "roundId", "type": "uint256"}],
        "outputs": [
            {"name": "id", "type": "uint256"},
            {"name": "startTime", "type": "uint64"},
            {"name": "crashPoint", "type": "uint64"},
            {"name": "crashed", "type": "bool"},
        ],
    },
    {
        "type": "function", "name": "placeBet", "stateMutability": "nonpayable",
        "inputs": [{"name": "amount", "type": "uint256"}],
        "outputs": [],
    },
    {
        "type": "function", "name": "cashout", "stateMutability": "nonpayable",
        "inputs": [], "outputs": [],
    },
    {
        "type": "function", "name": "processRound", "stateMutability": "nonpayable",
        "inputs": [], "outputs": [],
    },
    {
        "type": "event", "name": "BetPlaced", "anonymous": False,
        "inputs": [
            {"name": "player", "type": "address", "indexed": True},
            {"name": "roundId", "type": "uint256", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event", "name": "CashedOut", "anonymous": False,
        "inputs": [
            {"name": "player", "type": "address", "indexed": True},
            {"name": "roundId", "type": "uint256", "indexed": True},
            {"name": "multiplier", "type": "uint256", "indexed": False},
            {"name": "winAmount", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event", "name": "RoundEnded", "anonymous": False,
        "inputs": [
            {"name": "roundId", "type": "uint256", "indexed": True},
            {"name": "crashPoint", "type": "uint256", "indexed": False},
        ],
    },
]

ERC20_BALANCE_ABI = [
    {
        "type": "function", "name": "balanceOf", "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

# web3 surfaces RPC failures as its own exceptions, ValueError (error
# responses) or the underlying requests errors.
RPC_ERRORS = (Web3Exception, ValueError, requests.RequestException)


class LedgerClient(Protocol):
    """What the game layer needs from a chain."""

    address: Optional[str]

    def read_view(self, function_id: str, args: Sequence = ()) -> list:
        ...

    def submit(self, function_id: str, args: Sequence = ()) -> str:
        ...

    def await_confirmation(self, handle: str, timeout_seconds: int) -> str:
        ...

    def read_events(self, handle: str, limit: int) -> list[dict]:
        ...

    def read_balance(self, address: str) -> int:
        ...


class Web3LedgerClient:
    """
    LedgerClient over an EVM deployment of the crash contract.

    Without a private key the client is read-only and submit() raises
    SubmissionError.
    """

    def __init__(self, config: AgentConfig):
        self.config = config

        if not config.game.contract_address:
            raise ConfigurationError("CONTRACT_ADDRESS is not set")

        self.w3 = Web3(Web3.HTTPProvider(config.rpc.rpc_url))
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(config.game.contract_address),
            abi=CRASH_GAME_ABI,
        )
        self.token = None
        if config.game.token_address:
            self.token = self.w3.eth.contract(
                address=Web3.to_checksum_address(config.game.token_address),
                abi=ERC20_BALANCE_ABI,
            )

        self.account = None
        self.address: Optional[str] = None
        if config.wallet.private_key:
            self.account = Account.from_key(config.wallet.private_key)
            self.address = self.account.address
            print(f"[Ledger] Signer: {self.address}")
        elif config.wallet.wallet_address:
            self.address = Web3.to_checksum_address(config.wallet.wallet_address)
            print("[Ledger] No private key configured. Read-only mode.")

        self._topics = {
            handle: Web3.to_hex(Web3.keccak(text=signature))
            for handle, (_, signature) in EVENT_SIGNATURES.items()
        }
        self._block_times: dict[int, int] = {}

    def _function(self, function_id: str, args: Sequence):
        try:
            name = FUNCTION_NAMES[function_id]
        except KeyError:
            raise ValueError(f"Unknown contract function: {function_id}") from None
        return getattr(self.contract.functions, name)(*args)

    def read_view(self, function_id: str, args: Sequence = ()) -> list:
        fn = self._function(function_id, args)
        try:
            result = fn.call()
        except RPC_ERRORS as e:
            raise TransientReadError(f"{function_id} failed: {e}") from e

        if isinstance(result, (list, tuple)):
            return list(result)
        return [result]

    def submit(self, function_id: str, args: Sequence = ()) -> str:
        if self.account is None:
            raise SubmissionError("No private key configured", function_id)

        fn = self._function(function_id, args)
        try:
            tx = fn.build_transaction({
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
                "chainId": self.config.rpc.chain_id,
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except RPC_ERRORS as e:
            raise SubmissionError(f"{function_id} submission failed: {e}", function_id) from e

        handle = self.w3.to_hex(tx_hash)
        print(f"[Ledger] {function_id} submitted: {handle}")
        return handle

    def await_confirmation(self, handle: str, timeout_seconds: int) -> str:
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(handle, timeout=timeout_seconds)
        except TimeExhausted:
            return TIMED_OUT
        except RPC_ERRORS as e:
            raise TransientReadError(f"Receipt lookup for {handle} failed: {e}") from e

        return CONFIRMED if receipt["status"] == 1 else REJECTED

    def read_events(self, handle: str, limit: int) -> list[dict]:
        """Most recent `limit` entries of one event log, oldest first."""
        if handle not in EVENT_SIGNATURES:
            raise ValueError(f"Unknown event handle: {handle}")
        event_name, _ = EVENT_SIGNATURES[handle]
        event = getattr(self.contract.events, event_name)()

        try:
            latest = self.w3.eth.block_number
            logs = self.w3.eth.get_logs({
                "address": self.contract.address,
                "fromBlock": max(latest - self.config.rpc.log_lookback_blocks, 0),
                "toBlock": latest,
                "topics": [self._topics[handle]],
            })
            entries = []
            for log in logs[-limit:] if limit > 0 else []:
                decoded = event.process_log(log)
                data = {
                    EVENT_FIELDS[key]: (str(value) if key == "player" else value)
                    for key, value in decoded["args"].items()
                }
                entries.append({
                    "type": handle,
                    "data": data,
                    "timestamp": self._block_time(log["blockNumber"]),
                })
        except RPC_ERRORS as e:
            raise TransientReadError(f"Reading {handle} failed: {e}") from e

        return entries

    def _block_time(self, block_number: int) -> int:
        if block_number not in self._block_times:
            self._block_times[block_number] = self.w3.eth.get_block(block_number)["timestamp"]
        return self._block_times[block_number]

    def read_balance(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        try:
            if self.token is not None:
                return int(self.token.functions.balanceOf(checksum).call())
            return int(self.w3.eth.get_balance(checksum))
        except RPC_ERRORS as e:
            raise TransientReadError(f"Balance read for {address} failed: {e}") from e
