import pytest
from eth_account import Account
from web3 import Web3

from crash_pilot.errors import ConfigurationError, SubmissionError, TransientReadError
from crash_pilot.ledger.client import (
    BET_EVENTS,
    CASHOUT,
    GET_CURRENT_ROUND_ID,
    Web3LedgerClient,
)

KEY = "0x" + "4c" * 32


def test_requires_contract_address(config) -> None:
    config.game.contract_address = ""
    with pytest.raises(ConfigurationError):
        Web3LedgerClient(config)


def test_signer_address_from_key(config) -> None:
    config.wallet.private_key = KEY
    client = Web3LedgerClient(config)
    assert client.address == Account.from_key(KEY).address


def test_read_only_client_cannot_submit(config) -> None:
    config.wallet.wallet_address = "0x00000000000000000000000000000000000000b1"
    client = Web3LedgerClient(config)
    assert client.address == Web3.to_checksum_address(config.wallet.wallet_address)
    with pytest.raises(SubmissionError):
        client.submit(CASHOUT)


def test_unknown_names_rejected(config) -> None:
    client = Web3LedgerClient(config)
    with pytest.raises(ValueError):
        client.read_view("get_jackpot")
    with pytest.raises(ValueError):
        client.read_events("jackpot_events", 10)


def test_event_topics_are_hex_hashes(config) -> None:
    client = Web3LedgerClient(config)
    topic = client._topics[BET_EVENTS]
    assert topic.startswith("0x")
    assert len(topic) == 66


def test_unreachable_node_is_transient(config) -> None:
    config.rpc.rpc_url = "http://127.0.0.1:1"
    client = Web3LedgerClient(config)
    with pytest.raises(TransientReadError):
        client.read_view(GET_CURRENT_ROUND_ID)
