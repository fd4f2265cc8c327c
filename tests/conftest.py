"""Shared fixtures: offline RPC client doubles and keypairs."""
from unittest.mock import MagicMock, Mock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature

from tokenmint.core.config import Settings


@pytest.fixture
def payer():
    """Return a fresh payer keypair."""
    return Keypair()


@pytest.fixture
def cfg(tmp_path):
    """Return devnet settings writing into a temp directory."""
    return Settings(
        SOLANA_CLUSTER="devnet",
        SOLANA_RPC_URL="",
        PRIVATE_KEY="",
        ENV_FILE=str(tmp_path / ".env"),
        AIRDROP_THRESHOLD_SOL=1.0,
        STORAGE_DRIVER="local",
        PINATA_JWT="",
        LOCAL_STORAGE_DIR=str(tmp_path / "uploads"),
    )


@pytest.fixture
def signature():
    return Signature.default()


@pytest.fixture
def mock_client(signature):
    """Return a mock RPC client with the responses the scripts read."""
    client = MagicMock()
    client.get_minimum_balance_for_rent_exemption.return_value = Mock(value=1_461_600)
    client.get_latest_blockhash.return_value = Mock(
        value=Mock(blockhash=Hash.new_unique(), last_valid_block_height=1_000)
    )
    client.send_transaction.return_value = Mock(value=signature)
    # No ATA yet unless a test says otherwise.
    client.get_account_info.return_value = Mock(value=None)
    client.get_balance.return_value = Mock(value=2_000_000_000)
    return client
