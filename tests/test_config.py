from __future__ import annotations

from pathlib import Path

import pytest

from chainmail.config import PATHS, SCAN_CONFIG, ChainmailConfig, load_config, validate_config
from chainmail.errors import ConfigurationError


def test_defaults_from_empty_environment() -> None:
    config = load_config({})

    assert config.rpc_url == ""
    assert config.chain_id == 11155111
    assert config.network_name == "sepolia"
    assert config.chunk_size == SCAN_CONFIG["chunk_size"] == 10
    assert config.lookback_window == SCAN_CONFIG["lookback_window"] == 1000
    assert config.start_block is None
    assert config.addresses_file == PATHS["addresses"]


def test_environment_overrides() -> None:
    config = load_config(
        {
            "RPC_URL": "https://rpc.example",
            "CHAIN_ID": "31337",
            "START_BLOCK": "500",
            "LOG_CHUNK": "50",
            "LOG_WINDOW": "20",
            "ADDRESSES_FILE": "/tmp/addresses.json",
        }
    )

    assert config.rpc_url == "https://rpc.example"
    assert config.chain_id == 31337
    assert config.start_block == 500
    assert config.chunk_size == 50
    assert config.lookback_window == 20
    assert config.addresses_file == Path("/tmp/addresses.json")


def test_sepolia_url_preferred_over_generic() -> None:
    config = load_config({"SEPOLIA_RPC_URL": "https://sepolia.example", "RPC_URL": "https://other.example"})

    assert config.rpc_url == "https://sepolia.example"


def test_negative_start_block_means_unset() -> None:
    assert load_config({"START_BLOCK": "-1"}).start_block is None


def test_non_integer_setting_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="LOG_CHUNK"):
        load_config({"LOG_CHUNK": "ten"})


def test_validate_collects_all_problems() -> None:
    config = ChainmailConfig(rpc_url="", chain_id=1, chunk_size=0, lookback_window=-5)

    with pytest.raises(ConfigurationError) as excinfo:
        validate_config(config)

    message = str(excinfo.value)
    assert "RPC_URL" in message
    assert "LOG_CHUNK" in message
    assert "LOG_WINDOW" in message


def test_validate_accepts_complete_config() -> None:
    assert validate_config(ChainmailConfig(rpc_url="http://localhost:8545", chain_id=1))
