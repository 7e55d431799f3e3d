from __future__ import annotations

import json

import pytest

from chainmail.errors import ConfigurationError
from chainmail.etl.extract.address_resolver import (
    AddressResolver,
    is_address,
    load_address_table,
    resolve_address,
)

from fakes import MOCK_ADDRESS, REAL_ADDRESS

CHAIN_ID = 11155111
OTHER = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"


def test_env_override_beats_chain_id_entry() -> None:
    table = {str(CHAIN_ID): {"FHEMailbox": REAL_ADDRESS}}
    environ = {"FHEMailbox_ADDRESS": OTHER}

    assert resolve_address("FHEMailbox", CHAIN_ID, table, environ) == OTHER


def test_chain_id_entry_beats_network_and_flat() -> None:
    table = {
        str(CHAIN_ID): {"FHEMailbox": REAL_ADDRESS},
        "sepolia": {"FHEMailbox": OTHER},
        "FHEMailbox": MOCK_ADDRESS,
    }

    assert resolve_address("FHEMailbox", CHAIN_ID, table, {}) == REAL_ADDRESS


def test_named_network_used_when_only_valid_candidate() -> None:
    table = {
        str(CHAIN_ID): {"FHEMailbox": "0x1234"},
        "sepolia": {"FHEMailbox": OTHER},
    }
    environ = {"FHEMailbox_ADDRESS": "not-an-address"}

    assert resolve_address("FHEMailbox", CHAIN_ID, table, environ) == OTHER


def test_flat_entry_is_last_resort() -> None:
    table = {"FHEMailboxMock": MOCK_ADDRESS}

    assert resolve_address("FHEMailboxMock", CHAIN_ID, table, {}) == MOCK_ADDRESS


def test_network_name_is_configurable() -> None:
    table = {"holesky": {"FHEMailbox": OTHER}, "sepolia": {"FHEMailbox": REAL_ADDRESS}}

    assert resolve_address("FHEMailbox", 17000, table, {}, network_name="holesky") == OTHER


def test_whitespace_around_candidate_is_stripped() -> None:
    table = {str(CHAIN_ID): {"FHEMailbox": f"  {REAL_ADDRESS}\n"}}

    assert resolve_address("FHEMailbox", CHAIN_ID, table, {}) == REAL_ADDRESS


def test_unresolvable_address_names_key_and_chain() -> None:
    table = {"sepolia": {"FHEMailbox": "0xnope"}}

    with pytest.raises(ConfigurationError) as excinfo:
        resolve_address("FHEMailbox", CHAIN_ID, table, {})

    message = str(excinfo.value)
    assert "FHEMailbox" in message
    assert str(CHAIN_ID) in message


def test_is_address_rejects_malformed_values() -> None:
    assert is_address(REAL_ADDRESS)
    assert is_address(REAL_ADDRESS.lower())
    assert not is_address(REAL_ADDRESS[2:])
    assert not is_address(REAL_ADDRESS + "00")
    assert not is_address("0x" + "g" * 40)
    assert not is_address(None)
    assert not is_address(1234)


def test_load_address_table_missing_file_is_empty(tmp_path) -> None:
    assert load_address_table(tmp_path / "addresses.json") == {}


def test_load_address_table_reads_deploy_output(tmp_path) -> None:
    path = tmp_path / "addresses.json"
    path.write_text(json.dumps({str(CHAIN_ID): {"FHEMailbox": REAL_ADDRESS}}), encoding="utf-8")

    resolver = AddressResolver(load_address_table(path), environ={})

    assert resolver.resolve("FHEMailbox", CHAIN_ID) == REAL_ADDRESS


def test_load_address_table_invalid_json_is_configuration_error(tmp_path) -> None:
    path = tmp_path / "addresses.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_address_table(path)
