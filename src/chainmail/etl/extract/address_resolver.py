"""
Contract address resolution.

Lookup order, first valid hit wins:
    1. env override        <contractKey>_ADDRESS       (e.g. FHEMailbox_ADDRESS)
    2. chain id entry      addresses["11155111"]["FHEMailbox"]
    3. named network entry addresses["sepolia"]["FHEMailbox"]
    4. flat entry          addresses["FHEMailbox"]

Malformed candidates are skipped, never accepted.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from chainmail.config import DEFAULT_NETWORK, ChainmailConfig
from chainmail.errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_address(value: Any) -> bool:
    return isinstance(value, str) and bool(ADDRESS_PATTERN.match(value.strip()))


def load_address_table(path: Path) -> Dict[str, Any]:
    """
    Load the shared addresses.json written by the deploy script.

    A missing file is an empty table (env overrides can still resolve);
    an unreadable one is a configuration error.
    """
    path = Path(path)
    if not path.exists():
        LOGGER.debug("Address table not found at %s, using env overrides only", path)
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            table = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read address table {path}: {e}") from e

    if not isinstance(table, dict):
        raise ConfigurationError(f"Address table {path} must be a JSON object")
    return table


def resolve_address(
    contract_key: str,
    chain_id: int,
    table: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
    network_name: str = DEFAULT_NETWORK,
) -> str:
    """
    Resolve the deployed address of `contract_key` on `chain_id`.

    Raises:
        ConfigurationError: no source yields a well-formed address
    """
    env = os.environ if environ is None else environ

    by_id = table.get(str(chain_id))
    by_name = table.get(network_name)
    candidates = [
        ("env", env.get(f"{contract_key}_ADDRESS")),
        ("chain id", by_id.get(contract_key) if isinstance(by_id, dict) else None),
        ("network", by_name.get(contract_key) if isinstance(by_name, dict) else None),
        ("flat", table.get(contract_key)),
    ]

    for source, candidate in candidates:
        if candidate is None:
            continue
        if is_address(candidate):
            return candidate.strip()
        LOGGER.debug("Skipping malformed %s address for %s: %r", source, contract_key, candidate)

    raise ConfigurationError(
        f'Address for {contract_key} not found on chain {chain_id} '
        f'(set {contract_key}_ADDRESS or add "{chain_id}" or "{network_name}" in addresses.json).'
    )


class AddressResolver:
    """Read-only view over one address table and one environment."""

    def __init__(
        self,
        table: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None,
        network_name: str = DEFAULT_NETWORK,
    ):
        self._table = dict(table)
        self._environ = dict(os.environ if environ is None else environ)
        self.network_name = network_name

    @classmethod
    def from_config(cls, config: ChainmailConfig, environ: Optional[Mapping[str, str]] = None) -> "AddressResolver":
        return cls(load_address_table(config.addresses_file), environ, config.network_name)

    def resolve(self, contract_key: str, chain_id: int) -> str:
        return resolve_address(contract_key, chain_id, self._table, self._environ, self.network_name)
