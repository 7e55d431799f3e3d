"""
Chainmail Configuration
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from chainmail.errors import ConfigurationError

# Load environment variables
load_dotenv()

# =============================================================================
# PROJECT PATHS
# =============================================================================

PROJECT_ROOT = Path(__file__).parent.parent.parent

PATHS = {
    "project_root": PROJECT_ROOT,
    "shared": PROJECT_ROOT / "shared",
    "addresses": PROJECT_ROOT / "shared" / "addresses.json",
    "raw_logs": PROJECT_ROOT / "data" / "raw" / "logs",
    "mail_export": PROJECT_ROOT / "data" / "mail" / "mails.jsonl",
}

# =============================================================================
# LOG SCAN SETTINGS
# =============================================================================

SCAN_CONFIG = {
    # Free-tier RPC providers cap eth_getLogs at ~10 blocks per request
    "chunk_size": 10,
    # Blocks to look back when START_BLOCK is not set
    "lookback_window": 1000,
    "timeout": 30,
    "max_retries": 3,
    "backoff_factor": 0.5,
}

# =============================================================================
# CHAINS & CONTRACTS
# =============================================================================

CHAIN_SETTINGS = {
    "sepolia": {
        "chain_id": 11155111,
    },
}

DEFAULT_NETWORK = "sepolia"

CONTRACT_KEYS = {
    "real": "FHEMailbox",
    "mock": "FHEMailboxMock",
}

# EncryptedMailSent(uint256 indexed id, address indexed from, address indexed to)
MAIL_SENT_EVENT = "EncryptedMailSent(uint256,address,address)"


@dataclass(frozen=True)
class ChainmailConfig:
    """Immutable runtime settings, built once and passed into MailService."""

    rpc_url: str
    chain_id: int
    network_name: str = DEFAULT_NETWORK
    chunk_size: int = SCAN_CONFIG["chunk_size"]
    lookback_window: int = SCAN_CONFIG["lookback_window"]
    start_block: Optional[int] = None
    addresses_file: Path = PATHS["addresses"]
    event_signature: str = MAIL_SENT_EVENT
    real_contract_key: str = CONTRACT_KEYS["real"]
    mock_contract_key: str = CONTRACT_KEYS["mock"]
    request_timeout: int = SCAN_CONFIG["timeout"]
    max_retries: int = SCAN_CONFIG["max_retries"]
    backoff_factor: float = SCAN_CONFIG["backoff_factor"]


def _env_int(environ: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def load_config(environ: Optional[Mapping[str, str]] = None) -> ChainmailConfig:
    """
    Build a ChainmailConfig from environment variables.

    Env vars:
        SEPOLIA_RPC_URL / RPC_URL   JSON-RPC endpoint
        CHAIN_ID                    default 11155111
        NETWORK                     named-network key in addresses.json (default "sepolia")
        START_BLOCK                 explicit scan start; negative values are ignored
        LOG_WINDOW / LOG_CHUNK      lookback window and blocks per eth_getLogs call
        ADDRESSES_FILE              path to the shared address table
    """
    env = os.environ if environ is None else environ

    network_name = (env.get("NETWORK") or DEFAULT_NETWORK).strip()
    default_chain_id = CHAIN_SETTINGS.get(network_name, CHAIN_SETTINGS[DEFAULT_NETWORK])["chain_id"]

    start_block = _env_int(env, "START_BLOCK", None)
    if start_block is not None and start_block < 0:
        start_block = None

    addresses_file = env.get("ADDRESSES_FILE")

    return ChainmailConfig(
        rpc_url=(env.get("SEPOLIA_RPC_URL") or env.get("RPC_URL") or "").strip(),
        chain_id=_env_int(env, "CHAIN_ID", default_chain_id),
        network_name=network_name,
        chunk_size=_env_int(env, "LOG_CHUNK", SCAN_CONFIG["chunk_size"]),
        lookback_window=_env_int(env, "LOG_WINDOW", SCAN_CONFIG["lookback_window"]),
        start_block=start_block,
        addresses_file=Path(addresses_file) if addresses_file else PATHS["addresses"],
    )


# =============================================================================
# VALIDATION
# =============================================================================

def validate_config(config: ChainmailConfig) -> bool:
    """Check that required settings are present."""
    errors = []

    if not config.rpc_url:
        errors.append("SEPOLIA_RPC_URL (or RPC_URL) not set in .env")

    if config.chunk_size < 1:
        errors.append(f"LOG_CHUNK must be >= 1, got {config.chunk_size}")

    if config.lookback_window < 0:
        errors.append(f"LOG_WINDOW must be >= 0, got {config.lookback_window}")

    if errors:
        raise ConfigurationError("Config validation failed:\n" + "\n".join(errors))

    return True
