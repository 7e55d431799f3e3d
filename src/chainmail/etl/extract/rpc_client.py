"""
rpc_client.py

JSON-RPC ledger client (eth_blockNumber, eth_getBlockByNumber, eth_getLogs).

Key characteristics:
- One persistent requests session with connection pooling
- Transport-level retry on 429/5xx lives in the HTTPAdapter, not in the scanner
- Any transport failure or JSON-RPC `error` member surfaces as TransientScanError
"""

import itertools
import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from chainmail.config import ChainmailConfig
from chainmail.errors import ConfigurationError, RpcError, TransientScanError

LOGGER = logging.getLogger(__name__)


def create_session(retries: int = 3, backoff_factor: float = 0.5) -> requests.Session:
    """Create a requests session with retry logic and connection pooling."""
    session = requests.Session()
    retry_strategy = Retry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        # JSON-RPC is POST-only; urllib3 skips POST unless told otherwise
        allowed_methods=frozenset(["POST"]),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"Content-Type": "application/json"})
    return session


def _to_int(value: Any) -> int:
    """Block numbers and timestamps arrive as hex quantities ("0x1b4")."""
    if isinstance(value, str):
        return int(value, 16) if value.lower().startswith("0x") else int(value)
    return int(value)


class RpcClient:
    """Thin JSON-RPC 2.0 client for one chain endpoint."""

    def __init__(
        self,
        rpc_url: str,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        if not rpc_url:
            raise ConfigurationError("Missing SEPOLIA_RPC_URL (or RPC_URL) in .env")
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.session = session or create_session(retries, backoff_factor)
        self._ids = itertools.count(1)

    @classmethod
    def from_config(cls, config: ChainmailConfig) -> "RpcClient":
        return cls(
            config.rpc_url,
            timeout=config.request_timeout,
            retries=config.max_retries,
            backoff_factor=config.backoff_factor,
        )

    def call(self, method: str, params: list) -> Any:
        """
        Makes a JSON-RPC call and returns the `result` field.

        Raises:
            TransientScanError: network failure, HTTP error status, non-JSON or non-object body
            RpcError: the response carried an `error` member
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            response = self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.RequestException as e:
            raise TransientScanError(f"{method} request failed: {e}") from e
        except ValueError as e:
            raise TransientScanError(f"{method} returned a non-JSON body: {e}") from e

        if not isinstance(result, dict):
            raise TransientScanError(f"{method} returned an unexpected body: {result!r}")

        if "error" in result:
            raise RpcError(method, result["error"])

        return result.get("result")

    def get_latest_block_number(self) -> int:
        """Fetch current block number."""
        return _to_int(self.call("eth_blockNumber", []))

    def get_chain_id(self) -> int:
        return _to_int(self.call("eth_chainId", []))

    def get_block(self, number: int) -> Dict[str, Any]:
        """
        Fetch block header metadata.

        Returns:
            {"number": int, "timestamp": int}
        """
        block = self.call("eth_getBlockByNumber", [hex(number), False])
        if not block:
            raise TransientScanError(f"Block {number} not available from provider")
        return {"number": _to_int(block["number"]), "timestamp": _to_int(block["timestamp"])}

    def get_logs(self, raw_filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        """eth_getLogs with a pre-built filter object."""
        logs = self.call("eth_getLogs", [raw_filter])
        return logs if logs else []
