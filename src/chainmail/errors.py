"""
Exception types raised by the reconciliation engine.

ConfigurationError  -> fatal, surfaced immediately, never retried
TransientScanError  -> provider timeout / rate limit, fails the whole scan
DecodeError         -> one malformed log entry, turned into a skip by the materializer
ScanCancelled       -> caller cancelled or deadline passed between chunks

Not-found is not an error: lookups return None or an empty list.
"""

from typing import Optional


class ChainmailError(Exception):
    """Base class for every error raised by chainmail."""


class ConfigurationError(ChainmailError):
    """Unresolvable contract address, missing RPC endpoint, bad env value."""


class TransientScanError(ChainmailError):
    """A ledger request failed; the enclosing scan fails with it."""

    def __init__(self, message: str, from_block: Optional[int] = None, to_block: Optional[int] = None):
        super().__init__(message)
        self.from_block = from_block
        self.to_block = to_block


class RpcError(TransientScanError):
    """JSON-RPC response carried an `error` member instead of a `result`."""

    def __init__(self, method: str, error: dict):
        code = error.get("code") if isinstance(error, dict) else None
        message = error.get("message") if isinstance(error, dict) else error
        super().__init__(f"RPC Error on {method}: [{code}] {message}")
        self.method = method
        self.code = code


class DecodeError(ChainmailError):
    """A raw log entry could not be decoded into a mail event."""


class ScanCancelled(ChainmailError):
    """Scan aborted between chunks; partial results were discarded."""
