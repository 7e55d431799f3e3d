"""
log_scanner.py

Chunked eth_getLogs over a block range.

Why chunking by BLOCKS (not logs):
- Providers limit block RANGE per request (free tiers: ~10 blocks)
- You can't know log count until you query
- Large block ranges time out regardless of result size

A failed chunk fails the whole scan. There is no partial result and no retry
here; retries belong to the transport (see rpc_client.create_session).
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from tqdm import tqdm

from chainmail.config import SCAN_CONFIG
from chainmail.errors import ScanCancelled, TransientScanError

LOGGER = logging.getLogger(__name__)


class CancelToken:
    """
    Cooperative cancellation, checked between chunks (never mid-chunk).

    `deadline` is a time.monotonic() value; once passed the token reads as cancelled.
    """

    def __init__(self, deadline: Optional[float] = None):
        self._event = threading.Event()
        self.deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline


@dataclass(frozen=True)
class LogFilter:
    """Contract address + topics; the block range is filled in per chunk."""

    address: str
    topics: Tuple[Optional[str], ...]

    def to_rpc(self, from_block: int, to_block: int) -> Dict[str, Any]:
        return {
            "address": self.address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
            "topics": list(self.topics),
        }


def iter_chunks(from_block: int, to_block: int, chunk_size: int) -> Iterator[Tuple[int, int]]:
    """Yield closed sub-ranges of at most `chunk_size` blocks, ascending."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

    current_block = from_block
    while current_block <= to_block:
        # Calculate chunk end (don't exceed final block)
        chunk_end = min(current_block + chunk_size - 1, to_block)
        yield current_block, chunk_end
        current_block = chunk_end + 1


def _fetch_chunk(client, log_filter: LogFilter, start: int, end: int) -> List[Dict[str, Any]]:
    try:
        return client.get_logs(log_filter.to_rpc(start, end))
    except TransientScanError as e:
        raise TransientScanError(
            f"eth_getLogs failed for blocks {start}-{end}: {e}", from_block=start, to_block=end
        ) from e


def _check_cancelled(cancel_token: Optional[CancelToken], start: int) -> None:
    if cancel_token is not None and cancel_token.cancelled:
        LOGGER.info("Scan cancelled before block %s; discarding partial results", start)
        raise ScanCancelled(f"Scan cancelled before block {start}")


def scan_logs(
    client,
    log_filter: LogFilter,
    from_block: int,
    to_block: int,
    chunk_size: int = SCAN_CONFIG["chunk_size"],
    cancel_token: Optional[CancelToken] = None,
    show_progress: bool = False,
) -> List[Dict[str, Any]]:
    """
    Extracts logs in small chunks to avoid RPC limits.

    Args:
        client: ledger client exposing get_logs(raw_filter)
        log_filter: contract address and topics
        from_block: first block (inclusive)
        to_block: last block (inclusive)
        chunk_size: blocks per request
        cancel_token: checked before each chunk
        show_progress: draw a tqdm bar (CLI use)

    Returns:
        Combined list of all logs, in ledger order

    Raises:
        TransientScanError: any chunk failed
        ScanCancelled: token fired between chunks
    """
    chunks = list(iter_chunks(from_block, to_block, chunk_size))
    if not chunks:
        return []

    LOGGER.debug("Scanning %s blocks %s-%s in %s chunks", log_filter.address, from_block, to_block, len(chunks))

    all_logs: List[Dict[str, Any]] = []
    for start, end in tqdm(chunks, desc="Scanning blocks", disable=not show_progress):
        _check_cancelled(cancel_token, start)
        logs = _fetch_chunk(client, log_filter, start, end)
        if logs:
            LOGGER.debug("  Blocks %s-%s: %s logs", start, end, len(logs))
        all_logs.extend(logs)

    LOGGER.info("Scanned blocks %s-%s (%s requests): %s logs", from_block, to_block, len(chunks), len(all_logs))
    return all_logs


def scan_first_match(
    client,
    log_filter: LogFilter,
    from_block: int,
    to_block: int,
    chunk_size: int = SCAN_CONFIG["chunk_size"],
    cancel_token: Optional[CancelToken] = None,
) -> Optional[Dict[str, Any]]:
    """
    Walk chunks in ascending order and return the first log found, or None.

    Used for lookups by indexed id where one hit is enough.
    """
    for start, end in iter_chunks(from_block, to_block, chunk_size):
        _check_cancelled(cancel_token, start)
        logs = _fetch_chunk(client, log_filter, start, end)
        if logs:
            return logs[0]
    return None


def build_topics(event_topic: str, indexed: Sequence[Optional[str]] = ()) -> Tuple[Optional[str], ...]:
    """topics[0] followed by indexed args; trailing wildcards are dropped."""
    topics = [event_topic, *indexed]
    while len(topics) > 1 and topics[-1] is None:
        topics.pop()
    return tuple(topics)
