"""
Raw eth_getLogs entries -> ChainEvent records.

Block timestamps are looked up once per distinct block within one call,
so N events in the same block cost one eth_getBlockByNumber, not N.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Tuple

from chainmail.etl.transform.event_decoder import decode_log
from chainmail.models import ChainEvent, to_iso

LOGGER = logging.getLogger(__name__)


def block_time_iso(timestamp: int) -> str:
    """Unix seconds -> "2025-01-01T00:00:00.000Z" (JavaScript toISOString shape)."""
    return to_iso(datetime.fromtimestamp(int(timestamp), timezone.utc))


class BlockTimeCache:
    """Per-scan memo of block number -> ISO block time. Not shared across calls."""

    def __init__(self, client):
        self._client = client
        self._times: Dict[int, str] = {}

    def __call__(self, block_number: int) -> str:
        if block_number not in self._times:
            block = self._client.get_block(block_number)
            self._times[block_number] = block_time_iso(block["timestamp"])
        return self._times[block_number]

    def __len__(self) -> int:
        return len(self._times)


def materialize_with_report(
    raw_logs: Iterable[Dict[str, Any]],
    client,
    expected_topic: str,
) -> Tuple[List[ChainEvent], List[Tuple[int, str]]]:
    """
    Decode raw logs in order.

    Returns:
        (events, skipped) where skipped holds (position, reason) for each
        entry that could not be decoded.
    """
    block_time = BlockTimeCache(client)
    events: List[ChainEvent] = []
    skipped: List[Tuple[int, str]] = []

    for position, log in enumerate(raw_logs):
        result = decode_log(log, expected_topic)
        if result.skipped:
            skipped.append((position, result.skip_reason))
            continue

        fields = result.fields
        events.append(
            ChainEvent(
                id=fields["id"],
                sender=fields["sender"],
                recipient=fields["recipient"],
                tx_hash=fields["tx_hash"],
                block_number=fields["block_number"],
                block_time=block_time(fields["block_number"]),
                log_index=fields["log_index"],
            )
        )

    return events, skipped


def materialize_events(raw_logs: Iterable[Dict[str, Any]], client, expected_topic: str) -> List[ChainEvent]:
    """Decode raw logs, logging and dropping any that are malformed."""
    events, skipped = materialize_with_report(raw_logs, client, expected_topic)
    for position, reason in skipped:
        LOGGER.warning("Skipping log #%s: %s", position, reason)
    return events
