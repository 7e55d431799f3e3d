"""Bounded block range for historical log scans."""

from typing import Optional

from chainmail.config import ChainmailConfig
from chainmail.models import BlockRange


def plan_range(latest_block: int, start_block: Optional[int], lookback_window: int) -> BlockRange:
    """
    Pick the closed range to scan.

    An explicit non-negative start wins (replaying a known span);
    otherwise scan the last `lookback_window` blocks, floored at genesis.
    """
    if lookback_window < 0:
        raise ValueError(f"lookback_window must be >= 0, got {lookback_window}")

    if start_block is not None and start_block >= 0:
        from_block = start_block
    else:
        from_block = max(0, latest_block - lookback_window)

    return BlockRange(from_block=from_block, to_block=latest_block)


def resolve_range(client, config: ChainmailConfig) -> BlockRange:
    """Figure out a safe block range from the chain head."""
    latest = client.get_latest_block_number()
    return plan_range(latest, config.start_block, config.lookback_window)
