from __future__ import annotations

import pytest

from chainmail.config import ChainmailConfig
from chainmail.etl.extract.range_planner import plan_range, resolve_range
from chainmail.models import BlockRange

from fakes import FakeLedgerClient


def test_lookback_window_from_latest() -> None:
    assert plan_range(5000, None, 1000) == BlockRange(4000, 5000)


def test_lookback_floors_at_genesis() -> None:
    assert plan_range(300, None, 1000) == BlockRange(0, 300)


def test_explicit_start_block_wins() -> None:
    assert plan_range(5000, 1234, 10) == BlockRange(1234, 5000)


def test_start_block_zero_is_explicit() -> None:
    assert plan_range(5000, 0, 10) == BlockRange(0, 5000)


def test_negative_start_block_is_ignored() -> None:
    assert plan_range(5000, -1, 100) == BlockRange(4900, 5000)


def test_negative_window_is_rejected() -> None:
    with pytest.raises(ValueError):
        plan_range(5000, None, -1)


def test_resolve_range_asks_client_for_head() -> None:
    client = FakeLedgerClient(latest_block=777)
    config = ChainmailConfig(rpc_url="http://localhost:8545", chain_id=11155111, lookback_window=77)

    assert resolve_range(client, config) == BlockRange(700, 777)
