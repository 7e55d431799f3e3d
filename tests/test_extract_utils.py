from __future__ import annotations

import json

from chainmail.etl.extract.extract_utils import save_logs_to_jsonl

from fakes import ALICE, BOB, make_log, tx


def test_appends_only_new_logs(tmp_path) -> None:
    output = tmp_path / "raw" / "logs.jsonl"
    first = [make_log(1, ALICE, BOB, 100, tx(1)), make_log(2, ALICE, BOB, 101, tx(2))]

    assert save_logs_to_jsonl(first, str(output)) == 2
    assert save_logs_to_jsonl(first + [make_log(3, BOB, ALICE, 102, tx(3))], str(output)) == 1

    lines = [json.loads(line) for line in output.read_text(encoding="utf-8").splitlines()]
    assert [line["transactionHash"] for line in lines] == [tx(1), tx(2), tx(3)]


def test_same_tx_different_log_index_is_kept(tmp_path) -> None:
    output = tmp_path / "logs.jsonl"
    logs = [make_log(1, ALICE, BOB, 100, tx(1)), make_log(2, ALICE, BOB, 100, tx(1), log_index=1)]

    assert save_logs_to_jsonl(logs, str(output)) == 2
