from __future__ import annotations

from typing import Any, Optional

from chainmail.config import MAIL_SENT_EVENT
from chainmail.errors import TransientScanError
from chainmail.etl.transform.event_decoder import address_topic, event_topic, uint_topic

MAIL_TOPIC = event_topic(MAIL_SENT_EVENT)

REAL_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
MOCK_ADDRESS = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"

ALICE = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
BOB = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
CAROL = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"

BASE_TIMESTAMP = 1_700_000_000


def tx(n: int) -> str:
    return "0x" + f"{n:064x}"


def make_log(
    mail_id: int,
    sender: str,
    recipient: str,
    block_number: int,
    tx_hash: str,
    address: str = REAL_ADDRESS,
    log_index: int = 0,
) -> dict[str, Any]:
    return {
        "address": address,
        "topics": [MAIL_TOPIC, uint_topic(mail_id), address_topic(sender), address_topic(recipient)],
        "data": "0x",
        "blockNumber": hex(block_number),
        "transactionHash": tx_hash,
        "logIndex": hex(log_index),
        "removed": False,
    }


def _topics_match(wanted: list, actual: list) -> bool:
    for position, topic in enumerate(wanted):
        if topic is None:
            continue
        if position >= len(actual) or actual[position].lower() != topic.lower():
            return False
    return True


class FakeLedgerClient:
    """In-memory chain: logs are kept in ledger order."""

    def __init__(self, logs: Optional[list] = None, latest_block: int = 200, chain_id: int = 11155111) -> None:
        self.logs = list(logs or [])
        self.latest_block = latest_block
        self.chain_id = chain_id
        self.calls: list[tuple[str, int, int]] = []
        self.block_calls: list[int] = []
        self.fail_on_block: Optional[int] = None
        self.after_call = None

    def get_latest_block_number(self) -> int:
        return self.latest_block

    def get_chain_id(self) -> int:
        return self.chain_id

    def get_block(self, number: int) -> dict[str, int]:
        self.block_calls.append(number)
        return {"number": number, "timestamp": BASE_TIMESTAMP + number}

    def get_logs(self, raw_filter: dict[str, Any]) -> list[dict[str, Any]]:
        start = int(raw_filter["fromBlock"], 16)
        end = int(raw_filter["toBlock"], 16)
        self.calls.append((raw_filter["address"], start, end))

        if self.after_call is not None:
            self.after_call(len(self.calls))

        if self.fail_on_block is not None and start <= self.fail_on_block <= end:
            raise TransientScanError("429 Too Many Requests")

        out = []
        for log in self.logs:
            if log["address"].lower() != raw_filter["address"].lower():
                continue
            if not start <= int(log["blockNumber"], 16) <= end:
                continue
            if not _topics_match(raw_filter.get("topics", []), log["topics"]):
                continue
            out.append(log)
        return out

    def addresses_called(self) -> set[str]:
        return {address for address, _, _ in self.calls}
