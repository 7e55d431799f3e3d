"""
EncryptedMailSent event decoding.

# ============================================================================
# ENCRYPTED MAIL SENT EVENT
# ============================================================================
# Event signature (topics[0]):
# keccak256("EncryptedMailSent(uint256,address,address)")
#
# Indexed parameters (in topics):
#   topics[1] = id    (uint256, ledger-assigned sequence number)
#   topics[2] = from  (address, padded to 32 bytes)
#   topics[3] = to    (address, padded to 32 bytes)
#
# The data field carries nothing the reconciliation engine needs.
# ============================================================================
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_checksum_address

from chainmail.errors import DecodeError

TOPIC_HEX_LENGTH = 66  # "0x" + 64 hex chars


def event_topic(signature: str) -> str:
    """topics[0] for an event signature string."""
    return "0x" + keccak(text=signature).hex()


def uint_topic(value: int) -> str:
    """Indexed uint256 as a 32-byte topic (zero-padded, lowercase)."""
    return "0x" + encode(["uint256"], [value]).hex()


def address_topic(address: str) -> str:
    """Indexed address as a 32-byte topic (right-aligned, lowercase)."""
    return "0x" + encode(["address"], [to_checksum_address(address)]).hex()


def _topic_bytes(topic: Any, position: int) -> bytes:
    if not isinstance(topic, str) or len(topic) != TOPIC_HEX_LENGTH or not topic.lower().startswith("0x"):
        raise DecodeError(f"topics[{position}] is not a 32-byte hex word: {topic!r}")
    try:
        return bytes.fromhex(topic[2:])
    except ValueError as e:
        raise DecodeError(f"topics[{position}] is not hex: {topic!r}") from e


def _quantity(value: Any, name: str) -> int:
    if value is None:
        raise DecodeError(f"log has no {name}")
    try:
        if isinstance(value, str):
            return int(value, 16) if value.lower().startswith("0x") else int(value)
        return int(value)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"log {name} is not a number: {value!r}") from e


def decode_mail_sent_log(log: Dict[str, Any], expected_topic: str) -> Dict[str, Any]:
    """
    Decode an EncryptedMailSent EVENT LOG from eth_getLogs.

    Args:
        log: a single log entry (dict with 'topics', 'transactionHash', 'blockNumber', ...)
        expected_topic: topics[0] of the event we scanned for

    Returns:
        {"id", "sender", "recipient", "tx_hash", "block_number", "log_index"}

    Raises:
        DecodeError: wrong event, missing metadata, malformed topics
    """
    if not isinstance(log, dict):
        raise DecodeError(f"log entry is not an object: {type(log).__name__}")

    # Reorged-out logs are not part of the canonical chain
    if log.get("removed"):
        raise DecodeError("log was removed by a chain reorganization")

    # Step 1: Validate this is an EncryptedMailSent event by checking topic[0]
    topics = log.get("topics") or []
    if len(topics) < 4:
        raise DecodeError(f"Expected 4 topics, got {len(topics)}")

    if str(topics[0]).lower() != expected_topic.lower():
        raise DecodeError(f"Not an EncryptedMailSent event. Expected topic[0]={expected_topic}, got {topics[0]}")

    # Step 2: Extract INDEXED parameters from topics
    try:
        (mail_id,) = decode(["uint256"], _topic_bytes(topics[1], 1))
        (sender,) = decode(["address"], _topic_bytes(topics[2], 2))
        (recipient,) = decode(["address"], _topic_bytes(topics[3], 3))
    except DecodingError as e:
        raise DecodeError(f"Cannot decode indexed topics: {e}") from e

    # Step 3: Metadata from log
    tx_hash = log.get("transactionHash")
    if not tx_hash:
        raise DecodeError("log has no transactionHash")

    return {
        "id": int(mail_id),
        "sender": to_checksum_address(sender),
        "recipient": to_checksum_address(recipient),
        "tx_hash": tx_hash,
        "block_number": _quantity(log.get("blockNumber"), "blockNumber"),
        "log_index": _quantity(log.get("logIndex", 0), "logIndex"),
    }


@dataclass(frozen=True)
class DecodeResult:
    """Either decoded fields or the reason the entry was skipped."""

    fields: Optional[Dict[str, Any]] = None
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.fields is None


def decode_log(log: Dict[str, Any], expected_topic: str) -> DecodeResult:
    """Skip-or-decode policy: a malformed entry becomes a skip, not an exception."""
    try:
        return DecodeResult(fields=decode_mail_sent_log(log, expected_topic))
    except DecodeError as e:
        return DecodeResult(skip_reason=str(e))
