"""
Record types shared by the extract, transform and load stages.

JSON field names (from, to, txHash, blockNumber, ...) are only used at the
edges: `from_document()` reads store documents, `to_dict()` writes API rows.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def to_iso(value: Any) -> Optional[str]:
    """Render a datetime / unix seconds / string as an ISO-8601 UTC string."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return to_iso(datetime.fromtimestamp(value, timezone.utc))
    return str(value)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.lower().startswith("0x"):
        return int(value, 16)
    return int(value)


@dataclass(frozen=True)
class BlockRange:
    """Closed block interval [from_block, to_block]."""

    from_block: int
    to_block: int


@dataclass(frozen=True)
class ChainEvent:
    """One EncryptedMailSent log, decoded."""

    id: Optional[int]
    sender: str
    recipient: str
    tx_hash: str
    block_number: int
    block_time: str
    log_index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "txHash": self.tx_hash,
            "blockNumber": self.block_number,
            "blockTime": self.block_time,
        }


@dataclass(frozen=True)
class OffChainRecord:
    """A persisted mail annotation written by the submission path."""

    sender: str
    recipient: str
    cid: str = ""
    tx_hash: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    mode: Optional[str] = None
    chain_id: Optional[int] = None
    block_number: Optional[int] = None
    contract: Optional[str] = None
    unread: Optional[bool] = None
    mail_id: Optional[int] = None
    timestamp: Optional[str] = None
    created_at: Optional[str] = None
    record_id: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "OffChainRecord":
        """
        Build a record from a store document (Mongo-style field names).

        Sender/recipient are lower-cased the way the store persists them.
        `unread` keeps None distinct from False.
        """
        unread = doc.get("unread")
        record_id = doc.get("_id", doc.get("id"))
        # mongoexport writes ObjectIds as {"$oid": "..."}
        if isinstance(record_id, dict):
            record_id = record_id.get("$oid")
        return cls(
            sender=(doc.get("from") or "").lower(),
            recipient=(doc.get("to") or "").lower(),
            cid=doc.get("cid") or "",
            tx_hash=doc.get("txHash") or None,
            subject=doc.get("subject"),
            body=doc.get("body"),
            mode=doc.get("mode"),
            chain_id=_optional_int(doc.get("chainId")),
            block_number=_optional_int(doc.get("blockNumber")),
            contract=doc.get("contract"),
            unread=unread if isinstance(unread, bool) else None,
            mail_id=_optional_int(doc.get("mailId")),
            timestamp=to_iso(doc.get("timestamp")),
            created_at=to_iso(doc.get("createdAt")),
            record_id=str(record_id) if record_id is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.record_id,
            "mailId": self.mail_id,
            "from": self.sender,
            "to": self.recipient,
            "cid": self.cid,
            "txHash": self.tx_hash,
            "subject": self.subject,
            "body": self.body,
            "timestamp": self.timestamp,
            "unread": self.unread,
            "chainId": self.chain_id,
            "contract": self.contract,
            "blockNumber": self.block_number,
            "mode": self.mode,
            "createdAt": self.created_at,
        }


@dataclass
class MergedRecord:
    """Output row of one inbox/sent/message response. Never persisted."""

    key: str
    id: Optional[int]
    sender: str
    recipient: str
    cid: str
    tx_hash: Optional[str]
    block_number: Optional[int]
    date: Optional[str]
    subject: str
    snippet: str
    body_plain: str
    read: bool
    source: str
    mode: Optional[str] = None
    chain_id: Optional[int] = None
    contract: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        row = {
            "key": self.key,
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "cid": self.cid,
            "txHash": self.tx_hash,
            "blockNumber": self.block_number,
            "date": self.date,
            "subject": self.subject,
            "snippet": self.snippet,
            "bodyPlain": self.body_plain,
            "read": self.read,
            "source": self.source,
        }
        if self.mode is not None:
            row["mode"] = self.mode
        if self.chain_id is not None:
            row["chainId"] = self.chain_id
        if self.contract is not None:
            row["contract"] = self.contract
        return row
