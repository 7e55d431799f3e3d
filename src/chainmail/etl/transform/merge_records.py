"""
Reconciliation of chain events with off-chain mail records.

Both inputs are normalized into MergedRecord rows, then folded into a map
keyed by transaction hash:

    - no entry for the key   -> insert
    - entry exists           -> combine field by field (see combine_rows)
    - row has no tx hash     -> never merged; gets its own id-based or random key

The result is sorted newest first. Rows with a block number stay in block
order; rows without one are placed among them by date (see sort_records).
"""

import re
import secrets
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from chainmail.models import ChainEvent, MergedRecord, OffChainRecord

PLACEHOLDER_SUBJECT = "(encrypted/hidden)"
SUBJECT_CHARS = 80
SNIPPET_CHARS = 90
TX_PREVIEW_CHARS = 10

SOURCE_CHAIN = "chain"
SOURCE_DB = "db"
SOURCE_COMBINED = "combined"

_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")
_FRACTION_RE = re.compile(r"\.(\d+)")


# =============================================================================
# ROW NORMALIZATION
# =============================================================================

def strip_html(html: Optional[str]) -> str:
    """Replace tags with spaces and collapse whitespace."""
    if not isinstance(html, str):
        return ""
    return _SPACE_RE.sub(" ", _TAG_RE.sub(" ", html)).strip()


def derive_subject(subject: Optional[str], body_plain: str) -> str:
    if subject and subject.strip():
        return subject.strip()
    if body_plain:
        return body_plain[:SUBJECT_CHARS]
    return PLACEHOLDER_SUBJECT


def derive_snippet(body_plain: str, cid: Optional[str], tx_hash: Optional[str]) -> str:
    if body_plain:
        return body_plain[:SNIPPET_CHARS]
    if cid:
        return f"CID: {cid}"
    if tx_hash:
        return f"tx: {tx_hash[:TX_PREVIEW_CHARS]}…"
    return ""


def normalize_chain_event(event: ChainEvent) -> MergedRecord:
    return MergedRecord(
        key=event.tx_hash.lower(),
        id=event.id,
        sender=event.sender,
        recipient=event.recipient,
        cid="",
        tx_hash=event.tx_hash,
        block_number=event.block_number,
        date=event.block_time,
        subject=PLACEHOLDER_SUBJECT,
        snippet=derive_snippet("", None, event.tx_hash),
        body_plain="",
        # Chain events carry no read state
        read=False,
        source=SOURCE_CHAIN,
    )


def normalize_offchain_record(record: OffChainRecord) -> MergedRecord:
    body_plain = strip_html(record.body) if record.body else ""
    return MergedRecord(
        key=record.tx_hash.lower() if record.tx_hash else "",
        id=record.mail_id,
        sender=record.sender,
        recipient=record.recipient,
        cid=record.cid,
        tx_hash=record.tx_hash,
        block_number=record.block_number,
        date=record.timestamp or record.created_at,
        subject=derive_subject(record.subject, body_plain),
        snippet=derive_snippet(body_plain, record.cid, record.tx_hash),
        body_plain=body_plain,
        # Only an explicit unread=False counts as read; None stays unread
        read=record.unread is False,
        source=SOURCE_DB,
        mode=record.mode,
        chain_id=record.chain_id,
        contract=record.contract,
    )


# =============================================================================
# MERGE
# =============================================================================

def _chain_first(current: MergedRecord, incoming: MergedRecord, attr: str):
    """Ledger-anchored fields: a chain row's value beats a db row's value."""
    cur_value = getattr(current, attr)
    inc_value = getattr(incoming, attr)
    if inc_value is not None and incoming.source == SOURCE_CHAIN and current.source != SOURCE_CHAIN:
        return inc_value
    return cur_value if cur_value is not None else inc_value


def _non_empty(current_value, incoming_value):
    return incoming_value if incoming_value not in (None, "") else current_value


def combine_rows(current: MergedRecord, incoming: MergedRecord) -> MergedRecord:
    """
    Fold `incoming` into `current` for the same tx hash.

    Placeholder fields can be upgraded by a later row, never downgraded.
    """
    subject = current.subject
    if current.subject == PLACEHOLDER_SUBJECT and incoming.subject != PLACEHOLDER_SUBJECT:
        subject = incoming.subject

    body_plain = current.body_plain
    if len(incoming.body_plain or "") > len(current.body_plain or ""):
        body_plain = incoming.body_plain

    cid = _non_empty(current.cid, incoming.cid)
    tx_hash = current.tx_hash or incoming.tx_hash

    if current.source == incoming.source:
        source = current.source
    else:
        source = SOURCE_COMBINED

    return MergedRecord(
        key=current.key,
        id=_chain_first(current, incoming, "id"),
        sender=_chain_first(current, incoming, "sender"),
        recipient=_chain_first(current, incoming, "recipient"),
        cid=cid,
        tx_hash=tx_hash,
        block_number=_chain_first(current, incoming, "block_number"),
        date=_chain_first(current, incoming, "date"),
        subject=subject,
        snippet=derive_snippet(body_plain, cid, tx_hash),
        body_plain=body_plain,
        read=current.read or incoming.read,
        source=source,
        mode=_non_empty(current.mode, incoming.mode),
        chain_id=_non_empty(current.chain_id, incoming.chain_id),
        contract=_non_empty(current.contract, incoming.contract),
    )


def _unmerged_key(row: MergedRecord, used: Set[str]) -> str:
    """Key for a row without tx hash: its id if still free, else a random token."""
    if row.id is not None and f"id:{row.id}" not in used:
        return f"id:{row.id}"
    token = secrets.token_hex(8)
    while token in used:
        token = secrets.token_hex(8)
    return token


def fold_rows(rows: Iterable[MergedRecord]) -> List[MergedRecord]:
    """Keyed fold preserving first-seen order (sorting happens afterwards)."""
    merged: Dict[str, MergedRecord] = {}
    for row in rows:
        if not row.tx_hash:
            row.key = _unmerged_key(row, merged.keys())
            merged[row.key] = row
            continue

        key = row.tx_hash.lower()
        row.key = key
        current = merged.get(key)
        merged[key] = row if current is None else combine_rows(current, row)
    return list(merged.values())


# =============================================================================
# ORDERING
# =============================================================================

def _date_value(date: Optional[str]) -> float:
    """ISO-8601 -> unix seconds; unparseable or missing dates sort as oldest."""
    if not date:
        return 0.0
    # fromisoformat before 3.11 only takes 3 or 6 fraction digits and no "Z"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), date.strip(), count=1)
    text = text.replace("Z", "+00:00").replace("z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def sort_records(records: Iterable[MergedRecord]) -> List[MergedRecord]:
    """
    Newest first.

    Rows with a block number keep strict block order (descending); rows
    without one are ordered by date and slotted in by comparing dates at the
    heads of the two runs. Ties go to the block-bearing row.
    """
    with_block = []
    without_block = []
    for record in records:
        (with_block if record.block_number is not None else without_block).append(record)

    with_block.sort(key=lambda r: r.block_number, reverse=True)
    without_block.sort(key=lambda r: _date_value(r.date), reverse=True)

    ordered: List[MergedRecord] = []
    i = j = 0
    while i < len(with_block) and j < len(without_block):
        if _date_value(without_block[j].date) > _date_value(with_block[i].date):
            ordered.append(without_block[j])
            j += 1
        else:
            ordered.append(with_block[i])
            i += 1
    ordered.extend(with_block[i:])
    ordered.extend(without_block[j:])
    return ordered


def merge_records(
    chain_events: Iterable[ChainEvent],
    offchain_records: Iterable[OffChainRecord],
) -> List[MergedRecord]:
    """
    Merge on-chain and off-chain views of the same mailbox.

    Chain rows are folded first, then store rows, so a store record can
    upgrade the placeholder subject/body of the chain event it belongs to.
    """
    rows = [normalize_chain_event(event) for event in chain_events]
    rows.extend(normalize_offchain_record(record) for record in offchain_records)
    return sort_records(fold_rows(rows))
