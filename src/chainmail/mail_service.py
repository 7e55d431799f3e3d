"""
Inbox / sent / message views over the mailbox contracts and the mail store.

Each call runs one bounded pipeline and returns:

    resolve range -> chunked eth_getLogs -> materialize -> merge with store rows

MailService keeps no mutable state between calls; the addresses are resolved
once at construction and the client/store handles are shared read-only.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from eth_utils import to_checksum_address

from chainmail.config import ChainmailConfig
from chainmail.etl.extract.address_resolver import AddressResolver, is_address
from chainmail.etl.extract.log_scanner import CancelToken, LogFilter, build_topics, scan_first_match, scan_logs
from chainmail.etl.extract.range_planner import resolve_range
from chainmail.etl.load.mail_store import MailStore
from chainmail.etl.transform.event_decoder import address_topic, event_topic, uint_topic
from chainmail.etl.transform.materialize_events import materialize_events
from chainmail.etl.transform.merge_records import merge_records
from chainmail.models import ChainEvent, MergedRecord, OffChainRecord

LOGGER = logging.getLogger(__name__)

INBOX = "inbox"
SENT = "sent"

# Store document ids are 24-hex ObjectIds
STORE_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


@dataclass(frozen=True)
class ContractSource:
    """One deployed mailbox contract: the real (encrypted) one or its mock."""

    label: str
    address: str


@dataclass
class InboxResult:
    records: List[MergedRecord]
    mock: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"source": "combined", "mock": self.mock, "inbox": [r.to_dict() for r in self.records]}


@dataclass
class SentResult:
    records: List[MergedRecord]
    mock: bool
    mock_fallback_used: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": "combined",
            "mock": self.mock,
            "mockFallbackUsed": self.mock_fallback_used,
            "sent": [r.to_dict() for r in self.records],
        }


@dataclass
class MessageResult:
    """One message, from the store (by document id) or from the chain (by event id)."""

    mail: Union[OffChainRecord, MergedRecord]
    source: str
    mock: bool = False

    def to_dict(self) -> Dict[str, Any]:
        if self.source == "database":
            return {"source": self.source, "mail": self.mail.to_dict()}
        return {"source": self.source, "mock": self.mock, "mail": self.mail.to_dict()}


def checksum_or_raw(address: str) -> str:
    """Checksummed form for topic filters; the raw string if it can't be checksummed."""
    try:
        return to_checksum_address(address)
    except (TypeError, ValueError):
        return address


class MailService:
    """Chain-state reconciliation for one configured chain."""

    def __init__(
        self,
        config: ChainmailConfig,
        client,
        store: MailStore,
        resolver: Optional[AddressResolver] = None,
    ):
        self.config = config
        self.client = client
        self.store = store

        resolver = resolver or AddressResolver.from_config(config)
        # Both contracts resolve up front; a missing one is fatal at startup
        self.real = ContractSource("real", resolver.resolve(config.real_contract_key, config.chain_id))
        self.mock = ContractSource("mock", resolver.resolve(config.mock_contract_key, config.chain_id))
        self.event_topic = event_topic(config.event_signature)

        LOGGER.info(
            "Mail service ready: chainId=%s mailbox=%s mailboxMock=%s",
            config.chain_id, self.real.address, self.mock.address,
        )

    # =========================================================================
    # SOURCE SELECTION
    # =========================================================================

    def select_source(self, use_mock: bool, direction: str) -> ContractSource:
        """
        Pick the contract to scan first.

        The caller's choice is authoritative for the first scan in both
        directions; get_sent adds the real -> mock fallback on top.
        """
        if direction not in (INBOX, SENT):
            raise ValueError(f"direction must be '{INBOX}' or '{SENT}', got {direction!r}")
        return self.mock if use_mock else self.real

    def participant_topics(self, address: str, direction: str) -> tuple:
        who = checksum_or_raw(address)
        if not is_address(who):
            raise ValueError(f"Invalid address: {address!r}")
        topic = address_topic(who)
        # topics: [event, id, from, to]
        if direction == INBOX:
            return build_topics(self.event_topic, [None, None, topic])
        return build_topics(self.event_topic, [None, topic])

    def fetch_raw_logs(
        self,
        source: ContractSource,
        topics: tuple,
        cancel_token: Optional[CancelToken] = None,
        show_progress: bool = False,
    ) -> List[Dict[str, Any]]:
        block_range = resolve_range(self.client, self.config)
        return scan_logs(
            self.client,
            LogFilter(source.address, topics),
            block_range.from_block,
            block_range.to_block,
            chunk_size=self.config.chunk_size,
            cancel_token=cancel_token,
            show_progress=show_progress,
        )

    def scan_mail_events(
        self,
        address: str,
        direction: str,
        source: ContractSource,
        cancel_token: Optional[CancelToken] = None,
    ) -> List[ChainEvent]:
        """Chain events where `address` is the recipient (inbox) or sender (sent)."""
        topics = self.participant_topics(address, direction)
        raw_logs = self.fetch_raw_logs(source, topics, cancel_token)
        events = materialize_events(raw_logs, self.client, self.event_topic)
        return sorted(events, key=lambda e: e.block_number, reverse=True)

    # =========================================================================
    # VIEWS
    # =========================================================================

    def get_inbox(self, address: str, use_mock: bool = False, cancel_token: Optional[CancelToken] = None) -> InboxResult:
        source = self.select_source(use_mock, INBOX)
        chain_events = self.scan_mail_events(address, INBOX, source, cancel_token)
        local_mails = self.store.find_by_recipient(address.lower())
        return InboxResult(records=merge_records(chain_events, local_mails), mock=use_mock)

    def get_sent(self, address: str, use_mock: bool = False, cancel_token: Optional[CancelToken] = None) -> SentResult:
        """
        Sent view with real-first, mock-fallback.

        If the caller did not ask for mock and the real contract shows nothing,
        the identical query runs against the mock contract. Never mock -> real.
        """
        source = self.select_source(use_mock, SENT)
        chain_events = self.scan_mail_events(address, SENT, source, cancel_token)
        mock_used = use_mock
        fallback_used = False

        if not use_mock and not chain_events:
            mock_try = self.scan_mail_events(address, SENT, self.mock, cancel_token)
            if mock_try:
                LOGGER.info("No sent mail for %s on %s; using %s mock events", address, self.real.address, len(mock_try))
                chain_events = mock_try
                mock_used = True
                fallback_used = True

        local_mails = self.store.find_by_sender(address.lower())
        return SentResult(
            records=merge_records(chain_events, local_mails),
            mock=mock_used,
            mock_fallback_used=fallback_used,
        )

    def get_message_by_id(
        self,
        numeric_id: int,
        use_mock: bool = False,
        cancel_token: Optional[CancelToken] = None,
    ) -> Optional[MergedRecord]:
        """
        Find the EncryptedMailSent event with indexed id `numeric_id`.

        Stops at the first chunk that holds a match. Returns None when the id
        is not in the scanned range or its log can't be decoded.
        """
        if numeric_id < 0:
            return None

        source = self.mock if use_mock else self.real
        block_range = resolve_range(self.client, self.config)
        log = scan_first_match(
            self.client,
            LogFilter(source.address, build_topics(self.event_topic, [uint_topic(numeric_id)])),
            block_range.from_block,
            block_range.to_block,
            chunk_size=self.config.chunk_size,
            cancel_token=cancel_token,
        )
        if log is None:
            return None

        events = materialize_events([log], self.client, self.event_topic)
        if not events:
            return None

        event = events[0]
        stored = self.store.find_by_tx_hash(event.tx_hash)
        merged = merge_records([event], [stored] if stored else [])
        return merged[0]

    def get_message_by_store_id(self, record_id: str) -> Optional[OffChainRecord]:
        """Store lookup by document id; None unless `record_id` is a 24-hex id."""
        if not isinstance(record_id, str) or not STORE_ID_PATTERN.match(record_id):
            return None
        return self.store.find_by_id(record_id)

    def get_message(
        self,
        raw_id: str,
        use_mock: bool = False,
        cancel_token: Optional[CancelToken] = None,
    ) -> Optional[MessageResult]:
        """
        Resolve a message id the way the mail API does.

        A 24-hex id is tried as a store document id first. Otherwise (or when
        no document matches) the id must be numeric and is looked up on chain.

        Raises:
            ValueError: the id is neither a known document id nor a number
        """
        raw_id = str(raw_id).strip()
        stored = self.get_message_by_store_id(raw_id)
        if stored is not None:
            return MessageResult(mail=stored, source="database")

        try:
            numeric_id = int(raw_id)
        except ValueError:
            raise ValueError(f"Invalid id: {raw_id!r}") from None

        mail = self.get_message_by_id(numeric_id, use_mock, cancel_token)
        if mail is None:
            return None
        return MessageResult(mail=mail, source="blockchain", mock=use_mock)

    def get_message_by_tx_hash(self, tx_hash: str) -> Optional[OffChainRecord]:
        """Pure store lookup; no chain scan."""
        if not tx_hash:
            return None
        return self.store.find_by_tx_hash(tx_hash.lower())

    def check_connection(self) -> Dict[str, Any]:
        return {
            "chainId": self.client.get_chain_id(),
            "mailbox": self.real.address,
            "mailboxMock": self.mock.address,
        }
