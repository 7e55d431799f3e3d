"""
Off-chain mail record stores.

The submission path writes one document per sent mail; the reconciliation
engine only reads them. Three backends share the MailStore port:

    InMemoryMailStore  - documents held in a list (tests, fixtures)
    JsonlMailStore     - JSONL export of the mail collection, read with polars
    PostgresMailStore  - mail.messages table via psycopg2

find_by_recipient / find_by_sender return newest first (createdAt desc).
find_by_id matches the document id (`_id` in the export, the `id` column in Postgres).
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

import polars as pl
import psycopg2
import psycopg2.extras
from dotenv import load_dotenv

from chainmail.models import OffChainRecord, to_iso

# Load environment variables from .env so local runs work without exporting.
load_dotenv()

LOGGER = logging.getLogger(__name__)


class MailStore(Protocol):
    """Read operations the engine needs from the off-chain store."""

    def find_by_recipient(self, address: str) -> List[OffChainRecord]:
        ...

    def find_by_sender(self, address: str) -> List[OffChainRecord]:
        ...

    def find_by_tx_hash(self, tx_hash: str) -> Optional[OffChainRecord]:
        ...

    def find_by_id(self, record_id: str) -> Optional[OffChainRecord]:
        ...


def _newest_first(records: Iterable[OffChainRecord]) -> List[OffChainRecord]:
    # ISO-8601 UTC strings sort chronologically; missing createdAt goes last
    records = list(records)
    with_date = [r for r in records if r.created_at]
    without_date = [r for r in records if not r.created_at]
    return sorted(with_date, key=lambda r: r.created_at, reverse=True) + without_date


class InMemoryMailStore:
    """Store backed by a list of Mongo-style documents."""

    def __init__(self, documents: Iterable[Dict[str, Any]] = ()):
        self._records = [OffChainRecord.from_document(doc) for doc in documents]

    def __len__(self) -> int:
        return len(self._records)

    def add(self, document: Dict[str, Any]) -> OffChainRecord:
        record = OffChainRecord.from_document(document)
        self._records.append(record)
        return record

    def find_by_recipient(self, address: str) -> List[OffChainRecord]:
        who = address.lower()
        return _newest_first(r for r in self._records if r.recipient == who)

    def find_by_sender(self, address: str) -> List[OffChainRecord]:
        who = address.lower()
        return _newest_first(r for r in self._records if r.sender == who)

    def find_by_tx_hash(self, tx_hash: str) -> Optional[OffChainRecord]:
        wanted = tx_hash.lower()
        for record in self._records:
            if record.tx_hash and record.tx_hash.lower() == wanted:
                return record
        return None

    def find_by_id(self, record_id: str) -> Optional[OffChainRecord]:
        wanted = str(record_id)
        for record in self._records:
            if record.record_id == wanted:
                return record
        return None


class JsonlMailStore(InMemoryMailStore):
    """
    Store backed by a JSONL export (one mail document per line).

    The file is read once at construction; a missing or empty file is an empty store.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(self._read_documents(self.path))

    @staticmethod
    def _read_documents(path: Path) -> List[Dict[str, Any]]:
        if not path.exists() or path.stat().st_size == 0:
            LOGGER.info("Mail export %s missing or empty, starting with no records", path)
            return []

        df = pl.read_ndjson(path)
        LOGGER.debug("Loaded %s mail documents from %s", len(df), path)
        return df.to_dicts()


def get_db_connection(
    host: Optional[str] = None,
    port: Optional[str] = None,
    dbname: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
):
    """
    Open a Postgres connection using psycopg2.

    - Parameters override environment variables; if omitted, we read env vars.
    - Env vars: POSTGRES_HOST (default "localhost"), POSTGRES_PORT (default "5432"),
      POSTGRES_DB, POSTGRES_USER, POSTGRES_PASSWORD.
    """
    conn = psycopg2.connect(
        host=host or os.getenv("POSTGRES_HOST", "localhost"),
        port=port or os.getenv("POSTGRES_PORT", "5432"),
        database=dbname or os.getenv("POSTGRES_DB", "chainmail"),
        user=user or os.getenv("POSTGRES_USER"),
        password=password or os.getenv("POSTGRES_PASSWORD"),
    )
    return conn


def create_mail_table(conn, table_name: str = "messages") -> str:
    """
    Create the mail landing table (mirrors the document store schema).
    """
    create_sql = f"""
    CREATE SCHEMA IF NOT EXISTS mail;
    CREATE TABLE IF NOT EXISTS mail.{table_name} (
        id              SERIAL PRIMARY KEY,
        mail_id         BIGINT,
        sender          TEXT NOT NULL,
        recipient       TEXT NOT NULL,
        cid             TEXT DEFAULT '',
        tx_hash         TEXT NOT NULL,
        subject         TEXT,
        body            TEXT,
        timestamp       TIMESTAMPTZ,
        unread          BOOLEAN,
        chain_id        BIGINT,
        contract        TEXT,
        block_number    BIGINT,
        mode            TEXT CHECK (mode IN ('real', 'mock', 'tx-first')),
        created_at      TIMESTAMPTZ DEFAULT NOW()
    );
    CREATE INDEX IF NOT EXISTS {table_name}_tx_hash_idx ON mail.{table_name} (tx_hash);
    CREATE INDEX IF NOT EXISTS {table_name}_sender_idx ON mail.{table_name} (sender);
    CREATE INDEX IF NOT EXISTS {table_name}_recipient_idx ON mail.{table_name} (recipient);
    """
    with conn.cursor() as cur:
        cur.execute(create_sql)
    conn.commit()

    return table_name


def _row_to_document(row: Dict[str, Any]) -> Dict[str, Any]:
    """Map a mail.messages row onto the document field names."""
    return {
        "_id": row.get("id"),
        "mailId": row.get("mail_id"),
        "from": row.get("sender"),
        "to": row.get("recipient"),
        "cid": row.get("cid"),
        "txHash": row.get("tx_hash"),
        "subject": row.get("subject"),
        "body": row.get("body"),
        "timestamp": to_iso(row.get("timestamp")),
        "unread": row.get("unread"),
        "chainId": row.get("chain_id"),
        "contract": row.get("contract"),
        "blockNumber": row.get("block_number"),
        "mode": row.get("mode"),
        "createdAt": to_iso(row.get("created_at")),
    }


class PostgresMailStore:
    """Read-only queries against mail.messages."""

    COLUMNS = (
        "id, mail_id, sender, recipient, cid, tx_hash, subject, body, timestamp, "
        "unread, chain_id, contract, block_number, mode, created_at"
    )

    def __init__(self, conn, table_name: str = "messages"):
        self.conn = conn
        self.table_name = table_name

    @classmethod
    def from_env(cls) -> "PostgresMailStore":
        return cls(get_db_connection())

    def _query(self, where: str, value: str, limit: Optional[int] = None) -> List[OffChainRecord]:
        sql = f"SELECT {self.COLUMNS} FROM mail.{self.table_name} WHERE {where} = %s ORDER BY created_at DESC"
        if limit:
            sql += f" LIMIT {int(limit)}"
        with self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(sql, (value,))
            rows = cur.fetchall()
        return [OffChainRecord.from_document(_row_to_document(dict(row))) for row in rows]

    def find_by_recipient(self, address: str) -> List[OffChainRecord]:
        return self._query("recipient", address.lower())

    def find_by_sender(self, address: str) -> List[OffChainRecord]:
        return self._query("sender", address.lower())

    def find_by_tx_hash(self, tx_hash: str) -> Optional[OffChainRecord]:
        records = self._query("lower(tx_hash)", tx_hash.lower(), limit=1)
        return records[0] if records else None

    def find_by_id(self, record_id: str) -> Optional[OffChainRecord]:
        records = self._query("id::text", str(record_id), limit=1)
        return records[0] if records else None

    def close(self) -> None:
        self.conn.close()
