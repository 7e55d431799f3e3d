"""
Command-line access to the mail views.

    python -m chainmail inbox 0xabc... [--mock]
    python -m chainmail sent 0xabc... [--mock]
    python -m chainmail message 42 [--mock]
    python -m chainmail message 65a1f0c2e4b0a1b2c3d4e5f6
    python -m chainmail tx 0xdeadbeef...
    python -m chainmail logs 0xabc... --direction sent --output data/raw/logs/sent.jsonl
    python -m chainmail check

Results are printed as JSON.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from chainmail.config import PATHS, load_config, validate_config
from chainmail.errors import ChainmailError
from chainmail.etl.extract.extract_utils import save_logs_to_jsonl
from chainmail.etl.extract.log_scanner import CancelToken
from chainmail.etl.extract.rpc_client import RpcClient
from chainmail.etl.load.mail_store import InMemoryMailStore, JsonlMailStore, PostgresMailStore
from chainmail.mail_service import INBOX, SENT, MailService

EXIT_ERROR = 1
EXIT_NOT_FOUND = 2


def build_store():
    """MAIL_STORE selects the backend: memory | jsonl (default) | postgres."""
    backend = os.getenv("MAIL_STORE", "jsonl").lower()
    if backend == "postgres":
        return PostgresMailStore.from_env()
    if backend == "memory":
        return InMemoryMailStore()
    return JsonlMailStore(Path(os.getenv("MAIL_JSONL") or PATHS["mail_export"]))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chainmail",
        description="Reconcile on-chain mail events with the off-chain mail store",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--timeout", type=float, default=None, help="Abort the scan after N seconds")
    sub = parser.add_subparsers(dest="command", required=True)

    inbox = sub.add_parser("inbox", help="Mail received by an address")
    inbox.add_argument("address")
    inbox.add_argument("--mock", action="store_true", help="Scan the mock contract")

    sent = sub.add_parser("sent", help="Mail sent by an address (falls back to mock when real is empty)")
    sent.add_argument("address")
    sent.add_argument("--mock", action="store_true", help="Scan the mock contract")

    message = sub.add_parser("message", help="One mail by store document id (24 hex) or on-chain id")
    message.add_argument("id")
    message.add_argument("--mock", action="store_true", help="Scan the mock contract")

    tx = sub.add_parser("tx", help="Stored mail record by transaction hash")
    tx.add_argument("tx_hash")

    logs = sub.add_parser("logs", help="Dump raw EncryptedMailSent logs to JSONL")
    logs.add_argument("address")
    logs.add_argument("--direction", choices=[INBOX, SENT], default=INBOX)
    logs.add_argument("--mock", action="store_true", help="Scan the mock contract")
    logs.add_argument("--output", default=None, help="Output .jsonl (default: data/raw/logs/<direction>_<address>.jsonl)")

    sub.add_parser("check", help="Show chain id and resolved contract addresses")
    return parser


def run(args, service: MailService) -> int:
    cancel_token = CancelToken.with_timeout(args.timeout) if args.timeout else None

    if args.command == "inbox":
        result = service.get_inbox(args.address, args.mock, cancel_token).to_dict()
    elif args.command == "sent":
        result = service.get_sent(args.address, args.mock, cancel_token).to_dict()
    elif args.command == "message":
        found = service.get_message(args.id, args.mock, cancel_token)
        if found is None:
            print(json.dumps({"error": "Not found"}))
            return EXIT_NOT_FOUND
        result = found.to_dict()
    elif args.command == "tx":
        mail = service.get_message_by_tx_hash(args.tx_hash)
        if mail is None:
            print(json.dumps({"error": "Not found"}))
            return EXIT_NOT_FOUND
        result = {"mail": mail.to_dict()}
    elif args.command == "logs":
        source = service.select_source(args.mock, args.direction)
        topics = service.participant_topics(args.address, args.direction)
        raw_logs = service.fetch_raw_logs(source, topics, cancel_token, show_progress=True)
        output = args.output or str(PATHS["raw_logs"] / f"{args.direction}_{args.address.lower()}.jsonl")
        written = save_logs_to_jsonl(raw_logs, output)
        result = {"scanned": len(raw_logs), "written": written, "output": output}
    else:
        result = service.check_connection()

    print(json.dumps(result, indent=2))
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config()
        validate_config(config)
        service = MailService(config, RpcClient.from_config(config), build_store())
        return run(args, service)
    except (ChainmailError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
