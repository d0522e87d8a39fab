"""
Follow a database changes feed and print every change as a JSON line.

Usage:
    # One-shot: print pending changes and exit
    change-tracker-follow https://db.example.com/inbox

    # Long poll from a sequence, 100 changes per request
    change-tracker-follow https://db.example.com/inbox --mode longpoll --since 42 --limit 100

    # Extra headers, server filter, credentials
    change-tracker-follow https://db.example.com/inbox -H "X-Replication-Id: r1" \\
        --filter app/by_owner --user bob --password s3cret

    # Settings from a YAML/JSON file (command line options win)
    change-tracker-follow --config tracker.yaml

Exit Codes:
    0 - Feed finished (one-shot) or interrupted
    1 - Tracker stopped with an error
    2 - Invalid arguments or configuration
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional, TextIO

from ..core.config import FeedMode, TrackerConfig
from ..core.connection_tracker import ConnectionChangeTracker
from ..core.credentials import Credential, CredentialStorage, protection_space_for_url
from ..core.env_config import ConfigFileLoader
from ..core.exceptions import ConfigurationError
from ..core.logging import LoggingConfig
from ..core.tracker import ChangeTrackerClient
from ..transport.async_transport import AsyncTransport
from ..utils.sanitizer import mask_url_credentials


class JsonLinesClient(ChangeTrackerClient):
    """Пишет каждое изменение одной JSON строкой."""

    def __init__(self, out: TextIO, stopped: asyncio.Event):
        self.out = out
        self.stopped = stopped
        self.count = 0

    def change_tracker_received_change(self, change: Dict[str, Any]) -> None:
        self.out.write(json.dumps(change, separators=(",", ":"), sort_keys=True) + "\n")
        self.out.flush()
        self.count += 1

    def change_tracker_stopped(self, tracker) -> None:
        self.stopped.set()


def parse_header(value: str) -> tuple:
    """``"Name: value"`` -> ``("Name", "value")``."""
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"header must look like 'Name: value', got {value!r}")
    return name.strip(), header_value.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="change-tracker-follow",
        description="Follow a database changes feed and print changes as JSON lines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("database_url", nargs="?", help="Database URL (https://host/db)")
    parser.add_argument(
        "-m", "--mode",
        choices=[mode.value for mode in FeedMode],
        help="Feed mode (default: normal)",
    )
    parser.add_argument("--since", help="Start after this sequence")
    parser.add_argument("--limit", type=int, help="Maximum changes per request")
    parser.add_argument("--heartbeat", type=float, help="Heartbeat in seconds")
    parser.add_argument(
        "-H", "--header",
        dest="headers",
        action="append",
        type=parse_header,
        default=[],
        help="Extra request header 'Name: value' (repeatable)",
    )
    parser.add_argument("--filter", dest="filter_name", help="Server-side filter name")
    parser.add_argument(
        "--doc-id",
        dest="doc_ids",
        action="append",
        help="Only follow this document (repeatable)",
    )
    parser.add_argument("--user", help="User for HTTP authentication")
    parser.add_argument("--password", help="Password for HTTP authentication")
    parser.add_argument("--insecure", action="store_true", help="Do not verify TLS certificates")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log to stderr at this level",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json", "colored"],
        default="text",
        help="Log format (default: text)",
    )
    parser.add_argument("-c", "--config", help="YAML or JSON config file")
    return parser


def build_config(args: argparse.Namespace) -> TrackerConfig:
    """
    Собрать TrackerConfig из аргументов (поверх файла конфигурации, если задан).

    Raises:
        ConfigurationError: Не хватает URL или значения невалидны
    """
    if args.config:
        config = ConfigFileLoader.from_file(args.config)
        if args.database_url:
            config = config.replace(database_url=args.database_url)
    elif args.database_url:
        config = TrackerConfig(database_url=args.database_url)
    else:
        raise ConfigurationError("database_url is required (argument or --config)")

    changes: Dict[str, Any] = {}
    if args.mode:
        changes["mode"] = FeedMode.parse(args.mode)
    if args.since is not None:
        changes["since"] = args.since
    if args.limit is not None:
        changes["limit"] = args.limit
    if args.heartbeat is not None:
        changes["heartbeat"] = args.heartbeat
    if args.filter_name:
        changes["filter_name"] = args.filter_name
    if args.doc_ids:
        changes["doc_ids"] = tuple(args.doc_ids)
    if args.insecure:
        changes["verify_ssl"] = False
    if args.log_level:
        changes["logging"] = LoggingConfig.create(level=args.log_level, format=args.log_format)
    if changes:
        config = config.replace(**changes)

    if args.headers:
        config = config.with_headers(dict(args.headers))
    return config


def build_credential_storage(config: TrackerConfig, user: Optional[str], password: Optional[str]) -> CredentialStorage:
    storage = CredentialStorage()
    if user:
        credential = Credential(user, password or "")
        for method in ("basic", "digest"):
            space = protection_space_for_url(config.database_url, authentication_method=method)
            storage.set_default_credential(credential, space)
    return storage


async def follow(
    config: TrackerConfig,
    out: Optional[TextIO] = None,
    credential_storage: Optional[CredentialStorage] = None,
) -> int:
    """
    Следить за feed, пока трекер не остановится.

    Returns:
        0 при чистой остановке, 1 если трекер остановился с ошибкой
    """
    stopped = asyncio.Event()
    client = JsonLinesClient(out or sys.stdout, stopped)

    async with AsyncTransport(verify_ssl=config.verify_ssl, credential_storage=credential_storage) as transport:
        tracker = ConnectionChangeTracker(config, client=client, transport=transport)
        tracker.start()
        try:
            await stopped.wait()
        finally:
            tracker.close()

    if tracker.error is not None:
        print(f"Error: {tracker.error}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    storage = build_credential_storage(config, args.user, args.password)
    print(f"Following {mask_url_credentials(config.database_url)}", file=sys.stderr)

    try:
        return asyncio.run(follow(config, credential_storage=storage))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
