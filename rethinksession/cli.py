"""Command-line entry point that initializes one session and reports the outcome."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from .config import AppConfig, load_config
from .driver import Driver, MemoryDriver, RethinkDriver, SessionConnectionError
from .models import InitializedSession
from .session import SessionInitializer

LOG = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONNECTION_FAILED = 1
EXIT_INVALID_CONFIG = 2


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rethinksession",
        description="Connect to RethinkDB and make sure a database and table exist.",
    )
    parser.add_argument("--url", help="Server address, e.g. rethinkdb://localhost:28015")
    parser.add_argument("--host", help="Server host (ignored when --url is given)")
    parser.add_argument("--port", type=int, help="Server port (ignored when --url is given)")
    parser.add_argument("--db", dest="database", help="Database to provision")
    parser.add_argument("--table", help="Table to provision inside the database")
    parser.add_argument("--timeout", type=float, help="Connect timeout in seconds")
    parser.add_argument(
        "--always-provision-table",
        action="store_true",
        default=None,
        help="Check the table even when the database already existed",
    )
    parser.add_argument("--memory", action="store_true", help="Use the in-memory driver instead of a server")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_config(args: argparse.Namespace, base: AppConfig | None = None) -> AppConfig:
    """Overlay command-line flags on the loaded configuration."""

    config = base if base is not None else load_config()
    return config.with_overrides(
        url=args.url,
        host=args.host,
        port=args.port,
        database=args.database,
        table=args.table,
        timeout=args.timeout,
        always_provision_table=args.always_provision_table,
    )


async def run(config: AppConfig, driver: Driver) -> InitializedSession:
    initializer = SessionInitializer(driver, always_provision_table=config.always_provision_table)
    try:
        return await initializer.initialize(config.to_session_config())
    finally:
        await initializer.close()


def main(argv: list[str] | None = None, *, driver: Driver | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.verbose)
    try:
        config = build_config(args)
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_INVALID_CONFIG
    if driver is None:
        driver = MemoryDriver() if args.memory else RethinkDriver()
    try:
        session = asyncio.run(run(config, driver))
    except SessionConnectionError as exc:
        print(f"Connection failed: {exc}", file=sys.stderr)
        return EXIT_CONNECTION_FAILED
    for result in (session.database_result, session.table_result):
        print(result.status_line())
    LOG.debug("Session finished in phase %s", session.phase.value)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
