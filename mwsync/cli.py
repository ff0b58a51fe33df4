"""
Command-line entry point for wiki synchronization.

Runs forever, one pass every ``sync.period`` seconds, or a single pass
when invoked from cron:

    mwsync --config /etc/mwsync/mwsync.yaml            # long-running
    mwsync --config /etc/mwsync/mwsync.yaml --once     # one scheduled pass
    mwsync --config mwsync.yaml --hours-ago 48         # backfill
    mwsync --config mwsync.yaml --pages "Reelin" "TP53" # targeted resync

Exits non-zero only when configuration or login fails at startup.
"""

import argparse
import sys
import time
from typing import Callable, Sequence

import structlog

from mwsync.errors import AuthError, ConfigurationError
from mwsync.models.config import AppConfig
from mwsync.sync.models import SyncReport
from mwsync.sync.sync_coordinator import SyncCoordinator
from mwsync.transforms.base import RegexReplaceTransformer
from mwsync.transforms.pipeline import TransformPipeline
from mwsync.utils.config_loader import ConfigLoader
from mwsync.utils.logging_config import configure_logging_from_config
from mwsync.wiki.mediawiki_client import MediaWikiClient

log = structlog.stdlib.get_logger()


def build_coordinator(config: AppConfig) -> SyncCoordinator:
    """
    Create logged-in clients and a coordinator from configuration.

    Raises:
        AuthError: If logging in to either wiki fails
    """
    timeout = config.sync.http_timeout

    source = MediaWikiClient.from_config(config.source, timeout=timeout)
    source.login(config.source.username, config.source.password)

    target = MediaWikiClient.from_config(config.target, timeout=timeout)
    target.login(config.target.username, config.target.password)

    pipeline = TransformPipeline()
    if config.transforms:
        pipeline.register(RegexReplaceTransformer.from_config(config.transforms))

    return SyncCoordinator(source=source, target=target, settings=config.sync, pipeline=pipeline)


def print_summary(report: SyncReport) -> None:
    print("\n" + "=" * 60)
    print("SYNCHRONIZATION SUMMARY")
    print("=" * 60)
    print(f"Pass: {report.kind}")
    if report.watermark is not None:
        print(f"Changes since: {report.watermark.isoformat()}")
    if report.aborted:
        print("Status: ABORTED")
    else:
        print(f"Status: {'SUCCESS' if report.success else 'COMPLETED WITH ERRORS'}")
    print(f"Pages found: {report.items_found}")
    print(f"Pages written: {report.items_written}")
    print(f"Pages failed: {report.items_failed}")
    for error in report.errors:
        print(f"  - {error}")
    print(f"Duration: {report.duration_seconds:.2f} seconds")
    print("=" * 60)


def run_forever(coordinator: SyncCoordinator, sleep: Callable[[float], None] = time.sleep) -> None:
    """Run a pass every ``period`` seconds until interrupted."""
    period = coordinator.period
    log.info("scheduler_started", period=period)
    while True:
        started = time.monotonic()
        coordinator.run_pass()
        elapsed = time.monotonic() - started
        sleep(max(period - elapsed, 0.0))


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mwsync",
        description="Replicate page changes from a source MediaWiki to a target MediaWiki",
    )
    parser.add_argument(
        "--config",
        type=str,
        required=True,
        help="Path to configuration file",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run a single scheduled pass and exit (for cron)",
    )
    mode.add_argument(
        "--hours-ago",
        type=float,
        default=None,
        help="Run one pass over the changes made in the last N hours",
    )
    mode.add_argument(
        "--pages",
        nargs="+",
        default=None,
        metavar="TITLE",
        help="Resync the given pages and exit",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = parse_args(argv)

    try:
        config = ConfigLoader().load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    configure_logging_from_config(config.logging)

    try:
        coordinator = build_coordinator(config)
    except AuthError as e:
        log.error("startup_login_failed", error=str(e))
        return 1

    if args.pages:
        print_summary(coordinator.run_for_pages(args.pages))
        return 0
    if args.hours_ago is not None:
        if args.hours_ago <= 0:
            log.error("invalid_backfill_window", hours_ago=args.hours_ago)
            return 1
        print_summary(coordinator.run_changes_from_hours_ago(args.hours_ago))
        return 0
    if args.once:
        print_summary(coordinator.run_pass())
        return 0

    try:
        run_forever(coordinator)
    except KeyboardInterrupt:
        log.info("scheduler_stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
