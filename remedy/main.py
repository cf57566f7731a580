#!/usr/bin/env python3
"""
Remedy Sync - Main Entry Point

Synchronizes locally saved resources and time slots with a Remedy server.
Works fully offline; syncing is a no-op when no server is configured.

Usage:
    python -m remedy.main now       # Push local changes, pull remote ones
    python -m remedy.main status    # Show pending/failed counts
    python -m remedy.main reset     # Requeue failed records (incl. conflicts)
    python -m remedy.main now -v    # Enable debug logging

Environment Variables:
    REMEDY_SERVER_URL         - Server URL (unset = offline-only mode)
    REMEDY_SYNC_MAX_RETRIES   - Attempts per network call (default 3)
    REMEDY_SYNC_RETRY_DELAY   - Initial backoff in seconds (default 1.0)
    REMEDY_DATABASE_PATH      - Local database (default data/remedy.db)
"""

import argparse
import logging
import sys
from pathlib import Path

from config.settings import load_settings, ConfigurationError
from remedy.storage.change_tracker import ChangeTracker
from remedy.storage.record_store import RecordStore, RecordStoreError
from remedy.sync.orchestrator import SyncOrchestrator, SyncResult


def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    # Reduce noise from external libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Sync Remedy resources and time slots with the server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m remedy.main now                  # Full sync
    python -m remedy.main status               # Pending/failed counts
    python -m remedy.main reset                # Requeue failed records
    python -m remedy.main now --env .env.local # Use custom env file
        """,
    )

    parser.add_argument(
        "command",
        choices=["now", "status", "reset"],
        help="Sync action to perform",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    parser.add_argument(
        "--env",
        type=Path,
        help="Path to .env file (default: .env in current directory)",
    )

    return parser.parse_args(argv)


def report(result: SyncResult) -> None:
    """
    Log the outcome of a sync cycle.

    Counts are always reported; failures state that local data was kept.
    """
    logger = logging.getLogger(__name__)

    logger.info("=" * 50)
    logger.info("Sync Summary")
    logger.info("=" * 50)
    logger.info(f"Pushed:                {result.pushed}")
    logger.info(f"Pulled:                {result.pulled}")
    logger.info(f"Pull failed:           {result.pull_failed}")
    logger.info(f"Push failed:           {result.push_failed}")
    logger.info(f"Push conflicts:        {result.push_conflicts}")
    logger.info(f"Pull conflicts:        {result.conflicts}")
    logger.info(f"Purged deletions:      {result.purged}")
    logger.info("=" * 50)

    if result.success:
        logger.info(result.message)
        if result.push_failed:
            logger.warning(f"{result.push_failed} items failed to sync")
    else:
        logger.error(result.message)
        if result.local_data_preserved:
            logger.info("No local data was deleted; pending changes will sync later.")

    if result.push_conflicts or result.conflicts:
        logger.warning("Conflicting records kept their local changes. Run 'reset' to push them again.")


def main(argv=None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    try:
        settings = load_settings(env_file=args.env)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        logger.error("Please check your .env file or environment variables")
        return 1

    orchestrator = None
    try:
        store = RecordStore(settings.storage.database_path)
        orchestrator = SyncOrchestrator(
            tracker=ChangeTracker(store),
            config=settings.sync,
        )

        if args.command == "status":
            logger.info(orchestrator.status_summary())
            return 0

        if args.command == "reset":
            count = orchestrator.reset_failed()
            logger.info(f"Reset {count} failed items. They will sync on the next run.")
            return 0

        logger.info("Starting synchronization...")
        result = orchestrator.synchronize()
        report(result)
        return 0 if result.success else 1

    except RecordStoreError as e:
        logger.error(f"Local store error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Sync interrupted by user")
        return 130
    finally:
        if orchestrator:
            orchestrator.close()


if __name__ == "__main__":
    sys.exit(main())
