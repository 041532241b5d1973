"""
1.0 Main Module
Command line entry point: source management and the submission run.

Key features:
- Interactive, unattended (cron) and dry-run modes
- Per-source processing with an end-of-run summary
- Source management (--add, --remove, --list, --config, --show)
- Exit code 1 when any source failed or the store cannot be opened
"""

import argparse
import logging
import os
import sys
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from ixfeed import __version__
from ixfeed.change_log import ChangeLog
from ixfeed.config import CONFIG_FILE_PATH, load_config
from ixfeed.decoder import EntryDecoder
from ixfeed.errors import ConfigError, StoreUnavailableError
from ixfeed.fetcher import Fetcher
from ixfeed.ledger import LedgerStore
from ixfeed.models import Source
from ixfeed.pipeline import Pipeline
from ixfeed.policy import MODE_DRY_RUN, MODE_INTERACTIVE, MODE_UNATTENDED
from ixfeed.sources import (
    add_source_interactive,
    ask_confirm,
    clear_database,
    edit_source_interactive,
    list_sources,
    remove_source_interactive,
    show_config,
)
from ixfeed.submitter import Submitter

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def setup_logging(data_dir: str, level: str = "INFO") -> None:
    """
    2.0 Configure console + file logging once per invocation.

    The file handler writes to {data_dir}/ixfeed.log.
    """
    os.makedirs(data_dir, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(os.path.join(data_dir, "ixfeed.log")),
            logging.StreamHandler()
        ],
        force=True,
    )
    # Retry chatter from urllib3 is noise at INFO
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def parse_entries(value: str) -> List[int]:
    """2.1 argparse type for --entry 1,2,3."""
    try:
        ids = [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated source ids, got {value!r}")
    if not ids:
        raise argparse.ArgumentTypeError("at least one source id is required")
    return ids


def build_parser() -> argparse.ArgumentParser:
    """3.0 Command line options."""
    parser = argparse.ArgumentParser(
        prog="ixfeed",
        description="Submit new and updated URLs from feeds and sitemaps to IndexNow"
    )
    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "--config", "-c",
        action="store_true",
        help="Configure api key, host and search engine of a source"
    )
    actions.add_argument(
        "--show", "-s",
        action="store_true",
        help="Show current settings and sources"
    )
    actions.add_argument(
        "--add", "-a",
        action="store_true",
        help="Add a feed or sitemap"
    )
    actions.add_argument(
        "--remove", "-r",
        action="store_true",
        help="Remove a source and its stored URLs"
    )
    actions.add_argument(
        "--list", "-l",
        action="store_true",
        help="List configured sources"
    )
    actions.add_argument(
        "--clear-db",
        action="store_true",
        help="Delete every source and stored URL"
    )
    actions.add_argument(
        "--version", "-V",
        action="store_true",
        help="Print version information"
    )

    modes = parser.add_mutually_exclusive_group()
    modes.add_argument(
        "--dry-run", "-d",
        action="store_true",
        help="Show what would be submitted without submitting or storing anything"
    )
    modes.add_argument(
        "--unattended", "-u",
        action="store_true",
        help="Submit without prompting (for cron)"
    )

    parser.add_argument(
        "--entry", "-e",
        type=parse_entries,
        default=None,
        metavar="IDS",
        help="Only process these source ids, e.g. 1,2,3 (default: all)"
    )
    parser.add_argument(
        "--config-file",
        default=None,
        help=f"Path to the JSON settings file (default: {CONFIG_FILE_PATH})"
    )
    return parser


def resolve_mode(args: argparse.Namespace) -> str:
    if args.dry_run:
        return MODE_DRY_RUN
    if args.unattended:
        return MODE_UNATTENDED
    return MODE_INTERACTIVE


def select_sources(store: LedgerStore, entries: Optional[Sequence[int]]) -> Tuple[List[Source], List[int]]:
    """
    4.0 Sources to process, plus requested ids that do not exist.
    """
    sources = store.list_sources()
    if not entries:
        return sources, []
    wanted = set(entries)
    selected = [s for s in sources if s.id in wanted]
    unknown = sorted(wanted - {s.id for s in selected})
    return selected, unknown


def run_sources(store: LedgerStore, config: dict, mode: str,
                entries: Optional[Sequence[int]] = None) -> int:
    """
    5.0 The submission run.

    Returns:
        Process exit code
    """
    logger.info("=" * 60)
    logger.info(f"Starting ixfeed {__version__} ({mode})")
    logger.info(f"Run timestamp: {datetime.now(timezone.utc).isoformat()}")
    logger.info("=" * 60)

    sources, unknown = select_sources(store, entries)
    for source_id in unknown:
        logger.warning(f"Source {source_id} not found. Use 'ixfeed --list' to see configured sources.")

    if not sources:
        if entries:
            logger.error("None of the requested sources exist.")
            return 1
        if mode != MODE_INTERACTIVE:
            logger.error("No sources configured. Run 'ixfeed --add' first.")
            return 1
        if not ask_confirm("No sources configured. Do you want to add one now?", default=True):
            return 0
        fetcher = Fetcher(config)
        try:
            if add_source_interactive(store, fetcher, config["default_searchengine"]) is None:
                return 0
        finally:
            fetcher.close()
        sources, _ = select_sources(store, entries)

    fetcher = Fetcher(config)
    submitter = Submitter(timeout=config["timeout"], user_agent=config.get("user_agent"))
    try:
        pipeline = Pipeline(
            store=store,
            decoder=EntryDecoder(fetcher, max_depth=config["max_sitemap_depth"]),
            submitter=submitter,
            mode=mode,
            confirm=ask_confirm,
            max_batch_size=config["max_batch_size"],
            change_log=ChangeLog(config["data_directory"]) if config["change_log"] else None,
        )
        summary = pipeline.run(sources)
    finally:
        fetcher.close()
        submitter.close()

    logger.info("ixfeed run completed")
    return summary.exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    6.0 Parse arguments, load settings, open the store and dispatch.
    """
    args = build_parser().parse_args(argv)

    if args.version:
        print(f"ixfeed {__version__} (ALPHA)")
        return 0

    try:
        config = load_config(args.config_file)
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error(f"Failed to load configuration: {e}. Exiting.")
        return 1

    setup_logging(config["data_directory"], os.environ.get("IXFEED_LOG_LEVEL") or config["log_level"])

    try:
        store = LedgerStore(config["db_path"])
    except StoreUnavailableError as e:
        logger.error(str(e))
        return 1

    with store:
        if args.list:
            list_sources(store)
            return 0
        if args.show:
            show_config(store, config)
            return 0
        if args.config:
            edit_source_interactive(store)
            return 0
        if args.remove:
            remove_source_interactive(store)
            return 0
        if args.clear_db:
            clear_database(store)
            return 0
        if args.add:
            fetcher = Fetcher(config)
            try:
                added = add_source_interactive(store, fetcher, config["default_searchengine"])
            finally:
                fetcher.close()
            return 0 if added is not None else 1

        return run_sources(store, config, resolve_mode(args), args.entry)


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
