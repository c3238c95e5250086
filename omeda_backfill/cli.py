"""
Omeda Match Backfill

Fetch every Predecessor match since the first epoch from the Omeda public API,
save each page under matches/ and zip the result into matches.zip.

Usage:
    # Run the backfill
    omeda-backfill

    # Show the work windows without fetching anything
    omeda-backfill --list-windows

    # Check the API answers
    omeda-backfill --check-api

    # Custom settings
    omeda-backfill --pool-size 4 --window-size 7200 --end-epoch 1672531200

Press Ctrl-C once to stop: open requests finish, saved pages are kept and
zipped.

Environment variables:
    OMEDA_API_BASE_URL - get-matches-since endpoint
    OMEDA_API_TIMEOUT - Request timeout in seconds (default: 30)
    OMEDA_API_MAX_RETRIES - Transport retries per request (default: 0)
    BACKFILL_FIRST_EPOCH - First window start (default: 1669882894)
    BACKFILL_WINDOW_SIZE - Window size in seconds (default: 3600)
    BACKFILL_POOL_SIZE - Concurrent windows (default: 10)
    BACKFILL_OUTPUT_DIR - Batch directory (default: matches)
    BACKFILL_ARCHIVE_PATH - Archive file (default: matches.zip, empty disables)
    BQ_PROJECT_ID, BQ_DATASET, BQ_TABLE - BigQuery sink target
    GOOGLE_APPLICATION_CREDENTIALS - Service account for the BigQuery sink

Exit codes:
    0 = Completed, every window exhausted
    1 = Completed with some window failures
    2 = Aborted by a persistence or archive error
    3 = Stopped by Ctrl-C / SIGTERM
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from .backfill_pipeline import (
    BackfillConfig, BackfillPipeline, FIRST_EPOCH, POOL_SIZE, WINDOW_SIZE,
)
from .cancellation import CancellationToken, SignalCancellation
from .omeda_api_client import DEFAULT_BASE_URL

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def get_config(args) -> BackfillConfig:
    """Build configuration from environment and command line args."""
    archive_path = os.environ.get('BACKFILL_ARCHIVE_PATH', 'matches.zip')
    if args.archive_path is not None:
        archive_path = args.archive_path
    if args.no_archive:
        archive_path = None

    first_epoch = int(os.environ.get('BACKFILL_FIRST_EPOCH', str(FIRST_EPOCH)))
    if args.first_epoch is not None:
        first_epoch = args.first_epoch
    window_size = int(os.environ.get('BACKFILL_WINDOW_SIZE', str(WINDOW_SIZE)))
    if args.window_size is not None:
        window_size = args.window_size
    pool_size = int(os.environ.get('BACKFILL_POOL_SIZE', str(POOL_SIZE)))
    if args.pool_size is not None:
        pool_size = args.pool_size

    return BackfillConfig(
        api_base_url=args.api_url or os.environ.get('OMEDA_API_BASE_URL', DEFAULT_BASE_URL),
        api_timeout=int(os.environ.get('OMEDA_API_TIMEOUT', '30')),
        api_max_retries=int(os.environ.get('OMEDA_API_MAX_RETRIES', '0')),
        first_epoch=first_epoch,
        window_size=window_size,
        pool_size=pool_size,
        end_epoch=args.end_epoch,
        stop_at_window_end=args.stop_at_window_end,
        sink=args.sink,
        output_dir=args.output_dir or os.environ.get('BACKFILL_OUTPUT_DIR', 'matches'),
        clean_output_dir=not args.keep_existing,
        archive_path=archive_path or None,
        bq_project_id=os.environ.get('BQ_PROJECT_ID'),
        bq_dataset=os.environ.get('BQ_DATASET', 'raw'),
        bq_table=os.environ.get('BQ_TABLE', 'matches')
    )


def run_backfill(args) -> int:
    """Run the backfill until done or interrupted."""
    logger.info("=" * 50)
    logger.info("Omeda Match Backfill")
    logger.info("=" * 50)

    config = get_config(args)

    logger.info(f"API: {config.api_base_url}")
    logger.info(f"First epoch: {config.first_epoch}")
    logger.info(f"Window size: {config.window_size}s")
    logger.info(f"Pool size: {config.pool_size}")
    logger.info(f"Sink: {config.sink}")

    token = CancellationToken()
    with BackfillPipeline(config) as pipeline, SignalCancellation(token):
        stats = pipeline.run(token)

    logger.info("")
    logger.info("=" * 50)
    logger.info("Results")
    logger.info("=" * 50)
    logger.info(f"Success: {stats.success}")
    logger.info(f"Windows generated: {stats.windows_generated}")
    logger.info(f"Windows exhausted: {stats.windows_exhausted}")
    logger.info(f"Windows failed: {stats.windows_failed}")
    logger.info(f"Windows cancelled: {stats.windows_cancelled}")
    logger.info(f"Windows skipped: {stats.windows_skipped}")
    logger.info(f"Pages fetched: {stats.pages_fetched}")
    logger.info(f"Matches fetched: {stats.matches_fetched}")
    logger.info(f"Batches saved: {stats.batches_saved}")
    logger.info(f"Files archived: {stats.files_archived}")

    if stats.errors:
        logger.error(f"Errors: {stats.errors}")

    logger.info(f"Completed at: {stats.completed_at}")

    print(json.dumps(stats.to_dict(), indent=2))
    return stats.exit_code


def list_windows(args) -> int:
    """Print the work windows a run would dispatch."""
    config = get_config(args)
    with BackfillPipeline(config) as pipeline:
        windows = pipeline.generate_windows()

    print(json.dumps([w.to_dict() for w in windows], indent=2))
    logger.info(f"Generated {len(windows)} work windows")
    return 0


def check_api(args) -> int:
    """Show whether the API is reachable."""
    config = get_config(args)
    with BackfillPipeline(config) as pipeline:
        status = pipeline.check_api()

    print(json.dumps(status, indent=2))
    return 0 if status['healthy'] else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Omeda Match Backfill',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    # Mode selection
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        '--list-windows', action='store_true',
        help='Print the work windows and exit'
    )
    mode_group.add_argument(
        '--check-api', action='store_true',
        help='Check the API is reachable and exit'
    )

    # Windowing
    parser.add_argument('--api-url', type=str, default=None,
                        help='get-matches-since endpoint URL')
    parser.add_argument('--first-epoch', type=int, default=None,
                        help=f'First window start (default: {FIRST_EPOCH})')
    parser.add_argument('--end-epoch', type=int, default=None,
                        help='Stop generating windows at this epoch (default: now)')
    parser.add_argument('--window-size', type=int, default=None,
                        help=f'Window size in seconds (default: {WINDOW_SIZE})')
    parser.add_argument('--pool-size', type=int, default=None,
                        help=f'Windows paginated concurrently (default: {POOL_SIZE})')
    parser.add_argument('--stop-at-window-end', action='store_true',
                        help='Stop a window once its cursor passes the window end')

    # Persistence
    parser.add_argument('--sink', choices=['json', 'bigquery'], default='json',
                        help='Where to save batches (default: json)')
    parser.add_argument('--output-dir', type=str, default=None,
                        help='Directory for JSON batches (default: matches)')
    parser.add_argument('--keep-existing', action='store_true',
                        help='Do not wipe the output directory before starting')
    parser.add_argument('--archive-path', type=str, default=None,
                        help='Archive file (default: matches.zip)')
    parser.add_argument('--no-archive', action='store_true',
                        help='Skip the archive step')

    parser.add_argument('--log-level', type=str, default='INFO',
                        help='Logging level (default: INFO)')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    if args.list_windows:
        return list_windows(args)
    if args.check_api:
        return check_api(args)
    return run_backfill(args)


if __name__ == '__main__':
    sys.exit(main())
