"""
Backfill Pipeline for Omeda Match Data

Orchestrates a full backfill run:
1. Prepare the persistence sink
2. Generate fixed-size work windows from the first epoch up to now
3. Paginate every window concurrently, saving each page as it arrives
4. Zip the saved batches once the worker pool has drained
"""

import logging
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .cancellation import CancellationToken
from .errors import BackfillError, PersistenceError
from .match_archive import archive_matches
from .match_sink import BigQueryMatchSink, JsonFileMatchSink, MatchSink
from .omeda_api_client import DEFAULT_BASE_URL, OmedaApiClient
from .window_pagination import WindowPaginator, WindowResult, WindowState
from .window_scheduler import WindowScheduler
from .work_windows import TimeWindow, generate_work_windows

logger = logging.getLogger(__name__)

FIRST_EPOCH = 1669882894  # Thursday, December 1, 2022 08:21:34 AM GMT
WINDOW_SIZE = 3600  # 1 hour
POOL_SIZE = 10

EXIT_OK = 0
EXIT_WINDOW_FAILURES = 1
EXIT_ABORTED = 2
EXIT_CANCELLED = 3


@dataclass
class BackfillConfig:
    """Configuration for the backfill pipeline."""
    # Omeda API configuration
    api_base_url: str = DEFAULT_BASE_URL
    api_timeout: int = 30
    api_max_retries: int = 0

    # Windowing
    first_epoch: int = FIRST_EPOCH
    window_size: int = WINDOW_SIZE
    pool_size: int = POOL_SIZE
    end_epoch: Optional[int] = None  # Defaults to the current time
    stop_at_window_end: bool = False  # Stop paginating once the cursor passes the window end

    # Persistence
    sink: str = "json"  # "json" or "bigquery"
    output_dir: str = "matches"
    clean_output_dir: bool = True
    archive_path: Optional[str] = "matches.zip"

    # BigQuery configuration (sink == "bigquery")
    bq_project_id: Optional[str] = None
    bq_dataset: str = "raw"
    bq_table: str = "matches"


@dataclass
class BackfillStats:
    """Statistics from a backfill run."""
    started_at: str = ""
    completed_at: str = ""
    windows_generated: int = 0
    windows_dispatched: int = 0
    windows_exhausted: int = 0
    windows_failed: int = 0
    windows_cancelled: int = 0
    windows_skipped: int = 0
    pages_fetched: int = 0
    matches_fetched: int = 0
    batches_saved: int = 0
    files_archived: int = 0
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False
    aborted: bool = False
    success: bool = False

    def record(self, results: List[WindowResult]) -> None:
        """Fold per-window results into the run totals."""
        for result in results:
            if result.state is WindowState.SKIPPED:
                self.windows_skipped += 1
                continue
            self.windows_dispatched += 1
            self.pages_fetched += result.pages_fetched
            self.matches_fetched += result.matches_fetched
            self.batches_saved += result.batches_saved
            if result.state is WindowState.EXHAUSTED:
                self.windows_exhausted += 1
            elif result.state is WindowState.CANCELLED:
                self.windows_cancelled += 1
            elif result.state is WindowState.FAILED:
                self.windows_failed += 1
                self.errors.append(f"Work window {result.window} failed at {result.cursor}: {result.error}")

    @property
    def exit_code(self) -> int:
        if self.aborted:
            return EXIT_ABORTED
        if self.cancelled:
            return EXIT_CANCELLED
        if self.windows_failed:
            return EXIT_WINDOW_FAILURES
        return EXIT_OK

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['exit_code'] = self.exit_code
        return result


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class BackfillPipeline:
    """
    Pipeline for backfilling Omeda matches into durable storage.
    """

    def __init__(
        self,
        config: Optional[BackfillConfig] = None,
        api_client: Optional[OmedaApiClient] = None,
        sink: Optional[MatchSink] = None
    ):
        """
        Initialize the backfill pipeline.

        Args:
            config: Pipeline configuration (uses defaults if not provided)
            api_client: Pre-built API client (built from config if not provided)
            sink: Pre-built persistence sink (built from config if not provided)
        """
        self.config = config or BackfillConfig()

        # Initialize collaborators lazily
        self._api_client = api_client
        self._sink = sink

        logger.info(f"Pipeline initialized with config: {self.config}")

    @property
    def api_client(self) -> OmedaApiClient:
        """Lazily initialize the Omeda API client."""
        if self._api_client is None:
            self._api_client = OmedaApiClient(
                base_url=self.config.api_base_url,
                timeout=self.config.api_timeout,
                max_retries=self.config.api_max_retries
            )
        return self._api_client

    @property
    def sink(self) -> MatchSink:
        """Lazily initialize the persistence sink."""
        if self._sink is None:
            if self.config.sink == "json":
                self._sink = JsonFileMatchSink(
                    output_dir=self.config.output_dir,
                    clean=self.config.clean_output_dir
                )
            elif self.config.sink == "bigquery":
                if not self.config.bq_project_id:
                    raise ValueError("bq_project_id is required for the bigquery sink")
                self._sink = BigQueryMatchSink(
                    project_id=self.config.bq_project_id,
                    dataset=self.config.bq_dataset,
                    table=self.config.bq_table
                )
            else:
                raise ValueError(f"Unknown sink: {self.config.sink}")
        return self._sink

    def generate_windows(self) -> List[TimeWindow]:
        now = self.config.end_epoch if self.config.end_epoch is not None else int(time.time())
        return generate_work_windows(self.config.first_epoch, self.config.window_size, now)

    def run(self, token: Optional[CancellationToken] = None) -> BackfillStats:
        """
        Execute the backfill.

        Window failures are recorded and the run continues. A persistence
        error stops scheduling and skips the archive step.

        Args:
            token: Cancellation token (a fresh one if not provided)

        Returns:
            BackfillStats with results of the run
        """
        token = token or CancellationToken()
        stats = BackfillStats(started_at=_utcnow())

        try:
            # Step 1: Prepare storage
            self.sink.prepare()

            # Step 2: Generate work windows
            windows = self.generate_windows()
            stats.windows_generated = len(windows)
            logger.info(f"Generated {len(windows)} work windows")

            # Step 3: Paginate all windows
            paginator = WindowPaginator(
                fetch=self.api_client.get_matches_since,
                sink=self.sink,
                stop_at_window_end=self.config.stop_at_window_end
            )
            scheduler = WindowScheduler(pool_size=self.config.pool_size)
            results = scheduler.run(windows, paginator.run, token)
            stats.record(results)
            stats.cancelled = token.is_cancelled()

            # Step 4: Archive
            archive_source = self.sink.archive_source
            if self.config.archive_path and archive_source:
                stats.files_archived = archive_matches(archive_source, self.config.archive_path)

            stats.success = not stats.cancelled and stats.windows_failed == 0
            logger.info(
                f"Backfill completed: {stats.windows_exhausted}/{stats.windows_generated} windows exhausted, "
                f"{stats.windows_failed} failed, {stats.batches_saved} batches saved"
            )

        except BackfillError as e:
            if isinstance(e, PersistenceError):
                # Windows that ran before the abort still count
                stats.record(e.results)
            error_msg = f"Backfill aborted: {e}"
            logger.error(error_msg)
            stats.errors.append(error_msg)
            stats.aborted = True
            stats.cancelled = token.is_cancelled()
            stats.success = False

        finally:
            stats.completed_at = _utcnow()

        return stats

    def check_api(self) -> Dict[str, Any]:
        """Issue one request at the start of the latest window and report reachability."""
        windows = self.generate_windows()
        epoch = windows[-1].start_epoch if windows else self.config.first_epoch
        return {
            'base_url': self.config.api_base_url,
            'epoch': epoch,
            'healthy': self.api_client.health_check(epoch)
        }

    def close(self):
        """Clean up resources."""
        if self._api_client:
            self._api_client.close()
        if self._sink:
            self._sink.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def run_backfill(
    config: Optional[BackfillConfig] = None,
    token: Optional[CancellationToken] = None
) -> BackfillStats:
    """
    Convenience function to run the backfill.

    Args:
        config: Backfill configuration
        token: Cancellation token

    Returns:
        Backfill statistics
    """
    with BackfillPipeline(config) as pipeline:
        return pipeline.run(token)
