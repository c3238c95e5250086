"""
Window Pagination Loop

Drives one work window to a terminal state:

    fetch(cursor) -> persist batch -> cursor = last match endTime -> repeat

The API never says "last page"; an empty page is the only exhaustion signal.
The cursor is derived purely from observed data, so a window may keep
paginating past its nominal end unless stop_at_window_end is set.
"""

import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .cancellation import CancellationToken
from .errors import FetchError, PersistenceError, TimestampParseError
from .match_records import Match, batch_key, unix_epoch_to_human
from .match_sink import MatchSink
from .work_windows import TimeWindow

logger = logging.getLogger(__name__)

FetchMatches = Callable[[int], List[Match]]


class WindowState(str, Enum):
    RUNNING = "running"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    FAILED = "failed"
    # Never dispatched because cancellation was observed first
    SKIPPED = "skipped"


@dataclass
class WindowResult:
    """Outcome of paginating one work window."""
    window: TimeWindow
    state: WindowState = WindowState.RUNNING
    cursor: int = 0
    pages_fetched: int = 0
    matches_fetched: int = 0
    batches_saved: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['window'] = self.window.to_dict()
        result['state'] = self.state.value
        return result


class WindowPaginator:
    """
    Paginates a single work window through the matches API.

    Each call to run() owns its cursor; one paginator instance can serve many
    windows from different threads as long as fetch and sink are thread-safe.
    """

    def __init__(
        self,
        fetch: FetchMatches,
        sink: MatchSink,
        stop_at_window_end: bool = False
    ):
        """
        Args:
            fetch: Callable returning the matches since an epoch (one request per call)
            sink: Destination for every non-empty batch
            stop_at_window_end: Treat a cursor at or past window.end_epoch as exhaustion
        """
        self.fetch = fetch
        self.sink = sink
        self.stop_at_window_end = stop_at_window_end

    def run(self, window: TimeWindow, token: CancellationToken) -> WindowResult:
        """
        Paginate ``window`` until exhausted, cancelled or failed.

        Fetch and timestamp errors end this window only. PersistenceError is
        re-raised with this window's partial result attached: losing the sink
        aborts the run.
        """
        result = WindowResult(window=window, cursor=window.start_epoch)
        logger.info(f"Getting matches for work window: {window}")

        while result.state is WindowState.RUNNING:
            self._step(window, token, result)

        return result

    def _step(self, window: TimeWindow, token: CancellationToken, result: WindowResult) -> None:
        # Step 1: never issue a fetch after cancellation is observed
        if token.is_cancelled():
            logger.info(f"Work window {window} cancelled at cursor {result.cursor}")
            result.state = WindowState.CANCELLED
            return

        # Step 2: fetch one page
        try:
            matches = self.fetch(result.cursor)
        except FetchError as e:
            logger.warning(f"Error getting matches for epoch {result.cursor} in work window {window}: {e}")
            result.state = WindowState.FAILED
            result.error = str(e)
            return

        result.pages_fetched += 1

        if not matches:
            logger.info(
                f"No matches found since {unix_epoch_to_human(result.cursor)} ({result.cursor}), "
                f"work window {window} exhausted"
            )
            result.state = WindowState.EXHAUSTED
            return

        result.matches_fetched += len(matches)

        # Step 3: the batch key doubles as the next cursor
        try:
            _, last_epoch = batch_key(matches)
        except TimestampParseError as e:
            logger.warning(f"Cannot advance work window {window} past {result.cursor}: {e}")
            result.state = WindowState.FAILED
            result.error = str(e)
            return

        if last_epoch <= result.cursor:
            logger.warning(
                f"Work window {window} made no progress past {result.cursor} "
                f"({len(matches)} matches ending at {last_epoch}), treating as exhausted"
            )
            result.state = WindowState.EXHAUSTED
            return

        # Step 4: persist before advancing so saved output is always a prefix
        logger.info(f"Work window {window} has {len(matches)} matches")
        try:
            self.sink.save(matches)
        except PersistenceError as e:
            result.state = WindowState.FAILED
            result.error = str(e)
            e.window_result = result
            raise
        result.batches_saved += 1
        result.cursor = last_epoch

        if self.stop_at_window_end and result.cursor >= window.end_epoch:
            logger.info(f"Work window {window} reached its end at {result.cursor}")
            result.state = WindowState.EXHAUSTED
