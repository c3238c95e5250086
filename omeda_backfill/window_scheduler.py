"""
Window Scheduler

Runs one pagination loop per work window on a bounded thread pool and blocks
until every dispatched loop has finished.

Cancellation is cooperative. A window whose turn comes after the token is
cancelled is never started; loops already running stop at their next check,
so at most ``pool_size`` requests complete after a cancellation request.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional

from .cancellation import CancellationToken
from .errors import PersistenceError
from .window_pagination import WindowResult, WindowState
from .work_windows import TimeWindow

logger = logging.getLogger(__name__)

PaginateWindow = Callable[[TimeWindow, CancellationToken], WindowResult]


class WindowScheduler:
    """Bounded worker pool for work windows."""

    def __init__(self, pool_size: int = 10):
        if pool_size < 1:
            raise ValueError(f"pool_size must be at least 1, got {pool_size}")
        self.pool_size = pool_size

    def run(
        self,
        windows: List[TimeWindow],
        paginate: PaginateWindow,
        token: CancellationToken
    ) -> List[WindowResult]:
        """
        Paginate every window with at most pool_size loops in flight.

        A window that fails only affects itself. Any exception escaping a loop
        (a PersistenceError in practice) cancels the remaining work, waits for
        loops in flight to stop, and is re-raised. A re-raised PersistenceError
        carries every result collected, the aborting window's included, in
        its results attribute.

        Args:
            windows: Work windows to dispatch, in order
            paginate: Runs one window to a terminal state
            token: Cancellation observed before dispatch and inside every loop

        Returns:
            One WindowResult per window, ordered by window start
        """
        if not windows:
            logger.info("No work windows to process")
            return []

        # Linked token: aborting here must not write to the caller's token
        run_token = token.child()
        results: List[WindowResult] = []
        first_error: Optional[BaseException] = None

        workers = min(self.pool_size, len(windows))
        logger.info(f"Dispatching {len(windows)} work windows on {workers} workers")

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="window") as pool:
            futures = {}
            for window in windows:
                if run_token.is_cancelled():
                    results.append(WindowResult(window=window, state=WindowState.SKIPPED, cursor=window.start_epoch))
                    continue
                futures[pool.submit(self._dispatch, window, paginate, run_token)] = window

            for future in as_completed(futures):
                window = futures[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.error(f"Work window {window} aborted the run: {e}")
                    if isinstance(e, PersistenceError) and e.window_result is not None:
                        results.append(e.window_result)
                    if first_error is None:
                        first_error = e
                    run_token.cancel(reason=f"aborted by work window {window}")

        results.sort(key=lambda r: r.window.start_epoch)

        if first_error is not None:
            if isinstance(first_error, PersistenceError):
                first_error.results = results
            raise first_error

        return results

    @staticmethod
    def _dispatch(
        window: TimeWindow,
        paginate: PaginateWindow,
        token: CancellationToken
    ) -> WindowResult:
        # Queued windows are only started if nobody has cancelled meanwhile
        if token.is_cancelled():
            return WindowResult(window=window, state=WindowState.SKIPPED, cursor=window.start_epoch)
        try:
            return paginate(window, token)
        except Exception:
            # Stop siblings before the error reaches the collecting thread
            token.cancel(reason=f"aborted by work window {window}")
            raise
