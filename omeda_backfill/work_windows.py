"""
Work window generation.

A work window is the unit of parallelism: one pagination loop per window.
Windows are fixed-size, contiguous and generated from a start epoch up to
(but never reaching) the current time.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeWindow:
    """A fixed-size span of time dispatched as one unit of pagination work."""
    start_epoch: int
    end_epoch: int

    def to_dict(self):
        return {'start_epoch': self.start_epoch, 'end_epoch': self.end_epoch}

    def __str__(self) -> str:
        return f"[{self.start_epoch}, {self.end_epoch}]"


def generate_work_window(start_epoch: int, window_size: int) -> TimeWindow:
    return TimeWindow(start_epoch=start_epoch, end_epoch=start_epoch + window_size)


def generate_work_windows(
    start_epoch: int,
    window_size: int,
    now: Optional[int] = None
) -> List[TimeWindow]:
    """
    Generate the ordered work windows covering [start_epoch, now).

    A window is only emitted while its end is strictly before ``now``, so the
    trailing partial window is left out. Calling this again later yields the
    same leading windows plus any that have since closed.

    Args:
        start_epoch: Unix epoch of the first window start
        window_size: Window length in seconds
        now: Upper bound epoch (defaults to the current time)

    Returns:
        List of contiguous TimeWindow objects, possibly empty
    """
    if window_size <= 0:
        raise ValueError(f"window_size must be positive, got {window_size}")

    if now is None:
        now = int(time.time())

    windows: List[TimeWindow] = []
    cursor = start_epoch
    while True:
        window = generate_work_window(cursor, window_size)
        if window.end_epoch >= now:
            break
        windows.append(window)
        cursor = window.end_epoch

    logger.debug(f"Generated {len(windows)} windows from {start_epoch} to {now} (size={window_size}s)")
    return windows
