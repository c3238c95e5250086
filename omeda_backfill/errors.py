"""
Error types raised by the backfill engine.

Fetch and timestamp errors are local to one work window; persistence errors
abort the whole run.
"""

from typing import Optional


class BackfillError(Exception):
    """Base class for all backfill errors."""


class FetchError(BackfillError):
    """A page of matches could not be fetched for an epoch."""

    def __init__(self, message: str, epoch: Optional[int] = None):
        super().__init__(message)
        self.epoch = epoch


class RemoteError(FetchError):
    """The API answered with a non-2xx status or the request never completed."""

    def __init__(self, message: str, epoch: Optional[int] = None, status_code: Optional[int] = None):
        super().__init__(message, epoch=epoch)
        self.status_code = status_code


class MalformedResponseError(FetchError):
    """A 2xx body could not be read as a list of match objects."""


class TimestampParseError(BackfillError):
    """A match endTime is missing or not in the expected format."""

    def __init__(self, message: str, value: Optional[str] = None):
        super().__init__(message)
        self.value = value


class PersistenceError(BackfillError):
    """
    Writing a batch or the archive failed.

    Raised out of a pagination run, it carries the partial result of the window
    that hit it (window_result) and every window result collected before the
    run stopped (results), so the totals of an aborted run stay accurate.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.window_result = None
        self.results = []
