"""
Cooperative cancellation.

A CancellationToken is a write-once flag checked by the scheduler before it
dispatches a window and by every pagination loop before it issues a fetch.
Setting it never interrupts a request already in flight.
"""

import logging
import signal
import threading
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Write-once cancellation flag.

    A token created with a parent also reports cancelled once the parent is,
    but cancelling the child never touches the parent.
    """

    def __init__(self, parent: Optional['CancellationToken'] = None):
        self._event = threading.Event()
        self._parent = parent
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.is_cancelled()

    def child(self) -> 'CancellationToken':
        return CancellationToken(parent=self)


class SignalCancellation:
    """
    Translate OS interrupt signals into a cancelled token.

    Installs handlers on enter and restores the previous ones on exit. The
    handler only sets the token; it must be installed from the main thread.

    Usage:
        token = CancellationToken()
        with SignalCancellation(token):
            scheduler.run(windows, paginate, token)
    """

    def __init__(
        self,
        token: CancellationToken,
        signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM)
    ):
        self.token = token
        self.signals = tuple(signals)
        self._previous: Dict[int, object] = {}

    def _handle_signal(self, signum, frame):
        if self.token.is_cancelled():
            return
        logger.info(f"Signal {signum} received. Finishing open requests and exiting...")
        self.token.cancel(reason=f"signal {signum}")

    def __enter__(self):
        for signum in self.signals:
            self._previous[signum] = signal.signal(signum, self._handle_signal)
        return self.token

    def __exit__(self, exc_type, exc_val, exc_tb):
        for signum, handler in self._previous.items():
            # None means the previous handler was not installed from Python
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous.clear()
