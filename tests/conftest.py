# tests/conftest.py
import threading
from typing import Dict, Iterable, List, Optional

import pytest

from omeda_backfill.errors import PersistenceError, RemoteError
from omeda_backfill.match_records import BatchKey, Match, batch_key, match_end_epoch, unix_epoch_to_human
from omeda_backfill.match_sink import MatchSink

FIRST_EPOCH = 1669882894


def make_match(end_epoch: int, match_id: Optional[str] = None) -> Match:
    """A trimmed-down match as the Omeda API returns it."""
    return {
        'winningTeam': 0,
        'gameDuration': 1800,
        'gameMode': 'pvp',
        'matchId': match_id or f"match-{end_epoch}",
        'region': 'europe',
        'startTime': unix_epoch_to_human(end_epoch - 1800),
        'endTime': unix_epoch_to_human(end_epoch),
        'matchEndReason': 'core_destroyed',
        'playerData': [],
        'heroKills': [],
        'structureDestructions': [],
        'objectiveKills': [],
    }


class FakeMatchesApi:
    """
    In-memory get-matches-since endpoint.

    Returns up to page_size matches whose endTime is strictly after the
    requested epoch, oldest first.
    """

    def __init__(self, end_epochs: Iterable[int], page_size: int = 3, fail_epochs: Iterable[int] = ()):
        self.matches = [make_match(e) for e in sorted(end_epochs)]
        self.page_size = page_size
        self.fail_epochs = set(fail_epochs)
        self.calls: List[int] = []
        self._lock = threading.Lock()

    def get_matches_since(self, epoch: int) -> List[Match]:
        with self._lock:
            self.calls.append(epoch)
        if epoch in self.fail_epochs:
            raise RemoteError(f"Error getting matches for epoch {epoch}: HTTP 500", epoch=epoch, status_code=500)
        newer = [m for m in self.matches if match_end_epoch(m) > epoch]
        return newer[:self.page_size]


class ScriptedFetcher:
    """Returns a fixed page per epoch and an empty page for anything else."""

    def __init__(self, pages: Dict[int, List[Match]]):
        self.pages = pages
        self.calls: List[int] = []
        self._lock = threading.Lock()

    def __call__(self, epoch: int) -> List[Match]:
        with self._lock:
            self.calls.append(epoch)
        return list(self.pages.get(epoch, []))


class RecordingSink(MatchSink):
    """Thread-safe sink that keeps batches in memory."""

    def __init__(self, fail_after: Optional[int] = None, archive_dir: Optional[str] = None):
        self.saved: List[List[Match]] = []
        self.keys: List[BatchKey] = []
        self.prepared = False
        self.closed = False
        self.fail_after = fail_after
        self.archive_dir = archive_dir
        self._lock = threading.Lock()

    @property
    def archive_source(self) -> Optional[str]:
        return self.archive_dir

    def prepare(self) -> None:
        self.prepared = True

    def save(self, matches: List[Match]) -> BatchKey:
        key = batch_key(matches)
        with self._lock:
            if self.fail_after is not None and len(self.saved) >= self.fail_after:
                raise PersistenceError(f"disk full while saving {key}")
            self.saved.append(list(matches))
            self.keys.append(key)
        return key

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()
