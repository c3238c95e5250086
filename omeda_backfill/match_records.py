"""
Helpers for reading the few match fields the engine depends on.

Matches are passed around as plain dicts exactly as the API returned them.
Only ``endTime`` is interpreted: it names batches and advances the cursor.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from .errors import TimestampParseError

END_TIME_FIELD = 'endTime'
MATCH_ID_FIELD = 'matchId'
END_TIME_FORMAT = '%Y-%m-%d %H:%M:%S'

Match = Dict[str, Any]
BatchKey = Tuple[int, int]


def human_to_unix_epoch(human_time: str) -> int:
    """
    Convert an API timestamp such as ``2022-12-01 08:21:34`` to a Unix epoch.

    The API sends naive timestamps in UTC.

    Raises:
        TimestampParseError: If the value does not match END_TIME_FORMAT
    """
    if not isinstance(human_time, str):
        raise TimestampParseError(f"Expected timestamp string, got {type(human_time).__name__}", value=human_time)
    try:
        dt = datetime.strptime(human_time, END_TIME_FORMAT)
    except ValueError as e:
        raise TimestampParseError(f"Invalid timestamp '{human_time}': {e}", value=human_time) from e
    return int(dt.replace(tzinfo=timezone.utc).timestamp())


def unix_epoch_to_human(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime(END_TIME_FORMAT)


def match_end_epoch(match: Match) -> int:
    """Return the end time of a match as a Unix epoch."""
    if END_TIME_FIELD not in match:
        raise TimestampParseError(f"Match {match.get(MATCH_ID_FIELD, '?')} has no {END_TIME_FIELD}")
    return human_to_unix_epoch(match[END_TIME_FIELD])


def batch_key(matches: List[Match]) -> BatchKey:
    """
    Name a non-empty batch by the end times of its first and last match.

    Raises:
        ValueError: If the batch is empty
        TimestampParseError: If either end time cannot be parsed
    """
    if not matches:
        raise ValueError("Cannot build a key for an empty batch")
    return match_end_epoch(matches[0]), match_end_epoch(matches[-1])


def batch_file_name(key: BatchKey) -> str:
    first_epoch, last_epoch = key
    return f"{first_epoch}-{last_epoch}.json"
