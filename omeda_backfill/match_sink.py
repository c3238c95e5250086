"""
Persistence sinks for match batches.

A sink stores one fetched batch under a key derived from the batch's own
end times. Sinks are called concurrently from worker threads, always with
distinct keys, and must raise PersistenceError instead of dropping data.
"""

import json
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from google.cloud import bigquery
from google.api_core import retry
from google.api_core.exceptions import GoogleAPIError

from .errors import PersistenceError
from .match_records import (
    BatchKey, Match, MATCH_ID_FIELD, END_TIME_FIELD, batch_file_name, batch_key,
)

logger = logging.getLogger(__name__)


class MatchSink(ABC):
    """Durable storage for match batches."""

    def prepare(self) -> None:
        """Get the storage ready before the first save."""

    @abstractmethod
    def save(self, matches: List[Match]) -> BatchKey:
        """
        Persist a non-empty batch.

        Returns:
            The (first_end_epoch, last_end_epoch) key the batch was stored under

        Raises:
            PersistenceError: If the batch could not be written
        """

    @property
    def archive_source(self) -> Optional[str]:
        """Local directory holding the saved batches, if any."""
        return None

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class JsonFileMatchSink(MatchSink):
    """Writes each batch to ``<output_dir>/<first>-<last>.json``."""

    def __init__(self, output_dir: str = "matches", clean: bool = True):
        """
        Args:
            output_dir: Directory receiving the batch files
            clean: Remove any existing directory contents in prepare()
        """
        self.output_dir = output_dir
        self.clean = clean

    @property
    def archive_source(self) -> Optional[str]:
        return self.output_dir

    def prepare(self) -> None:
        try:
            if self.clean and os.path.exists(self.output_dir):
                logger.info(f"Removing existing output directory {self.output_dir}")
                shutil.rmtree(self.output_dir)
            os.makedirs(self.output_dir, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot prepare output directory {self.output_dir}: {e}") from e

    def save(self, matches: List[Match]) -> BatchKey:
        key = batch_key(matches)
        path = os.path.join(self.output_dir, batch_file_name(key))

        # Write to a temp file first so a crash never leaves a truncated batch
        try:
            fd, temp_path = tempfile.mkstemp(dir=self.output_dir, suffix='.part')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(matches, f)
                os.replace(temp_path, path)
            except BaseException:
                if os.path.exists(temp_path):
                    os.remove(temp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to save batch {key} to {path}: {e}") from e

        logger.info(f"Saved {len(matches)} matches for {key[0]} to {key[1]}")
        return key


class BigQueryMatchSink(MatchSink):
    """Streams every match of a batch into a BigQuery table, one row per match."""

    def __init__(
        self,
        project_id: str,
        dataset: str = "raw",
        table: str = "matches",
        client: Optional[bigquery.Client] = None
    ):
        """Initialize BigQuery sink."""
        self.project_id = project_id
        self.table_id = f"{project_id}.{dataset}.{table}"
        self.client = client or bigquery.Client(project=project_id)
        logger.info(f"BigQuery sink initialized for table: {self.table_id}")

    def _to_rows(self, matches: List[Match], key: BatchKey) -> List[Dict[str, Any]]:
        return [
            {
                'match_id': match.get(MATCH_ID_FIELD),
                'end_time': match.get(END_TIME_FIELD),
                'batch_first_epoch': key[0],
                'batch_last_epoch': key[1],
                'raw_match': json.dumps(match),
            }
            for match in matches
        ]

    def save(self, matches: List[Match]) -> BatchKey:
        key = batch_key(matches)
        rows = self._to_rows(matches, key)

        try:
            errors = self.client.insert_rows_json(
                self.table_id,
                rows,
                retry=retry.Retry(deadline=60)
            )
        except GoogleAPIError as e:
            raise PersistenceError(f"Failed to insert batch {key} into {self.table_id}: {e}") from e

        if errors:
            raise PersistenceError(f"Errors inserting batch {key} into {self.table_id}: {errors}")

        logger.info(f"Inserted {len(rows)} matches for {key[0]} to {key[1]} into {self.table_id}")
        return key

    def close(self):
        self.client.close()
