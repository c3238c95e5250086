# tests/test_match_sink.py
import json
import os
from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import GoogleAPIError

from conftest import make_match
from omeda_backfill.errors import PersistenceError
from omeda_backfill.match_sink import BigQueryMatchSink, JsonFileMatchSink

START = 1669882894


def test_prepare_wipes_existing_directory(tmp_path):
    output_dir = tmp_path / "matches"
    output_dir.mkdir()
    (output_dir / "stale.json").write_text("[]")

    JsonFileMatchSink(str(output_dir)).prepare()

    assert output_dir.is_dir()
    assert list(output_dir.iterdir()) == []


def test_prepare_can_keep_existing_files(tmp_path):
    output_dir = tmp_path / "matches"
    output_dir.mkdir()
    (output_dir / "old.json").write_text("[]")

    JsonFileMatchSink(str(output_dir), clean=False).prepare()

    assert [p.name for p in output_dir.iterdir()] == ["old.json"]


def test_save_writes_batch_named_by_end_times(tmp_path):
    sink = JsonFileMatchSink(str(tmp_path / "matches"))
    sink.prepare()
    batch = [make_match(START + 10), make_match(START + 20), make_match(START + 30)]

    key = sink.save(batch)

    assert key == (START + 10, START + 30)
    path = tmp_path / "matches" / f"{START + 10}-{START + 30}.json"
    assert json.loads(path.read_text()) == batch
    assert os.listdir(tmp_path / "matches") == [path.name]
    assert sink.archive_source == str(tmp_path / "matches")


def test_save_into_missing_directory_raises(tmp_path):
    sink = JsonFileMatchSink(str(tmp_path / "never-created"))

    with pytest.raises(PersistenceError):
        sink.save([make_match(START + 10)])


def _bq_sink(errors=None, side_effect=None):
    client = MagicMock()
    client.insert_rows_json.return_value = errors or []
    if side_effect is not None:
        client.insert_rows_json.side_effect = side_effect
    return BigQueryMatchSink(project_id="proj", dataset="raw", table="matches", client=client), client


def test_bigquery_sink_streams_one_row_per_match():
    sink, client = _bq_sink()
    batch = [make_match(START + 10, "a"), make_match(START + 20, "b")]

    key = sink.save(batch)

    assert key == (START + 10, START + 20)
    table_id, rows = client.insert_rows_json.call_args[0]
    assert table_id == "proj.raw.matches"
    assert [r['match_id'] for r in rows] == ["a", "b"]
    assert rows[0]['batch_first_epoch'] == START + 10
    assert rows[1]['batch_last_epoch'] == START + 20
    assert json.loads(rows[1]['raw_match']) == batch[1]
    assert sink.archive_source is None


def test_bigquery_row_errors_raise():
    sink, _ = _bq_sink(errors=[{'index': 0, 'errors': ['invalid']}])

    with pytest.raises(PersistenceError):
        sink.save([make_match(START + 10)])


def test_bigquery_api_errors_raise():
    sink, _ = _bq_sink(side_effect=GoogleAPIError("quota exceeded"))

    with pytest.raises(PersistenceError):
        sink.save([make_match(START + 10)])


def test_bigquery_sink_closes_client():
    sink, client = _bq_sink()
    with sink:
        pass
    client.close.assert_called_once()
