# tests/test_match_archive.py
import zipfile

import pytest

from omeda_backfill.errors import PersistenceError
from omeda_backfill.match_archive import archive_matches, list_match_files


def test_archive_contains_every_batch(tmp_path):
    source = tmp_path / "matches"
    source.mkdir()
    (source / "1-2.json").write_text('[{"matchId": "a"}]')
    (source / "3-4.json").write_text('[{"matchId": "b"}]')
    (source / "5-6.json.part").write_text('[{"matc')
    output = tmp_path / "matches.zip"

    count = archive_matches(str(source), str(output))

    assert count == 2
    with zipfile.ZipFile(output) as archive:
        assert sorted(archive.namelist()) == ["1-2.json", "3-4.json"]
        assert archive.read("3-4.json") == b'[{"matchId": "b"}]'


def test_empty_directory_gives_empty_archive(tmp_path):
    source = tmp_path / "matches"
    source.mkdir()

    assert archive_matches(str(source), str(tmp_path / "out.zip")) == 0
    assert list_match_files(str(source)) == []


def test_unwritable_archive_raises(tmp_path):
    source = tmp_path / "matches"
    source.mkdir()

    with pytest.raises(PersistenceError):
        archive_matches(str(source), str(tmp_path / "missing" / "out.zip"))
