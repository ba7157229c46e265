from __future__ import annotations

from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from dir_archiver.archivermodel import FileEntry
from dir_archiver.archiverremover import remove_files

MODIFIED = datetime(2020, 1, 1)


def _entry(path: Path) -> FileEntry:
    return FileEntry(str(path), path.name, MODIFIED)


def test_remove_files_deletes_each_file(tmp_path: Path) -> None:
    paths = [tmp_path / "a.log", tmp_path / "b.log"]
    for path in paths:
        path.write_text("x")

    outcome = remove_files([_entry(path) for path in paths])

    assert outcome.deleted_count == 2
    assert outcome.errors == []
    assert not any(path.exists() for path in paths)


def test_remove_files_continues_after_failure(tmp_path: Path) -> None:
    present = tmp_path / "present.log"
    present.write_text("x")
    missing = tmp_path / "missing.log"

    outcome = remove_files([_entry(missing), _entry(present)])

    assert outcome.deleted_count == 1
    assert len(outcome.errors) == 1
    assert outcome.errors[0].startswith(f"{missing}: ")
    assert not present.exists()


def test_remove_files_records_permission_errors(tmp_path: Path) -> None:
    locked = tmp_path / "locked.log"
    locked.write_text("x")
    denied = PermissionError(13, "Permission denied", str(locked))

    with patch("dir_archiver.archiverremover.os.remove", side_effect=denied):
        outcome = remove_files([_entry(locked)])

    assert outcome.deleted_count == 0
    assert "Permission denied" in outcome.errors[0]
    assert locked.exists()


def test_remove_files_with_nothing_to_do() -> None:
    outcome = remove_files([])

    assert outcome.deleted_count == 0
    assert outcome.errors == []
