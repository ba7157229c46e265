from __future__ import annotations

import errno
import os
import sys
import zipfile
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from dir_archiver.archivermodel import ArchiveUnit
from dir_archiver.archivermodel import FileEntry
from dir_archiver.archiverwriter import ArchiveExistsError
from dir_archiver.archiverwriter import archive
from dir_archiver.archiverwriter import resolve_archive_path
from dir_archiver.archiverwriter import verify_archive

UNDECODABLE_NAME = os.fsdecode(b"caf\xff.txt")

requires_bytes_filenames = pytest.mark.skipif(
    sys.platform != "linux", reason="needs arbitrary bytes in file names"
)

RUN_DATE = datetime(2024, 6, 15, 12, 0, 0)
MODIFIED = datetime(2023, 5, 1, 9, 30, 0)


def _entry(unit_path: Path, relative_path: str, content: bytes) -> FileEntry:
    filepath = unit_path / relative_path
    filepath.parent.mkdir(parents=True, exist_ok=True)
    filepath.write_bytes(content)
    return FileEntry(str(filepath), relative_path, MODIFIED, len(content))


@pytest.fixture
def unit(tmp_path: Path) -> ArchiveUnit:
    path = tmp_path / "Photos"
    path.mkdir()
    return ArchiveUnit("Photos", str(path))


def test_archive_writes_dated_zip_inside_unit(unit: ArchiveUnit) -> None:
    files = [_entry(Path(unit.path), "a.jpg", b"first")]

    outcome = archive(unit, files, run_date=RUN_DATE)

    assert outcome.written is True
    assert outcome.error is None
    assert outcome.file_count == 1
    assert outcome.path == os.path.join(unit.path, "Photos_15-06-24.zip")
    assert os.path.exists(outcome.path)


def test_archive_content_matches_originals(unit: ArchiveUnit) -> None:
    files = [
        _entry(Path(unit.path), "a.jpg", b"\x00\x01binary\xff"),
        _entry(Path(unit.path), "2019/summer/b.txt", b"nested text"),
    ]

    outcome = archive(unit, files, run_date=RUN_DATE)

    assert outcome.path is not None
    with zipfile.ZipFile(outcome.path) as zip_file:
        assert sorted(zip_file.namelist()) == ["2019/summer/b.txt", "a.jpg"]
        for entry in files:
            with open(entry.path, "rb") as original:
                assert zip_file.read(entry.relative_path) == original.read()


def test_archive_leaves_originals_in_place(unit: ArchiveUnit) -> None:
    files = [_entry(Path(unit.path), "a.jpg", b"first")]

    archive(unit, files, run_date=RUN_DATE)

    assert os.path.exists(files[0].path)


def test_archive_with_no_files_writes_nothing(unit: ArchiveUnit) -> None:
    outcome = archive(unit, [], run_date=RUN_DATE)

    assert outcome.written is False
    assert outcome.error is None
    assert os.listdir(unit.path) == []


def test_archive_to_output_directory(unit: ArchiveUnit, tmp_path: Path) -> None:
    files = [_entry(Path(unit.path), "a.jpg", b"first")]
    output = tmp_path / "archives" / "photos"

    outcome = archive(unit, files, run_date=RUN_DATE, output_directory=str(output))

    assert outcome.written is True
    assert outcome.path == str(output / "Photos_15-06-24.zip")
    assert not os.path.exists(os.path.join(unit.path, "Photos_15-06-24.zip"))


def test_archive_appends_suffix_on_collision(unit: ArchiveUnit) -> None:
    existing = Path(unit.path) / "Photos_15-06-24.zip"
    existing.write_bytes(b"yesterday's run")
    files = [_entry(Path(unit.path), "a.jpg", b"first")]

    outcome = archive(unit, files, run_date=RUN_DATE)

    assert outcome.written is True
    assert outcome.path == os.path.join(unit.path, "Photos_15-06-24_1.zip")
    assert existing.read_bytes() == b"yesterday's run"


def test_archive_fails_on_collision_when_configured(unit: ArchiveUnit) -> None:
    existing = Path(unit.path) / "Photos_15-06-24.zip"
    existing.write_bytes(b"earlier run")
    files = [_entry(Path(unit.path), "a.jpg", b"first")]

    outcome = archive(unit, files, run_date=RUN_DATE, on_collision="fail")

    assert outcome.written is False
    assert outcome.error is not None
    assert "Archive already exists" in outcome.error
    assert existing.read_bytes() == b"earlier run"


def test_archive_removes_partial_zip_when_disk_is_full(unit: ArchiveUnit) -> None:
    files = [_entry(Path(unit.path), "a.jpg", b"first")]
    disk_full = OSError(errno.ENOSPC, "No space left on device")

    with patch.object(zipfile.ZipFile, "write", side_effect=disk_full):
        outcome = archive(unit, files, run_date=RUN_DATE)

    assert outcome.written is False
    assert outcome.error is not None
    assert "No space left on device" in outcome.error
    assert outcome.path is not None
    assert not os.path.exists(outcome.path)
    assert os.path.exists(files[0].path)


def test_archive_removes_zip_that_fails_verification(unit: ArchiveUnit) -> None:
    files = [_entry(Path(unit.path), "a.jpg", b"first")]

    with patch(
        "dir_archiver.archiverwriter.verify_archive",
        side_effect=zipfile.BadZipFile("corrupt"),
    ):
        outcome = archive(unit, files, run_date=RUN_DATE)

    assert outcome.written is False
    assert outcome.error == "corrupt"
    assert outcome.path is not None
    assert not os.path.exists(outcome.path)


def test_archive_reports_unreadable_source(unit: ArchiveUnit) -> None:
    files = [
        _entry(Path(unit.path), "a.jpg", b"first"),
        FileEntry(os.path.join(unit.path, "gone.jpg"), "gone.jpg", MODIFIED),
    ]

    outcome = archive(unit, files, run_date=RUN_DATE)

    assert outcome.written is False
    assert outcome.path is not None
    assert not os.path.exists(outcome.path)


def test_archive_keeps_pre_1980_files(unit: ArchiveUnit) -> None:
    entry = _entry(Path(unit.path), "old.txt", b"ancient")
    os.utime(entry.path, (0, 0))

    outcome = archive(unit, [entry], run_date=RUN_DATE)

    assert outcome.written is True


def test_resolve_archive_path_skips_taken_suffixes(unit: ArchiveUnit) -> None:
    for name in ("Photos_15-06-24.zip", "Photos_15-06-24_1.zip"):
        (Path(unit.path) / name).write_bytes(b"")

    path = resolve_archive_path(unit, unit.path, RUN_DATE)

    assert path == os.path.join(unit.path, "Photos_15-06-24_2.zip")


def test_resolve_archive_path_raises_on_fail_policy(unit: ArchiveUnit) -> None:
    (Path(unit.path) / "Photos_15-06-24.zip").write_bytes(b"")

    with pytest.raises(ArchiveExistsError):
        resolve_archive_path(unit, unit.path, RUN_DATE, "fail")


def test_resolve_archive_path_rejects_unknown_policy(unit: ArchiveUnit) -> None:
    with pytest.raises(ValueError):
        resolve_archive_path(unit, unit.path, RUN_DATE, "overwrite")


def test_verify_archive_detects_missing_entries(tmp_path: Path) -> None:
    archive_path = tmp_path / "check.zip"
    with zipfile.ZipFile(archive_path, "w") as zip_file:
        zip_file.writestr("a.txt", "a")
    files = [
        FileEntry("/x/a.txt", "a.txt", MODIFIED),
        FileEntry("/x/b.txt", "b.txt", MODIFIED),
    ]

    with pytest.raises(zipfile.BadZipFile, match="1 entries missing"):
        verify_archive(str(archive_path), files)


def test_verify_archive_accepts_complete_archive(tmp_path: Path) -> None:
    archive_path = tmp_path / "check.zip"
    with zipfile.ZipFile(archive_path, "w") as zip_file:
        zip_file.writestr("a.txt", "a")

    verify_archive(str(archive_path), [FileEntry("/x/a.txt", "a.txt", MODIFIED)])


@requires_bytes_filenames
def test_archive_removes_partial_zip_on_unencodable_name(unit: ArchiveUnit) -> None:
    files = [
        _entry(Path(unit.path), "a.jpg", b"first"),
        _entry(Path(unit.path), UNDECODABLE_NAME, b"second"),
    ]

    outcome = archive(unit, files, run_date=RUN_DATE)

    assert outcome.written is False
    assert outcome.error is not None
    assert outcome.path is not None
    assert not os.path.exists(outcome.path)
    assert sorted(os.listdir(unit.path)) == sorted(["a.jpg", UNDECODABLE_NAME])
