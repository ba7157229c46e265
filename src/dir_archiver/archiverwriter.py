from __future__ import annotations

import errno
import logging
import os
import zipfile
from datetime import datetime

from .archivermodel import ArchiveOutcome
from .archivermodel import ArchiveUnit
from .archivermodel import FileEntry

COLLISION_POLICIES = ("suffix", "fail")

logger = logging.getLogger(__name__)


class ArchiveExistsError(FileExistsError):
    """The dated archive name is already taken and suffixing is disabled."""


def archive(
    unit: ArchiveUnit,
    files: list[FileEntry],
    *,
    run_date: datetime,
    output_directory: str | None = None,
    on_collision: str = "suffix",
) -> ArchiveOutcome:
    """
    Write the given files of a unit into a single dated zip archive.

    The archive is verified after it is closed. Any failure removes the
    partial archive. Source files are never touched here.

    Args:
        unit: The unit being archived.
        files: The files to store, each under its path relative to the unit.

    Keyword Args:
        run_date: Date used in the archive name.
        output_directory: Where to place the archive. Defaults to the unit.
        on_collision: "suffix" to pick the next free `_N` name, "fail" to
            refuse when the dated name already exists.

    Returns:
        An ArchiveOutcome with written=True only for a verified archive.
    """
    if not files:
        return ArchiveOutcome(written=False)

    target_directory = output_directory or unit.path

    try:
        os.makedirs(target_directory, exist_ok=True)
        archive_path = resolve_archive_path(
            unit, target_directory, run_date, on_collision
        )
        # "x" refuses to replace a file created since the name was resolved
        zip_file = zipfile.ZipFile(
            archive_path,
            "x",
            compression=zipfile.ZIP_DEFLATED,
            strict_timestamps=False,
        )

    except OSError as error:
        logger.error("Cannot create archive for '%s': %s", unit.name, error)
        return ArchiveOutcome(written=False, error=str(error))

    try:
        with zip_file:
            for entry in files:
                logger.debug("Adding '%s' to %s", entry.relative_path, archive_path)
                zip_file.write(entry.path, entry.relative_path)

        verify_archive(archive_path, files)

    # ValueError covers names zip cannot encode, e.g. undecodable bytes
    except (OSError, ValueError, zipfile.BadZipFile) as error:
        logger.error("Failed to write archive %s: %s", archive_path, error)
        _discard(archive_path)
        return ArchiveOutcome(written=False, path=archive_path, error=str(error))

    logger.info("Archived %s files into %s", len(files), archive_path)

    return ArchiveOutcome(written=True, path=archive_path, file_count=len(files))


def resolve_archive_path(
    unit: ArchiveUnit,
    directory: str,
    run_date: datetime,
    on_collision: str = "suffix",
) -> str:
    """
    Return the first archive path that does not exist yet.

    Raises:
        ArchiveExistsError: When the dated name exists and on_collision is "fail".
        ValueError: On an unknown collision policy.
    """
    if on_collision not in COLLISION_POLICIES:
        raise ValueError(f"Unknown collision policy: {on_collision}")

    suffix = 0
    while True:
        path = os.path.join(directory, unit.archive_name(run_date, suffix))
        if not os.path.exists(path):
            return path

        if on_collision == "fail":
            raise ArchiveExistsError(errno.EEXIST, "Archive already exists", path)

        suffix += 1


def verify_archive(archive_path: str, files: list[FileEntry]) -> None:
    """
    Reopen a closed archive and check it holds every expected entry intact.

    Raises:
        zipfile.BadZipFile
    """
    with zipfile.ZipFile(archive_path) as zip_file:
        bad_entry = zip_file.testzip()
        if bad_entry is not None:
            raise zipfile.BadZipFile(f"Corrupt entry '{bad_entry}' in {archive_path}")

        names = set(zip_file.namelist())

    missing = {entry.relative_path for entry in files} - names
    if missing:
        raise zipfile.BadZipFile(
            f"{len(missing)} entries missing from {archive_path}: {sorted(missing)}"
        )


def _discard(archive_path: str) -> None:
    """Remove a partial archive, if anything was left on disk."""
    try:
        os.remove(archive_path)

    except FileNotFoundError:
        return

    except OSError as error:
        logger.error("Could not remove partial archive %s: %s", archive_path, error)
        return

    logger.debug("Removed partial archive %s", archive_path)
