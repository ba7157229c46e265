from __future__ import annotations

import logging
import os
import re
from datetime import datetime

from .archivermodel import ArchiveUnit
from .archivermodel import FileEntry

logger = logging.getLogger(__name__)


class InvalidRootError(OSError):
    """The root directory is missing, not a directory, or unreadable."""


def scan(root: str, *, exclude: list[str] | None = None) -> list[ArchiveUnit]:
    """
    Build one archive unit per immediate subdirectory of root.

    Files directly inside root are ignored. Units are returned sorted by name.

    Args:
        root: The directory to scan.

    Keyword Args:
        exclude: Directories that are never scanned (e.g. an output
            directory placed inside root or inside a unit).

    Raises:
        InvalidRootError
    """
    if not os.path.isdir(root):
        raise InvalidRootError(f"Not a directory or does not exist: {root}")

    excluded = {os.path.realpath(path) for path in exclude or []}

    try:
        with os.scandir(root) as entries:
            subdirs = sorted(
                (entry.name, entry.path)
                for entry in entries
                if entry.is_dir(follow_symlinks=False)
            )
    except OSError as error:
        raise InvalidRootError(f"Cannot read root directory {root}: {error}") from error

    units: list[ArchiveUnit] = []
    for name, path in subdirs:
        if os.path.realpath(path) in excluded:
            logger.debug("Ignoring excluded directory '%s'", path)
            continue

        units.append(scan_unit(name, path, exclude=excluded))

    logger.debug("Found %s archive units in %s", len(units), root)

    return units


def scan_unit(
    name: str,
    path: str,
    *,
    exclude: set[str] | None = None,
) -> ArchiveUnit:
    """
    Walk a single unit and snapshot every regular file below it.

    Directories whose real path is in exclude are not descended into.
    """
    excluded = exclude or set()
    archive_ptn = archive_name_pattern(name)
    files: list[FileEntry] = []
    unreadable: list[str] = []
    walk_errors: list[OSError] = []

    for dirpath, dirnames, filenames in os.walk(path, onerror=walk_errors.append):
        dirnames[:] = [
            dirname
            for dirname in dirnames
            if os.path.realpath(os.path.join(dirpath, dirname)) not in excluded
        ]
        files.extend(
            _build_file_entries(path, dirpath, filenames, archive_ptn, unreadable)
        )

    # os.walk reports the top level failure through onerror and yields nothing
    if any(_same_path(error.filename, path) for error in walk_errors):
        logger.warning("Cannot read directory '%s', skipping", path)
        return ArchiveUnit(name, path, error=f"Cannot read directory {path}")

    skipped = tuple(
        [f"Cannot read directory {err.filename}" for err in walk_errors] + unreadable
    )
    for message in skipped:
        logger.warning("%s, skipping", message)

    logger.debug("Found %s files in unit '%s'", len(files), name)

    return ArchiveUnit(name, path, tuple(files), skipped=skipped)


def archive_name_pattern(name: str) -> re.Pattern[str]:
    """Match archives this tool produces for the given unit name."""
    return re.compile(rf"^{re.escape(name)}_\d{{2}}-\d{{2}}-\d{{2}}(?:_\d+)?\.zip$")


def _build_file_entries(
    unit_path: str,
    dirpath: str,
    filenames: list[str],
    archive_ptn: re.Pattern[str],
    unreadable: list[str],
) -> list[FileEntry]:
    """Stat the filenames of one directory into FileEntry objects."""
    entries: list[FileEntry] = []
    at_unit_top = _same_path(dirpath, unit_path)

    for filename in filenames:
        filepath = os.path.join(dirpath, filename)

        if os.path.islink(filepath):
            logger.debug("Ignoring symlink '%s'", filepath)
            continue

        try:
            stat = os.stat(filepath)

        except FileNotFoundError:
            # The file has been moved after the walk listed it
            logger.debug("'%s' moved during walk.", filepath)
            continue

        except OSError as error:
            unreadable.append(f"Cannot read file {filepath}: {error}")
            continue

        relative_path = os.path.relpath(filepath, unit_path).replace(os.sep, "/")

        entries.append(
            FileEntry(
                path=filepath,
                relative_path=relative_path,
                modified=datetime.fromtimestamp(stat.st_mtime),
                size_bytes=stat.st_size,
                is_archive=at_unit_top and bool(archive_ptn.match(filename)),
            )
        )

    return entries


def _same_path(left: str | None, right: str) -> bool:
    if left is None:
        return False
    return os.path.normpath(left) == os.path.normpath(right)
