from __future__ import annotations

import logging
import os

from .archivermodel import FileEntry
from .archivermodel import RemovalOutcome

logger = logging.getLogger(__name__)


def remove_files(files: list[FileEntry]) -> RemovalOutcome:
    """
    Delete each file, recording failures without stopping.

    Deletions are permanent. Used for expired files and for the originals of
    a verified archive.
    """
    deleted = 0
    errors: list[str] = []

    for entry in files:
        try:
            os.remove(entry.path)

        except OSError as error:
            logger.warning("Failed to remove '%s': %s", entry.path, error)
            errors.append(f"{entry.path}: {error}")
            continue

        logger.debug("Removed '%s'", entry.path)
        deleted += 1

    return RemovalOutcome(deleted_count=deleted, errors=errors)
