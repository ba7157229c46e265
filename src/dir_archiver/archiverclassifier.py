from __future__ import annotations

from datetime import datetime
from datetime import timedelta

from .archivermodel import Classification


def classify(
    modified: datetime,
    now: datetime,
    archive_threshold_days: int,
    delete_threshold: datetime,
) -> Classification:
    """
    Classify a file by its last modified time.

    Args:
        modified: When the file was last modified.
        now: The reference time of the run.
        archive_threshold_days: Minimum age in days before a file is archived.
        delete_threshold: Files modified before this moment are expired.

    Returns:
        EXPIRED, ARCHIVABLE or FRESH. Expired is checked first and wins when
        the two thresholds overlap.
    """
    if modified < delete_threshold:
        return Classification.EXPIRED

    if now - modified >= timedelta(days=archive_threshold_days):
        return Classification.ARCHIVABLE

    return Classification.FRESH


def archive_cutoff(now: datetime, archive_threshold_days: int) -> datetime:
    """Return the newest modified time that is still archivable."""
    return now - timedelta(days=archive_threshold_days)


def delete_threshold_from_days(now: datetime, delete_after_days: int) -> datetime:
    """Turn a delete age in days into an absolute threshold."""
    return now - timedelta(days=delete_after_days)
