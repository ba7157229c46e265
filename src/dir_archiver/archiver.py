from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from .archiverclassifier import archive_cutoff
from .archiverclassifier import classify
from .archiverclassifier import delete_threshold_from_days
from .archiverconfig import ArchiverConfig
from .archiveremitter import ArchiverEmitter
from .archivermodel import ArchiveUnit
from .archivermodel import Classification
from .archivermodel import FileEntry
from .archivermodel import RunResult
from .archivermodel import RunSummary
from .archiverremover import remove_files
from .archiverscanner import scan
from .archiverwriter import archive


class Archiver:
    """Archive and expire aging files, one subdirectory at a time."""

    logger = logging.getLogger(__name__)

    def __init__(self, config: ArchiverConfig) -> None:
        """
        Initialize a new Archiver.

        Args:
            config: The configuration to use for this archiver.
        """
        self._config = config
        self._emitter = ArchiverEmitter(config)
        self._stop_requested = False

    def request_stop(self) -> None:
        """Stop the current run once the unit being processed is finished."""
        self._stop_requested = True

    def run_once(self, now: datetime | None = None) -> RunSummary:
        """
        Scan the root directory and process every unit found.

        Args:
            now: The reference time of the run. Defaults to the current time.

        Raises:
            InvalidRootError: Before anything on disk is changed.
            ValueError: On invalid configuration, also before any change.
        """
        now = now or datetime.now()
        root = self._config.root_directory
        output_directory = self._config.output_directory

        cutoff = archive_cutoff(now, self._config.archive_after_days)
        delete_threshold = self.resolve_delete_threshold(now)
        if delete_threshold > cutoff:
            self.logger.warning(
                "Delete threshold %s is newer than archive cutoff %s,"
                " nothing will be archived",
                delete_threshold,
                cutoff,
            )

        self.logger.debug(
            "Archive cutoff %s, delete threshold %s, on collision: %s",
            cutoff,
            delete_threshold,
            self._config.on_collision,
        )
        self.logger.info("Running archiver on %s...", root)
        tic = time.perf_counter()

        units = scan(root, exclude=[output_directory] if output_directory else None)
        summary = RunSummary(root, now, cutoff, delete_threshold)

        self._stop_requested = False
        with self._deferred_interrupt():
            for index, unit in enumerate(units):
                if self._stop_requested:
                    self.logger.warning(
                        "Run stopped, %d directories left untouched",
                        len(units) - index,
                    )
                    summary.interrupted = True
                    break

                result = self._guarded_unit(unit, now, delete_threshold)
                summary.results.append(result)

        toc = time.perf_counter()
        summary.elapsed_seconds = toc - tic

        self.logger.info("Archiver finished in %s seconds", summary.elapsed_seconds)
        self.logger.info(
            "Archived %s files, expired %s files, %s errors",
            summary.archived_count,
            summary.expired_count,
            summary.error_count,
        )

        self._emitter.emit(summary)

        return summary

    def resolve_delete_threshold(self, now: datetime) -> datetime:
        """Return the absolute delete threshold, datetime.min when disabled."""
        delete_before = self._config.delete_before
        if delete_before is not None:
            return delete_before

        delete_after_days = self._config.delete_after_days
        if delete_after_days is not None:
            return delete_threshold_from_days(now, delete_after_days)

        self.logger.info("No delete threshold configured, expiry disabled")
        return datetime.min

    def process_unit(
        self,
        unit: ArchiveUnit,
        now: datetime,
        delete_threshold: datetime,
    ) -> RunResult:
        """
        Archive and expire the files of one unit.

        Originals are only deleted once their archive has been verified.
        Errors are collected into the returned RunResult.
        """
        result = RunResult(unit.name)

        if unit.error:
            result.errors.append(unit.error)
            self.logger.info("%s", result)
            return result

        result.errors.extend(unit.skipped)

        archivable, expired = self._classify_files(unit, now, delete_threshold)

        if archivable:
            self._archive_files(unit, archivable, now, result)

        if expired:
            removal = remove_files(expired)
            result.expired_count = removal.deleted_count
            result.errors.extend(removal.errors)

        self.logger.info("%s", result)

        return result

    def _guarded_unit(
        self,
        unit: ArchiveUnit,
        now: datetime,
        delete_threshold: datetime,
    ) -> RunResult:
        """Process a unit, recording any unexpected failure as a unit error."""
        try:
            return self.process_unit(unit, now, delete_threshold)

        except Exception as error:
            self.logger.exception("Unexpected error processing '%s'", unit.name)
            return RunResult(unit.name, errors=[f"Unexpected error: {error!r}"])

    def _classify_files(
        self,
        unit: ArchiveUnit,
        now: datetime,
        delete_threshold: datetime,
    ) -> tuple[list[FileEntry], list[FileEntry]]:
        """Split the unit's files into archivable and expired lists."""
        archive_days = self._config.archive_after_days
        archivable: list[FileEntry] = []
        expired: list[FileEntry] = []

        for entry in unit.files:
            classification = classify(
                entry.modified, now, archive_days, delete_threshold
            )

            if classification is Classification.EXPIRED:
                expired.append(entry)

            elif classification is Classification.ARCHIVABLE:
                # Archives from earlier runs only ever expire
                if entry.is_archive:
                    self.logger.debug("Not re-archiving '%s'", entry.path)
                    continue
                archivable.append(entry)

        self.logger.debug(
            "Unit '%s': %d archivable, %d expired, %d total",
            unit.name,
            len(archivable),
            len(expired),
            len(unit.files),
        )

        return archivable, expired

    def _archive_files(
        self,
        unit: ArchiveUnit,
        archivable: list[FileEntry],
        now: datetime,
        result: RunResult,
    ) -> None:
        """Write the archive, then remove the originals it holds."""
        outcome = archive(
            unit,
            archivable,
            run_date=now,
            output_directory=self._config.output_directory,
            on_collision=self._config.on_collision,
        )

        if not outcome.written:
            if outcome.error:
                result.errors.append(outcome.error)
            return

        result.archive_path = outcome.path
        result.archived_count = outcome.file_count

        removal = remove_files(archivable)
        result.errors.extend(removal.errors)

    @contextmanager
    def _deferred_interrupt(self) -> Generator[None, None, None]:
        """Turn Ctrl-C into a stop request while units are processed."""
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        def _handler(signum: int, frame: Any) -> None:
            self.logger.warning("Interrupt received, stopping after this directory")
            self.request_stop()

        previous = signal.signal(signal.SIGINT, _handler)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous or signal.SIG_DFL)
