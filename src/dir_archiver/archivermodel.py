from __future__ import annotations

import dataclasses
import enum
from datetime import datetime

ARCHIVE_DATE_FORMAT = "%d-%m-%y"


class Classification(enum.Enum):
    """Age bucket of a single file."""

    FRESH = "fresh"
    ARCHIVABLE = "archivable"
    EXPIRED = "expired"


@dataclasses.dataclass(frozen=True)
class FileEntry:
    """A file found inside an archive unit at scan time."""

    path: str
    relative_path: str
    modified: datetime
    size_bytes: int = 0
    is_archive: bool = False

    def __str__(self) -> str:
        """Return a string representation of the file."""
        modified = self.modified.strftime("%Y-%m-%d %H:%M:%S")
        return f"{self.path} ({self.size_bytes} bytes, modified {modified})"


@dataclasses.dataclass(frozen=True)
class ArchiveUnit:
    """An immediate subdirectory of the root, archived as one zip."""

    name: str
    path: str
    files: tuple[FileEntry, ...] = ()
    error: str | None = None
    skipped: tuple[str, ...] = ()

    def archive_name(self, run_date: datetime, suffix: int = 0) -> str:
        """Return `<name>_<dd-mm-yy>.zip`, with `_<suffix>` when suffix > 0."""
        stem = f"{self.name}_{run_date.strftime(ARCHIVE_DATE_FORMAT)}"
        if suffix:
            stem = f"{stem}_{suffix}"
        return f"{stem}.zip"


@dataclasses.dataclass(frozen=True)
class ArchiveOutcome:
    """Result of writing one unit archive."""

    written: bool
    path: str | None = None
    error: str | None = None
    file_count: int = 0


@dataclasses.dataclass(frozen=True)
class RemovalOutcome:
    """Result of deleting a batch of files."""

    deleted_count: int = 0
    errors: list[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class RunResult:
    """What happened to a single archive unit."""

    unit: str
    archived_count: int = 0
    expired_count: int = 0
    archive_path: str | None = None
    errors: list[str] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when the unit finished without errors."""
        return not self.errors

    def __str__(self) -> str:
        """Return a one line summary of the unit."""
        status = "ok" if self.ok else f"{len(self.errors)} error(s)"
        line = (
            f"{self.unit}: archived {self.archived_count},"
            f" expired {self.expired_count} ({status})"
        )
        if self.archive_path:
            line += f" -> {self.archive_path}"
        return line


@dataclasses.dataclass
class RunSummary:
    """Aggregate of all unit results for one run."""

    root: str
    started: datetime
    archive_cutoff: datetime
    delete_threshold: datetime
    results: list[RunResult] = dataclasses.field(default_factory=list)
    elapsed_seconds: float = 0.0
    interrupted: bool = False

    @property
    def archived_count(self) -> int:
        """Files archived across all units."""
        return sum(result.archived_count for result in self.results)

    @property
    def expired_count(self) -> int:
        """Expired files deleted across all units."""
        return sum(result.expired_count for result in self.results)

    @property
    def error_count(self) -> int:
        """Errors reported across all units."""
        return sum(len(result.errors) for result in self.results)
