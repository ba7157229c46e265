from __future__ import annotations

from .archiver import Archiver
from .archiverconfig import ArchiverConfig

__all__ = [
    "Archiver",
    "ArchiverConfig",
]
