from __future__ import annotations

import logging
import os
import random
import shutil
import time
from pathlib import Path
from string import ascii_lowercase

from dir_archiver.archiver import Archiver
from dir_archiver.archiverconfig import ArchiverConfig

BASE_DIR: Path = Path(__file__).resolve().parent
TEST_DIR: Path = BASE_DIR / "smoketest_tree"
UNITS = ("Photos", "Documents", "Logs", "Music")
FILE_COUNT_RANGE: tuple[int, int] = (5, 50)
MAX_AGE_DAYS = 1200

ARCHIVE_AFTER_DAYS = 365
DELETE_AFTER_DAYS = 730


def build_tree() -> int:
    """Create units with files of random ages. Returns the number of files."""
    shutil.rmtree(TEST_DIR, ignore_errors=True)
    count = 0

    for unit in UNITS:
        for _ in range(random.randint(*FILE_COUNT_RANGE)):
            name = "".join(random.choices(ascii_lowercase, k=8))
            depth = random.choice(["", "nested", "nested/deeper"])
            filepath = TEST_DIR / unit / depth / f"{name}.txt"
            filepath.parent.mkdir(parents=True, exist_ok=True)
            filepath.write_text(name * random.randint(1, 1000))

            age = time.time() - random.randint(0, MAX_AGE_DAYS) * 86400
            os.utime(filepath, (age, age))
            count += 1

    return count


def main() -> int:
    """Run the archiver against a freshly generated tree."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    created = build_tree()
    logging.info("Created %d files under %s", created, TEST_DIR)

    config = ArchiverConfig()
    config.apply_overrides(
        root_directory=TEST_DIR,
        archive_after_days=ARCHIVE_AFTER_DAYS,
        delete_after_days=DELETE_AFTER_DAYS,
    )
    summary = Archiver(config).run_once()

    remaining = sum(len(files) for _, _, files in os.walk(TEST_DIR))
    logging.info(
        "%d files created, %d archived, %d expired, %d left on disk",
        created,
        summary.archived_count,
        summary.expired_count,
        remaining,
    )

    return 0 if summary.error_count == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
