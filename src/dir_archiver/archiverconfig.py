from __future__ import annotations

import logging
import os
from configparser import ConfigParser
from datetime import datetime

from .archiverwriter import COLLISION_POLICIES

NEW_CONFIG = """\
[system]
# config_name is used to name report files.
config_name = {filename}

[archiver]
root_directory = .
# Files older than this many days are zipped per subdirectory.
archive_after_days = 365
# Files older than this many days are deleted without archiving.
delete_after_days = 730
# An absolute date (YYYY-MM-DD) wins over delete_after_days when set.
delete_before =
# Leave empty to write archives inside each subdirectory.
output_directory =
# suffix: add _1, _2, ... to the archive name. fail: report an error.
on_collision = suffix

[emit]
stdout = true
file = false

[telegram]
# Both token and chat_id are required to send a run notification.
token =
chat_id =
# Optional, format [user:password@]host[:port]
proxy_url =

    """


class ArchiverConfig:
    """Configuration for the Archiver."""

    logger = logging.getLogger("dir_archiver.ArchiverConfig")

    def __init__(self, filepath: str | None = None) -> None:
        """Load the configuration from the given file, or start empty."""
        self._config = ConfigParser()
        self.filepath = filepath

        if filepath is None:
            return

        success = self._config.read(filepath)

        if not success:
            raise ValueError(f"Could not read config file at {filepath}")

        self.logger.debug("Loaded config from %s", filepath)

    def apply_overrides(self, **values: object) -> None:
        """Write non-None values into the [archiver] section."""
        if not self._config.has_section("archiver"):
            self._config.add_section("archiver")

        for key, value in values.items():
            if value is None:
                continue
            self._config.set("archiver", key, str(value))
            self.logger.debug("Override %s = %s", key, value)

    @property
    def config_name(self) -> str:
        """Return the name of the config."""
        return self._config.get("system", "config_name", fallback="dir_archiver")

    @property
    def root_directory(self) -> str:
        """Return the root directory to archive."""
        return self._config.get("archiver", "root_directory", fallback=".")

    @property
    def archive_after_days(self) -> int:
        """Return the archive age in days. Will raise if not set."""
        value = self._get_days("archive_after_days")
        if value is None:
            raise ValueError("archive_after_days is required")
        return value

    @property
    def delete_after_days(self) -> int | None:
        """Return the delete age in days, or None if not set."""
        return self._get_days("delete_after_days")

    @property
    def delete_before(self) -> datetime | None:
        """Return the absolute delete threshold, or None if not set."""
        value = self._config.get("archiver", "delete_before", fallback="").strip()
        if not value:
            return None

        try:
            return datetime.fromisoformat(value)
        except ValueError as error:
            raise ValueError(f"delete_before is not a date: {value}") from error

    @property
    def output_directory(self) -> str | None:
        """Return the directory archives are written to, or None for in-place."""
        value = self._config.get("archiver", "output_directory", fallback="")
        return value.strip() or None

    @property
    def on_collision(self) -> str:
        """Return the archive name collision policy."""
        value = self._config.get("archiver", "on_collision", fallback="suffix")
        value = value.strip().lower()
        if value not in COLLISION_POLICIES:
            raise ValueError(f"on_collision must be one of {COLLISION_POLICIES}")
        return value

    @property
    def emit_stdout(self) -> bool:
        """Return whether to print the run report to stdout."""
        return self._config.getboolean("emit", "stdout", fallback=True)

    @property
    def emit_file(self) -> bool:
        """Return whether to append the run report to a file."""
        return self._config.getboolean("emit", "file", fallback=False)

    @property
    def telegram_token(self) -> str | None:
        """Return the Telegram bot token."""
        return self._config.get("telegram", "token", fallback="").strip() or None

    @property
    def telegram_chat_id(self) -> str | None:
        """Return the Telegram chat to notify."""
        return self._config.get("telegram", "chat_id", fallback="").strip() or None

    @property
    def telegram_proxy_url(self) -> str | None:
        """Return the proxy used to reach Telegram."""
        return self._config.get("telegram", "proxy_url", fallback="").strip() or None

    def _get_days(self, option: str) -> int | None:
        """Read a non-negative day count, None when empty."""
        value = self._config.get("archiver", option, fallback="").strip()
        if not value:
            return None

        try:
            days = int(value)
        except ValueError as error:
            raise ValueError(f"{option} must be a whole number: {value}") from error

        if days < 0:
            raise ValueError(f"{option} cannot be negative: {days}")

        return days


def write_new_config(filename: str) -> None:
    """Write a new config file if one does not exist."""
    if os.path.exists(filename):
        return

    config_name = os.path.splitext(os.path.basename(filename))[0]
    config = NEW_CONFIG.format(filename=config_name)

    with open(filename, "w") as config_file:
        config_file.write(config)
