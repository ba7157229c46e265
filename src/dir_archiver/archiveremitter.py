from __future__ import annotations

import base64
import http.client
import json
import logging
import socket
from datetime import datetime
from urllib.parse import unquote
from urllib.parse import urlsplit

from .archiverconfig import ArchiverConfig
from .archivermodel import RunSummary

TELEGRAM_HOST = "api.telegram.org"
TELEGRAM_PORT = 443
DEFAULT_PROXY_PORT = 80


class ArchiverEmitter:
    """Report the outcome of a run to the configured targets."""

    logger = logging.getLogger(__name__)

    def __init__(self, config: ArchiverConfig) -> None:
        """Initialize the emitter."""
        self._config = config

    def emit(self, summary: RunSummary) -> None:
        """Send the summary of a run to every enabled target."""
        lines = self.build_lines(summary)

        self.to_stdout(lines)
        self.to_file(lines)
        self.to_telegram(summary)

        self.logger.debug("Emitted %d report lines.", len(lines))

    @staticmethod
    def build_lines(summary: RunSummary) -> list[str]:
        """Build the human readable report for a run."""
        started = summary.started.strftime("%Y-%m-%d %H:%M:%S")
        lines = [f"Archive run on {summary.root} at {started}"]

        for result in summary.results:
            lines.append(f"  {result}")
            lines.extend(f"    ! {error}" for error in result.errors)

        lines.append(
            f"Archived {summary.archived_count} files,"
            f" expired {summary.expired_count} files,"
            f" {summary.error_count} errors"
            f" in {summary.elapsed_seconds:.2f} seconds"
        )

        if summary.interrupted:
            lines.append("Run interrupted before all directories were processed")

        return lines

    def to_stdout(self, lines: list[str]) -> None:
        """
        Print report lines to stdout.

        Args:
            lines: A list of lines to emit.
        """
        if not self._config.emit_stdout or not lines:
            return

        print("\n".join(lines))

    def to_file(self, lines: list[str]) -> None:
        """
        Append report lines to a dated report file.

        Args:
            lines: A list of lines to emit.

        Output:
            A file named <config_name>_<date>_archive_report.txt
        """
        if not self._config.emit_file or not lines:
            return
        date = datetime.now().strftime("%Y%m%d")
        filename = f"{self._config.config_name}_{date}_archive_report.txt"

        with open(filename, "a") as file_out:
            file_out.write("\n".join(lines) + "\n")

        self.logger.debug("Emitted %d lines to %s", len(lines), filename)

    def to_telegram(self, summary: RunSummary) -> None:
        """
        Send a run notification through the Telegram Bot API.

        Failures are logged and never raised.
        """
        token = self._config.telegram_token
        chat_id = self._config.telegram_chat_id

        if not token:
            self.logger.debug("No notification sent since no telegram token provided.")
            return

        if not chat_id:
            self.logger.warning("Cannot send notification without chat id provided!")
            return

        try:
            conn = self._connect()
        except ValueError as error:
            self.logger.error("Bad proxy configuration: %s", error)
            return

        payload = {
            "chat_id": chat_id,
            "text": self.build_message(summary),
            "parse_mode": "Markdown",
        }

        try:
            conn.request(
                "POST",
                f"/bot{token}/sendMessage",
                json.dumps(payload).encode("utf-8"),
                {"Content-Type": "application/json"},
            )
            response = conn.getresponse()
            body = response.read()

        except (OSError, http.client.HTTPException) as error:
            self.logger.error("Failed to send message to telegram: %s", error)
            return

        finally:
            conn.close()

        if response.status != 200:
            self.logger.error(
                "Failed to send message to telegram: %s",
                self._describe_error(body),
            )
        else:
            self.logger.debug("Sent run notification to telegram chat %s", chat_id)

    @staticmethod
    def build_message(summary: RunSummary) -> str:
        """Build the Markdown notification text."""
        return (
            f"Archive cleanup finished on `{socket.gethostname()}`\n"
            f"Elapsed time: *{summary.elapsed_seconds:.2f}s*\n"
            f"Files archived for the period"
            f" `{summary.delete_threshold.strftime('%d.%m.%Y')}`"
            f" to `{summary.archive_cutoff.strftime('%d.%m.%Y')}`:"
            f" *{summary.archived_count} files*.\n"
            f"Expired files deleted: *{summary.expired_count}*\n"
            f"Errors: *{summary.error_count}*\n"
        )

    def _connect(self) -> http.client.HTTPSConnection:
        """Build a connection to Telegram, tunnelled through the proxy if set."""
        proxy_url = self._config.telegram_proxy_url
        if not proxy_url:
            return http.client.HTTPSConnection(TELEGRAM_HOST, TELEGRAM_PORT, timeout=10)

        host, port, credentials = parse_proxy_url(proxy_url)
        headers: dict[str, str] = {}
        if credentials:
            token = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
            headers["Proxy-Authorization"] = f"Basic {token}"

        conn = http.client.HTTPSConnection(host, port, timeout=10)
        conn.set_tunnel(TELEGRAM_HOST, TELEGRAM_PORT, headers=headers)
        return conn

    @staticmethod
    def _describe_error(body: bytes) -> str:
        """Pull the description out of a Telegram error response."""
        try:
            return str(json.loads(body)["description"])
        except (ValueError, KeyError, TypeError):
            return body.decode("utf-8", errors="replace")


def parse_proxy_url(proxy_url: str) -> tuple[str, int, str | None]:
    """
    Split `[scheme://][user:password@]host[:port]` into its parts.

    Returns:
        A tuple of host, port and `user:password` credentials (or None).

    Raises:
        ValueError: When the host or port cannot be read.
    """
    if "://" not in proxy_url:
        proxy_url = f"http://{proxy_url}"

    parts = urlsplit(proxy_url)
    if not parts.hostname:
        raise ValueError("No proxy host in proxy_url")

    # .port raises ValueError for out of range or non numeric ports
    port = parts.port or DEFAULT_PROXY_PORT

    credentials = None
    if parts.username:
        credentials = f"{unquote(parts.username)}:{unquote(parts.password or '')}"

    return parts.hostname, port, credentials
