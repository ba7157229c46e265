from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dir_archiver.archiver import Archiver
from dir_archiver.archiverconfig import ArchiverConfig
from dir_archiver.archiverconfig import write_new_config
from dir_archiver.archiverscanner import InvalidRootError
from dir_archiver.archiverwriter import COLLISION_POLICIES

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_FILE = "dir_archiver.log"


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description=(
            "Zip aging files of every subdirectory into <dir>_<dd-mm-yy>.zip"
            " and delete files older than the delete threshold."
        ),
    )
    parser.add_argument(
        "root",
        type=str,
        nargs="?",
        default=None,
        help="The directory whose subdirectories are archived.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="The path to the configuration file.",
    )
    parser.add_argument(
        "-a",
        "--archive",
        type=int,
        default=None,
        help="Archive files older than ARCHIVE days.",
    )
    delete_group = parser.add_mutually_exclusive_group()
    delete_group.add_argument(
        "-d",
        "--delete",
        type=int,
        default=None,
        help="Delete files older than DELETE days.",
    )
    delete_group.add_argument(
        "--delete-before",
        type=str,
        default=None,
        help="Delete files modified before this date (YYYY-MM-DD).",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Write archives to this directory instead of each subdirectory.",
    )
    parser.add_argument(
        "--on-collision",
        choices=COLLISION_POLICIES,
        default=None,
        help="What to do when today's archive already exists. Default: suffix.",
    )
    parser.add_argument(
        "--debug",
        help="Enable debug logging.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--log-file",
        help="Enable logging to a file next to the config file.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--make-config",
        help="Create a default configuration file at --config.",
        default=False,
        action="store_true",
    )
    return parser.parse_args(args)


def add_file_handler_to_logging(config_filepath: str | None) -> None:
    """Add a file handler to the root logger next to the config file provided."""
    if config_filepath:
        filepath = Path(config_filepath).absolute()
        log_filepath = filepath.parent / f"{filepath.stem}.log"
    else:
        log_filepath = Path(DEFAULT_LOG_FILE).absolute()

    file_handler = logging.FileHandler(log_filepath)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logging.getLogger().addHandler(file_handler)


def build_config(args: argparse.Namespace) -> ArchiverConfig:
    """Load the config file, if any, and layer the command line on top."""
    config = ArchiverConfig(args.config)
    config.apply_overrides(
        root_directory=args.root,
        archive_after_days=args.archive,
        delete_after_days=args.delete,
        delete_before=args.delete_before,
        output_directory=args.output,
        on_collision=args.on_collision,
    )
    # An explicit day count on the command line beats a date from the file
    if args.delete is not None and args.delete_before is None:
        config.apply_overrides(delete_before="")

    return config


def main(*, cli_args: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(cli_args)

    if args.make_config:
        if not args.config:
            print("--make-config requires --config <path>", file=sys.stderr)
            return 2
        write_new_config(args.config)
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )

    if args.log_file:
        add_file_handler_to_logging(args.config)

    try:
        archiver = Archiver(build_config(args))
        archiver.run_once()

    except InvalidRootError as error:
        logging.getLogger(__name__).error("%s", error)
        return 1

    except ValueError as error:
        logging.getLogger(__name__).error("Invalid configuration: %s", error)
        return 2

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
