"""Command-line entry point for Stashbox.

Usage: stashbox [--root DIR] [--no-cache] [-v] <command> [<args>]

Every StashError maps to its own exit code (see ``StashError.exit_code``);
usage errors exit with ``USAGE_EXIT_CODE``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .logging_config import configure_logging
from ..core.config import StashConfig
from ..core.exceptions import StashError
from ..core.stash import Stash

logger = logging.getLogger(__name__)


# sysexits EX_USAGE; distinct from every StashError.exit_code
USAGE_EXIT_CODE = 64


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(USAGE_EXIT_CODE, f"{self.prog}: error: {message}\n")


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="stashbox",
        description="Keep files in a local, encrypted stash.",
    )
    parser.add_argument(
        "--root",
        default=None,
        help="Stash directory (default: $STASHBOX_ROOT or ~/.stash)",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Do not cache secrets in the OS keyring",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Move a file into the stash")
    add.add_argument("file")
    add.add_argument("-c", "--copy", action="store_true", help="Keep the original file")

    copy = sub.add_parser("copy", help="Copy a file into the stash")
    copy.add_argument("file")

    grab = sub.add_parser("grab", help="Move a file from the stash into the current directory")
    grab.add_argument("file")
    grab.add_argument("-c", "--copy", action="store_true", help="Leave the file in the stash")

    delete = sub.add_parser("delete", help="Delete a file from the stash")
    delete.add_argument("file")

    sub.add_parser("list", help="List stashed files")
    sub.add_parser("archive", help="Collapse the stash into one encrypted tarball")
    sub.add_parser("unpack", help="Restore files from the encrypted tarball")
    sub.add_parser("status", help="Show stash mode and secret counts")

    check = sub.add_parser("check", help="Compare secrets with stashed files")
    check.add_argument("--repair", action="store_true", help="Retire orphaned secrets")
    return parser


def _format_size(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size} B"


def run(args: argparse.Namespace, stash: Stash) -> None:
    command = args.command
    if command == "add":
        stash.add(args.file, copy=args.copy)
    elif command == "copy":
        stash.copy(args.file)
    elif command == "grab":
        stash.grab(args.file, copy=args.copy)
    elif command == "delete":
        stash.delete(args.file)
    elif command == "list":
        for item in stash.list():
            print(f"{item.name}\t{_format_size(item.size)}\t{item.modified_at:%Y-%m-%d %H:%M}")
    elif command == "archive":
        stash.archive()
    elif command == "unpack":
        for item in stash.unpack():
            print(item.name)
    elif command == "status":
        print(json.dumps(stash.status(), indent=2))
    elif command == "check":
        report = stash.check(repair=args.repair)
        print(json.dumps(report.to_dict(), indent=2))
        if not report.consistent:
            raise StashError("Stash secrets and files disagree")


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = StashConfig.from_env(
            root=Path(args.root) if args.root else None,
            cache_enabled=False if args.no_cache else None,
        )
    except ValueError as e:
        print(f"stashbox: invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        with Stash(config) as stash:
            run(args, stash)
    except StashError as e:
        print(f"stashbox: {e}", file=sys.stderr)
        return e.exit_code
    return 0


if __name__ == "__main__":
    sys.exit(main())
