"""Command-line shell: open a KDBX 3.1 file and print its tree.

Usage: tresor [FILE]

The password is always read with getpass. Set TRESOR_DEBUG to a non-empty
value to enable debug logging.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
from collections.abc import Sequence
from typing import TextIO

from .database import Database
from .exceptions import KdbxError
from .models import Group

logger = logging.getLogger(__name__)

INDENT = "  "
USAGE = "%(prog)s [FILE]"


class UsageError(Exception):
    """Raised for malformed command-line arguments."""


def build_parser(prog: str = "tresor") -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        usage=USAGE,
        description="Open a KeePass KDBX 3.1 database and print its groups and entries",
    )
    parser.add_argument("file", nargs="?", help="Database file (prompted for if omitted)")
    return parser


def parse_command_line_args(argv: Sequence[str]) -> str | None:
    """Extract the optional file argument.

    Args:
        argv: Full argument vector including the program name

    Returns:
        The file path, or None if none was given

    Raises:
        UsageError: If more than one argument was given
    """
    parser = build_parser(os.path.basename(argv[0]) if argv else "tresor")
    # Extra arguments get the plain usage line rather than argparse's error text
    args, extra = parser.parse_known_args(list(argv[1:]))
    if extra:
        raise UsageError("Usage: " + USAGE % {"prog": parser.prog})
    return args.file


def print_tree(groups: list[Group], out: TextIO, depth: int = 0) -> None:
    """Print group names and entry titles, indented by depth."""
    for group in groups:
        out.write(f"{INDENT * depth}[{group.name}]\n")
        for entry in group.entries:
            out.write(f"{INDENT * (depth + 1)}{entry.title}\n")
        print_tree(group.subgroups, out, depth + 1)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the `tresor` console script.

    Returns:
        Process exit status
    """
    if argv is None:
        argv = sys.argv
    logging.basicConfig(
        level=logging.DEBUG if os.environ.get("TRESOR_DEBUG") else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        filepath = parse_command_line_args(argv)
    except UsageError as e:
        print(e, file=sys.stderr)
        return 2

    try:
        if filepath is None:
            filepath = input("Database file: ").strip()
        password = getpass.getpass("Password: ")
    except (EOFError, KeyboardInterrupt):
        print("\nerror: no input", file=sys.stderr)
        return 1

    try:
        db = Database.open(filepath, password=password)
        with db:
            if not db.verify_header():
                print("warning: header hash mismatch", file=sys.stderr)
            print(db)
            print_tree(db.document.root.groups, sys.stdout)
    except (KdbxError, OSError) as e:
        logger.debug("Failed to open %s", filepath, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
