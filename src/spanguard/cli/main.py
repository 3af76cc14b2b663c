"""Main CLI dispatcher for spanguard.

This module provides the main command-line interface, dispatching commands
to the sub-modules for checking files and dumping control flow graphs.
"""

import argparse
import sys

from spanguard import __version__

from .cfg import add_cfg_parser, run_cfg_dump
from .check import add_check_parser, run_check


def main(argv=None):
    """Main entry point for the spanguard CLI.

    Parses command-line arguments and dispatches to the sub-commands.

    Returns:
        int: Exit code (0 for success, 1 when a handle is not released,
        2 for configuration errors).
    """
    parser = argparse.ArgumentParser(
        description="spanguard - checks that acquired handles are released on every path",
        prog="spanguard",
    )

    parser.add_argument("--version", action="version", version=f"spanguard {__version__}")

    subparsers = parser.add_subparsers(
        dest="command", help="Available commands", required=True
    )

    add_check_parser(subparsers)
    add_cfg_parser(subparsers)

    args = parser.parse_args(argv)

    if args.command == "check":
        return run_check(args.targets, args)
    elif args.command == "cfg":
        return run_cfg_dump(args.input_path, args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
