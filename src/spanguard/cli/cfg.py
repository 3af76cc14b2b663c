"""
CFG dumping CLI.

Prints the control flow graph the checker builds for each function of a
file, with the events of every block and its labelled edges.
"""
import logging
import sys

from spanguard.analysis.cfg import buildCFG
from spanguard.errors import UnsupportedConstruct
from spanguard.frontend import ProgramView


def add_cfg_parser(subparsers):
    """Add cfg subcommand parser."""
    cfg_parser = subparsers.add_parser(
        "cfg",
        help="Dump the control flow graphs of a file"
    )
    cfg_parser.add_argument(
        "input_path",
        help="Python file"
    )
    cfg_parser.add_argument(
        "--function",
        action="append",
        default=[],
        help="Only dump functions with this (qualified) name; may be repeated"
    )
    cfg_parser.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Debug output"
    )


def run_cfg_dump(input_path, args, out=None):
    out = out or sys.stdout
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    try:
        with open(input_path, encoding="utf-8") as f:
            source = f.read()
        program = ProgramView.from_source(source, input_path)
    except (OSError, SyntaxError, UnicodeDecodeError) as e:
        print(f"Error: cannot load '{input_path}': {e}", file=sys.stderr)
        return 1

    status = 0
    for function in program.functions:
        if args.function and function.name not in args.function and function.qualname not in args.function:
            continue
        print(f"# {function.qualname} (line {function.lineno})", file=out)
        try:
            print(buildCFG(function).dump(), file=out)
        except UnsupportedConstruct as e:
            print(f"  unsupported: {e}", file=out)
            status = 1
        print(file=out)
    return status
