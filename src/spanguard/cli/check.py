"""
Lifetime checker CLI.
"""
import logging
import sys

from spanguard.capability import CapabilityDescriptor, SPAN_CAPABILITY
from spanguard.checker.core.config import CheckerConfig
from spanguard.checker.core.manager import CheckerManager
from spanguard.errors import ConfigurationError

LOG = logging.getLogger(__name__)


def add_check_parser(subparsers):
    """Add check subcommand parser."""
    check_parser = subparsers.add_parser(
        "check",
        help="Check that acquired handles are released on every path"
    )
    check_parser.add_argument(
        "targets",
        nargs="*",
        help="Files or directories to check ('-' reads standard input)"
    )
    check_parser.add_argument(
        "-r", "--recursive",
        action="store_true",
        help="Scan directories recursively"
    )
    capability = check_parser.add_argument_group("capability")
    capability.add_argument(
        "--acquire",
        default=SPAN_CAPABILITY.acquire_call,
        help="fnmatch pattern of the acquisition call (default: %(default)s)"
    )
    capability.add_argument(
        "--handle-type",
        default=None,
        help="Dotted name of the handle type (default: %s)" % SPAN_CAPABILITY.handle_type
    )
    capability.add_argument(
        "--release",
        default=SPAN_CAPABILITY.release_method,
        help="Release method of the handle type (default: %(default)s)"
    )
    capability.add_argument(
        "--handle-methods",
        default=None,
        help="Comma-separated method set of the handle type; "
             "introspected from the installed type when omitted"
    )
    capability.add_argument(
        "--result-index",
        type=int,
        default=None,
        help="Position of the handle when the acquisition returns a tuple"
    )
    check_parser.add_argument(
        "-f", "--format",
        dest="output_format",
        choices=["text", "json"],
        default="text",
        help="Output format"
    )
    check_parser.add_argument(
        "-o", "--output",
        dest="output_file",
        default=None,
        help="Write the report to a file"
    )
    check_parser.add_argument(
        "-n", "--number",
        dest="context_lines",
        type=int,
        default=3,
        help="Lines of code to show around each finding"
    )
    check_parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Worker threads for function passes"
    )
    check_parser.add_argument(
        "--no-advisories",
        action="store_true",
        help="Do not report PreferDeferredRelease advisories"
    )
    check_parser.add_argument(
        "--ignore-nolint",
        action="store_true",
        help="Do not honor # nolint directives"
    )
    check_parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only show output when there are findings"
    )
    check_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )
    check_parser.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Debug output"
    )
    check_parser.add_argument(
        "--exclude",
        help="Comma-separated list of paths to exclude"
    )


def build_capability(args):
    """
    Build the capability descriptor from command line options.

    Without ``--handle-type`` the span descriptor is used, with any
    acquisition pattern, release method or result index given.
    """
    methods = None
    if args.handle_methods:
        methods = frozenset(m.strip() for m in args.handle_methods.split(",") if m.strip())

    if args.handle_type is None:
        if methods is None:
            methods = SPAN_CAPABILITY.handle_methods
        handle_type = SPAN_CAPABILITY.handle_type
    else:
        handle_type = args.handle_type

    return CapabilityDescriptor(
        acquire_call=args.acquire,
        handle_type=handle_type,
        release_method=args.release,
        handle_methods=methods,
        result_index=args.result_index,
    )


def run_check(targets, args):
    """Main CLI entry point"""
    # Set up logging
    level = logging.DEBUG if args.debug else logging.INFO if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    try:
        config = CheckerConfig({
            "capability": build_capability(args),
            "workers": args.workers,
            "ignore_nolint": args.ignore_nolint,
            "report_advisories": not args.no_advisories,
        })
        if args.exclude:
            config.set_option("exclude", config.get_option("exclude") + args.exclude.split(","))

        manager = CheckerManager(
            config=config,
            debug=args.debug,
            verbose=args.verbose,
            quiet=args.quiet,
        )

        targets = targets or ["."]
        manager.discover_files(targets, recursive=args.recursive)
        manager.run_tests()
    except ConfigurationError as e:
        LOG.error("configuration error: %s", e)
        print(f"spanguard: configuration error: {e}", file=sys.stderr)
        return 2

    if args.output_file:
        with open(args.output_file, "w", encoding="utf-8") as fileobj:
            manager.output_results(args.context_lines, "LOW", "LOW", fileobj, args.output_format)
    else:
        manager.output_results(args.context_lines, "LOW", "LOW", sys.stdout, args.output_format)

    return 1 if manager.has_missing_release() else 0
