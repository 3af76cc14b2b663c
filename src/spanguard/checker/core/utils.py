"""
Checker utilities.

- ``# nolint`` directive parsing and lookup
- per-file applicability filter
- file discovery helpers
"""

import fnmatch
import io
import logging
import os
import re
import tokenize

from . import constants

LOG = logging.getLogger(__name__)

NOLINT_RE = re.compile(r"#\s*nolint\b(?:\s*:\s*(?P<names>[\w\-]+(?:\s*,\s*[\w\-]+)*))?", re.IGNORECASE)

WILDCARD_CHARS = frozenset("*?[")


def parse_nolint_lines(source):
    """
    Collect ``# nolint`` directives of a source file.

    Directives live in comments only; a ``# nolint`` inside a string literal
    is ignored, which is why the source is tokenized rather than scanned
    line by line.

    Args:
        source: Source text

    Returns:
        Dictionary mapping line number -> set of checker names. An empty set
        means the directive names no checker and silences all of them.
    """
    lines = {}
    try:
        for tok in tokenize.generate_tokens(io.StringIO(source).readline):
            if tok.type != tokenize.COMMENT:
                continue
            match = NOLINT_RE.search(tok.string)
            if match is None:
                continue
            names = match.group("names")
            lines[tok.start[0]] = (
                {n.strip().lower() for n in names.split(",") if n.strip()} if names else set()
            )
    except (tokenize.TokenError, SyntaxError) as e:
        LOG.debug("cannot tokenize for nolint directives: %s", e)
    return lines


def is_suppressed(nolint_lines, lineno, checker_name=constants.CHECKER_NAME):
    """
    Check whether a finding on a line is suppressed for a checker.

    Args:
        nolint_lines: Result of parse_nolint_lines
        lineno: Line of the finding
        checker_name: Name of the checker that made the finding

    Returns:
        True if a directive on that line silences the checker
    """
    names = nolint_lines.get(lineno)
    if names is None:
        return False
    return not names or checker_name.lower() in names


def is_applicable(program, capability, types):
    """
    Decide whether a file can possibly contain acquisitions.

    This is an optimization only: a file is skipped when it neither imports
    nor names the handle type's defining module, the handle type or the
    acquisition method, and defines no class exposing the release method.
    Anything uncertain runs the full check.

    Args:
        program: ProgramView
        capability: CapabilityDescriptor
        types: TypeView of the program

    Returns:
        True if the file must be analyzed
    """
    module = capability.defining_module
    if not module:
        return True
    root = module.partition(".")[0]
    imported = set(program.imports) | set(program.import_aliases.values())
    for name in imported:
        if name == root or name.startswith(root + "."):
            return True

    method = capability.acquire_method
    if WILDCARD_CHARS & set(method):
        return True
    if method in program.referenced or capability.type_name in program.referenced:
        return True
    if root in program.referenced:
        return True
    return types.defines_handle_class()


def is_excluded(path, excluded_paths):
    """Check a path against exclusion patterns (fnmatch or path prefix)."""
    for pattern in excluded_paths:
        if not pattern:
            continue
        if fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(os.path.basename(path), pattern):
            return True
        if path.startswith(pattern.rstrip(os.sep) + os.sep):
            return True
    return False


def get_module_qualname_from_path(path):
    """
    Get the module's qualified name by analysis of the path.

    Walks up the directories as long as they contain ``__init__.py``.

    Args:
        path: Path to a .py file

    Returns:
        Dotted module name
    """
    head, tail = os.path.split(os.path.abspath(path))
    if not tail:
        raise ValueError(f"invalid python file path: {path!r}")

    qname = [os.path.splitext(tail)[0]]
    while head not in (os.sep, ""):
        if os.path.isfile(os.path.join(head, "__init__.py")):
            head, tail = os.path.split(head)
            qname.insert(0, tail)
        else:
            break
    if qname[-1] == "__init__":
        qname.pop()
    return ".".join(qname)
