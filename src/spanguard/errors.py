"""
Error handling for spanguard analysis.

This module defines the exception classes raised while checking paired
resources. Only ConfigurationError is fatal for a run; the others are
recovered per function by the checker manager and turned into low-severity
notices.
"""


class SpanguardError(Exception):
    """Base class for every error raised by spanguard."""
    pass


class ConfigurationError(SpanguardError):
    """
    Exception raised for an invalid capability descriptor.

    Raised once at startup, before any file is analyzed, e.g. when the
    handle type does not expose the named release method.
    """
    pass


class UnsupportedConstruct(SpanguardError):
    """
    Exception raised when a function body cannot be lowered to a CFG.

    Attributes:
        node: The offending AST node, if known
    """
    def __init__(self, msg, node=None):
        super().__init__(msg)
        self.node = node

    @property
    def lineno(self):
        return getattr(self.node, "lineno", None)


class AnalysisInternalError(SpanguardError):
    """
    Exception raised for an unexpected invariant violation.

    This indicates a bug in spanguard rather than a problem in the analyzed
    code, e.g. a handle binding without a declaring scope.
    """
    pass


class AnalysisAborted(SpanguardError):
    """Raised between function passes when a run has been aborted."""
    pass

