"""
Function pass runner.

This module provides the FunctionTester that runs the lifetime analysis on
one function and turns its outcome into findings:

1. Run the LifetimeAnalyzer on the function
2. Annotate each finding with file, checker and line range information
3. Recover from UnsupportedConstruct and AnalysisInternalError by
   returning a single low-severity notice for the function

A tester never touches shared state: it returns its own list of findings,
so passes of different functions can run on different threads.
"""

import logging

from spanguard.analysis import lifetime
from spanguard.errors import AnalysisInternalError, UnsupportedConstruct

from . import constants
from . import issue

LOG = logging.getLogger(__name__)


class FunctionTester:
    """
    Runs function passes for one file.

    Attributes:
        program: ProgramView of the file
        analyzer: LifetimeAnalyzer shared by the passes (read-only)
        checker_name: Name recorded on findings
        debug: Re-raise unexpected exceptions instead of recovering
    """
    def __init__(self, program, analyzer, checker_name=constants.CHECKER_NAME, debug=False):
        self.program = program
        self.analyzer = analyzer
        self.checker_name = checker_name
        self.debug = debug

    @classmethod
    def for_program(cls, program, types, capability, handle_returning,
                    report_advisories=True, checker_name=constants.CHECKER_NAME, debug=False):
        analyzer = lifetime.LifetimeAnalyzer(
            program, types, capability, handle_returning, report_advisories
        )
        return cls(program, analyzer, checker_name, debug)

    def run_tests(self, function):
        """
        Analyze one function.

        Args:
            function: FunctionInfo

        Returns:
            List of Finding objects
        """
        try:
            findings = self.analyzer.analyze(function)
        except UnsupportedConstruct as e:
            LOG.warning("%s:%s: skipping %s: %s", self.program.filename,
                        e.lineno or function.lineno, function.qualname, e)
            findings = [self._notice(issue.UNSUPPORTED_CONSTRUCT, function, e, e.lineno)]
        except AnalysisInternalError as e:
            LOG.error("%s: internal error in %s: %s", self.program.filename, function.qualname, e)
            findings = [self._notice(issue.ANALYSIS_INTERNAL_ERROR, function, e)]
        except Exception as e:
            self.report_error(function, e)
            if self.debug:
                raise
            findings = [self._notice(issue.ANALYSIS_INTERNAL_ERROR, function, e)]

        for finding in findings:
            self._annotate(finding)
        return findings

    def _notice(self, kind, function, error, lineno=None):
        text = f"{function.qualname} was not analyzed: {error}"
        return issue.Finding(kind, text, ident=function.qualname,
                             lineno=lineno or function.lineno,
                             col_offset=function.node.col_offset, confidence="HIGH")

    def _annotate(self, finding):
        finding.fname = self.program.filename
        finding.test = self.checker_name
        if not finding.linerange and finding.lineno is not None:
            finding.linerange = [finding.lineno]

    def report_error(self, function, error):
        what = "Checker '%s' failed on %s in %s:\n" % (
            self.checker_name, function.qualname, self.program.filename)
        LOG.error("%s%s: %s", what, type(error).__name__, error)
        LOG.debug("traceback", exc_info=error)
