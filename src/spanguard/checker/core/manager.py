"""
Checker manager.

The manager drives a run over a set of files:

1. discover_files: expand targets into the list of files to check
2. run_tests: validate the capability (fatal on error), then for each file
   - parse it into a ProgramView (unparsable files are recorded as skipped)
   - skip it when the applicability filter proves it irrelevant
   - compute the read-only set of handle-returning functions
   - run one pass per function, inline or on a thread pool
   - merge the passes' findings in submission order, then apply
     deduplication and ``# nolint`` suppression at that single point
3. get_issue_list / results_count / output_results: query and report

A run can be aborted from another thread with abort(); the manager stops
before the next function pass. The following run starts afresh.
"""

import concurrent.futures
import logging
import os
import sys
import threading

from spanguard.errors import AnalysisAborted
from spanguard.frontend import ProgramView, TypeView

from . import constants
from . import issue
from . import metrics
from . import tester as b_tester
from . import utils
from .config import CheckerConfig

LOG = logging.getLogger(__name__)


class CheckerManager:
    """
    Runs the lifetime checker over files.

    Attributes:
        config: CheckerConfig
        files_list: Files to check, in discovery order
        excluded_files: Files excluded by patterns
        not_applicable: Files skipped by the applicability filter
        skipped: List of (filename, reason) for files that could not be read
            or parsed
        results: Findings kept after deduplication and suppression
        metrics: Metrics collector
        aborted: True when the last run was aborted
    """
    def __init__(self, config=None, debug=False, verbose=False, quiet=False,
                 ignore_nolint=None):
        self.config = config or CheckerConfig()
        self.debug = debug
        self.verbose = verbose
        self.quiet = quiet
        if ignore_nolint is None:
            ignore_nolint = bool(self.config.get_option("ignore_nolint"))
        self.ignore_nolint = ignore_nolint
        self.files_list = []
        self.excluded_files = []
        self.not_applicable = []
        self.skipped = []
        self.results = []
        self.metrics = metrics.Metrics()
        self.aborted = False
        self._seen = set()
        self._abort = threading.Event()

    @property
    def capability(self):
        return self.config.capability

    @property
    def checker_name(self):
        return self.config.get_option("checker_name") or constants.CHECKER_NAME

    def get_skipped(self):
        return self.skipped

    def get_issue_list(self, sev_level=constants.LOW, conf_level=constants.LOW):
        return self.filter_results(sev_level, conf_level)

    def filter_results(self, sev_filter, conf_filter="UNDEFINED"):
        """Return results at or above the severity/confidence thresholds."""
        return [r for r in self.results if r.filter(sev_filter, conf_filter)]

    def results_count(self, sev_filter=constants.LOW, conf_filter=constants.LOW):
        return len(self.filter_results(sev_filter, conf_filter))

    def has_missing_release(self):
        return any(r.kind == issue.MISSING_RELEASE for r in self.results)

    def abort(self):
        """Stop the current run, or the next one, before its next function pass."""
        LOG.info("abort requested")
        self._abort.set()

    def discover_files(self, targets, recursive=False, excluded_paths=""):
        """
        Add files to the list of files to check.

        Args:
            targets: Files or directories; "-" reads standard input
            recursive: Descend into directories
            excluded_paths: Comma separated exclusion patterns, added to the
                configured ones
        """
        excluded = list(self.config.get_option("exclude") or [])
        if excluded_paths:
            excluded.extend(p.strip() for p in excluded_paths.split(",") if p.strip())

        files = []
        for fname in targets:
            if fname == "-":
                files.append(fname)
            elif os.path.isdir(fname):
                if recursive:
                    files.extend(self._walk(fname, excluded))
                else:
                    LOG.warning("Skipping directory (%s), use -r flag to scan contents", fname)
            elif utils.is_excluded(fname, excluded):
                self.excluded_files.append(fname)
            else:
                files.append(fname)

        self.files_list.extend(f for f in files if f not in self.files_list)
        self.excluded_files = sorted(set(self.excluded_files))

    def _walk(self, directory, excluded):
        found = []
        for root, dirs, names in os.walk(directory):
            dirs[:] = sorted(d for d in dirs if not utils.is_excluded(os.path.join(root, d), excluded)
                             and not utils.is_excluded(d, excluded))
            for name in sorted(names):
                path = os.path.join(root, name)
                if not name.endswith(".py"):
                    continue
                if utils.is_excluded(path, excluded):
                    self.excluded_files.append(path)
                else:
                    found.append(path)
        return found

    def run_tests(self):
        """
        Check every discovered file.

        Raises:
            ConfigurationError: If the capability descriptor is invalid; no
                file has been read at that point
        """
        capability = self.config.validate()
        workers = self.config.get_option("workers") or 1
        self.aborted = False

        executor = None
        if workers > 1:
            executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="spanguard"
            )
        try:
            for fname in self.files_list:
                if self._abort.is_set():
                    self.aborted = True
                    break
                LOG.debug("working on file : %s", fname)
                source = self._read(fname)
                if source is None:
                    continue
                self._check(source, fname, capability, executor)
        finally:
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)
            # an abort ends this run only
            self._abort.clear()

        if self.aborted:
            LOG.warning("run aborted, results are partial")
        self.metrics.aggregate()

    def _read(self, fname):
        try:
            if fname == "-":
                return sys.stdin.read()
            with open(fname, encoding="utf-8") as fdata:
                return fdata.read()
        except (OSError, UnicodeDecodeError) as e:
            self.skipped.append((fname, str(e)))
            LOG.warning("cannot read %s: %s", fname, e)
            return None

    def check_source(self, source, fname="<string>"):
        """
        Check one source text outside a discovery run.

        Returns:
            Findings kept for this source
        """
        capability = self.config.validate()
        before = len(self.results)
        self._check(source, fname, capability, None)
        self.metrics.aggregate()
        return self.results[before:]

    def _check(self, source, fname, capability, executor):
        display = "<stdin>" if fname == "-" else fname
        module_name = "" if fname == "-" else utils.get_module_qualname_from_path(fname)
        try:
            program = ProgramView.from_source(source, display, module_name)
        except (SyntaxError, ValueError) as e:
            self.skipped.append((display, f"syntax error while parsing AST from file: {e}"))
            LOG.warning("cannot parse %s: %s", display, e)
            return

        self.metrics.begin(display)
        self.metrics.count_locs(program.lines)

        types = TypeView(program, capability)
        if not utils.is_applicable(program, capability, types):
            LOG.debug("%s does not use %s, skipped", display, capability.handle_type)
            self.not_applicable.append(display)
            return

        handle_returning = frozenset(f for f in program.functions if types.is_handle_returning(f))
        runner = b_tester.FunctionTester.for_program(
            program, types, capability, handle_returning,
            report_advisories=bool(self.config.get_option("report_advisories")),
            checker_name=self.checker_name,
            debug=self.debug,
        )

        per_pass = self._run_passes(runner, program.functions, executor)
        nolint_lines = {} if self.ignore_nolint else utils.parse_nolint_lines(source)
        self._merge(per_pass, nolint_lines)

    def _run_passes(self, runner, functions, executor):
        def run_pass(function):
            if self._abort.is_set():
                raise AnalysisAborted(function.qualname)
            return runner.run_tests(function)

        results = []
        if executor is None:
            for function in functions:
                try:
                    results.append(run_pass(function))
                except AnalysisAborted:
                    self.aborted = True
                    break
            return results

        futures = [executor.submit(run_pass, function) for function in functions]
        for future in futures:
            try:
                results.append(future.result())
            except AnalysisAborted:
                self.aborted = True
                for pending in futures:
                    pending.cancel()
                break
        return results

    def _merge(self, per_pass, nolint_lines):
        # single aggregation point: runs on the calling thread only
        kept = []
        for findings in per_pass:
            self.metrics.note_function()
            for finding in findings:
                key = finding.key()
                if key in self._seen:
                    continue
                self._seen.add(key)

                names = nolint_lines.get(finding.lineno)
                if names is not None and utils.is_suppressed(nolint_lines, finding.lineno, self.checker_name):
                    if names:
                        LOG.debug("skipped, nolint for %s: %s", self.checker_name, finding)
                        self.metrics.note_skipped_test()
                    else:
                        LOG.debug("skipped, nolint without checker name: %s", finding)
                        self.metrics.note_nolint()
                    continue

                kept.append(finding)
                LOG.debug("Finding: %s", finding)
        self.metrics.count_findings(kept)
        self.results.extend(kept)

    def output_results(self, lines, sev_level, conf_level, output_file, output_format):
        """
        Output the results of the run.

        Args:
            lines: Number of surrounding code lines to show
            sev_level: Minimum severity to report
            conf_level: Minimum confidence to report
            output_file: File object to write to
            output_format: "text" or "json"
        """
        from spanguard.checker import formatters

        report = formatters.get_formatter(output_format)
        report(self, fileobj=output_file, sev_level=sev_level, conf_level=conf_level, lines=lines)
