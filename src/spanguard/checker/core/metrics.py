"""
Run metrics.

Per-file and total counters: lines of code, functions analyzed, findings
by severity and kind, and ``# nolint`` suppressions. Metrics are only
updated from the manager's aggregation point, never from worker threads.
"""

import collections

from . import constants
from . import issue


class Metrics:
    """
    Metrics collector.

    Attributes:
        data: Mapping filename -> counters, plus "_totals"
        current: Counters of the file being processed
    """
    def __init__(self):
        self.data = {}
        self.data["_totals"] = self._empty()
        self.current = None

    @staticmethod
    def _empty():
        counters = {
            "loc": 0,
            "functions": 0,
            "nolint": 0,
            "skipped_tests": 0,
        }
        for criteria, _ in constants.CRITERIA:
            for rank in constants.RANKING:
                counters[f"{criteria}.{rank}"] = 0
        for kind in issue.KINDS:
            counters[kind] = 0
        return counters

    def begin(self, fname):
        """Start a new file."""
        self.data[fname] = self._empty()
        self.current = self.data[fname]

    def note_nolint(self, num=1):
        """Count findings silenced by a bare ``# nolint``."""
        self.current["nolint"] += num

    def note_skipped_test(self, num=1):
        """Count findings silenced by a ``# nolint: <checker>`` directive."""
        self.current["skipped_tests"] += num

    def note_function(self, num=1):
        self.current["functions"] += num

    def count_locs(self, lines):
        """
        Count lines with code.

        Args:
            lines: Lines of the file
        """
        def proc(line):
            tmp = line.strip()
            return bool(tmp and not tmp.startswith("#"))

        self.current["loc"] += sum(proc(line) for line in lines)

    def count_findings(self, findings):
        counts = collections.Counter()
        for finding in findings:
            counts[f"SEVERITY.{finding.severity}"] += 1
            counts[f"CONFIDENCE.{finding.confidence}"] += 1
            counts[finding.kind] += 1
        for key, value in counts.items():
            self.current[key] += value

    def aggregate(self):
        """Sum every file's counters into "_totals"."""
        totals = self._empty()
        for fname, counters in self.data.items():
            if fname == "_totals":
                continue
            for key, value in counters.items():
                totals[key] += value
        self.data["_totals"] = totals
