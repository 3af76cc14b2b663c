"""
Finding representation.

This module provides the class representing one diagnostic produced by the
lifetime checker. Findings carry a kind, a severity, the test id of the
kind and the source position they point at.

**Finding Lifecycle:**
1. Created by the lifetime analysis (or by the tester for recovered errors)
2. Annotated with file and checker information by the tester
3. Deduplicated and matched against ``# nolint`` directives by the manager
4. Formatted for output (text, JSON)

**Kinds:**
- MissingRelease (SG101, HIGH): a handle is not released on some path
- PreferDeferredRelease (SG102, LOW): a direct release could be deferred
- UnsupportedConstruct (SG901, LOW): a function could not be analyzed
- AnalysisInternalError (SG902, LOW): the checker hit an internal error
"""

import linecache

MISSING_RELEASE = "MissingRelease"
PREFER_DEFERRED_RELEASE = "PreferDeferredRelease"
UNSUPPORTED_CONSTRUCT = "UnsupportedConstruct"
ANALYSIS_INTERNAL_ERROR = "AnalysisInternalError"

# kind -> (test id, severity)
KINDS = {
    MISSING_RELEASE: ("SG101", "HIGH"),
    PREFER_DEFERRED_RELEASE: ("SG102", "LOW"),
    UNSUPPORTED_CONSTRUCT: ("SG901", "LOW"),
    ANALYSIS_INTERNAL_ERROR: ("SG902", "LOW"),
}


class Finding:
    """
    One diagnostic.

    Attributes:
        kind: One of the KINDS keys
        severity: HIGH or LOW, derived from the kind
        confidence: Confidence level (HIGH for analysis results)
        text: Human-readable message
        ident: Name of the handle binding concerned, if any
        fname: Filename where the finding was made
        test: Name of the checker that produced it
        test_id: Test id of the kind (e.g. "SG101")
        lineno: Line number
        col_offset: Column offset
        linerange: Lines spanned by the reported node
        release_mode: How the binding is released (none, direct or deferred)
            for findings about a handle binding, else None
    """
    def __init__(self, kind, text="", ident=None, lineno=None, col_offset=-1,
                 confidence="HIGH", release_mode=None):
        if kind not in KINDS:
            raise ValueError(f"unknown finding kind {kind!r}")
        self.kind = kind
        self.test_id, self.severity = KINDS[kind]
        self.confidence = confidence
        self.text = text
        self.ident = ident
        self.fname = ""
        self.test = ""
        self.lineno = lineno
        self.col_offset = col_offset
        self.linerange = []
        self.release_mode = release_mode

    @property
    def position(self):
        return self.lineno, self.col_offset

    def key(self):
        """Deduplication key: file, position and kind."""
        return (self.fname, self.lineno, self.col_offset, self.kind)

    def __str__(self):
        return ("Finding: '%s' from %s:%s: Kind: %s, Severity: %s at %s:%s:%s") % (
            self.text, self.test_id, (self.ident or self.test), self.kind,
            self.severity, self.fname, self.lineno, self.col_offset)

    def __repr__(self):
        return f"<Finding {self.kind} {self.fname}:{self.lineno}:{self.col_offset}>"

    def __eq__(self, other):
        if not isinstance(other, Finding):
            return NotImplemented
        match_fields = ["kind", "text", "fname", "lineno", "col_offset", "test"]
        return all(getattr(self, field) == getattr(other, field) for field in match_fields)

    def __ne__(self, other):
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __hash__(self):
        return id(self)

    def filter(self, severity, confidence="UNDEFINED"):
        """
        Check if the finding meets severity and confidence thresholds.

        Args:
            severity: Minimum severity threshold
            confidence: Minimum confidence threshold

        Returns:
            True if the finding meets both thresholds
        """
        from .constants import RANKING
        return (RANKING.index(self.severity) >= RANKING.index(severity) and
                RANKING.index(self.confidence) >= RANKING.index(confidence))

    def get_code(self, max_lines=3, tabbed=False):
        """
        Get source code lines around the finding.

        Args:
            max_lines: Maximum number of lines to include
            tabbed: Whether to use tab-separated format (line number + code)

        Returns:
            String containing formatted code lines
        """
        if self.lineno is None or not self.fname:
            return ""
        max_lines = max(max_lines, 1)
        lmin = max(1, self.lineno - max_lines // 2)
        lmax = lmin + len(self.linerange) + max_lines - 1

        tmplt = "%i\t%s" if tabbed else "%i %s"
        lines = []
        for line in range(lmin, lmax):
            text = linecache.getline(self.fname, line)
            if not text:
                break
            lines.append(tmplt % (line, text))
        return "".join(lines)

    def as_dict(self, with_code=True, max_lines=3):
        """
        Convert the finding to a dictionary for JSON output.

        Args:
            with_code: Whether to include source code in output
            max_lines: Maximum lines of code to include
        """
        out = {
            "filename": self.fname, "test_name": self.test, "test_id": self.test_id,
            "kind": self.kind, "issue_severity": self.severity,
            "issue_confidence": self.confidence, "issue_text": self.text,
            "ident": self.ident, "line_number": self.lineno,
            "line_range": self.linerange, "col_offset": self.col_offset,
            "release_mode": self.release_mode,
        }
        if with_code:
            out["code"] = self.get_code(max_lines=max_lines)
        return out
