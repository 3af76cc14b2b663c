"""
Checker constants.

This module defines constants used throughout the checker: severity
rankings, the default checker name matched by ``# nolint`` directives,
default option values and exclusion patterns.
"""

# Ranking levels ordered from lowest to highest
RANKING = ["UNDEFINED", "LOW", "MEDIUM", "HIGH"]

CRITERIA = [("SEVERITY", "UNDEFINED"), ("CONFIDENCE", "UNDEFINED")]

# Add each ranking to globals for direct access (e.g., HIGH, LOW)
for rank in RANKING:
    globals()[rank] = rank

# Name matched by `# nolint: <name>` directives
CHECKER_NAME = "spanguard"

DEFAULT_WORKERS = 1

# Directories to exclude by default during file scanning
EXCLUDE = (
    ".svn",
    "CVS",
    ".bzr",
    ".hg",
    ".git",
    "__pycache__",
    ".tox",
    ".eggs",
    "*.egg",
    ".venv",
)
