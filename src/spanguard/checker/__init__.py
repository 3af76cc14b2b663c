"""
Lifetime checker for paired resources.

This package runs the handle lifetime analysis over Python files and
reports handles that are not released on every path out of their scope.

**Architecture:**
- Core: manager, function pass runner, findings, configuration, metrics
- Formatters: Output formatters (text, JSON)

**Features:**
- Injected capability descriptor (default: OpenTelemetry spans)
- Per-function passes on a thread pool
- ``# nolint: spanguard`` suppression
- Per-file applicability filter

**Usage:**
```python
from spanguard.checker import CheckerManager

manager = CheckerManager()
manager.discover_files(["service.py"])
manager.run_tests()
findings = manager.get_issue_list()
```
"""

from .core.config import CheckerConfig
from .core.issue import Finding
from .core.manager import CheckerManager

__all__ = ['CheckerManager', 'CheckerConfig', 'Finding']
