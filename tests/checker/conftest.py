from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import textwrap
from typing import Any, Mapping, Optional

import pytest

from spanguard.checker import CheckerConfig, CheckerManager, Finding


FindingList = list[Finding]


def _normalize_code(code: str) -> str:
    # Allow indented triple-quoted snippets in tests.
    code = textwrap.dedent(code)
    # Trim leading blank line to keep expected line numbers stable.
    code = code.lstrip("\n")
    if code and not code.endswith("\n"):
        code += "\n"
    return code


@dataclass(frozen=True)
class ScanResult:
    manager: CheckerManager
    findings: FindingList

    def kinds(self) -> list[str]:
        return [f.kind for f in self.findings]

    def ids(self) -> list[str]:
        return [f.test_id for f in self.findings]

    def by_kind(self, kind: str) -> FindingList:
        return [f for f in self.findings if f.kind == kind]

    def lines(self, kind: str) -> list[int]:
        return [f.lineno for f in self.by_kind(kind)]

    def one(self, kind: Optional[str] = None) -> Finding:
        findings = self.by_kind(kind) if kind is not None else self.findings
        assert len(findings) == 1, findings
        return findings[0]


class Scanner:
    """
    Small harness around CheckerManager that:
    - writes one or many temporary files
    - runs the real pipeline (ProgramView/FunctionTester/LifetimeAnalyzer)
    - returns the findings plus convenience selectors
    """

    def __init__(self, tmp_path: Path):
        self._tmp_path = tmp_path

    def scan(
        self,
        code: str,
        *,
        filename: str = "sample.py",
        ignore_nolint: bool = False,
        sev_level: str = "LOW",
        config_overrides: Optional[Mapping[str, Any]] = None,
    ) -> ScanResult:
        return self.scan_files(
            {filename: code},
            ignore_nolint=ignore_nolint,
            sev_level=sev_level,
            config_overrides=config_overrides,
        )

    def scan_files(
        self,
        files: Mapping[str, str],
        *,
        ignore_nolint: bool = False,
        sev_level: str = "LOW",
        config_overrides: Optional[Mapping[str, Any]] = None,
    ) -> ScanResult:
        cfg = CheckerConfig()
        if config_overrides:
            for k, v in config_overrides.items():
                cfg.set_option(k, v)

        paths: list[str] = []
        for rel_name, code in files.items():
            p = self._tmp_path / rel_name
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(_normalize_code(code), encoding="utf-8")
            paths.append(str(p))

        manager = CheckerManager(cfg, ignore_nolint=ignore_nolint)
        manager.discover_files(paths, recursive=False)
        manager.run_tests()

        return ScanResult(manager=manager, findings=manager.get_issue_list(sev_level, "LOW"))


@pytest.fixture()
def scan(tmp_path: Path):
    scanner = Scanner(tmp_path)

    def _scan(
        code: str,
        *,
        filename: str = "sample.py",
        ignore_nolint: bool = False,
        sev_level: str = "LOW",
        config_overrides: Optional[Mapping[str, Any]] = None,
    ) -> ScanResult:
        return scanner.scan(
            code,
            filename=filename,
            ignore_nolint=ignore_nolint,
            sev_level=sev_level,
            config_overrides=config_overrides,
        )

    # expose the richer harness too
    _scan.files = scanner.scan_files  # type: ignore[attr-defined]
    return _scan
