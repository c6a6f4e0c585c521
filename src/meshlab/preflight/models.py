"""
Preflight result models.

Shared data types for the checks run before any cluster mutation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class CheckStatus(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"
    SKIP = "SKIP"     # not applicable on this run


@dataclass(frozen=True)
class CheckResult:
    """Result of a single preflight check."""
    name: str
    status: CheckStatus
    detail: str = ""

    @property
    def passed(self) -> bool:
        return self.status is not CheckStatus.FAIL

    def __str__(self) -> str:
        return f"[{self.status.value}] {self.name}: {self.detail}"


@dataclass
class PreflightResult:
    checks: List[CheckResult] = field(default_factory=list)

    def add(self, check: CheckResult) -> CheckResult:
        self.checks.append(check)
        return check

    @property
    def fatal(self) -> bool:
        return any(c.status is CheckStatus.FAIL for c in self.checks)

    @property
    def failed(self) -> List[CheckResult]:
        return [c for c in self.checks if c.status is CheckStatus.FAIL]

    @property
    def warnings(self) -> List[CheckResult]:
        return [c for c in self.checks if c.status is CheckStatus.WARN]

    def get(self, name: str) -> CheckResult:
        for c in self.checks:
            if c.name == name:
                return c
        raise KeyError(name)
