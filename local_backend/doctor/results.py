"""
Doctor result model and aggregation.

Results live only for the duration of one run: each suite appends
``CheckResult`` entries to its ``ServiceReport``; the runner collects the
reports into a ``RunSummary`` which is rendered, optionally exported, and
reduced to a process exit code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class CheckStatus(str, Enum):
    """Outcome levels, ordered by the exit code they map to."""

    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    FAILURE = "FAILURE"
    UNKNOWN = "UNKNOWN"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES = {
    CheckStatus.SUCCESS: 0,
    CheckStatus.WARNING: 1,
    CheckStatus.FAILURE: 2,
    CheckStatus.UNKNOWN: 3,
}

# Worst first
_PRECEDENCE = (
    CheckStatus.FAILURE,
    CheckStatus.UNKNOWN,
    CheckStatus.WARNING,
    CheckStatus.SUCCESS,
)


class Category(str, Enum):
    CONNECTIVITY = "Connectivity"
    AUTHENTICATION = "Authentication"
    SECURITY = "Security"
    CLUSTER = "Cluster"
    CRUD = "CRUD"
    MESSAGING = "Messaging"
    PERFORMANCE = "Performance"
    CLEANUP = "Cleanup"


@dataclass
class CheckResult:
    """One check inside a service suite."""

    name: str
    success: bool
    duration: float
    category: str
    error: str | None = None
    details: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "success": self.success,
            "duration_seconds": round(self.duration, 3),
            "category": self.category,
            "error": self.error,
            "details": self.details,
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ServiceReport:
    """All checks for one service plus any suite-level error."""

    service: str
    results: list[CheckResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=_now)
    finished_at: datetime | None = None
    error: str | None = None

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success_rate(self) -> float:
        return success_rate(self.passed, self.total)

    @property
    def duration(self) -> float:
        if self.finished_at is None:
            return sum(r.duration for r in self.results)
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def status(self) -> CheckStatus:
        if self.error:
            return CheckStatus.FAILURE
        if not self.results:
            return CheckStatus.UNKNOWN
        if self.failed == 0:
            return CheckStatus.SUCCESS
        if self.passed == 0:
            return CheckStatus.FAILURE
        connectivity_failed = any(
            not r.success
            for r in self.results
            if r.category == Category.CONNECTIVITY.value
        )
        if connectivity_failed:
            return CheckStatus.FAILURE
        return CheckStatus.WARNING

    def by_category(self) -> dict[str, tuple[int, int]]:
        """Map category -> (passed, total), in first-seen order."""
        breakdown: dict[str, tuple[int, int]] = {}
        for r in self.results:
            passed, total = breakdown.get(r.category, (0, 0))
            breakdown[r.category] = (passed + int(r.success), total + 1)
        return breakdown

    def finish(self) -> "ServiceReport":
        self.finished_at = _now()
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "status": self.status.value,
            "passed": self.passed,
            "failed": self.failed,
            "total": self.total,
            "success_rate": self.success_rate,
            "duration_seconds": round(self.duration, 3),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
            "categories": {
                name: {"passed": p, "total": t}
                for name, (p, t) in self.by_category().items()
            },
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class RunSummary:
    """Every service report from one doctor run."""

    reports: list[ServiceReport] = field(default_factory=list)
    parallel: bool = False
    started_at: datetime = field(default_factory=_now)
    finished_at: datetime | None = None

    @property
    def passed(self) -> int:
        return sum(r.passed for r in self.reports)

    @property
    def failed(self) -> int:
        return sum(r.failed for r in self.reports)

    @property
    def total(self) -> int:
        return sum(r.total for r in self.reports)

    @property
    def success_rate(self) -> float:
        return success_rate(self.passed, self.total)

    @property
    def duration(self) -> float:
        end = self.finished_at or _now()
        return (end - self.started_at).total_seconds()

    @property
    def status(self) -> CheckStatus:
        return worst_status(r.status for r in self.reports)

    @property
    def exit_code(self) -> int:
        return self.status.exit_code

    def finish(self) -> "RunSummary":
        self.finished_at = _now()
        return self

    def report_for(self, service: str) -> ServiceReport | None:
        for report in self.reports:
            if report.service == service:
                return report
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "exit_code": self.exit_code,
            "mode": "parallel" if self.parallel else "sequential",
            "passed": self.passed,
            "failed": self.failed,
            "total": self.total,
            "success_rate": self.success_rate,
            "duration_seconds": round(self.duration, 3),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "services": [r.to_dict() for r in self.reports],
        }


def success_rate(passed: int, total: int) -> float:
    """Percentage rounded to one decimal; 0.0 when nothing ran."""
    if total == 0:
        return 0.0
    return round(passed / total * 100, 1)


def worst_status(statuses) -> CheckStatus:
    """Most severe status; an empty input is UNKNOWN."""
    seen = set(statuses)
    if not seen:
        return CheckStatus.UNKNOWN
    for status in _PRECEDENCE:
        if status in seen:
            return status
    return CheckStatus.UNKNOWN
