"""
Base class for per-service doctor suites.

A suite is an ordered list of named, categorized checks. Each check is a
callable that returns optional details on success and raises on failure;
the suite times it and records a ``CheckResult``. Once a connectivity check
fails, every later check is recorded as failed without being run.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Callable

from local_backend.core.config import Settings
from local_backend.core.exceptions import CheckFailed
from local_backend.core.logging import get_logger
from local_backend.doctor.results import Category, CheckResult, ServiceReport
from local_backend.shell.command import CommandResult

logger = get_logger("doctor.suite")

Check = tuple[str, Category, Callable[[], Any]]


class ServiceSuite:
    """Runs one service's checks and collects a ServiceReport."""

    service: str = ""

    def __init__(self, settings: Settings, skip_cleanup: bool = False):
        self.settings = settings
        self.skip_cleanup = skip_cleanup
        self.run_id = uuid.uuid4().hex[:8]
        self.report = ServiceReport(service=self.service)
        self._blocked_by: str | None = None

    @property
    def artifact_name(self) -> str:
        """Per-run name for topics, indices, znodes and the like."""
        return f"doctor-test-{self.run_id}"

    def checks(self) -> list[Check]:
        raise NotImplementedError

    def cleanup_checks(self) -> list[Check]:
        return []

    def setup(self) -> None:
        pass

    def teardown(self) -> None:
        pass

    def run(self) -> ServiceReport:
        logger.info(f"Testing {self.service}")
        try:
            self.setup()
            for name, category, func in self.checks():
                self.record(name, category, func)

            cleanup = self.cleanup_checks()
            if self.skip_cleanup:
                if cleanup:
                    logger.info(
                        f"Skipping cleanup for {self.service}, leaving {self.artifact_name} in place"
                    )
            else:
                for name, category, func in cleanup:
                    self.record(name, category, func)
        finally:
            self.teardown()

        self.report.finish()
        logger.info(
            f"{self.service}: {self.report.passed}/{self.report.total} passed "
            f"({self.report.status.value})"
        )
        return self.report

    def record(self, name: str, category: Category, func: Callable[[], Any]) -> CheckResult:
        """Run one check and append its result."""
        if self._blocked_by:
            result = CheckResult(
                name=name,
                success=False,
                duration=0.0,
                category=category.value,
                error=f"Not run: {self._blocked_by} failed",
            )
            self.report.results.append(result)
            return result

        start = time.perf_counter()
        try:
            details = func()
        except Exception as e:  # any failure marks the check failed
            result = CheckResult(
                name=name,
                success=False,
                duration=time.perf_counter() - start,
                category=category.value,
                error=str(e) or type(e).__name__,
            )
            logger.warning(f"{self.service} | {name}: {result.error}")
            if category == Category.CONNECTIVITY:
                self._blocked_by = name
        else:
            result = CheckResult(
                name=name,
                success=True,
                duration=time.perf_counter() - start,
                category=category.value,
                details=details,
            )
            logger.debug(f"{self.service} | {name}: ok ({result.duration:.2f}s)")

        self.report.results.append(result)
        return result

    @staticmethod
    def require(result: CommandResult, what: str) -> CommandResult:
        """Raise CheckFailed unless the invocation succeeded."""
        if not result.success:
            reason = result.error or result.output.strip()[:300] or "no output"
            raise CheckFailed(f"{what}: {reason}")
        return result
