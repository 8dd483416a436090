"""
Doctor runner - executes service suites and aggregates their reports.

Sequential mode runs suites one after another in a fixed order. Parallel
mode starts one worker per service and gives each the job timeout, counted
from submission. A worker that overruns is reported as a failure and
abandoned; its subprocesses still end on their own command timeouts.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Iterable, Mapping

from local_backend.core.config import SERVICES, Settings
from local_backend.core.exceptions import ConfigurationError
from local_backend.core.logging import get_logger, service_var
from local_backend.doctor.results import RunSummary, ServiceReport
from local_backend.doctor.suite import ServiceSuite
from local_backend.doctor.suites import SUITES

logger = get_logger("doctor.runner")

SuiteFactory = Callable[[Settings, bool], ServiceSuite]


def _split(values: Iterable[str] | None) -> list[str]:
    names: list[str] = []
    for value in values or []:
        names.extend(v.strip().lower() for v in value.split(",") if v.strip())
    return names


def select_services(
    include: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
) -> list[str]:
    """
    Resolve the services to test, keeping the fixed run order.

    Both arguments accept repeated names or comma-separated lists.
    Unknown names raise ConfigurationError.
    """
    included = _split(include)
    excluded = _split(exclude)

    unknown = sorted(set(included + excluded) - set(SERVICES))
    if unknown:
        raise ConfigurationError(
            f"Unknown service(s): {', '.join(unknown)}",
            details={"valid": list(SERVICES)},
        )

    selected = [s for s in SERVICES if not included or s in included]
    return [s for s in selected if s not in excluded]


class DoctorRunner:
    """Run the selected suites and build a RunSummary."""

    def __init__(
        self,
        settings: Settings,
        services: list[str] | None = None,
        parallel: bool = False,
        skip_cleanup: bool = False,
        job_timeout: float | None = None,
        suites: Mapping[str, SuiteFactory] | None = None,
    ):
        self.settings = settings
        self.services = list(services) if services is not None else list(SERVICES)
        self.parallel = parallel
        self.skip_cleanup = skip_cleanup
        self.job_timeout = job_timeout or settings.job_timeout
        self.suites = suites or SUITES

    def run(self) -> RunSummary:
        summary = RunSummary(parallel=self.parallel)
        mode = "parallel" if self.parallel else "sequential"
        logger.info(f"Running doctor for {', '.join(self.services)} ({mode})")

        if self.parallel:
            summary.reports = self._run_parallel()
        else:
            summary.reports = [self.run_service(s) for s in self.services]

        summary.finish()
        logger.info(
            f"Doctor finished: {summary.passed}/{summary.total} checks passed, "
            f"status {summary.status.value}"
        )
        return summary

    def run_service(self, service: str) -> ServiceReport:
        """Run one suite; anything escaping it becomes a failed report."""
        token = service_var.set(service)
        try:
            suite = self.suites[service](self.settings, self.skip_cleanup)
            return suite.run()
        except Exception as e:  # isolate the remaining services from this one
            logger.exception(f"Suite for {service} crashed")
            report = ServiceReport(service=service, error=f"{type(e).__name__}: {e}")
            return report.finish()
        finally:
            service_var.reset(token)

    def _run_parallel(self) -> list[ServiceReport]:
        if not self.services:
            return []

        executor = ThreadPoolExecutor(
            max_workers=len(self.services), thread_name_prefix="doctor"
        )
        futures: dict[str, Future] = {
            service: executor.submit(self.run_service, service) for service in self.services
        }

        reports = []
        try:
            # All workers start together, so one wait bounds each of them
            wait(futures.values(), timeout=self.job_timeout)
            for service, future in futures.items():
                if future.done():
                    reports.append(future.result())
                else:
                    logger.error(f"{service} did not finish within {self.job_timeout}s")
                    report = ServiceReport(
                        service=service,
                        error=f"timed out after {self.job_timeout:g}s",
                    )
                    reports.append(report.finish())
        finally:
            # Do not block on overrunning workers
            executor.shutdown(wait=False, cancel_futures=True)
        return reports
