"""
Doctor: health and functional tests for every service in the compose stack.

Each service has a suite of timed, categorized checks that shell out to the
service's native tooling. The runner sequences (or parallelizes) the
suites, and the reporting module renders and exports the aggregated
results.
"""

from local_backend.doctor.results import (
    Category,
    CheckResult,
    CheckStatus,
    RunSummary,
    ServiceReport,
)
from local_backend.doctor.runner import DoctorRunner, select_services

__all__ = [
    "Category",
    "CheckResult",
    "CheckStatus",
    "RunSummary",
    "ServiceReport",
    "DoctorRunner",
    "select_services",
]
