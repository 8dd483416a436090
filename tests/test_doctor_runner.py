"""Tests for service selection and the doctor runner."""

from __future__ import annotations

import threading
import time

import pytest

from local_backend.core.exceptions import ConfigurationError
from local_backend.core.logging import service_var
from local_backend.doctor.results import CheckResult, CheckStatus, ServiceReport
from local_backend.doctor.runner import DoctorRunner, select_services


class TestSelectServices:
    def test_default_is_all_in_fixed_order(self):
        assert select_services() == [
            "zookeeper", "kafka", "elasticsearch", "kibana", "mongodb", "sqlserver",
        ]

    def test_include_keeps_fixed_order(self):
        assert select_services(["sqlserver,kafka"]) == ["kafka", "sqlserver"]

    def test_repeated_and_comma_values(self):
        assert select_services(["mongodb", "Kafka, zookeeper"]) == [
            "zookeeper", "kafka", "mongodb",
        ]

    def test_exclude(self):
        assert select_services(exclude=["kibana,sqlserver"]) == [
            "zookeeper", "kafka", "elasticsearch", "mongodb",
        ]

    def test_unknown_service_rejected(self):
        with pytest.raises(ConfigurationError) as exc:
            select_services(["kafka", "redis"])
        assert "redis" in exc.value.message
        assert "kafka" in exc.value.details["valid"]


class FakeSuite:
    """Suite stand-in with a configurable outcome."""

    outcomes: dict = {}
    seen_services: list = []

    def __init__(self, service, settings, skip_cleanup):
        self.service = service
        self.skip_cleanup = skip_cleanup

    def run(self) -> ServiceReport:
        FakeSuite.seen_services.append(service_var.get())
        outcome = FakeSuite.outcomes.get(self.service, True)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, threading.Event):
            outcome.wait(5)
            outcome = True
        if isinstance(outcome, float):
            time.sleep(outcome)
            outcome = True
        report = ServiceReport(service=self.service)
        report.results.append(
            CheckResult(name="check", success=outcome, duration=0.01, category="Connectivity")
        )
        return report.finish()


def _factories(services):
    return {
        name: (lambda settings, skip, name=name: FakeSuite(name, settings, skip))
        for name in services
    }


@pytest.fixture(autouse=True)
def _reset_fake_suite():
    FakeSuite.outcomes = {}
    FakeSuite.seen_services = []
    yield


class TestDoctorRunner:
    def test_sequential_all_pass(self, settings):
        services = ["kafka", "mongodb"]
        runner = DoctorRunner(settings, services=services, suites=_factories(services))

        summary = runner.run()

        assert [r.service for r in summary.reports] == services
        assert summary.status == CheckStatus.SUCCESS
        assert summary.exit_code == 0
        assert summary.finished_at is not None
        assert FakeSuite.seen_services == services

    def test_suite_exception_is_isolated(self, settings):
        services = ["kafka", "mongodb"]
        FakeSuite.outcomes = {"kafka": RuntimeError("docker daemon gone")}

        summary = DoctorRunner(settings, services=services, suites=_factories(services)).run()

        kafka = summary.report_for("kafka")
        assert kafka.error == "RuntimeError: docker daemon gone"
        assert kafka.status == CheckStatus.FAILURE
        assert summary.report_for("mongodb").status == CheckStatus.SUCCESS
        assert summary.exit_code == 2

    def test_parallel_keeps_service_order(self, settings):
        services = ["zookeeper", "kafka", "mongodb"]
        FakeSuite.outcomes = {"kafka": False}

        summary = DoctorRunner(
            settings, services=services, parallel=True, suites=_factories(services)
        ).run()

        assert summary.parallel is True
        assert [r.service for r in summary.reports] == services
        assert summary.report_for("kafka").status == CheckStatus.FAILURE
        assert sorted(FakeSuite.seen_services) == sorted(services)

    def test_parallel_timeout_reports_failure(self, settings):
        services = ["kafka", "mongodb"]
        release = threading.Event()
        FakeSuite.outcomes = {"kafka": release}
        try:
            summary = DoctorRunner(
                settings,
                services=services,
                parallel=True,
                job_timeout=0.2,
                suites=_factories(services),
            ).run()
        finally:
            release.set()

        kafka = summary.report_for("kafka")
        assert kafka.error == "timed out after 0.2s"
        assert kafka.status == CheckStatus.FAILURE
        assert summary.report_for("mongodb").status == CheckStatus.SUCCESS

    def test_parallel_timeout_counts_from_submission(self, settings):
        services = ["kafka", "mongodb", "sqlserver"]
        release = threading.Event()
        FakeSuite.outcomes = {"kafka": release, "mongodb": 0.5, "sqlserver": 0.5}
        try:
            summary = DoctorRunner(
                settings,
                services=services,
                parallel=True,
                job_timeout=0.3,
                suites=_factories(services),
            ).run()
        finally:
            release.set()

        for service in services:
            report = summary.report_for(service)
            assert report.status == CheckStatus.FAILURE, service
            assert report.error == "timed out after 0.3s"

    def test_parallel_exception_is_isolated(self, settings):
        services = ["kafka", "mongodb"]
        FakeSuite.outcomes = {"mongodb": ValueError("bad")}

        summary = DoctorRunner(
            settings, services=services, parallel=True, suites=_factories(services)
        ).run()

        assert summary.report_for("mongodb").error == "ValueError: bad"
        assert summary.report_for("kafka").status == CheckStatus.SUCCESS

    def test_no_services_is_unknown(self, settings):
        summary = DoctorRunner(settings, services=[], parallel=True).run()

        assert summary.reports == []
        assert summary.status == CheckStatus.UNKNOWN
        assert summary.exit_code == 3

    def test_skip_cleanup_passed_to_suites(self, settings):
        created = []

        def factory(settings, skip):
            suite = FakeSuite("kafka", settings, skip)
            created.append(suite)
            return suite

        DoctorRunner(settings, services=["kafka"], skip_cleanup=True, suites={"kafka": factory}).run()

        assert created[0].skip_cleanup is True
