"""Tests for status aggregation, exit codes, rendering and export."""

from __future__ import annotations

import json

import pytest

from local_backend.doctor.reporting import (
    export_summary,
    render_category_breakdown,
    render_run,
    render_service_report,
    render_summary,
    to_markdown,
    truncate,
)
from local_backend.doctor.results import (
    CheckResult,
    CheckStatus,
    RunSummary,
    ServiceReport,
    success_rate,
    worst_status,
)


def _report(service: str, *outcomes: tuple[bool, str], error: str | None = None) -> ServiceReport:
    report = ServiceReport(service=service, error=error)
    for i, (ok, category) in enumerate(outcomes):
        report.results.append(
            CheckResult(
                name=f"check {i}",
                success=ok,
                duration=0.5,
                category=category,
                error=None if ok else f"failure {i}",
            )
        )
    return report.finish()


class TestServiceStatus:
    def test_all_pass_is_success(self):
        assert _report("kafka", (True, "Connectivity"), (True, "CRUD")).status == CheckStatus.SUCCESS

    def test_none_pass_is_failure(self):
        assert _report("kafka", (False, "CRUD"), (False, "CRUD")).status == CheckStatus.FAILURE

    def test_partial_is_warning(self):
        assert _report("kafka", (True, "Connectivity"), (False, "CRUD")).status == CheckStatus.WARNING

    def test_failed_connectivity_is_failure_even_when_others_pass(self):
        report = _report("kafka", (False, "Connectivity"), (True, "CRUD"))
        assert report.status == CheckStatus.FAILURE

    def test_no_results_is_unknown(self):
        assert _report("kafka").status == CheckStatus.UNKNOWN

    def test_suite_error_is_failure(self):
        assert _report("kafka", (True, "CRUD"), error="boom").status == CheckStatus.FAILURE

    def test_counts_and_rate(self):
        report = _report("kafka", (True, "CRUD"), (True, "CRUD"), (False, "Cleanup"))
        assert (report.passed, report.failed, report.total) == (2, 1, 3)
        assert report.success_rate == 66.7
        assert report.by_category() == {"CRUD": (2, 2), "Cleanup": (0, 1)}


class TestRunStatus:
    @pytest.mark.parametrize(
        "statuses,expected",
        [
            ([CheckStatus.SUCCESS, CheckStatus.WARNING], CheckStatus.WARNING),
            ([CheckStatus.WARNING, CheckStatus.UNKNOWN], CheckStatus.UNKNOWN),
            ([CheckStatus.UNKNOWN, CheckStatus.FAILURE], CheckStatus.FAILURE),
            ([CheckStatus.SUCCESS], CheckStatus.SUCCESS),
            ([], CheckStatus.UNKNOWN),
        ],
    )
    def test_worst_status(self, statuses, expected):
        assert worst_status(statuses) == expected

    def test_exit_codes(self):
        assert [s.exit_code for s in CheckStatus] == [0, 1, 2, 3]

    def test_summary_totals(self):
        summary = RunSummary(
            reports=[
                _report("kafka", (True, "CRUD"), (True, "CRUD")),
                _report("mongodb", (True, "Connectivity"), (False, "CRUD")),
            ]
        ).finish()

        assert summary.total == 4
        assert summary.passed == 3
        assert summary.success_rate == 75.0
        assert summary.status == CheckStatus.WARNING
        assert summary.exit_code == 1

    def test_success_rate_with_nothing_run(self):
        assert success_rate(0, 0) == 0.0


class TestRendering:
    def test_truncate(self):
        assert truncate(None) == ""
        assert truncate("a\n  b") == "a b"
        long = "x" * 100
        assert truncate(long) == "x" * 57 + "..."
        assert len(truncate(long)) == 60

    def test_service_table(self):
        report = _report("kafka", (True, "Connectivity"), (False, "CRUD"))
        text = render_service_report(report)

        assert "KAFKA - WARNING" in text
        assert "check 0" in text
        assert "FAIL" in text
        assert "failure 1" in text

    def test_suite_error_rendered(self):
        text = render_service_report(_report("sqlserver", error="TimeoutError: slow"))
        assert "Suite error: TimeoutError: slow" in text

    def test_category_breakdown(self):
        text = render_category_breakdown(_report("kafka", (True, "CRUD"), (False, "CRUD")))
        lines = text.splitlines()
        assert lines[0].split() == ["Category", "Passed", "Failed", "Total"]
        assert lines[2].split() == ["CRUD", "1", "1", "2"]

    def test_summary_has_total_row_and_overall_line(self):
        summary = RunSummary(
            reports=[_report("kafka", (True, "CRUD")), _report("mongodb", (False, "CRUD"))],
            parallel=True,
        ).finish()

        text = render_summary(summary)

        assert "DOCTOR SUMMARY (parallel)" in text
        total_row = next(line for line in text.splitlines() if line.startswith("TOTAL"))
        assert total_row.split()[1:4] == ["1", "1", "2"]
        assert text.rstrip().endswith("Overall: FAILURE (exit code 2)")

    def test_render_run_includes_every_service(self):
        summary = RunSummary(
            reports=[_report("kafka", (True, "CRUD")), _report("zookeeper", (True, "CRUD"))]
        ).finish()

        text = render_run(summary)

        assert "KAFKA - SUCCESS" in text
        assert "ZOOKEEPER - SUCCESS" in text
        assert "DOCTOR SUMMARY (sequential)" in text


class TestExport:
    def test_writes_json_and_markdown(self, tmp_path):
        summary = RunSummary(
            reports=[_report("kafka", (True, "Connectivity"), (False, "Messaging"))]
        ).finish()

        paths = export_summary(summary, tmp_path / "results")

        json_path, md_path = paths
        stamp = summary.started_at.strftime("%Y%m%d_%H%M%S")
        assert json_path.name == f"doctor_{stamp}.json"
        assert md_path.name == f"doctor_{stamp}.md"

        data = json.loads(json_path.read_text())
        assert data["status"] == "WARNING"
        assert data["exit_code"] == 1
        assert data["services"][0]["categories"]["Messaging"] == {"passed": 0, "total": 1}
        assert data["services"][0]["results"][1]["error"] == "failure 1"

        md = md_path.read_text()
        assert "**Status:** WARNING (exit code 1)" in md
        assert "| kafka | 1 | 1 | 50.0% | WARNING |" in md
        assert "**check 1** (Messaging)" in md

    def test_markdown_lists_suite_errors(self):
        summary = RunSummary(reports=[_report("kibana", error="ConnectError: refused")]).finish()
        assert "Suite error: `ConnectError: refused`" in to_markdown(summary)
