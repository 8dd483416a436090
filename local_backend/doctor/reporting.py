"""
Doctor reporting - plain-text tables for the terminal plus JSON/Markdown export.

Exports are written under the results directory as
``doctor_<YYYYmmdd_HHMMSS>.json`` and ``.md`` so CI jobs can archive them.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence

from local_backend.doctor.results import CheckStatus, RunSummary, ServiceReport

ERROR_WIDTH = 60

STATUS_ICONS = {
    CheckStatus.SUCCESS: "✅",
    CheckStatus.WARNING: "⚠️ ",
    CheckStatus.FAILURE: "❌",
    CheckStatus.UNKNOWN: "❔",
}


def truncate(text: str | None, width: int = ERROR_WIDTH) -> str:
    if not text:
        return ""
    text = " ".join(text.split())
    if len(text) <= width:
        return text
    return text[: width - 3] + "..."


def format_table(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> str:
    """Left-aligned fixed-width table with a dashed rule under the header."""
    cells = [[str(h) for h in headers]] + [[str(c) for c in row] for row in rows]
    widths = [max(len(row[i]) for row in cells) for i in range(len(headers))]

    def line(row: Sequence[str]) -> str:
        return "  ".join(value.ljust(widths[i]) for i, value in enumerate(row)).rstrip()

    out = [line(cells[0]), "  ".join("-" * w for w in widths)]
    out.extend(line(row) for row in cells[1:])
    return "\n".join(out)


def render_service_report(report: ServiceReport) -> str:
    """Per-check table for one service."""
    title = f"{report.service.upper()} - {report.status.value}"
    lines = ["", "=" * 60, title, "=" * 60]

    if report.error:
        lines.append(f"Suite error: {report.error}")

    if report.results:
        rows = [
            (
                r.name,
                r.category,
                "PASS" if r.success else "FAIL",
                f"{r.duration:.2f}s",
                truncate(r.error),
            )
            for r in report.results
        ]
        lines.append(format_table(("Check", "Category", "Result", "Duration", "Error"), rows))
    elif not report.error:
        lines.append("No checks were run")

    return "\n".join(lines)


def render_category_breakdown(report: ServiceReport) -> str:
    breakdown = report.by_category()
    if not breakdown:
        return ""
    rows = [(name, passed, total - passed, total) for name, (passed, total) in breakdown.items()]
    return format_table(("Category", "Passed", "Failed", "Total"), rows)


def render_summary(summary: RunSummary) -> str:
    """Run-level summary table with one row per service and a totals row."""
    rows = [
        (
            r.service,
            r.passed,
            r.failed,
            r.total,
            f"{r.success_rate:.1f}%",
            f"{r.duration:.1f}s",
            r.status.value,
        )
        for r in summary.reports
    ]
    rows.append(
        (
            "TOTAL",
            summary.passed,
            summary.failed,
            summary.total,
            f"{summary.success_rate:.1f}%",
            f"{summary.duration:.1f}s",
            summary.status.value,
        )
    )
    mode = "parallel" if summary.parallel else "sequential"
    icon = STATUS_ICONS[summary.status]
    return "\n".join(
        [
            "",
            "=" * 60,
            f"DOCTOR SUMMARY ({mode})",
            "=" * 60,
            format_table(
                ("Service", "Passed", "Failed", "Total", "Rate", "Duration", "Status"), rows
            ),
            "",
            f"{icon} Overall: {summary.status.value} (exit code {summary.exit_code})",
        ]
    )


def render_run(summary: RunSummary) -> str:
    """Every service table, its category breakdown, then the summary."""
    parts = []
    for report in summary.reports:
        parts.append(render_service_report(report))
        breakdown = render_category_breakdown(report)
        if breakdown:
            parts.append("")
            parts.append(breakdown)
    parts.append(render_summary(summary))
    return "\n".join(parts)


def to_json(summary: RunSummary) -> str:
    return json.dumps(summary.to_dict(), indent=2, default=str)


def to_markdown(summary: RunSummary) -> str:
    """Markdown report for attaching to CI runs."""
    md = f"""# Doctor Report

**Status:** {summary.status.value} (exit code {summary.exit_code})
**Mode:** {"parallel" if summary.parallel else "sequential"}
**Checks:** {summary.passed}/{summary.total} passed ({summary.success_rate:.1f}%)
**Duration:** {summary.duration:.2f}s

| Service | Passed | Failed | Rate | Status |
|---|---|---|---|---|
"""
    for r in summary.reports:
        md += f"| {r.service} | {r.passed} | {r.failed} | {r.success_rate:.1f}% | {r.status.value} |\n"

    for r in summary.reports:
        failures = [c for c in r.results if not c.success]
        if not failures and not r.error:
            continue
        md += f"\n## {r.service}\n\n"
        if r.error:
            md += f"Suite error: `{r.error}`\n\n"
        for c in failures:
            md += f"- **{c.name}** ({c.category}): `{truncate(c.error, 300)}`\n"

    return md


def export_summary(summary: RunSummary, directory: Path | str = "test-results") -> list[Path]:
    """Write JSON and Markdown reports and return their paths."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    timestamp = summary.started_at.strftime("%Y%m%d_%H%M%S")
    json_path = directory / f"doctor_{timestamp}.json"
    md_path = directory / f"doctor_{timestamp}.md"

    json_path.write_text(to_json(summary), encoding="utf-8")
    md_path.write_text(to_markdown(summary), encoding="utf-8")
    return [json_path, md_path]
