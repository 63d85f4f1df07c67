"""HTML report generator — a reviewable page listing every changed screenshot."""

from __future__ import annotations

import html
import shlex
from itertools import groupby

from snapdiff.models.report import ClassifiedReport, ComparisonResult

_APPROVE_FLAGS = {
    "diff": "--approve-diff",
    "added": "--approve-add",
    "removed": "--approve-remove",
}


def report_title(report: ClassifiedReport) -> str:
    num_diffs = len(report.diffs)
    return ", ".join([
        f"{num_diffs} Diff{'s' if num_diffs != 1 else ''}",
        f"{len(report.added)} Added",
        f"{len(report.removed)} Removed",
        f"{len(report.unchanged)} Unchanged",
    ])


def approve_command(report_json_url: str, results: list[ComparisonResult] | None = None) -> str:
    """The `snapdiff approve` invocation accepting all changes, or only `results`."""
    args = ["snapdiff", "approve", "--report", report_json_url]
    for r in results or []:
        args += [_APPROVE_FLAGS[r.classification], f"{r.page_id}:{r.browser_id}"]
    return shlex.join(args)


def _link(url: str | None, label: str) -> str:
    if not url:
        return f'<span class="missing">{label}: none</span>'
    return f'<a href="{html.escape(url)}" target="_blank">{label}</a>'


def _build_result_row(r: ComparisonResult, report_json_url: str) -> str:
    row = f'''
        <li class="report-browser" data-page="{html.escape(r.page_id)}" data-browser="{html.escape(r.browser_id)}">
          <strong>{html.escape(r.browser_id)}</strong>
          {_link(r.expected_image_url, "golden")}
          {_link(r.actual_image_url, "snapshot")}'''
    if r.classification == "diff":
        row += f'\n          {_link(r.diff_image_url, "diff")}'
    if r.classification != "unchanged":
        row += f'\n          <code>{html.escape(approve_command(report_json_url, [r]))}</code>'
    return row + "\n        </li>"


def _build_changelist(heading: str, results: list[ComparisonResult], report_json_url: str) -> str:
    section = f'<details class="report-changelist" open><summary>{heading} ({len(results)})</summary>'
    if not results:
        return section + '<p class="empty">None</p></details>'
    for page_id, page_results in groupby(results, key=lambda r: r.page_id):
        page_results = list(page_results)
        page_url = page_results[0].snapshot_page_url or page_results[0].golden_page_url
        section += f'\n  <div class="report-file"><h3>{_link(page_url, html.escape(page_id))}</h3><ul>'
        section += "".join(_build_result_row(r, report_json_url) for r in page_results)
        section += "\n  </ul></div>"
    return section + "\n</details>"


def _build_metadata(metadata: dict[str, str] | None) -> str:
    if not metadata:
        return ""
    rows = "".join(
        f"\n    <dt>{html.escape(key)}</dt><dd>{html.escape(value)}</dd>"
        for key, value in metadata.items()
    )
    return f'<dl class="report-metadata">{rows}\n  </dl>'


def generate_html_report(
    report: ClassifiedReport,
    report_json_url: str,
    metadata: dict[str, str] | None = None,
) -> str:
    """Render the review page; `metadata` (diff base, upload dir, ...) is listed under the title."""
    title = report_title(report)
    sections = "\n".join([
        _build_changelist("Diffs", report.diffs, report_json_url),
        _build_changelist("Added", report.added, report_json_url),
        _build_changelist("Removed", report.removed, report_json_url),
        _build_changelist("Unchanged", report.unchanged, report_json_url),
    ])
    has_changes = bool(report.diffs or report.added or report.removed)
    approve_all = (
        f'<p>Approve everything:</p><pre>{html.escape(approve_command(report_json_url))}</pre>'
        if has_changes else "<p>No changes to approve.</p>"
    )
    return f'''<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{html.escape(title)} - Screenshot Test Report</title>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif; margin: 2rem; color: #1e293b; }}
    summary {{ font-size: 1.25rem; font-weight: 600; cursor: pointer; margin: 1rem 0; }}
    .report-file h3 {{ font-size: 1rem; margin: 0.75rem 0 0.25rem; }}
    .report-browser {{ margin: 0.25rem 0; }}
    .report-browser a, .missing {{ margin-left: 0.75rem; }}
    .missing {{ color: #94a3b8; }}
    .report-metadata dt {{ font-weight: 600; float: left; clear: left; width: 8rem; }}
    .report-metadata dd {{ margin-left: 8.5rem; }}
    code, pre {{ display: block; background: #f1f5f9; padding: 0.25rem 0.5rem; font-size: 0.8rem; overflow-x: auto; }}
  </style>
</head>
<body data-report-json-url="{html.escape(report_json_url)}">
  <h1>Screenshot Test Report</h1>
  <h2>{html.escape(title)}</h2>
  {_build_metadata(metadata)}
  {approve_all}
  {sections}
</body>
</html>
'''
