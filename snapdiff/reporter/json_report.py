"""JSON report output."""

from __future__ import annotations

import json

from snapdiff.errors import DataIntegrityError
from snapdiff.models.report import ClassifiedReport


def generate_report_json(report: ClassifiedReport) -> str:
    """Machine-readable report: `{testCases, diffs, added, removed, unchanged}`."""
    return json.dumps(report.to_json(), indent=2) + "\n"


def load_report(text: str) -> ClassifiedReport:
    try:
        return ClassifiedReport.model_validate(json.loads(text))
    except ValueError as e:
        raise DataIntegrityError(f"Report JSON is not valid: {e}") from e
