"""Report data structures — test cases, comparison results, classified report, approval filters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

Classification = Literal["diff", "added", "removed", "unchanged"]


class UploadableFile(BaseModel):
    destination_parent_directory: str = ""
    destination_relative_file_path: str
    file_content: bytes = Field(default=b"", exclude=True, repr=False)
    public_url: Optional[str] = None
    queue_index: int = 0
    queue_length: int = 0
    browser_key: Optional[str] = None  # set for screenshot images only

    @property
    def destination_path(self) -> str:
        if not self.destination_parent_directory:
            return self.destination_relative_file_path
        return f"{self.destination_parent_directory}/{self.destination_relative_file_path}"


class TestCase(BaseModel):
    __test__ = False  # not a pytest class

    html_file: UploadableFile
    screenshot_image_files: list[UploadableFile] = Field(default_factory=list)

    @property
    def page_id(self) -> str:
        return self.html_file.destination_relative_file_path


class ComparisonResult(BaseModel):
    page_id: str
    browser_id: str
    classification: Classification
    golden_page_url: Optional[str] = None
    snapshot_page_url: Optional[str] = None
    expected_image_url: Optional[str] = None
    actual_image_url: Optional[str] = None
    diff_image_url: Optional[str] = None  # populated once the diff image is persisted
    diff_image: Optional[bytes] = Field(default=None, exclude=True, repr=False)

    @model_validator(mode="after")
    def _check_image_locations(self) -> "ComparisonResult":
        has_expected = self.expected_image_url is not None
        has_actual = self.actual_image_url is not None
        match self.classification:
            case "added":
                ok = has_actual and not has_expected
            case "removed":
                ok = has_expected and not has_actual
            case _:
                ok = has_expected and has_actual
        if not ok:
            raise ValueError(
                f"{self.classification} result for {self.page_id}:{self.browser_id} has "
                f"expected={self.expected_image_url!r}, actual={self.actual_image_url!r}"
            )
        return self

    @property
    def key(self) -> tuple[str, str]:
        return (self.page_id, self.browser_id)


def comparison_sort_key(result: ComparisonResult) -> tuple[str, str, str, str]:
    """Ordering key independent of the process locale: case-folded first, code points break ties."""
    return (
        result.page_id.casefold(),
        result.page_id,
        result.browser_id.casefold(),
        result.browser_id,
    )


class ClassifiedReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    test_cases: list[TestCase] = Field(default_factory=list, alias="testCases")
    diffs: list[ComparisonResult] = Field(default_factory=list)
    added: list[ComparisonResult] = Field(default_factory=list)
    removed: list[ComparisonResult] = Field(default_factory=list)
    unchanged: list[ComparisonResult] = Field(default_factory=list)

    def all_results(self) -> list[ComparisonResult]:
        return [*self.diffs, *self.added, *self.removed, *self.unchanged]

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)

    def clone(self) -> "ClassifiedReport":
        """Structural copy; diff image buffers are not carried over."""
        return ClassifiedReport.model_validate(self.to_json())


def parse_approval_arg(value: str) -> tuple[str, str]:
    """Split a `page/path.html:browser_id` approval argument on its last colon."""
    page_id, sep, browser_id = value.rpartition(":")
    if not sep or not page_id or not browser_id:
        raise ValueError(f"Expected '<html file path>:<browser id>', got '{value}'")
    return page_id, browser_id


@dataclass
class ApprovalFilters:
    """Explicit (page id, browser id) selections per changelist bucket."""

    diffs: set[tuple[str, str]] = field(default_factory=set)
    added: set[tuple[str, str]] = field(default_factory=set)
    removed: set[tuple[str, str]] = field(default_factory=set)

    @classmethod
    def from_args(
        cls,
        diffs: list[str] | tuple[str, ...] = (),
        added: list[str] | tuple[str, ...] = (),
        removed: list[str] | tuple[str, ...] = (),
    ) -> "ApprovalFilters":
        return cls(
            diffs={parse_approval_arg(v) for v in diffs},
            added={parse_approval_arg(v) for v in added},
            removed={parse_approval_arg(v) for v in removed},
        )

    @classmethod
    def select_all(cls, report: ClassifiedReport) -> "ApprovalFilters":
        return cls(
            diffs={r.key for r in report.diffs},
            added={r.key for r in report.added},
            removed={r.key for r in report.removed},
        )

    def is_empty(self) -> bool:
        return not (self.diffs or self.added or self.removed)
