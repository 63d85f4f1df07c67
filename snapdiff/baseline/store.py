"""Golden baseline store — loads, merges approvals into, and persists the golden manifest."""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path

from snapdiff.errors import DataIntegrityError
from snapdiff.models.config import WorkflowConfig
from snapdiff.models.report import ApprovalFilters, ClassifiedReport, ComparisonResult, TestCase
from snapdiff.models.snapshot import (
    Manifest,
    PageEntry,
    clone_manifest,
    load_manifest_text,
    serialize_manifest,
)

from .cache import BaselineCache
from .diff_source import describe, fetch_diff_source, parse_diff_base
from .git_repo import GitRepo

logger = logging.getLogger(__name__)


class BaselineStore:
    """Reads and writes `golden.json` and `snapshot.json` manifests."""

    def __init__(self, config: WorkflowConfig, cache: BaselineCache):
        self.config = config
        self.cache = cache
        # Replaced by the resolved source once the golden manifest is fetched
        self.diff_source = config.effective_diff_base

    @classmethod
    def from_config(cls, config: WorkflowConfig, git_repo: GitRepo | None = None) -> "BaselineStore":
        git_repo = git_repo or GitRepo()
        store = cls(config, BaselineCache(lambda: store._fetch_golden_manifest(git_repo)))
        return store

    async def _fetch_golden_manifest(self, git_repo: GitRepo) -> Manifest:
        """Resolve the diff base and parse the golden manifest behind it."""
        source = await parse_diff_base(self.config.effective_diff_base, self.config.golden_path, git_repo)
        self.diff_source = describe(source)
        text = await fetch_diff_source(source, git_repo)
        try:
            manifest = load_manifest_text(text)
        except ValueError as e:
            raise DataIntegrityError(f"Golden manifest is not valid: {e}", {"source": self.diff_source}) from e
        logger.info("Loaded golden manifest from %s (%d pages)", self.diff_source, len(manifest))
        return manifest

    async def load_baseline(self) -> Manifest:
        """Return a private copy of the golden manifest for this run."""
        return await self.cache.get()

    @staticmethod
    def from_test_cases(test_cases: list[TestCase]) -> Manifest:
        """Build a manifest from the captured test cases."""
        manifest: Manifest = {}
        for test_case in test_cases:
            page = PageEntry(public_url=test_case.html_file.public_url or "", screenshots={})
            for image_file in test_case.screenshot_image_files:
                if image_file.browser_key and image_file.public_url:
                    page.screenshots[image_file.browser_key] = image_file.public_url
            manifest[test_case.page_id] = page
        return manifest

    async def merge_approvals(
        self,
        report: ClassifiedReport,
        filters: ApprovalFilters | None = None,
    ) -> Manifest:
        """Fold approved changes into a copy of the golden manifest.

        Without filters every change in the report is accepted. With filters only
        the selected diff/added/removed entries are applied; empty filters leave
        the golden manifest as it is, empty pages included.
        """
        baseline = await self.load_baseline()
        if filters is not None and filters.is_empty():
            return baseline
        if filters is None:
            merged = self._merge_all(report, baseline)
        else:
            merged = self._merge_filtered(report, baseline, filters)
        return _prune_empty_pages(merged)

    async def snapshot_manifest(self, report: ClassifiedReport) -> Manifest:
        """Manifest describing this run, as published next to the report.

        A run narrowed by include/exclude patterns only captured some pages, so
        its diffs are layered onto the golden manifest instead of replacing it.
        """
        if not self.config.has_page_filters():
            return await self.merge_approvals(report)

        merged = await self.load_baseline()
        for diff in report.diffs:
            page = _require_screenshot(merged, diff, "diff")
            page.screenshots[diff.browser_id] = diff.actual_image_url
            if diff.snapshot_page_url:
                page.public_url = diff.snapshot_page_url
        return _prune_empty_pages(merged)

    def _merge_all(self, report: ClassifiedReport, baseline: Manifest) -> Manifest:
        merged = self.from_test_cases(report.test_cases)
        diffs_by_key = {diff.key: diff for diff in report.diffs}

        for diff in report.diffs:
            page = merged.get(diff.page_id)
            if page is None or diff.browser_id not in page.screenshots:
                raise DataIntegrityError(
                    "Diff references a screenshot missing from the report's test cases",
                    {"page": diff.page_id, "browser": diff.browser_id},
                )

        for page_id, new_page in merged.items():
            old_page = baseline.get(page_id)
            if old_page is None:
                continue

            page_has_diffs = False
            for browser_id in new_page.screenshots:
                diff = diffs_by_key.get((page_id, browser_id))
                if diff is not None:
                    page_has_diffs = True
                    new_page.screenshots[browser_id] = diff.actual_image_url
                elif browser_id in old_page.screenshots:
                    new_page.screenshots[browser_id] = old_page.screenshots[browser_id]

            if not page_has_diffs:
                new_page.public_url = old_page.public_url

        return merged

    def _merge_filtered(
        self,
        report: ClassifiedReport,
        baseline: Manifest,
        filters: ApprovalFilters,
    ) -> Manifest:
        merged = clone_manifest(baseline)
        approved_diffs = _select(report.diffs, filters.diffs, "diff")
        approved_added = _select(report.added, filters.added, "added")
        approved_removed = _select(report.removed, filters.removed, "removed")

        for diff in approved_diffs:
            page = _require_screenshot(merged, diff, "diff")
            page.screenshots[diff.browser_id] = diff.actual_image_url
            if diff.snapshot_page_url:
                page.public_url = diff.snapshot_page_url

        for added in approved_added:
            page = merged.get(added.page_id)
            if page is None:
                page = PageEntry(public_url=added.snapshot_page_url or "", screenshots={})
                merged[added.page_id] = page
            page.screenshots[added.browser_id] = added.actual_image_url

        for removed in approved_removed:
            page = _require_screenshot(merged, removed, "removed")
            del page.screenshots[removed.browser_id]
            if not page.screenshots:
                del merged[removed.page_id]

        logger.info(
            "Approved %d diffs, %d added, %d removed",
            len(approved_diffs), len(approved_added), len(approved_removed),
        )
        return merged

    def serialize(self, manifest: Manifest) -> str:
        return serialize_manifest(manifest)

    def write_baseline(self, manifest: Manifest, path: str | Path | None = None) -> Path:
        """Replace the golden file in one step; readers never observe a partial write.

        An existing file keeps its permissions; a new one is created 0644.
        """
        path = Path(path or self.config.golden_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        content = self.serialize(manifest)
        mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else 0o644

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info("DONE updating %s (%d pages)", path, len(manifest))
        return path

    async def approve_changes(
        self,
        report: ClassifiedReport,
        filters: ApprovalFilters | None = None,
    ) -> Manifest:
        """Merge approvals and write the result over the golden file."""
        merged = await self.merge_approvals(report, filters)
        self.write_baseline(merged)
        return merged


def _select(
    results: list[ComparisonResult],
    approved: set[tuple[str, str]],
    bucket: str,
) -> list[ComparisonResult]:
    selected = [r for r in results if r.key in approved]
    unmatched = approved - {r.key for r in selected}
    if unmatched:
        page_id, browser_id = sorted(unmatched)[0]
        raise DataIntegrityError(
            f"Approved {bucket} entry is not in the report",
            {"page": page_id, "browser": browser_id, "unmatched": len(unmatched)},
        )
    return selected


def _require_screenshot(manifest: Manifest, result: ComparisonResult, bucket: str) -> PageEntry:
    page = manifest.get(result.page_id)
    if page is None or result.browser_id not in page.screenshots:
        raise DataIntegrityError(
            f"Approved {bucket} entry is not in the golden manifest",
            {"page": result.page_id, "browser": result.browser_id},
        )
    return page


def _prune_empty_pages(manifest: Manifest) -> Manifest:
    return {page_id: page for page_id, page in manifest.items() if page.screenshots}
