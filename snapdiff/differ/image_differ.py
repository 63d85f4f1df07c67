"""Image differ — classifies every screenshot of a run against the golden manifest."""

from __future__ import annotations

import asyncio
import logging

from snapdiff.capture.image_cache import ImageCache
from snapdiff.errors import TransportError
from snapdiff.models.config import ComparatorOptions
from snapdiff.models.report import (
    ClassifiedReport,
    ComparisonResult,
    TestCase,
    comparison_sort_key,
)
from snapdiff.models.snapshot import Manifest, PageEntry

from .comparator import Comparator

logger = logging.getLogger(__name__)

DEFAULT_MISMATCH_THRESHOLD = 0.0001


class ImageDiffer:
    """Compares the actual manifest of a run with the expected (golden) manifest."""

    def __init__(
        self,
        image_cache: ImageCache,
        comparator: Comparator,
        mismatch_threshold: float = DEFAULT_MISMATCH_THRESHOLD,
        options: ComparatorOptions | None = None,
    ):
        self.image_cache = image_cache
        self.comparator = comparator
        self.mismatch_threshold = mismatch_threshold
        self.options = options or ComparatorOptions()

    async def compare_all(
        self,
        test_cases: list[TestCase],
        actual: Manifest,
        expected: Manifest,
    ) -> ClassifiedReport:
        """Classify every (page, browser) pair as diff, added, removed or unchanged.

        Any comparison failure aborts the whole batch.
        """
        comparisons = []
        for page_id, actual_page in actual.items():
            expected_page = expected.get(page_id)
            if expected_page is None:
                continue
            for browser_id in actual_page.screenshots:
                if browser_id not in expected_page.screenshots:
                    continue
                comparisons.append(
                    self._compare_one(page_id, browser_id, actual_page, expected_page)
                )

        logger.info("Comparing %d screenshots against golden...", len(comparisons))
        results = await asyncio.gather(*comparisons)

        diffs = [r for r in results if r.classification == "diff"]
        unchanged = [r for r in results if r.classification == "unchanged"]
        added = _added(actual, expected)
        removed = _removed(actual, expected)

        for bucket in (diffs, added, removed, unchanged):
            bucket.sort(key=comparison_sort_key)

        logger.info(
            "DONE diffing screenshots: %d diffs, %d added, %d removed, %d unchanged",
            len(diffs), len(added), len(removed), len(unchanged),
        )
        return ClassifiedReport(
            test_cases=test_cases,
            diffs=diffs,
            added=added,
            removed=removed,
            unchanged=unchanged,
        )

    async def _compare_one(
        self,
        page_id: str,
        browser_id: str,
        actual_page: PageEntry,
        expected_page: PageEntry,
    ) -> ComparisonResult:
        actual_url = actual_page.screenshots[browser_id]
        expected_url = expected_page.screenshots[browser_id]
        logger.debug("Comparing snapshot to golden: %s vs. %s", actual_url, expected_url)

        try:
            actual_bytes, expected_bytes = await asyncio.gather(
                self.image_cache.get_image_bytes(actual_url),
                self.image_cache.get_image_bytes(expected_url),
            )
            outcome = await self.comparator.compare(actual_bytes, expected_bytes, self.options)
        except Exception as e:
            raise TransportError(
                f"Failed to compare screenshot: {e}",
                {"page": page_id, "browser": browser_id},
            ) from e

        changed = outcome.mismatch_fraction >= self.mismatch_threshold
        if changed:
            logger.info("Screenshot changed: %s [%s] (%.4f%%)",
                        page_id, browser_id, outcome.mismatch_fraction * 100)
        else:
            logger.debug("No diffs found for %s [%s]", page_id, browser_id)

        return ComparisonResult(
            page_id=page_id,
            browser_id=browser_id,
            classification="diff" if changed else "unchanged",
            golden_page_url=expected_page.public_url,
            snapshot_page_url=actual_page.public_url,
            expected_image_url=expected_url,
            actual_image_url=actual_url,
            diff_image=outcome.diff_bytes if changed else None,
        )


def _added(actual: Manifest, expected: Manifest) -> list[ComparisonResult]:
    added = []
    for page_id, actual_page in actual.items():
        expected_screenshots = expected[page_id].screenshots if page_id in expected else {}
        for browser_id, actual_url in actual_page.screenshots.items():
            if browser_id in expected_screenshots:
                continue
            added.append(ComparisonResult(
                page_id=page_id,
                browser_id=browser_id,
                classification="added",
                snapshot_page_url=actual_page.public_url,
                actual_image_url=actual_url,
            ))
    return added


def _removed(actual: Manifest, expected: Manifest) -> list[ComparisonResult]:
    removed = []
    for page_id, expected_page in expected.items():
        actual_screenshots = actual[page_id].screenshots if page_id in actual else {}
        for browser_id, expected_url in expected_page.screenshots.items():
            if browser_id in actual_screenshots:
                continue
            removed.append(ComparisonResult(
                page_id=page_id,
                browser_id=browser_id,
                classification="removed",
                golden_page_url=expected_page.public_url,
                expected_image_url=expected_url,
            ))
    return removed
