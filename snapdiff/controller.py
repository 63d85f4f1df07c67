"""Workflow controller — coordinates upload, capture, diff, report and approval stages."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import AsyncExitStack
from pathlib import Path

import httpx

from snapdiff.baseline.git_repo import GitRepo
from snapdiff.baseline.store import BaselineStore
from snapdiff.capture.capture_service import CaptureService, PlaywrightCaptureService
from snapdiff.capture.coordinator import UploadCaptureCoordinator
from snapdiff.capture.cropper import ImageCropper
from snapdiff.capture.image_cache import ImageCache
from snapdiff.capture.storage import LocalStorage, Storage, generate_unique_upload_dir
from snapdiff.differ.comparator import Comparator, PillowComparator
from snapdiff.differ.image_differ import ImageDiffer
from snapdiff.errors import TransportError
from snapdiff.models.config import WorkflowConfig
from snapdiff.models.report import ApprovalFilters, ClassifiedReport, ComparisonResult, TestCase, UploadableFile
from snapdiff.models.snapshot import Manifest
from snapdiff.reporter.html_report import generate_html_report, report_title
from snapdiff.reporter.json_report import generate_report_json, load_report
from snapdiff.url_utils import read_location

logger = logging.getLogger(__name__)


class Controller:
    """Composable async stages of the screenshot workflow.

    1. Upload test assets
    2. Capture screenshots of every test page
    3. Diff the captured screenshots against the golden manifest
    4. Publish the report
    5. (separately) Approve changes into the golden manifest
    """

    def __init__(
        self,
        config: WorkflowConfig,
        storage: Storage | None = None,
        capture_service: CaptureService | None = None,
        comparator: Comparator | None = None,
        image_cache: ImageCache | None = None,
        cropper: ImageCropper | None = None,
        baseline_store: BaselineStore | None = None,
        git_repo: GitRepo | None = None,
        base_upload_dir: str | None = None,
    ):
        self.config = config
        self.base_upload_dir = base_upload_dir if base_upload_dir is not None else generate_unique_upload_dir()
        self.storage = storage or LocalStorage(config.upload_root, config.public_base_url)
        self.capture_service = capture_service or PlaywrightCaptureService(
            browsers=config.browsers,
            capture_dir=config.capture_dir,
            viewport=config.viewport,
            max_parallel=config.max_parallel_captures,
        )
        self.image_cache = image_cache or ImageCache()
        self.git_repo = git_repo or GitRepo()
        self.baseline_store = baseline_store or BaselineStore.from_config(config, self.git_repo)
        self.coordinator = UploadCaptureCoordinator(
            config,
            storage=self.storage,
            capture_service=self.capture_service,
            image_cache=self.image_cache,
            cropper=cropper or ImageCropper(),
            base_upload_dir=self.base_upload_dir,
            git_repo=self.git_repo,
        )
        self.differ = ImageDiffer(
            self.image_cache,
            comparator or PillowComparator(),
            mismatch_threshold=config.mismatch_threshold,
            options=config.comparator,
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def run_full_pipeline(self) -> dict:
        """Execute upload → capture → diff → report."""
        return asyncio.run(self._run_pipeline())

    async def _run_pipeline(self) -> dict:
        start = time.time()
        logger.info("=== Starting screenshot test run (upload dir %s) ===", self.base_upload_dir)

        async with AsyncExitStack() as stack:
            stack.push_async_callback(self.image_cache.aclose)
            if hasattr(self.capture_service, "__aenter__"):
                await stack.enter_async_context(self.capture_service)

            logger.info("--- Stage 1: Upload ---")
            test_cases = await self.upload_all_assets()

            logger.info("--- Stage 2: Capture (%d pages) ---", len(test_cases))
            await self.capture_all_pages(test_cases)

            logger.info("--- Stage 3: Diff ---")
            report = await self.diff_golden_json(test_cases)

            logger.info("--- Stage 4: Report ---")
            reports = await self.write_report(report)

        duration = time.time() - start
        logger.info("=== Run complete in %.1fs: %s ===", duration, report_title(report))
        return {
            "upload_dir": self.base_upload_dir,
            "duration": round(duration, 2),
            "results": {
                "test_pages": len(test_cases),
                "diffs": len(report.diffs),
                "added": len(report.added),
                "removed": len(report.removed),
                "unchanged": len(report.unchanged),
            },
            "reports": reports,
        }

    async def upload_all_assets(self) -> list[TestCase]:
        return await self.coordinator.upload_assets()

    async def capture_all_pages(self, test_cases: list[TestCase]) -> list[TestCase]:
        return await self.coordinator.capture_screenshots(test_cases)

    async def diff_golden_json(self, test_cases: list[TestCase]) -> ClassifiedReport:
        """Compare the run against the golden manifest and publish every diff image."""
        actual = self.baseline_store.from_test_cases(test_cases)
        expected = await self.baseline_store.load_baseline()
        report = await self.differ.compare_all(test_cases, actual, expected)

        total = len(report.diffs)
        await asyncio.gather(*(
            self._upload_one_diff_image(diff, index, total)
            for index, diff in enumerate(report.diffs)
        ))
        logger.info("DONE uploading %d diff images", total)
        return report

    async def _upload_one_diff_image(self, diff: ComparisonResult, queue_index: int, queue_length: int) -> None:
        if diff.diff_image is None:
            return
        diff_file = UploadableFile(
            destination_parent_directory=self.base_upload_dir,
            destination_relative_file_path=f"{diff.page_id}.{diff.browser_id}.diff.png",
            file_content=diff.diff_image,
            browser_key=diff.browser_id,
            queue_index=queue_index,
            queue_length=queue_length,
        )
        try:
            stored = await self.storage.upload_file(diff_file)
        except Exception as e:
            raise TransportError(
                f"Failed to upload diff image: {e}",
                {"page": diff.page_id, "browser": diff.browser_id,
                 "queue": f"{queue_index + 1} of {queue_length}"},
            ) from e
        diff.diff_image_url = stored.public_url
        # Release the buffer once it is persisted
        diff.diff_image = None
        stored.file_content = b""

    async def write_report(self, report: ClassifiedReport) -> dict[str, str]:
        """Write report.json, snapshot.json and report.html locally and upload them."""
        out_dir = Path(self.config.report_output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("Report output directory: %s", out_dir)

        snapshot = await self.baseline_store.snapshot_manifest(report)
        report_file, snapshot_file = await asyncio.gather(
            self._publish(out_dir, "report.json", generate_report_json(report), 0, 3),
            self._publish(out_dir, "snapshot.json", self.baseline_store.serialize(snapshot), 1, 3),
        )
        html = generate_html_report(report, report_file.public_url or "", self._report_metadata(report))
        html_file = await self._publish(out_dir, "report.html", html, 2, 3)
        logger.info("DONE publishing diff report: %s", html_file.public_url)
        return {
            "json": report_file.public_url or "",
            "snapshot": snapshot_file.public_url or "",
            "html": html_file.public_url or "",
            "html_path": str(out_dir / "report.html"),
        }

    def _report_metadata(self, report: ClassifiedReport) -> dict[str, str]:
        return {
            "Diff base": self.baseline_store.diff_source,
            "Upload dir": self.base_upload_dir,
            "Test pages": str(len(report.test_cases)),
            "Browsers": ", ".join(sorted({r.browser_id for r in report.all_results()})),
        }

    async def _publish(
        self,
        out_dir: Path,
        filename: str,
        content: str,
        queue_index: int,
        queue_length: int,
    ) -> UploadableFile:
        path = out_dir / filename
        logger.debug("Writing %s to disk...", path)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        try:
            return await self.storage.upload_file(UploadableFile(
                destination_parent_directory=self.base_upload_dir,
                destination_relative_file_path=filename,
                file_content=content.encode("utf-8"),
                queue_index=queue_index,
                queue_length=queue_length,
            ))
        except Exception as e:
            raise TransportError(f"Failed to upload {filename}: {e}", {"file": filename}) from e

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def run_approve(self, report_location: str, filters: ApprovalFilters | None = None) -> Manifest:
        return asyncio.run(self.approve_changes(report_location, filters))

    async def approve_changes(self, report_location: str, filters: ApprovalFilters | None = None) -> Manifest:
        """Merge the approved changes from a published report into the golden file."""
        try:
            text = (await read_location(report_location)).decode("utf-8")
        except (httpx.HTTPError, OSError) as e:
            raise TransportError(f"Failed to fetch report: {e}", {"report": report_location}) from e
        report = load_report(text)
        return await self.baseline_store.approve_changes(report, filters)
