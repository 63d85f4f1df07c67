"""Upload/capture coordinator — publishes test pages and collects cross-browser screenshots."""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

from snapdiff.baseline.git_repo import GitRepo
from snapdiff.errors import DataIntegrityError, TransportError
from snapdiff.models.config import WorkflowConfig
from snapdiff.models.report import TestCase, UploadableFile

from .capture_service import CaptureResult, CaptureService
from .cropper import ImageCropper
from .image_cache import ImageCache
from .storage import Storage
from .user_agent import browser_file_name

logger = logging.getLogger(__name__)


class UploadCaptureCoordinator:
    """Fans out asset uploads and page captures, then folds the results into test cases.

    Every batch fails on its first error. Operations already in flight are
    neither cancelled nor rolled back.
    """

    def __init__(
        self,
        config: WorkflowConfig,
        storage: Storage,
        capture_service: CaptureService,
        image_cache: ImageCache,
        cropper: ImageCropper,
        base_upload_dir: str = "",
        git_repo: GitRepo | None = None,
    ):
        self.config = config
        self.storage = storage
        self.capture_service = capture_service
        self.image_cache = image_cache
        self.cropper = cropper
        self.base_upload_dir = base_upload_dir
        self.git_repo = git_repo or GitRepo()
        self._test_page_re = re.compile(config.test_page_pattern)
        self._include_res = [re.compile(p) for p in config.include_url_patterns]
        self._exclude_res = [re.compile(p) for p in config.exclude_url_patterns]

    async def list_asset_files(self) -> list[str]:
        """Relative paths of every asset (HTML, CSS, JS, images) under the test dir.

        Dotfiles and dot-directories are skipped, as are git-ignored files
        unless they live under an `out/` build directory.
        """
        test_dir = Path(self.config.test_dir)
        relative_paths = sorted(
            rel.as_posix()
            for rel in (p.relative_to(test_dir) for p in test_dir.rglob("*") if p.is_file())
            if not any(part.startswith(".") for part in rel.parts)
        )

        full_paths = {rel: (test_dir / rel).as_posix() for rel in relative_paths}
        ignored = {
            full_path
            for full_path in await self.git_repo.get_ignored_paths(list(full_paths.values()))
            if "/out/" not in full_path
        }
        if ignored:
            logger.debug("Skipping %d git-ignored asset files", len(ignored))
        return [rel for rel in relative_paths if full_paths[rel] not in ignored]

    def is_test_page(self, relative_path: str) -> bool:
        if not self._test_page_re.search(relative_path):
            return False
        is_included = not self._include_res or any(p.search(relative_path) for p in self._include_res)
        is_excluded = any(p.search(relative_path) for p in self._exclude_res)
        return is_included and not is_excluded

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload_assets(self, relative_paths: list[str] | None = None) -> list[TestCase]:
        """Upload every asset file and return a test case per uploaded test page."""
        if relative_paths is None:
            relative_paths = await self.list_asset_files()
        total = len(relative_paths)
        logger.info("Uploading %d asset files...", total)

        uploaded = await asyncio.gather(*(
            self._upload_one_asset(path, index, total)
            for index, path in enumerate(relative_paths)
        ))

        test_cases = [
            TestCase(html_file=asset_file)
            for asset_file in uploaded
            if self.is_test_page(asset_file.destination_relative_file_path)
        ]
        logger.info("DONE uploading asset files: %d test pages", len(test_cases))
        for url in sorted(tc.html_file.public_url or "" for tc in test_cases):
            logger.debug("  %s", url)
        return test_cases

    async def _upload_one_asset(self, relative_path: str, queue_index: int, queue_length: int) -> UploadableFile:
        try:
            content = await asyncio.to_thread((Path(self.config.test_dir) / relative_path).read_bytes)
            asset_file = UploadableFile(
                destination_parent_directory=self.base_upload_dir,
                destination_relative_file_path=relative_path,
                file_content=content,
                queue_index=queue_index,
                queue_length=queue_length,
            )
            return await self.storage.upload_file(asset_file)
        except Exception as e:
            raise TransportError(
                f"Failed to upload asset: {e}",
                {"file": relative_path, "queue": f"{queue_index + 1} of {queue_length}"},
            ) from e

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def capture_screenshots(self, test_cases: list[TestCase]) -> list[TestCase]:
        """Capture every test page in every browser; screenshots are appended to each test case."""
        total = len(test_cases)
        logger.info("Capturing %d test pages...", total)

        per_page = await asyncio.gather(*(
            self._capture_one_page(test_case, index, total)
            for index, test_case in enumerate(test_cases)
        ))

        for test_case, image_files in zip(test_cases, per_page):
            seen = {f.browser_key for f in test_case.screenshot_image_files}
            for image_file in image_files:
                if image_file.browser_key in seen:
                    raise DataIntegrityError(
                        "Duplicate browser screenshot for page",
                        {"page": test_case.page_id, "browser": image_file.browser_key},
                    )
                seen.add(image_file.browser_key)
                test_case.screenshot_image_files.append(image_file)

        logger.info("DONE capturing screenshot images")
        for test_case in test_cases:
            logger.debug("%s:", test_case.html_file.public_url)
            for image_file in test_case.screenshot_image_files:
                logger.debug("  - %s", image_file.public_url)
        return test_cases

    async def _capture_one_page(
        self,
        test_case: TestCase,
        queue_index: int,
        queue_length: int,
    ) -> list[UploadableFile]:
        url = test_case.html_file.public_url or ""
        try:
            capture_info = await self.capture_service.capture_url(url)
        except Exception as e:
            logger.error(
                "ERROR capturing screenshot:\n  - %s\n  - Test case %d of %d\n  %s",
                url, queue_index + 1, queue_length, e,
            )
            raise TransportError(
                f"Failed to capture screenshot: {e}",
                {"url": url, "test_case": f"{queue_index + 1} of {queue_length}"},
            ) from e

        results = capture_info.results
        return list(await asyncio.gather(*(
            self._upload_screenshot_image(
                test_case,
                result,
                queue_index * len(results) + result_index,
                queue_length * len(results),
            )
            for result_index, result in enumerate(results)
        )))

    async def _upload_screenshot_image(
        self,
        test_case: TestCase,
        result: CaptureResult,
        queue_index: int,
        queue_length: int,
    ) -> UploadableFile:
        browser_id = browser_file_name(result.os, result.browser)
        context = {
            "page": test_case.page_id,
            "browser": browser_id,
            "queue": f"{queue_index + 1} of {queue_length}",
        }
        if not result.image_location:
            raise TransportError("Capture result has no image location", context)

        try:
            raw = await self.image_cache.get_image_bytes(result.image_location, cache=False)
            cropped = await self.cropper.auto_crop(raw)
            image_file = UploadableFile(
                destination_parent_directory=self.base_upload_dir,
                destination_relative_file_path=f"{test_case.page_id}.{browser_id}.png",
                file_content=cropped,
                browser_key=browser_id,
                queue_index=queue_index,
                queue_length=queue_length,
            )
            return await self.storage.upload_file(image_file)
        except Exception as e:
            raise TransportError(f"Failed to store screenshot: {e}", context) from e
