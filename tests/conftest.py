"""Pytest configuration and shared fixtures."""

import io
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from snapdiff.baseline.cache import BaselineCache
from snapdiff.baseline.store import BaselineStore
from snapdiff.differ.comparator import ComparisonOutcome
from snapdiff.errors import TransportError
from snapdiff.models.config import ComparatorOptions, WorkflowConfig
from snapdiff.models.report import TestCase, UploadableFile
from snapdiff.models.snapshot import Manifest, PageEntry, parse_manifest


# ============================================================================
# Images
# ============================================================================


def make_png(
    size: tuple[int, int] = (20, 20),
    color: tuple[int, int, int] = (255, 255, 255),
    box: tuple[int, int, int, int] | None = None,
    box_color: tuple[int, int, int] = (0, 0, 0),
) -> bytes:
    img = Image.new("RGB", size, color)
    if box:
        img.paste(box_color, box)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_factory():
    return make_png


# ============================================================================
# Collaborator fakes
# ============================================================================


class FakeStorage:
    """Records uploads and publishes them under https://storage.test/."""

    def __init__(self, fail_on: set[str] | None = None):
        self.uploads: list[UploadableFile] = []
        self.contents: dict[str, bytes] = {}
        self.fail_on = fail_on or set()

    async def upload_file(self, file: UploadableFile) -> UploadableFile:
        if file.destination_relative_file_path in self.fail_on:
            raise ConnectionError(f"upload refused: {file.destination_relative_file_path}")
        self.uploads.append(file)
        self.contents[file.destination_path] = file.file_content
        file.public_url = f"https://storage.test/{file.destination_path}"
        return file


class FakeImageCache:
    """Returns registered bytes per location, or the location itself encoded."""

    def __init__(self, images: dict[str, bytes] | None = None, missing: set[str] | None = None):
        self.images = images or {}
        self.missing = missing or set()
        self.requests: list[str] = []

    async def get_image_bytes(self, location: str, cache: bool = True) -> bytes:
        self.requests.append(location)
        if location in self.missing:
            raise TransportError("Failed to download image", {"location": location})
        return self.images.get(location, location.encode())

    async def aclose(self) -> None:
        pass


class FakeGitRepo:
    """Reports a fixed set of paths as git-ignored."""

    def __init__(self, ignored: set[str] | None = None):
        self.ignored = ignored or set()
        self.checked: list[str] = []

    async def get_ignored_paths(self, paths: list[str]) -> set[str]:
        self.checked.extend(paths)
        return {p for p in paths if p in self.ignored}


class FakeComparator:
    """Byte equality comparator; differing inputs report half the pixels changed."""

    def __init__(self):
        self.calls = 0

    async def compare(self, actual_bytes: bytes, expected_bytes: bytes, options: ComparatorOptions) -> ComparisonOutcome:
        self.calls += 1
        if actual_bytes == expected_bytes:
            return ComparisonOutcome(mismatch_fraction=0.0)
        return ComparisonOutcome(mismatch_fraction=0.5, diff_bytes=b"DIFF:" + actual_bytes)


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_image_cache() -> FakeImageCache:
    return FakeImageCache()


@pytest.fixture
def image_cache_factory():
    return FakeImageCache


@pytest.fixture
def storage_factory():
    return FakeStorage


@pytest.fixture
def fake_comparator() -> FakeComparator:
    return FakeComparator()


@pytest.fixture
def fake_git_repo() -> FakeGitRepo:
    return FakeGitRepo()


@pytest.fixture
def git_repo_factory():
    return FakeGitRepo


# ============================================================================
# Configuration
# ============================================================================


@pytest.fixture
def workflow_config(tmp_path: Path) -> WorkflowConfig:
    test_dir = tmp_path / "screenshot"
    test_dir.mkdir()
    return WorkflowConfig(
        test_dir=str(test_dir),
        golden_path=str(tmp_path / "golden.json"),
        upload_root=str(tmp_path / "uploads"),
        capture_dir=str(tmp_path / "captures"),
        report_output_dir=str(tmp_path / "reports"),
    )


# ============================================================================
# Manifests, test cases, stores
# ============================================================================


def manifest_from(data: dict) -> Manifest:
    """Build a manifest from `{page: (public_url, {browser: url})}`."""
    return {
        page_id: PageEntry(public_url=public_url, screenshots=dict(screenshots))
        for page_id, (public_url, screenshots) in data.items()
    }


def test_cases_from(manifest: Manifest) -> list[TestCase]:
    """Test cases whose captured screenshots reproduce `manifest`."""
    test_cases = []
    for page_id, page in manifest.items():
        tc = TestCase(html_file=UploadableFile(
            destination_relative_file_path=page_id,
            public_url=page.public_url,
        ))
        for browser_id, url in page.screenshots.items():
            tc.screenshot_image_files.append(UploadableFile(
                destination_relative_file_path=f"{page_id}.{browser_id}.png",
                public_url=url,
                browser_key=browser_id,
            ))
        test_cases.append(tc)
    return test_cases


@pytest.fixture
def make_manifest():
    return manifest_from


@pytest.fixture
def make_test_cases():
    return test_cases_from


@pytest.fixture
def make_store(workflow_config: WorkflowConfig):
    """Factory for a BaselineStore whose golden manifest is `golden`."""

    def _make(golden: Manifest) -> BaselineStore:
        loader = AsyncMock(return_value=golden)
        return BaselineStore(workflow_config, BaselineCache(loader))

    return _make


@pytest.fixture
def golden_json() -> dict:
    return {
        "button/mdc-button.html": {
            "publicUrl": "https://storage.test/golden/button/mdc-button.html",
            "screenshots": {
                "desktop_chrome": "https://storage.test/golden/button/mdc-button.html.desktop_chrome.png",
                "desktop_firefox": "https://storage.test/golden/button/mdc-button.html.desktop_firefox.png",
            },
        },
        "card/mdc-card.html": {
            "publicUrl": "https://storage.test/golden/card/mdc-card.html",
            "screenshots": {
                "desktop_chrome": "https://storage.test/golden/card/mdc-card.html.desktop_chrome.png",
            },
        },
    }


@pytest.fixture
def golden_manifest(golden_json: dict) -> Manifest:
    return parse_manifest(golden_json)
