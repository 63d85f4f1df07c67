"""Storage collaborator that publishes uploaded files at a public location."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Protocol

from snapdiff.models.report import UploadableFile

logger = logging.getLogger(__name__)


class Storage(Protocol):
    async def upload_file(self, file: UploadableFile) -> UploadableFile: ...


def generate_unique_upload_dir() -> str:
    """Timestamped directory name so concurrent runs never overwrite each other."""
    return f"{time.strftime('%Y/%m/%d/%H_%M_%S')}_{uuid.uuid4().hex[:8]}"


class LocalStorage:
    """Copies files under a local root; public URLs come from `public_base_url` or `file://` URIs."""

    def __init__(self, upload_root: str | Path, public_base_url: str | None = None):
        self.upload_root = Path(upload_root)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def public_url_for(self, destination_path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{destination_path}"
        return (self.upload_root / destination_path).resolve().as_uri()

    async def upload_file(self, file: UploadableFile) -> UploadableFile:
        dest = self.upload_root / file.destination_path
        logger.debug("Uploading [%d/%d] %s", file.queue_index + 1, file.queue_length, file.destination_path)
        await asyncio.to_thread(self._write, dest, file.file_content)
        file.public_url = self.public_url_for(file.destination_path)
        return file

    @staticmethod
    def _write(dest: Path, content: bytes) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(content)
