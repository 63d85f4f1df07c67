"""Diff base resolution — where the golden manifest for this run comes from."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Literal, Union

import httpx
from pydantic import BaseModel, Field

from snapdiff.errors import ConfigurationError, TransportError
from snapdiff.url_utils import is_url, read_location

from .git_repo import GitRepo

logger = logging.getLogger(__name__)


class UrlDiffSource(BaseModel):
    kind: Literal["url"] = "url"
    url: str


class LocalFileDiffSource(BaseModel):
    kind: Literal["local_file"] = "local_file"
    path: str


class GitRevisionDiffSource(BaseModel):
    kind: Literal["git_revision"] = "git_revision"
    commit: str
    snapshot_file_path: str


DiffSource = Annotated[
    Union[UrlDiffSource, LocalFileDiffSource, GitRevisionDiffSource],
    Field(discriminator="kind"),
]


async def parse_diff_base(raw: str, default_golden_path: str, git_repo: GitRepo) -> DiffSource:
    """Resolve a raw diff base: public URL, then local file, then `rev` or `rev:path`."""
    if not raw:
        raise ConfigurationError("Empty diff base: expected a URL, local file path, or git ref")

    if is_url(raw):
        return UrlDiffSource(url=raw)

    if Path(raw).is_file():
        return LocalFileDiffSource(path=raw)

    commit, sep, snapshot_file_path = raw.partition(":")
    if not sep:
        snapshot_file_path = default_golden_path
    if commit and snapshot_file_path and await git_repo.revision_exists(commit):
        return GitRevisionDiffSource(commit=commit, snapshot_file_path=snapshot_file_path)

    raise ConfigurationError(
        f"Unable to parse diff base '{raw}': Expected a URL, local file path, or git ref",
        {"diff_base": raw},
    )


async def fetch_diff_source(source: DiffSource, git_repo: GitRepo) -> str:
    """Read the golden manifest text behind a resolved diff source."""
    try:
        match source:
            case UrlDiffSource(url=url):
                logger.info("Fetching golden manifest from %s", url)
                data = await read_location(url)
            case LocalFileDiffSource(path=path):
                logger.info("Reading golden manifest from %s", path)
                data = await read_location(path)
            case GitRevisionDiffSource(commit=commit, snapshot_file_path=path):
                logger.info("Reading golden manifest %s at revision %s", path, commit)
                data = await git_repo.read_file_at_revision(path, commit)
            case _:
                raise ConfigurationError(f"Unsupported diff source: {source!r}")
    except (httpx.HTTPError, OSError) as e:
        raise TransportError(f"Failed to fetch golden manifest: {e}", {"source": describe(source)}) from e
    return data.decode("utf-8")


def describe(source: DiffSource) -> str:
    match source:
        case UrlDiffSource(url=url):
            return url
        case LocalFileDiffSource(path=path):
            return path
        case GitRevisionDiffSource(commit=commit, snapshot_file_path=path):
            return f"{commit}:{path}"
        case _:
            return repr(source)
