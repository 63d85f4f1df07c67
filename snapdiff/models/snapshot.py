"""Snapshot manifest data structures — the `golden.json` / `snapshot.json` format."""

from __future__ import annotations

import json

from pydantic import BaseModel, ConfigDict, Field


class PageEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    public_url: str = Field(alias="publicUrl")
    screenshots: dict[str, str] = Field(default_factory=dict)
    # key: browser id, value: screenshot image location


# key: page id (html file path relative to the test dir)
Manifest = dict[str, PageEntry]


def parse_manifest(data: dict) -> Manifest:
    """Build a manifest from decoded `golden.json` data."""
    return {page_id: PageEntry.model_validate(page) for page_id, page in data.items()}


def manifest_to_json(manifest: Manifest) -> dict:
    return {page_id: page.model_dump(by_alias=True) for page_id, page in manifest.items()}


def clone_manifest(manifest: Manifest) -> Manifest:
    """Structural copy of a manifest; only the serialized fields are carried over."""
    return {
        page_id: PageEntry(public_url=page.public_url, screenshots=dict(page.screenshots))
        for page_id, page in manifest.items()
    }


def stable_stringify(data: dict) -> str:
    """Serialize with sorted keys and a trailing newline so unchanged data is byte-identical."""
    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def serialize_manifest(manifest: Manifest) -> str:
    return stable_stringify(manifest_to_json(manifest))


def load_manifest_text(text: str) -> Manifest:
    return parse_manifest(json.loads(text))


def screenshot_keys(manifest: Manifest) -> set[tuple[str, str]]:
    """All (page id, browser id) pairs in a manifest."""
    return {
        (page_id, browser_id)
        for page_id, page in manifest.items()
        for browser_id in page.screenshots
    }
