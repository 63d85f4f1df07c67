"""Tests for the snapshot manifest model and its serialization."""

import json

from snapdiff.models.snapshot import (
    PageEntry,
    clone_manifest,
    load_manifest_text,
    manifest_to_json,
    parse_manifest,
    screenshot_keys,
    serialize_manifest,
    stable_stringify,
)


class TestPageEntry:

    def test_parses_public_url_alias(self):
        page = PageEntry.model_validate({"publicUrl": "u1", "screenshots": {"chrome": "img"}})
        assert page.public_url == "u1"
        assert page.screenshots == {"chrome": "img"}

    def test_accepts_field_name(self):
        page = PageEntry(public_url="u1")
        assert page.screenshots == {}

    def test_dumps_with_alias(self):
        page = PageEntry(public_url="u1", screenshots={"chrome": "img"})
        assert page.model_dump(by_alias=True) == {"publicUrl": "u1", "screenshots": {"chrome": "img"}}


class TestCloneManifest:

    def test_clone_is_equal_but_independent(self, golden_manifest):
        clone = clone_manifest(golden_manifest)
        assert clone == golden_manifest

        clone["card/mdc-card.html"].screenshots["desktop_chrome"] = "changed"
        del clone["button/mdc-button.html"]

        assert golden_manifest["card/mdc-card.html"].screenshots["desktop_chrome"] != "changed"
        assert "button/mdc-button.html" in golden_manifest

    def test_clone_of_empty(self):
        assert clone_manifest({}) == {}


class TestSerialization:

    def test_keys_are_sorted_with_trailing_newline(self):
        manifest = {
            "z.html": PageEntry(public_url="z", screenshots={"b": "2", "a": "1"}),
            "a.html": PageEntry(public_url="a", screenshots={}),
        }
        text = serialize_manifest(manifest)
        assert text.endswith("}\n")
        assert text.index('"a.html"') < text.index('"z.html"')
        assert text.index('"a": "1"') < text.index('"b": "2"')
        assert text.index('"publicUrl"') < text.index('"screenshots"')

    def test_insertion_order_does_not_change_output(self, golden_json):
        reversed_json = dict(reversed(list(golden_json.items())))
        assert stable_stringify(golden_json) == stable_stringify(reversed_json)

    def test_round_trip_is_idempotent(self, golden_json):
        first = load_manifest_text(stable_stringify(golden_json))
        text = serialize_manifest(first)
        second = load_manifest_text(text)
        assert second == first
        assert serialize_manifest(second) == text

    def test_manifest_to_json_matches_file_format(self, golden_json, golden_manifest):
        assert manifest_to_json(golden_manifest) == golden_json
        assert json.loads(serialize_manifest(golden_manifest)) == golden_json

    def test_parse_manifest_empty(self):
        assert parse_manifest({}) == {}


class TestScreenshotKeys:

    def test_lists_every_page_browser_pair(self, golden_manifest):
        assert screenshot_keys(golden_manifest) == {
            ("button/mdc-button.html", "desktop_chrome"),
            ("button/mdc-button.html", "desktop_firefox"),
            ("card/mdc-card.html", "desktop_chrome"),
        }
