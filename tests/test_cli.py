"""Tests for the command-line interface."""

import json

import pytest
from click.testing import CliRunner

from snapdiff.cli import cli
from snapdiff.models.config import WorkflowConfig
from snapdiff.models.report import ClassifiedReport, ComparisonResult
from snapdiff.models.snapshot import serialize_manifest
from snapdiff.reporter.json_report import generate_report_json


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def approve_setup(tmp_path, make_manifest, make_test_cases):
    """A golden file, a config pointing at it, and a report with one diff and one addition."""
    golden = make_manifest({"a/mdc-a.html": ("https://s/old/a", {"chrome": "https://s/old/a.chrome.png"})})
    actual = make_manifest({"a/mdc-a.html": ("https://s/new/a", {
        "chrome": "https://s/new/a.chrome.png",
        "firefox": "https://s/new/a.firefox.png",
    })})
    report = ClassifiedReport(
        test_cases=make_test_cases(actual),
        diffs=[ComparisonResult(
            page_id="a/mdc-a.html", browser_id="chrome", classification="diff",
            golden_page_url="https://s/old/a", snapshot_page_url="https://s/new/a",
            expected_image_url="https://s/old/a.chrome.png", actual_image_url="https://s/new/a.chrome.png",
        )],
        added=[ComparisonResult(
            page_id="a/mdc-a.html", browser_id="firefox", classification="added",
            snapshot_page_url="https://s/new/a", actual_image_url="https://s/new/a.firefox.png",
        )],
    )

    golden_path = tmp_path / "golden.json"
    golden_path.write_text(serialize_manifest(golden))
    report_path = tmp_path / "report.json"
    report_path.write_text(generate_report_json(report))
    config_path = tmp_path / "snapdiff.json"
    WorkflowConfig(test_dir=str(tmp_path), golden_path=str(golden_path)).save(config_path)
    return {"config": str(config_path), "report": str(report_path), "golden": golden_path}


class TestInit:

    def test_creates_config(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["init", "--test-dir", "pages"])

            assert result.exit_code == 0, result.output
            config = WorkflowConfig.load("snapdiff.json")
            assert config.test_dir == "pages"
            assert config.golden_path == "pages/golden.json"

    def test_keeps_existing_config_when_declined(self, runner):
        with runner.isolated_filesystem():
            with open("snapdiff.json", "w") as f:
                f.write("{}")
            result = runner.invoke(cli, ["init", "--test-dir", "pages"], input="n\n")

            assert result.exit_code == 0
            with open("snapdiff.json") as f:
                assert f.read() == "{}"


class TestApprove:

    def test_missing_config(self, runner, tmp_path):
        result = runner.invoke(cli, ["approve", "-r", "report.json", "-c", str(tmp_path / "nope.json")])
        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_invalid_config_exits_with_error(self, runner, tmp_path):
        config_path = tmp_path / "snapdiff.json"
        config_path.write_text('{"include_url_patterns": ["("]}')

        result = runner.invoke(cli, ["approve", "-r", "report.json", "-c", str(config_path)])

        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "Invalid config file" in result.output

    def test_report_is_required(self, runner, approve_setup):
        result = runner.invoke(cli, ["approve", "-c", approve_setup["config"]])
        assert result.exit_code == 2

    def test_malformed_approval_arg(self, runner, approve_setup):
        result = runner.invoke(cli, [
            "approve", "-r", approve_setup["report"], "-c", approve_setup["config"],
            "--approve-diff", "no-browser-id",
        ])
        assert result.exit_code == 2
        assert "no-browser-id" in result.output

    def test_approve_everything(self, runner, approve_setup):
        result = runner.invoke(cli, ["approve", "-r", approve_setup["report"], "-c", approve_setup["config"]])

        assert result.exit_code == 0, result.output
        golden = json.loads(approve_setup["golden"].read_text())
        assert golden == {
            "a/mdc-a.html": {
                "publicUrl": "https://s/new/a",
                "screenshots": {
                    "chrome": "https://s/new/a.chrome.png",
                    "firefox": "https://s/new/a.firefox.png",
                },
            },
        }

    def test_approve_selected(self, runner, approve_setup):
        result = runner.invoke(cli, [
            "approve", "-r", approve_setup["report"], "-c", approve_setup["config"],
            "--approve-add", "a/mdc-a.html:firefox",
        ])

        assert result.exit_code == 0, result.output
        golden = json.loads(approve_setup["golden"].read_text())
        assert golden["a/mdc-a.html"] == {
            "publicUrl": "https://s/old/a",
            "screenshots": {
                "chrome": "https://s/old/a.chrome.png",
                "firefox": "https://s/new/a.firefox.png",
            },
        }

    def test_unknown_entry_exits_with_error(self, runner, approve_setup):
        before = approve_setup["golden"].read_text()
        result = runner.invoke(cli, [
            "approve", "-r", approve_setup["report"], "-c", approve_setup["config"],
            "--approve-remove", "a/mdc-a.html:safari",
        ])

        assert result.exit_code == 1
        assert "not in the report" in result.output
        assert approve_setup["golden"].read_text() == before
