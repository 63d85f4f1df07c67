"""CLI entry point for the screenshot workflow."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from snapdiff.controller import Controller
from snapdiff.errors import SnapdiffError
from snapdiff.models.config import WorkflowConfig
from snapdiff.models.report import ApprovalFilters

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(config: str) -> WorkflowConfig:
    try:
        return WorkflowConfig.load(config)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {config}[/red]")
        console.print("Run 'snapdiff init' to create a default config.")
        sys.exit(1)
    except SnapdiffError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Screenshot golden-baseline testing workflow"""
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default="snapdiff.json", help="Config file path")
@click.option("--diff-base", default=None, help="Golden manifest: URL, local file, or git 'rev[:path]'")
def test(config: str, diff_base: str | None) -> None:
    """Upload test pages, capture screenshots, diff against golden, publish a report."""
    cfg = _load_config(config)
    if diff_base is not None:
        cfg.diff_base = diff_base

    try:
        results = Controller(cfg).run_full_pipeline()
    except SnapdiffError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    console.print("\n[bold green]Screenshot Run Complete[/bold green]")
    table = Table(title="Results Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Upload Dir", results["upload_dir"])
    table.add_row("Duration", f"{results['duration']}s")
    table.add_row("Test Pages", str(results["results"]["test_pages"]))
    table.add_row("Diffs", f"[red]{results['results']['diffs']}[/red]")
    table.add_row("Added", f"[yellow]{results['results']['added']}[/yellow]")
    table.add_row("Removed", f"[yellow]{results['results']['removed']}[/yellow]")
    table.add_row("Unchanged", f"[green]{results['results']['unchanged']}[/green]")
    console.print(table)

    for name in ("html", "json", "snapshot"):
        console.print(f"  {name.upper()} report: [blue]{results['reports'][name]}[/blue]")


@cli.command()
@click.option("--report", "-r", "report_location", required=True, help="URL or path of report.json")
@click.option("--approve-diff", multiple=True, metavar="PAGE:BROWSER", help="Approve one diff")
@click.option("--approve-add", multiple=True, metavar="PAGE:BROWSER", help="Approve one added screenshot")
@click.option("--approve-remove", multiple=True, metavar="PAGE:BROWSER", help="Approve one removed screenshot")
@click.option("--config", "-c", default="snapdiff.json", help="Config file path")
def approve(
    report_location: str,
    approve_diff: tuple[str, ...],
    approve_add: tuple[str, ...],
    approve_remove: tuple[str, ...],
    config: str,
) -> None:
    """Merge approved changes from a report into the golden manifest.

    Without --approve-* options every change in the report is approved.
    """
    cfg = _load_config(config)
    try:
        filters = ApprovalFilters.from_args(approve_diff, approve_add, approve_remove)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    try:
        manifest = Controller(cfg).run_approve(report_location, None if filters.is_empty() else filters)
    except SnapdiffError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    console.print(f"[green]Updated {cfg.golden_path}[/green] ({len(manifest)} pages)")


@cli.command()
@click.option("--test-dir", "-t", prompt="Test page directory", help="Directory holding the test pages")
def init(test_dir: str) -> None:
    """Create a default configuration file."""
    config_path = Path("snapdiff.json")
    if config_path.exists():
        if not click.confirm("snapdiff.json already exists. Overwrite?"):
            return

    cfg = WorkflowConfig(test_dir=test_dir, golden_path=str(Path(test_dir) / "golden.json"))
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nYou can now customize this file and run:")
    console.print("  [blue]snapdiff test[/blue]")


if __name__ == "__main__":
    cli()
