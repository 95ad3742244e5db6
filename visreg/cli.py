"""CLI entry point for the visual regression harness."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from visreg.errors import SinkConfigError
from visreg.models.config import HarnessConfig, VisualTarget
from visreg.orchestrator import EXIT_ABORTED, Orchestrator
from visreg.reporter.reporter import Reporter
from visreg.sinks import ResultSink, load_sinks

console = Console()

DEFAULT_CONFIG = "visreg-config.json"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(path: str) -> HarnessConfig:
    try:
        return HarnessConfig.load(path)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {path}[/red]")
        console.print("Run 'visreg init' to create a default config.")
    except ValidationError as e:
        console.print(f"[red]Invalid config {path}:[/red]\n{e}")
    sys.exit(EXIT_ABORTED)


def _load_sinks(cfg: HarnessConfig) -> list[ResultSink]:
    try:
        return load_sinks(cfg.sinks)
    except SinkConfigError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(EXIT_ABORTED)


def _print_summary(results: dict) -> None:
    counts = results["results"]
    by_status = counts["by_status"]
    title = "[bold red]Run aborted[/bold red]" if results["run_error"] else "[bold green]Run complete[/bold green]"
    console.print(f"\n{title}")
    if results["run_error"]:
        console.print(f"[red]{results['run_error']}[/red]")

    table = Table(title="Visual Regression Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Run ID", results["run_id"])
    table.add_row("Duration", f"{results['duration']}s")
    table.add_row("Total", str(counts["total"]))
    table.add_row("Passed", f"[green]{counts['passed']}[/green]")
    table.add_row("Failed (visual)", f"[red]{by_status.get('failed-visual', 0)}[/red]")
    table.add_row("Failed (layout)", f"[magenta]{by_status.get('failed-layout', 0)}[/magenta]")
    table.add_row("Failed (environment)", f"[yellow]{by_status.get('failed-environment', 0)}[/yellow]")
    table.add_row("Baselines created", f"[blue]{counts['baseline_created']}[/blue]")
    table.add_row("Regressions", str(results["regressions"]))
    console.print(table)

    for fmt, path in results["reports"].items():
        console.print(f"  {fmt.upper()} report: [blue]{path}[/blue]")
    for sink, ok in results["sinks"].items():
        status = "[green]delivered[/green]" if ok else "[red]failed[/red]"
        console.print(f"  Sink {sink}: {status}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression harness"""
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--update-baselines", is_flag=True, help="Replace every baseline with this run's captures")
@click.option("--functional-results", type=click.Path(dir_okay=False), help="Playwright JSON results to include")
@click.option("--load-summary", type=click.Path(dir_okay=False), help="k6 summary JSON to include")
def run(config: str, update_baselines: bool, functional_results: str | None, load_summary: str | None) -> None:
    """Capture every target, compare with baselines and write the report."""
    cfg = _load_config(config)
    orchestrator = Orchestrator(cfg, sinks=_load_sinks(cfg))
    results = orchestrator.run(
        update_baselines=update_baselines,
        functional_results=Path(functional_results) if functional_results else None,
        load_summary=Path(load_summary) if load_summary else None,
    )
    _print_summary(results)
    sys.exit(results["exit_code"])


@cli.command("update-baselines")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.confirmation_option(prompt="Replace all existing baselines with new captures?")
def update_baselines(config: str) -> None:
    """Capture every target and overwrite its baseline."""
    cfg = _load_config(config)
    results = Orchestrator(cfg, sinks=_load_sinks(cfg)).run(update_baselines=True)
    _print_summary(results)
    if results["baselines_written"]:
        console.print(f"[green]Updated {len(results['baselines_written'])} baselines[/green]")
    sys.exit(results["exit_code"])


@cli.command()
@click.argument("json_report", type=click.Path(exists=True, dir_okay=False))
@click.option("--output-dir", "-o", type=click.Path(file_okay=False), default=None,
              help="Where to write the HTML (defaults to the JSON file's directory)")
def report(json_report: str, output_dir: str | None) -> None:
    """Rebuild the HTML report from a saved JSON result file."""
    try:
        generated = Reporter(["html"]).rebuild(Path(json_report), Path(output_dir) if output_dir else None)
    except ValidationError as e:
        console.print(f"[red]Not a visreg result file: {json_report}[/red]\n{e}")
        sys.exit(EXIT_ABORTED)
    console.print(f"[green]HTML report:[/green] [blue]{generated['html']}[/blue]")


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--days", type=int, default=None, help="Override the retention window")
def cleanup(config: str, days: int | None) -> None:
    """Delete run artifacts older than the retention window."""
    cfg = _load_config(config)
    if days is not None:
        cfg = cfg.model_copy(update={"artifact_retention_days": days})
    removed = Orchestrator(cfg).cleanup()
    console.print(f"[green]Removed {len(removed)} old run artifacts[/green]")


@cli.command()
@click.option("--target", "-t", prompt="Target URL", help="Website URL to test")
def init(target: str) -> None:
    """Create a default configuration file."""
    config_path = Path(DEFAULT_CONFIG)
    if config_path.exists():
        if not click.confirm(f"{DEFAULT_CONFIG} already exists. Overwrite?"):
            return

    cfg = HarnessConfig(
        target_url=target,
        targets=[VisualTarget(name="homepage", path="/", full_page=True)],
    )
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nAdd targets to this file, then record baselines with:")
    console.print("  [blue]visreg run[/blue]")


if __name__ == "__main__":
    cli()
