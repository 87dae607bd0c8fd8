"""
Main application entry point for LeadLens.

Provides the CLI for single and bulk lead analyses.
"""

import json
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.table import Table

from leadlens.core.config import get_settings, print_configuration_summary, validate_required_settings
from leadlens.core.exceptions import ConfigurationError, LeadLensError
from leadlens.core.logging import set_correlation_id, setup_logging
from leadlens.core.models import BusinessRecord, ProfileRecord, Tier
from leadlens.intelligence.analysis_pipeline import AnalysisOrchestrator
from leadlens.intelligence.bulk_analysis import BulkAnalysisReport, BulkAnalysisRunner
from leadlens.intelligence.stage_models import STAGE_MODELS, stage_json_schema
from leadlens.services.billing import build_credit_charge

console = Console()

TIER_CHOICE = click.Choice(Tier.values(), case_sensitive=False)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines instead of rich output")
@click.option("--correlation-id", help="Set correlation ID for request tracing")
@click.pass_context
def main(ctx, debug: bool, json_logs: bool, correlation_id: Optional[str]):
    """Multi-stage AI lead analysis.

    Scores social profiles against a business's ideal-customer description
    with triage, optional preprocessing and a tiered main analysis.
    """
    ctx.ensure_object(dict)

    setup_logging(debug=debug, rich_output=not (json_logs or get_settings().log_json))

    if correlation_id:
        set_correlation_id(correlation_id)

    ctx.obj["debug"] = debug
    ctx.obj["correlation_id"] = correlation_id


@main.command()
@click.argument("profile_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("business_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--tier", type=TIER_CHOICE, default=Tier.LIGHT.value, show_default=True)
@click.option("--request-id", help="Request id for the run (generated if omitted)")
@click.pass_context
def analyze(ctx, profile_json: Path, business_json: Path, tier: str, request_id: Optional[str]):
    """Analyze one profile for one business."""
    try:
        _require_configuration()
        profile = ProfileRecord.model_validate(_load_json(profile_json))
        business = BusinessRecord.model_validate(_load_json(business_json))

        orchestrator = AnalysisOrchestrator(get_settings())
        result = orchestrator.run(profile, business, tier, request_id=request_id or ctx.obj["correlation_id"])

        output = result.to_dict()
        charge = build_credit_charge(result)
        output["charge"] = charge.to_dict() if charge else None
        click.echo(json.dumps(output, indent=2))

        sys.exit(0 if result.succeeded else 1)

    except ConfigurationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        sys.exit(1)
    except (LeadLensError, ValueError) as e:
        console.print(f"[red]Input Error:[/red] {e}")
        sys.exit(1)


@main.command()
@click.argument("profiles_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("business_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--tier", type=TIER_CHOICE, default=Tier.LIGHT.value, show_default=True)
@click.option("--batch-size", type=int, help="Concurrent analyses per group (default from config)")
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), help="Write the full report as JSON")
@click.pass_context
def bulk(
    ctx,
    profiles_json: Path,
    business_json: Path,
    tier: str,
    batch_size: Optional[int],
    output: Optional[Path],
):
    """Analyze a JSON list of profiles for one business."""
    try:
        _require_configuration()
        raw_profiles = _load_json(profiles_json)
        if not isinstance(raw_profiles, list):
            raise click.BadParameter("expected a JSON list of profiles", param_hint="PROFILES_JSON")
        profiles = [ProfileRecord.model_validate(item) for item in raw_profiles]
        business = BusinessRecord.model_validate(_load_json(business_json))

        settings = get_settings()
        runner = BulkAnalysisRunner.from_config(AnalysisOrchestrator(settings), settings.bulk)
        if batch_size:
            runner.batch_size = batch_size

        console.print(f"[blue]Analyzing {len(profiles)} profiles ({tier})[/blue]")
        report = runner.run(
            profiles,
            business,
            tier,
            request_id=ctx.obj["correlation_id"],
            progress=lambda done, total: console.print(f"  {done}/{total} complete"),
        )

        _display_bulk_report(report)
        if output:
            output.write_text(json.dumps(report.to_dict(), indent=2))
            console.print(f"[blue]Report written:[/blue] {output}")

        sys.exit(0 if report.errors == 0 else 1)

    except ConfigurationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        sys.exit(1)
    except (LeadLensError, ValueError) as e:
        console.print(f"[red]Input Error:[/red] {e}")
        sys.exit(1)


@main.command()
@click.argument("stage", required=False, type=click.Choice(sorted(STAGE_MODELS)))
def schemas(stage: Optional[str]):
    """Print the strict JSON Schemas of the stage outputs."""
    stages = [stage] if stage else sorted(STAGE_MODELS)
    payload = {name: stage_json_schema(name) for name in stages}
    click.echo(json.dumps(payload if not stage else payload[stage], indent=2))


@main.command()
def config():
    """Display current configuration."""
    try:
        console.print("[blue]LeadLens Configuration[/blue]")

        missing = validate_required_settings()
        if missing:
            console.print("[red]Configuration Issues:[/red]")
            for item in missing:
                console.print(f"  • Missing: {item}")
            console.print()
        else:
            console.print("[green]Configuration Valid[/green]")
            console.print()

        print_configuration_summary()

        sys.exit(0 if not missing else 1)

    except Exception as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        sys.exit(1)


def _require_configuration() -> None:
    missing = validate_required_settings("analysis")
    if missing:
        raise ConfigurationError(f"Missing: {', '.join(missing)}")


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"{path} is not valid JSON: {e}") from e


def _display_bulk_report(report: BulkAnalysisReport):
    """Display bulk results in a formatted table."""
    table = Table(title=f"Bulk Analysis ({report.tier})")
    table.add_column("#", style="dim")
    table.add_column("Username", style="cyan")
    table.add_column("Verdict")
    table.add_column("Score", justify="right")
    table.add_column("Stages")
    table.add_column("Cost (USD)", justify="right")
    table.add_column("Time (ms)", justify="right")

    for index, result in enumerate(report.results):
        verdict_style = "green" if result.succeeded else "red"
        table.add_row(
            str(index),
            f"@{result.username}",
            f"[{verdict_style}]{result.verdict.value}[/{verdict_style}]",
            str(result.result.score) if result.result else "-",
            "+".join(result.total_cost.stages) or "-",
            str(result.total_cost.actual_cost),
            str(result.performance.total_ms),
        )

    console.print(table)
    console.print(
        f"Successful: {report.successful}  Errors: {report.errors}  "
        f"Total cost: ${report.total_cost}  Credits: {report.credits_charged}"
    )

    for index, result in enumerate(report.results):
        if result.error:
            console.print(f"[red]#{index} @{result.username}:[/red] {result.error}")


if __name__ == "__main__":
    main()
