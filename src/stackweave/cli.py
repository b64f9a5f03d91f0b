"""
stackweave CLI.

Commands for synthesizing the topology into a provisioning plan:

    stackweave synth    # Synthesize and write template/plan files
    stackweave plan     # Preview the intent list
    stackweave status   # Show the effective configuration
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ._version import get_version
from .assembler import TopologyAssembler
from .config import DEFAULT_CONFIG_FILE, TopologyConfig, load_topology_config
from .errors import SynthesisAborted
from .intents import SynthesisPlan
from .report import ReportGenerator, SynthesisReport, generate_report

app = typer.Typer(
    help="Assemble a multi-tier web topology into a provisioning plan",
    no_args_is_help=True,
)

console = Console()

ConfigOption = Annotated[
    Path,
    typer.Option(
        "--config",
        "-c",
        help="Path to stackweave.toml",
        dir_okay=False,
    ),
]


def version_callback(value: bool) -> None:
    if value:
        console.print(f"stackweave {get_version()}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    log_level: Annotated[
        str,
        typer.Option("--log-level", "-l", help="Logging level (DEBUG, INFO, WARNING)"),
    ] = os.getenv("LOG_LEVEL", "WARNING"),
) -> None:
    """stackweave CLI main callback for global options."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load_config(config_path: Path, timeout: float | None = None) -> TopologyConfig:
    try:
        config = load_topology_config(config_path)
    except ValueError as e:
        console.print(f"[red]Invalid configuration in {config_path}:[/red]\n{e}")
        raise typer.Exit(1)
    if timeout is not None:
        config.dns.validation_timeout_seconds = timeout
    return config


def _synthesize(config: TopologyConfig) -> tuple[SynthesisPlan | None, SynthesisReport]:
    """Run a pass and wrap the outcome in a report; never raises on topology errors."""
    try:
        with console.status("Synthesizing topology..."):
            plan = TopologyAssembler(config).synthesize()
    except SynthesisAborted as e:
        report = SynthesisReport.from_error(
            e,
            name=config.name,
            region=config.environment.region,
            account=config.environment.account,
        )
        return None, report
    return plan, SynthesisReport.from_plan(plan)


def _print_failure(report: SynthesisReport) -> None:
    failure = report.failure
    if failure is None:
        return
    body = f"[red]{failure.message}[/red]\n\nCode: [bold]{failure.code}[/bold]"
    if failure.node_id:
        body += f"\nNode: [cyan]{failure.node_id}[/cyan]"
    console.print(Panel(body, title="Synthesis aborted", border_style="red"))


@app.command(name="synth")
def synth_command(
    config_path: ConfigOption = Path(DEFAULT_CONFIG_FILE),
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Output directory for the template and plan"),
    ] = Path("stackweave.out"),
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Certificate validation deadline in seconds"),
    ] = None,
    report_format: Annotated[
        str,
        typer.Option("--report", "-r", help="Report format(s): json, md, both or none"),
    ] = "none",
) -> None:
    """
    Synthesize the topology and write the provisioning plan.

    Writes template.json (CloudFormation) and plan.json (ordered intents).
    Nothing is written when the pass aborts.

    Example:
        stackweave synth --config ./stackweave.toml --output ./out
    """
    console.print("\n[bold]stackweave[/bold] - Synthesizing topology\n")
    config = _load_config(config_path, timeout)
    console.print(f"  Name: [cyan]{config.name}[/cyan]")
    console.print(f"  Region: [blue]{config.environment.region}[/blue]")
    console.print(f"  Domain: {config.dns.fqdn}")
    console.print()

    plan, report = _synthesize(config)

    formats = {"json": ["json"], "md": ["md"], "both": ["json", "md"]}.get(report_format, [])

    if plan is None:
        _print_failure(report)
        if formats:
            paths = generate_report(report, output / "reports", formats)
            for path in paths.values():
                console.print(f"  Report: {path}")
        raise typer.Exit(1)

    output.mkdir(parents=True, exist_ok=True)
    template_path = output / "template.json"
    plan_path = output / "plan.json"
    template_path.write_text(json.dumps(plan.to_template(), indent=2))
    plan_path.write_text(plan.to_json())

    written = [template_path, plan_path]
    if formats:
        written.extend(generate_report(report, output / "reports", formats).values())

    console.print(
        Panel(
            f"[green]Synthesized {len(plan)} intents[/green]\n\n"
            f"Output: [cyan]{output}[/cyan]\n"
            f"Files: {', '.join(p.name for p in written)}",
            title="Success",
        )
    )


@app.command(name="plan")
def plan_command(
    config_path: ConfigOption = Path(DEFAULT_CONFIG_FILE),
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Certificate validation deadline in seconds"),
    ] = None,
    markdown: Annotated[
        bool,
        typer.Option("--markdown", "-m", help="Print the Markdown report instead of tables"),
    ] = False,
) -> None:
    """
    Preview the ordered intent list without writing files.
    """
    config = _load_config(config_path, timeout)
    plan, report = _synthesize(config)

    if markdown:
        console.print(ReportGenerator(report).generate_markdown(), markup=False)
        if plan is None:
            raise typer.Exit(1)
        return

    if plan is None:
        _print_failure(report)
        raise typer.Exit(1)

    console.print(f"\n[bold]Plan:[/bold] [cyan]{plan.name}[/cyan]\n")

    table = Table(title="Resource Intents")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Logical ID", style="cyan")
    table.add_column("Type")
    table.add_column("Node", style="green")
    for index, intent in enumerate(plan.intents, start=1):
        table.add_row(str(index), intent.logical_id, intent.type, intent.node_id)
    console.print(table)
    console.print()

    summary = Table(title="Summary")
    summary.add_column("Resource Type", style="cyan")
    summary.add_column("Count", justify="right")
    for resource_type, count in plan.summary().items():
        summary.add_row(resource_type, str(count))
    console.print(summary)


@app.command(name="status")
def status_command(
    config_path: ConfigOption = Path(DEFAULT_CONFIG_FILE),
) -> None:
    """
    Show the effective configuration after environment overrides.
    """
    console.print("\n[bold]stackweave[/bold] - Status\n")

    if config_path.exists():
        console.print(f"  [green]✓[/green] Configuration: {config_path}")
    else:
        console.print("  [yellow]○[/yellow] Configuration: Not found (using defaults)")
    config = _load_config(config_path)
    console.print()

    table = Table(title=f"Topology: {config.name}")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Account", config.environment.account or "-")
    table.add_row("Region", config.environment.region)
    table.add_row("Availability zones", ", ".join(config.zone_names()))
    table.add_row("VPC CIDR", config.network.vpc_cidr)
    table.add_row("Instance class", config.compute.instance_class)
    table.add_row(
        "Capacity", f"{config.compute.min_capacity} - {config.compute.max_capacity}"
    )
    table.add_row(
        "Database",
        f"{config.database.engine.value} {config.database.engine_version} "
        f"({config.database.instance_class})",
    )
    table.add_row("Multi-AZ", "Yes" if config.database.multi_az else "No")
    table.add_row("Domain", config.dns.fqdn)
    table.add_row("Validation", config.dns.validation_method.value)
    console.print(table)
    console.print()

    zones = config.dns.hosted_zones
    if zones:
        console.print("[bold]Hosted zones:[/bold]")
        for name, zone_id in zones.items():
            console.print(f"  - {name}: {zone_id}")
    else:
        console.print("  [yellow]○[/yellow] No hosted zones configured; DNS binding will fail")


def main() -> None:
    app(standalone_mode=True)


if __name__ == "__main__":
    main()
