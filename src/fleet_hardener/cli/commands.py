"""CLI command implementations."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer

from fleet_hardener.cli import app
from fleet_hardener.cli.errors import handle_error

if TYPE_CHECKING:
    from fleet_hardener.core.host import Host
    from fleet_hardener.engine.types import HostReport, ResourceChange, RunReport
    from fleet_hardener.fleet import Fleet

ConfigPath = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to the hardening configuration file."),
]

InventoryPath = Annotated[
    Path,
    typer.Option("--inventory", "-i", help="Path to the inventory file."),
]

Groups = Annotated[
    list[str] | None,
    typer.Option("--group", "-g", help="Inventory group to target (repeatable; default: all)."),
]

NoColor = Annotated[
    bool,
    typer.Option("--no-color", help="Disable colored output."),
]

AutoApprove = Annotated[
    bool,
    typer.Option("--auto-approve", help="Skip the plan preview and interactive approval."),
]


def _use_color(no_color: bool) -> bool:
    """Determine whether to use color output."""
    return not (no_color or os.environ.get("NO_COLOR"))


def _run_with_progress(
    fleet: Fleet, hosts: list[Host], *, timeout: float | None, color: bool
) -> RunReport:
    """Run the fleet with a Rich progress bar that advances per finished host."""
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from fleet_hardener.cli.formatting import format_host_header, progress_label

    console = Console(no_color=not color)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Hardening", total=len(hosts))

        def on_action(change: ResourceChange, event: str) -> None:
            if event == "start":
                progress.update(task, description=progress_label(change))

        def on_host_done(report: HostReport) -> None:
            progress.console.print(format_host_header(report, color=False))
            progress.update(task, description=f"{report.host}: done")
            progress.advance(task)

        return fleet.run(hosts, timeout=timeout, progress=on_action, on_host_done=on_host_done)


def _print_report(report: RunReport, *, color: bool) -> None:
    from fleet_hardener.cli.formatting import format_host_report, format_run_summary

    for host_report in report.hosts:
        typer.echo(format_host_report(host_report, color=color, dry_run=report.dry_run))
        typer.echo()
    typer.echo(format_run_summary(report, color=color))


def _save_report(report: RunReport, out: Path | None) -> None:
    if out is not None:
        report.save(out)
        typer.echo(f"\nReport saved to {out}")


@app.command()
def run(
    config: ConfigPath = Path("fleet-hardener.yaml"),
    inventory: InventoryPath = Path("inventory.yaml"),
    group: Groups = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Probe and plan only; change nothing."),
    ] = False,
    workers: Annotated[
        int | None,
        typer.Option("--workers", min=1, help="Hosts processed in parallel."),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", min=0.0, help="Run timeout in seconds; cancels new actions."),
    ] = None,
    out: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Save the run report as JSON."),
    ] = None,
    no_color: NoColor = False,
    auto_approve: AutoApprove = False,
) -> None:
    """Converge the selected hosts to the declared posture."""
    from fleet_hardener.cli.formatting import has_actionable_changes
    from fleet_hardener.config import load, load_inventory, select_hosts, transport_for
    from fleet_hardener.fleet import Fleet

    color = _use_color(no_color)
    try:
        cfg = load(config)
        inv = load_inventory(inventory)
        hosts = select_hosts(inv, group)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if not hosts:
        typer.echo("No hosts selected.")
        raise typer.Exit(0)

    transport = transport_for(cfg, inv)
    try:
        preview: RunReport | None = None
        if dry_run or not auto_approve:
            preview = Fleet(cfg, transport=transport, workers=workers).run(
                hosts, dry_run=True, timeout=timeout
            )

        if preview is not None and (dry_run or not has_actionable_changes(preview)):
            _print_report(preview, color=color)
            _save_report(preview, out)
            raise typer.Exit(preview.exit_code)

        if preview is not None:
            _print_report(preview, color=color)
            typer.echo()
            try:
                typer.confirm("Do you want to apply these changes?", abort=True)
            except typer.Abort as e:
                typer.echo("Run canceled.", err=True)
                raise typer.Exit(1) from e

        report = _run_with_progress(
            Fleet(cfg, transport=transport, workers=workers), hosts, timeout=timeout, color=color
        )
    except typer.Exit:
        raise
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc
    finally:
        transport.close()

    typer.echo()
    _print_report(report, color=color)
    _save_report(report, out)
    raise typer.Exit(report.exit_code)


@app.command()
def validate(
    config: ConfigPath = Path("fleet-hardener.yaml"),
    no_color: NoColor = False,
) -> None:
    """Validate the configuration file without contacting any host."""
    from fleet_hardener.cli.formatting import styler
    from fleet_hardener.config import default_registry, load
    from fleet_hardener.engine import validate_declaration

    color = _use_color(no_color)
    registry = default_registry()
    total = 0
    try:
        cfg = load(config)
        for group in cfg.groups.values():
            resources = group.resources()
            validate_declaration(resources, registry)
            total += len(resources)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(
        styler(color)(
            f"Configuration is valid ({len(cfg.groups)} group(s), {total} resource(s)).",
            fg="green",
        )
    )


@app.command()
def hosts(
    inventory: InventoryPath = Path("inventory.yaml"),
    group: Groups = None,
    no_color: NoColor = False,
) -> None:
    """List the hosts a run would target."""
    from fleet_hardener.config import load_inventory, select_hosts

    color = _use_color(no_color)
    try:
        selected = select_hosts(load_inventory(inventory), group)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if not selected:
        typer.echo("No hosts selected.")
        return

    width = max(len(h.name) for h in selected)
    for h in selected:
        key = f"  key={h.key_path}" if h.key_path else ""
        typer.echo(f"{h.name.ljust(width)}  {h.user}@{h.address}:{h.port}  [{h.group}]{key}")
