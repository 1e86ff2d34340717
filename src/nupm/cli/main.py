"""CLI entry point for nupm.

Invoked as::

    nupm [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m nupm.cli.main

Commands
--------
- ``version``      Show version information.
- ``catalog``      Refresh and list the package catalog.
- ``resolve``      Show the install order for a package.
- ``install``      Queue a package and its missing dependencies, then run the queue.
- ``uninstall``    Queue removal of a package, then run the queue.
- ``queue``        Show, run or clear the persisted install queue.
- ``updates``      Show the update state of installed catalog packages.
- ``check-deps``   Flag dependency versions that look like URLs or archives.
- ``sources``      List, add or remove extra package sources.
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from nupm.config import DEFAULT_SETTINGS_FILE, NupmSettings, load_settings, save_settings

console = Console()


def _make_fetcher(settings: NupmSettings):
    """Return the descriptor fetcher used by network-facing commands."""
    from nupm.catalog.fetcher import MetadataFetcher

    return MetadataFetcher(settings=settings)


def _settings_path(ctx: click.Context) -> Path:
    return ctx.obj["settings_path"]


def _load(ctx: click.Context) -> NupmSettings:
    try:
        return load_settings(_settings_path(ctx))
    except ValueError as exc:
        console.print(f"[red]Settings error:[/red] {exc}")
        sys.exit(1)


def _report_queue_events(manager) -> None:
    events = manager.sequencer.events
    events.on_started.append(
        lambda op: console.print(f"  [cyan]>[/cyan] {op.kind.value} {op.label}")
    )
    events.on_succeeded.append(
        lambda op: console.print(f"  [green]ok[/green] {op.label}")
    )
    events.on_failed.append(
        lambda op, error: console.print(f"  [red]failed[/red] {op.label}: {error}")
    )


async def _drain(manager, timeout: float | None) -> bool:
    """Run the queue to completion.  Returns False if any operation failed."""
    from nupm.queue.operations import OperationState

    _report_queue_events(manager)
    await manager.sequencer.drain(timeout=timeout)
    if manager.resnapshot_task is not None:
        await manager.resnapshot_task
    return not any(
        record.state == OperationState.FAILED for record in manager.sequencer.history
    )


@click.group()
@click.version_option(package_name="nupm")
@click.option(
    "--project-dir",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Project root containing the Packages folder.",
)
@click.option(
    "--settings",
    "settings_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Settings file. Default: <project-dir>/{DEFAULT_SETTINGS_FILE}.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, project_dir: Path, settings_file: Path | None, verbose: bool) -> None:
    """Git-sourced package manager for editor projects"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["project_dir"] = project_dir
    ctx.obj["settings_path"] = settings_file or project_dir / DEFAULT_SETTINGS_FILE


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from nupm import __version__

    console.print(f"[bold]nupm[/bold] v{__version__}")


# ---------------------------------------------------------------------------
# catalog
# ---------------------------------------------------------------------------


@cli.command(name="catalog")
@click.option("--search", "-s", default="", help="Only show packages matching this text.")
@click.option("--json-output", is_flag=True, default=False, help="Output results as JSON.")
@click.pass_context
def catalog_command(ctx: click.Context, search: str, json_output: bool) -> None:
    """Refresh the catalog from every registry entry and list it.

    Examples:

    \b
        nupm catalog
        nupm catalog --search signal
    """
    from nupm.manager import build_manager

    settings = _load(ctx)

    async def _run():
        async with _make_fetcher(settings) as fetcher:
            manager = build_manager(ctx.obj["project_dir"], settings, fetcher=fetcher)
            catalog = await manager.refresh_catalog()
            await manager.refresh_installed()
            return manager, catalog.search(search)

    manager, packages = asyncio.run(_run())

    if json_output:
        output = [
            {
                "identity": package.identity,
                "display_name": package.display_name,
                "version": package.version,
                "source_locator": package.source_locator,
                "dependencies": list(package.dependencies),
                "latest_revision": package.latest_revision,
                "installed": manager.is_installed(package.identity),
            }
            for package in packages
        ]
        console.print_json(json.dumps(output, indent=2))
        return

    if not packages:
        console.print("[yellow]No packages found.[/yellow]")
        return

    table = Table(title="Package Catalog", show_header=True)
    table.add_column("Package", style="cyan")
    table.add_column("Identity")
    table.add_column("Version", style="yellow")
    table.add_column("Installed")
    for package in packages:
        installed = "[green]yes[/green]" if manager.is_installed(package.identity) else ""
        table.add_row(package.display_name, package.identity, package.version, installed)
    console.print(table)


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------


@cli.command(name="resolve")
@click.argument("target")
@click.option("--json-output", is_flag=True, default=False, help="Output results as JSON.")
@click.pass_context
def resolve_command(ctx: click.Context, target: str, json_output: bool) -> None:
    """Show the install order for TARGET (identity or source locator)."""
    from nupm.errors import NupmError
    from nupm.manager import build_manager

    settings = _load(ctx)

    async def _run():
        async with _make_fetcher(settings) as fetcher:
            manager = build_manager(ctx.obj["project_dir"], settings, fetcher=fetcher)
            await manager.refresh_catalog()
            await manager.refresh_installed()
            return manager.plan_install(target)

    try:
        plan = asyncio.run(_run())
    except NupmError as exc:
        console.print(f"[red]Resolve error:[/red] {exc}")
        sys.exit(1)

    missing = {package.identity for package in plan.missing}
    if json_output:
        output = {
            "root": plan.root.identity,
            "order": [package.identity for package in plan.order],
            "missing": [package.identity for package in plan.missing],
        }
        console.print_json(json.dumps(output, indent=2))
        return

    table = Table(title=f"Install order for {plan.root.display_name}", show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Identity", style="cyan")
    table.add_column("Version", style="yellow")
    table.add_column("Status")
    for index, package in enumerate(plan.order, start=1):
        status = "[yellow]missing[/yellow]" if package.identity in missing else "[green]installed[/green]"
        table.add_row(str(index), package.identity, package.version, status)
    console.print(table)


# ---------------------------------------------------------------------------
# install / uninstall
# ---------------------------------------------------------------------------


@cli.command(name="install")
@click.argument("target")
@click.option("--no-wait", is_flag=True, default=False, help="Only queue; do not run the queue.")
@click.option(
    "--timeout",
    default=900.0,
    type=float,
    show_default=True,
    help="Give up waiting for the queue after this many seconds.",
)
@click.pass_context
def install_command(ctx: click.Context, target: str, no_wait: bool, timeout: float) -> None:
    """Install TARGET and any missing dependencies, dependencies first."""
    from nupm.errors import NupmError
    from nupm.manager import build_manager

    settings = _load(ctx)

    async def _run():
        async with _make_fetcher(settings) as fetcher:
            manager = build_manager(ctx.obj["project_dir"], settings, fetcher=fetcher)
            await manager.refresh_catalog()
            await manager.refresh_installed()
            plan = manager.install(target)
            if plan.missing and not no_wait:
                console.print(f"[bold]Installing {len(plan.missing)} package(s)[/bold]")
                return plan, await _drain(manager, timeout)
            return plan, True

    try:
        plan, ok = asyncio.run(_run())
    except NupmError as exc:
        console.print(f"[red]Install error:[/red] {exc}")
        sys.exit(1)

    if not plan.missing:
        console.print(f"[green]{plan.root.display_name} is already installed.[/green]")
    elif no_wait:
        console.print(f"Queued {len(plan.missing)} operation(s).")
    sys.exit(0 if ok else 1)


@cli.command(name="uninstall")
@click.argument("identity")
@click.option("--no-wait", is_flag=True, default=False, help="Only queue; do not run the queue.")
@click.option("--timeout", default=300.0, type=float, show_default=True)
@click.pass_context
def uninstall_command(ctx: click.Context, identity: str, no_wait: bool, timeout: float) -> None:
    """Remove IDENTITY from the project."""
    from nupm.errors import NupmError
    from nupm.manager import build_manager

    settings = _load(ctx)

    async def _run():
        manager = build_manager(ctx.obj["project_dir"], settings)
        await manager.refresh_installed()
        if not manager.is_installed(identity):
            console.print(f"[yellow]{identity} is not installed.[/yellow]")
            return True
        manager.uninstall(identity)
        if no_wait:
            console.print("Queued 1 operation.")
            return True
        return await _drain(manager, timeout)

    try:
        ok = asyncio.run(_run())
    except NupmError as exc:
        console.print(f"[red]Uninstall error:[/red] {exc}")
        sys.exit(1)
    sys.exit(0 if ok else 1)


# ---------------------------------------------------------------------------
# queue
# ---------------------------------------------------------------------------


@cli.group(name="queue")
def queue_group() -> None:
    """Inspect or manage the persisted install queue."""


@queue_group.command(name="show")
@click.option("--json-output", is_flag=True, default=False, help="Output results as JSON.")
@click.pass_context
def queue_show_command(ctx: click.Context, json_output: bool) -> None:
    """List queued operations in execution order."""
    from nupm.manager import build_manager

    manager = build_manager(ctx.obj["project_dir"], _load(ctx))
    pending = manager.sequencer.pending()

    if json_output:
        console.print_json(
            json.dumps([operation.model_dump(mode="json") for operation in pending], indent=2)
        )
        return
    if not pending:
        console.print("Install queue is empty.")
        return

    table = Table(title="Install Queue", show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Operation", style="cyan")
    table.add_column("Package")
    table.add_column("Source")
    for index, operation in enumerate(pending, start=1):
        table.add_row(
            str(index), operation.kind.value, operation.label, operation.source_locator or "-"
        )
    console.print(table)


@queue_group.command(name="run")
@click.option("--timeout", default=900.0, type=float, show_default=True)
@click.pass_context
def queue_run_command(ctx: click.Context, timeout: float) -> None:
    """Run every queued operation."""
    from nupm.errors import NupmError
    from nupm.manager import build_manager

    settings = _load(ctx)

    async def _run():
        async with _make_fetcher(settings) as fetcher:
            manager = build_manager(ctx.obj["project_dir"], settings, fetcher=fetcher)
            if not manager.sequencer.is_busy:
                console.print("Install queue is empty.")
                return True
            # Git installs are recorded under the identity the catalog knows.
            await manager.refresh_catalog()
            return await _drain(manager, timeout)

    try:
        ok = asyncio.run(_run())
    except NupmError as exc:
        console.print(f"[red]Queue error:[/red] {exc}")
        sys.exit(1)
    sys.exit(0 if ok else 1)


@queue_group.command(name="clear")
@click.pass_context
def queue_clear_command(ctx: click.Context) -> None:
    """Drop every queued operation."""
    from nupm.manager import build_manager

    manager = build_manager(ctx.obj["project_dir"], _load(ctx))
    count = len(manager.sequencer.pending())
    manager.sequencer.clear()
    console.print(f"Cleared {count} queued operation(s).")


# ---------------------------------------------------------------------------
# updates
# ---------------------------------------------------------------------------


@cli.command(name="updates")
@click.option("--json-output", is_flag=True, default=False, help="Output results as JSON.")
@click.pass_context
def updates_command(ctx: click.Context, json_output: bool) -> None:
    """Compare installed catalog packages with the catalog."""
    from nupm.manager import build_manager
    from nupm.updates.detector import UpdateState

    settings = _load(ctx)

    async def _run():
        async with _make_fetcher(settings) as fetcher:
            manager = build_manager(ctx.obj["project_dir"], settings, fetcher=fetcher)
            await manager.refresh_catalog()
            await manager.refresh_installed()
            return manager, manager.update_states()

    manager, states = asyncio.run(_run())

    if json_output:
        console.print_json(
            json.dumps({identity: state.value for identity, state in states.items()}, indent=2)
        )
        return
    if not states:
        console.print("No catalog packages are installed.")
        return

    styles = {
        UpdateState.UP_TO_DATE: "[green]up to date[/green]",
        UpdateState.UPDATE_AVAILABLE: "[yellow]update available[/yellow]",
        UpdateState.UNKNOWN: "[dim]unknown[/dim]",
    }
    table = Table(title="Updates", show_header=True)
    table.add_column("Identity", style="cyan")
    table.add_column("Installed")
    table.add_column("Catalog")
    table.add_column("State")
    for identity, state in states.items():
        record = manager.installed[identity.lower()]
        package = manager.catalog.get(identity)
        table.add_row(identity, record.version, package.version, styles[state])
    console.print(table)


# ---------------------------------------------------------------------------
# check-deps
# ---------------------------------------------------------------------------


@cli.command(name="check-deps")
@click.argument("locator")
@click.pass_context
def check_deps_command(ctx: click.Context, locator: str) -> None:
    """Warn when LOCATOR's descriptor pins a dependency to a non-version."""
    from nupm.updates.advisory import find_suspicious_dependency_version

    settings = _load(ctx)

    async def _run():
        async with _make_fetcher(settings) as fetcher:
            return await find_suspicious_dependency_version(locator, fetcher)

    finding = asyncio.run(_run())
    if finding is None:
        console.print("[green]All dependency versions look like versions.[/green]")
        return
    console.print(
        f"[yellow]Warning:[/yellow] dependency [bold]{finding}[/bold] is not a version; "
        "the package descriptor may be stale."
    )


# ---------------------------------------------------------------------------
# sources
# ---------------------------------------------------------------------------


@cli.group(name="sources")
def sources_group() -> None:
    """Manage extra package source locators."""


@sources_group.command(name="list")
@click.pass_context
def sources_list_command(ctx: click.Context) -> None:
    """List user-added sources."""
    settings = _load(ctx)
    if not settings.sources:
        console.print("No extra sources configured.")
        return
    for source in settings.sources:
        console.print(f"  {source}")


@sources_group.command(name="add")
@click.argument("locator")
@click.pass_context
def sources_add_command(ctx: click.Context, locator: str) -> None:
    """Add LOCATOR to the extra sources."""
    from nupm.catalog.fetcher import is_source_locator

    if not is_source_locator(locator):
        console.print(f"[red]Error:[/red] unsupported source locator {locator!r}")
        sys.exit(1)
    settings = _load(ctx)
    if not settings.add_source(locator):
        console.print(f"[yellow]{locator.strip()} is already listed.[/yellow]")
        return
    path = save_settings(settings, _settings_path(ctx))
    console.print(f"[green]Added[/green] {locator.strip()} to {path}")


@sources_group.command(name="remove")
@click.argument("locator")
@click.pass_context
def sources_remove_command(ctx: click.Context, locator: str) -> None:
    """Remove LOCATOR from the extra sources."""
    settings = _load(ctx)
    if not settings.remove_source(locator):
        console.print(f"[red]Error:[/red] {locator.strip()} is not listed.")
        sys.exit(1)
    path = save_settings(settings, _settings_path(ctx))
    console.print(f"[green]Removed[/green] {locator.strip()} from {path}")


if __name__ == "__main__":
    cli()
