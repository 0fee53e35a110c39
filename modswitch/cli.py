# modswitch/cli.py
"""modswitch CLI: toggle workshop packages by renaming their folders."""
from __future__ import annotations
import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
import json5
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from modswitch import __version__
from modswitch.app.config import initConfig
from modswitch.app.globals import config, getConfigService
from modswitch.app.paths import AppPaths, detectWorkshopRoots, registerAppPaths, resolveAppHome
from modswitch.core.errors import ModSwitchError
from modswitch.core.jsonutils import safeJsonDumps
from modswitch.core.logging import configureLogging
from modswitch.core.tracing import getTraceHub
from modswitch.mods.models import RenameReport
from modswitch.mods.orchestrator import ApplyOrchestrator, ApplyReport
from modswitch.profiles.package import ConflictPolicy, exportProfiles, importProfiles
from modswitch.profiles.store import ModProfile, ProfileStore

logger = logging.getLogger(__name__)

console = Console()



@dataclass
class CliState:
    paths: AppPaths
    rootOverride: Path | None = None

    def workshopRoot(self) -> Path:
        """--root, then workshop.path from config, then the first detected Steam workshop folder."""
        if self.rootOverride is not None:
            return self.rootOverride
        configured = str(config("workshop.path", "") or "").strip()
        if configured:
            return Path(configured).expanduser()
        detected = detectWorkshopRoots(str(config("workshop.appId", "3018410")), _configuredSteamRoots())
        if not detected:
            raise click.UsageError("No workshop folder found. Pass --root or set workshop.path.")
        return detected[0]

    def orchestrator(self) -> ApplyOrchestrator:
        root = self.workshopRoot()
        if not root.is_dir():
            raise click.UsageError(f"Workshop folder '{root}' does not exist.")
        return ApplyOrchestrator.fromConfig(root, self.paths)

    def profiles(self) -> ProfileStore:
        return ProfileStore(self.paths.profilesDir)



def _configuredSteamRoots() -> list[Path] | None:
    roots = [Path(str(value)).expanduser() for value in config("cloudMirror.steamRoots", []) or []]
    return roots or None



def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except ModSwitchError as err:
        raise click.ClickException(str(err)) from err



def _printApplyReport(report: ApplyReport) -> None:
    if report.snapshotPath is not None:
        console.print(f"[dim]Snapshot:[/] {report.snapshotPath}")
    for message in report.messages:
        style = "red" if message.startswith(("Failed", "Missing", "Requested")) else "dim"
        console.print(f"  [{style}]{escape(message)}[/]")
    if report.autoEnabledIds:
        console.print(f"[cyan]Auto-enabled dependencies:[/] {', '.join(report.autoEnabledIds)}")
    colour = "green" if report.converged else "yellow"
    console.print(f"[bold {colour}]{report.statusLine()}[/]")



def _printRenameReport(report: RenameReport, emptyMessage: str) -> None:
    for message in report.messages:
        console.print(f"  {escape(message)}")
    if not report.messages:
        console.print(f"[dim]{emptyMessage}[/]")
    console.print(f"[bold]{report.renamed} renamed, {report.removed} removed, {report.failed} failed[/]")



def _dumpTrace(path: Path) -> None:
    records = getTraceHub().records()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(safeJsonDumps(record) + "\n" for record in records), encoding="utf-8")
    logger.debug("Wrote %d trace record(s) to '%s'", len(records), path)



def _exitForReport(ctx: click.Context, failed: int) -> None:
    if failed:
        ctx.exit(1)



@click.group()
@click.version_option(version=__version__)
@click.option("--root", "root", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Workshop content folder (overrides workshop.path)")
@click.option("--home", "home", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="App data folder for profiles, snapshots, logs and config")
@click.option("--steam-root", "steamRoots", multiple=True, type=click.Path(file_okay=False, path_type=Path),
              help="Steam install folder to search (repeatable)")
@click.option("--no-cloud", is_flag=True, help="Skip the cloud 'Load on Start' mirror")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging on the console")
@click.option("--trace", "traceFile", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write trace records (JSON lines) to this file on exit")
@click.pass_context
def main(
    ctx: click.Context,
    root: Path | None,
    home: Path | None,
    steamRoots: tuple[Path, ...],
    no_cloud: bool,
    verbose: bool,
    traceFile: Path | None,
) -> None:
    """modswitch - enable and disable workshop packages by folder name.

    A package folder named `<id>` is enabled, `_OFF_<id>` is disabled.
    Applying a set of ids renames folders to match, pulls in dependencies,
    and keeps the sub-package registry and cloud mirror in step.
    """
    paths = registerAppPaths(AppPaths(resolveAppHome(home)).ensure())
    service = initConfig(paths.configDir)
    if steamRoots:
        service.globalStore.set("cloudMirror.steamRoots", [str(path) for path in steamRoots], actor="cli")
    if no_cloud:
        service.globalStore.set("cloudMirror.enabled", False, actor="cli")
    configureLogging(paths.logsDir, verbose=verbose)
    ctx.obj = CliState(paths=paths, rootOverride=root.expanduser() if root is not None else None)
    if traceFile is not None:
        ctx.call_on_close(lambda: _dumpTrace(traceFile))


# ── Inspect ──────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def scan(state: CliState) -> None:
    """List installed packages and their state."""
    orchestrator = state.orchestrator()
    packages = _run(orchestrator.scan())
    if not packages:
        console.print("[yellow]No packages found.[/]")
        return

    table = Table(title=f"Packages in {orchestrator.root} ({len(packages)} folders)")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Folder", style="dim")
    table.add_column("State", justify="center")
    for pkg in packages:
        if pkg.active:
            stateText = "[green]enabled[/]"
        elif pkg.enabled:
            stateText = "[yellow]packs off[/]"
        else:
            stateText = "[red]disabled[/]"
        table.add_row(pkg.packageId, pkg.label, pkg.folderName, stateText)
    console.print(table)


@main.command()
@click.argument("ids", nargs=-1, required=True)
@click.pass_obj
def preview(state: CliState, ids: tuple[str, ...]) -> None:
    """Show what enabling IDS would pull in, without touching any folder."""
    orchestrator = state.orchestrator()
    result = _run(orchestrator.preview(ids))
    console.print(f"[bold]Would enable {len(result.enabledIds)} package(s):[/] {', '.join(sorted(result.enabledIds))}")
    if result.autoEnabledIds:
        console.print(f"[cyan]Dependencies:[/] {', '.join(result.autoEnabledIds)}")
    if result.missingIds:
        console.print(f"[red]Missing dependencies:[/] {', '.join(result.missingIds)}")


@main.command()
@click.option("--app-id", default=None, help="Steam app id (defaults to workshop.appId)")
def detect(app_id: str | None) -> None:
    """Find workshop content folders in local Steam libraries."""
    appId = app_id or str(config("workshop.appId", "3018410"))
    roots = detectWorkshopRoots(appId, _configuredSteamRoots())
    if not roots:
        console.print(f"[yellow]No workshop folder for app {appId} found.[/]")
        return
    for path in roots:
        console.print(str(path))


# ── Apply ────────────────────────────────────────────────────────────


@main.command()
@click.argument("ids", nargs=-1)
@click.option("--no-snapshot", is_flag=True, help="Do not snapshot folder names first")
@click.pass_context
def apply(ctx: click.Context, ids: tuple[str, ...], no_snapshot: bool) -> None:
    """Make exactly IDS (plus their dependencies) enabled; everything else is disabled."""
    orchestrator = ctx.obj.orchestrator()
    report = _run(orchestrator.apply(ids, takeSnapshot=not no_snapshot))
    _printApplyReport(report)
    _exitForReport(ctx, report.renames.failed)


@main.command()
@click.argument("ids", nargs=-1, required=True)
@click.pass_context
def enable(ctx: click.Context, ids: tuple[str, ...]) -> None:
    """Enable IDS on top of what is enabled now."""
    report = _run(ctx.obj.orchestrator().enable(ids))
    _printApplyReport(report)
    _exitForReport(ctx, report.renames.failed)


@main.command()
@click.argument("ids", nargs=-1, required=True)
@click.pass_context
def disable(ctx: click.Context, ids: tuple[str, ...]) -> None:
    """Disable IDS, keeping everything else as it is."""
    report = _run(ctx.obj.orchestrator().disable(ids))
    _printApplyReport(report)
    _exitForReport(ctx, report.renames.failed)


# ── Maintenance ──────────────────────────────────────────────────────


@main.command()
@click.pass_context
def cleanup(ctx: click.Context) -> None:
    """Collapse duplicate folders of the same package into one."""
    report = _run(ctx.obj.orchestrator().cleanupDuplicates())
    _printRenameReport(report, "No duplicate folders.")
    _exitForReport(ctx, report.failed)


@main.command()
@click.argument("package_id")
@click.pass_context
def remove(ctx: click.Context, package_id: str) -> None:
    """Delete every folder of PACKAGE_ID."""
    report = _run(ctx.obj.orchestrator().removePackage(package_id))
    _printRenameReport(report, f"No folder for {package_id}.")
    _exitForReport(ctx, report.failed)


@main.command()
@click.pass_obj
def snapshot(state: CliState) -> None:
    """Record the current folder names."""
    try:
        path = state.orchestrator().createSnapshot()
    except RuntimeError as err:
        raise click.ClickException(str(err)) from err
    console.print(f"[green]Snapshot written to:[/] {path}")


@main.command()
@click.pass_context
def restore(ctx: click.Context) -> None:
    """Re-apply the enabled set of the newest snapshot."""
    report = _run(ctx.obj.orchestrator().restoreLatest())
    if report is None:
        console.print("[yellow]No snapshot for this folder.[/]")
        return
    _printApplyReport(report)
    _exitForReport(ctx, report.renames.failed)


@main.command()
@click.pass_obj
def watch(state: CliState) -> None:
    """Watch the workshop folder and clean up duplicates after changes (Ctrl+C stops)."""
    orchestrator = state.orchestrator()
    console.print(f"[bold blue]modswitch[/] watching {orchestrator.root}")
    try:
        asyncio.run(orchestrator.watcher().run())
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/]")


# ── Profiles ─────────────────────────────────────────────────────────


@main.group()
def profile() -> None:
    """Saved enabled-sets."""


@profile.command("list")
@click.pass_obj
def profileList(state: CliState) -> None:
    profiles = state.profiles().listProfiles()
    if not profiles:
        console.print("[yellow]No profiles saved.[/]")
        return
    table = Table(title=f"Profiles ({len(profiles)})")
    table.add_column("Name", style="cyan")
    table.add_column("Mods", justify="right")
    table.add_column("Created", style="dim")
    table.add_column("Notes")
    for item in profiles:
        table.add_row(item.name, str(len(item.enabledMods)), item.createdAt.strftime("%Y-%m-%d %H:%M"), item.notes)
    console.print(table)


@profile.command("save")
@click.argument("name")
@click.option("--notes", default="", help="Free-text notes")
@click.pass_obj
def profileSave(state: CliState, name: str, notes: str) -> None:
    """Save the currently enabled packages as NAME."""
    activeIds = _run(state.orchestrator().activeIds())
    try:
        item = ModProfile.fromEnabledIds(name, activeIds, notes=notes)
    except ValueError as err:
        raise click.BadParameter(str(err), param_hint="NAME") from err
    path = state.profiles().save(item)
    console.print(f"[green]Saved profile '{item.name}' ({len(item.enabledMods)} mods) to:[/] {path}")


@profile.command("apply")
@click.argument("name")
@click.option("--no-snapshot", is_flag=True, help="Do not snapshot folder names first")
@click.pass_context
def profileApply(ctx: click.Context, name: str, no_snapshot: bool) -> None:
    """Apply the enabled-set saved as NAME."""
    item = ctx.obj.profiles().get(name)
    if item is None:
        raise click.ClickException(f"Profile '{name}' not found.")
    report = _run(ctx.obj.orchestrator().apply(item.enabledMods, takeSnapshot=not no_snapshot))
    _printApplyReport(report)
    _exitForReport(ctx, report.renames.failed)


@profile.command("delete")
@click.argument("name")
@click.pass_obj
def profileDelete(state: CliState, name: str) -> None:
    if not state.profiles().delete(name):
        raise click.ClickException(f"Profile '{name}' not found.")
    console.print(f"[green]Deleted profile '{name}'.[/]")


@profile.command("export")
@click.argument("target", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--name", "packageName", default="ModSwitch Profiles", help="Package name")
@click.option("--only", "only", multiple=True, help="Export only these profiles (repeatable)")
@click.pass_obj
def profileExport(state: CliState, target: Path, packageName: str, only: tuple[str, ...]) -> None:
    """Write profiles to a shareable package file TARGET."""
    profiles = state.profiles().listProfiles()
    if only:
        wanted = {name.casefold() for name in only}
        profiles = [item for item in profiles if item.name.casefold() in wanted]
    if not profiles:
        raise click.ClickException("No profiles to export.")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(exportProfiles(packageName, profiles), encoding="utf-8")
    console.print(f"[green]Exported {len(profiles)} profile(s) to:[/] {target}")


@profile.command("import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--policy", type=click.Choice([policy.value for policy in ConflictPolicy]), default="rename",
              help="What to do when a profile name already exists")
@click.pass_obj
def profileImport(state: CliState, source: Path, policy: str) -> None:
    """Import profiles from a package file SOURCE."""
    store = state.profiles()
    try:
        result = importProfiles(source.read_text(encoding="utf-8-sig"), store.listProfiles(), ConflictPolicy(policy))
    except ModSwitchError as err:
        raise click.ClickException(str(err)) from err
    for item in result.importedProfiles:
        store.save(item)
    console.print(
        f"[bold]Imported {result.importedCount}[/], renamed {result.renamedCount}, "
        f"overwritten {result.overwrittenCount}, skipped {result.skippedCount}, "
        f"invalid {result.invalidProfileCount}, dropped ids {result.removedInvalidIdsCount}"
    )


# ── Config ───────────────────────────────────────────────────────────


@main.group("config")
def configGroup() -> None:
    """Inspect or change settings."""


@configGroup.command("show")
def configShow() -> None:
    snap = getConfigService().globalStore.snapshot()
    console.print_json(safeJsonDumps(snap["values"]))


@configGroup.command("set")
@click.argument("key")
@click.argument("value")
def configSet(key: str, value: str) -> None:
    """Persist KEY=VALUE to the user config file. VALUE is parsed as JSON5 when possible."""
    try:
        parsed: Any = json5.loads(value)
    except ValueError:
        parsed = value
    store = getConfigService().globalStore
    try:
        store.set(key, parsed, target="save", actor="cli")
    except (KeyError, ValueError) as err:
        raise click.ClickException(f"Rejected '{key}': {err}") from err
    store.saveAll()
    console.print(f"[green]{key}[/] = {safeJsonDumps(parsed)}")



if __name__ == "__main__":
    sys.exit(main())
