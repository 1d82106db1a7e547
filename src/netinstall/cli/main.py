"""NetInstall CLI application."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, Optional

import click
import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from netinstall import __version__
from netinstall.components import build_registry, load_component_file
from netinstall.config import (
    CONFIG_FILE_NAME,
    DEFAULT_INSTALL_DIR,
    DEFAULT_SETTINGS,
    LOG_FILE_NAME,
    Configuration,
    load_config,
    save_config,
)
from netinstall.core.actions import ActionContext
from netinstall.core.health import HealthProbe
from netinstall.core.registry import ComponentRegistry
from netinstall.core.sequencer import Sequencer
from netinstall.core.state import MarkerFileStore
from netinstall.core.system import check_system_resources, system_summary, verify_installation
from netinstall.errors import InstallerError
from netinstall.models import StepOutcome

# Initialize
app = typer.Typer(
    name="netinstall",
    help="NetInstall - NetTools Platform installer",
    add_completion=False,
)
console = Console()


@dataclass
class CliState:
    """Options shared by the root command and its subcommands."""

    install_dir: Path
    config_path: Path | None
    components_path: Path | None
    scripts_dir: Path | None
    verbose: bool


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Setup logging configuration."""
    logger.remove()

    level = "DEBUG" if verbose else "INFO"

    # Console logging
    logger.add(
        sys.stderr,
        format="<level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=level,
        colorize=True,
    )

    # Install log, kept across runs
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Cannot write install log to {log_file}: {e}")
            return
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} [{level}] {message}",
            level="DEBUG",
            rotation="10 MB",
        )


def version_callback(value: bool) -> None:
    if value:
        console.print(f"netinstall {__version__}")
        raise typer.Exit(0)


def fail(error: InstallerError, component_id: str | None = None) -> NoReturn:
    """Report a fatal error and exit 1."""
    component_id = component_id or error.component_id
    prefix = f"{component_id}: " if component_id else ""
    console.print(f"[red]✗ {prefix}{error.kind}: {escape(str(error))}[/red]")
    raise typer.Exit(1)


def load_configuration(state: CliState) -> Configuration:
    """Defaults, then the persisted setup file, then an explicit --config."""
    defaults = {**DEFAULT_SETTINGS, "INSTALL_DIR": str(state.install_dir)}
    persisted = config_file_path(state.install_dir)

    config = load_config(defaults, persisted if persisted.is_file() else None)
    if state.config_path is not None:
        config = load_config(config.raw(), state.config_path)
    return config


def config_file_path(install_dir: Path) -> Path:
    return install_dir / "config" / CONFIG_FILE_NAME


def load_registry(state: CliState) -> ComponentRegistry:
    if state.components_path is not None:
        return build_registry(load_component_file(state.components_path))
    return build_registry()


def open_store(registry: ComponentRegistry, scripts_dir: Path) -> MarkerFileStore:
    return MarkerFileStore(scripts_dir, {c.id: c.get_marker() for c in registry})


def resolve_scripts_dir(state: CliState, config: Configuration) -> Path:
    return state.scripts_dir or config.get_path("SCRIPT_DIR")


def build_request(
    registry: ComponentRegistry,
    only: str | None = None,
    with_components: list[str] | None = None,
    install_all: bool = False,
) -> list[str]:
    """Work out which components were asked for (dependencies come later)."""
    extra = [
        name.strip()
        for value in (with_components or [])
        for name in value.split(",")
        if name.strip()
    ]

    if install_all:
        return registry.ids()
    if only:
        requested = [name.strip() for name in only.split(",") if name.strip()]
    else:
        requested = registry.default_ids()
    return list(dict.fromkeys(requested + extra))


def print_event(component_id: str, outcome: StepOutcome, message: str) -> None:
    if outcome == StepOutcome.INSTALLED:
        console.print(f"[green]✓ {component_id} installed[/green]")
    elif outcome == StepOutcome.SKIPPED:
        console.print(f"[dim]- {component_id} already installed (use --force to reinstall)[/dim]")
    elif outcome == StepOutcome.PLANNED:
        console.print(f"[cyan]· {component_id} would be installed[/cyan]")
    elif outcome == StepOutcome.FAILED:
        console.print(f"[red]✗ {component_id} failed[/red]")
    elif outcome == StepOutcome.NOT_STARTED:
        console.print(f"[dim]  {component_id} not started[/dim]")


def print_system_summary(path: Path) -> None:
    table = Table(title="System Summary", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in system_summary(path).items():
        table.add_row(key, value)
    console.print(table)


# ============================================================================
# Install (root command)
# ============================================================================


@app.callback(invoke_without_command=True)
def install(
    ctx: typer.Context,
    only: Optional[str] = typer.Option(
        None, "--only", help="Install only these components (comma-separated), plus their dependencies"
    ),
    with_components: Optional[list[str]] = typer.Option(
        None, "--with", help="Also install an optional component (repeatable)"
    ),
    install_all: bool = typer.Option(False, "--all", help="Install all components"),
    force: bool = typer.Option(False, "--force", help="Reinstall components that are already installed"),
    config_only: bool = typer.Option(
        False, "--config-only", help="Only create or update the configuration file, don't install anything"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration override file"),
    components_path: Optional[Path] = typer.Option(
        None, "--components", help="YAML file with component definitions"
    ),
    install_dir: Path = typer.Option(DEFAULT_INSTALL_DIR, "--install-dir", help="Installation root"),
    scripts_dir: Optional[Path] = typer.Option(
        None, "--scripts-dir", help="Component scripts and markers (default: SCRIPT_DIR)"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be installed"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    version: bool = typer.Option(
        False, "--version", callback=version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    """Install the NetTools Platform.

    By default, only the environment and core infrastructure are installed.
    """
    state = CliState(install_dir, config_path, components_path, scripts_dir, verbose)
    ctx.obj = state

    if ctx.invoked_subcommand is not None:
        setup_logging(verbose)
        return

    setup_logging(verbose, install_dir / "logs" / LOG_FILE_NAME)

    try:
        config = load_configuration(state)
        saved = save_config(config, config_file_path(install_dir))
    except InstallerError as e:
        fail(e)
    except OSError as e:
        console.print(f"[red]✗ Cannot write configuration: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if config_only:
        console.print(f"[green]✓ Configuration written to {saved}[/green]")
        return

    try:
        registry = load_registry(state)
        requested = build_request(registry, only, with_components, install_all)
        plan = registry.resolve(requested)
        min_ram = config.get_int("MIN_RAM_MB")
        min_disk = config.get_int("MIN_DISK_MB")
        min_cpu = config.get_int("MIN_CPU_CORES")
    except InstallerError as e:
        fail(e)

    check_system_resources(install_dir, min_ram, min_disk, min_cpu)
    print_system_summary(install_dir)
    console.print(f"[cyan]Plan:[/cyan] {' → '.join(plan) if plan else '(nothing)'}")

    if not yes and not dry_run:
        if not typer.confirm("Ready to install NetTools Platform. Continue?", default=True):
            console.print("[yellow]Installation aborted by user[/yellow]")
            raise typer.Exit(0)

    scripts = resolve_scripts_dir(state, config)
    store = open_store(registry, scripts)
    context = ActionContext(config=config, probe=HealthProbe(), scripts_dir=scripts)
    sequencer = Sequencer(registry, store, context, on_event=print_event)

    result = sequencer.run(plan, force=force, dry_run=dry_run)
    if not result.ok:
        console.print("[red]✗ NetTools Platform installation failed[/red]")
        fail(result.error, result.failed_component)

    if dry_run:
        return

    failures = verify_installation(registry, store, config)
    if failures:
        console.print(f"[yellow]{len(failures)} component(s) failed verification[/yellow]")
    console.print("[green]✓ NetTools Platform installation completed successfully[/green]")


# ============================================================================
# State Commands
# ============================================================================


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Show components and whether they are installed."""
    state: CliState = ctx.obj

    try:
        config = load_configuration(state)
        registry = load_registry(state)
    except InstallerError as e:
        fail(e)

    store = open_store(registry, resolve_scripts_dir(state, config))

    table = Table(title="Components")
    table.add_column("Component", style="cyan")
    table.add_column("Depends on")
    table.add_column("Default")
    table.add_column("Status")
    table.add_column("Installed at")

    for component in registry:
        installed_at = store.installed_at(component.id)
        status_str = "[green]installed[/green]" if installed_at else "[dim]not installed[/dim]"
        table.add_row(
            component.id,
            ", ".join(component.depends_on) or "-",
            "no" if component.optional else "yes",
            status_str,
            installed_at.strftime("%Y-%m-%d %H:%M") if installed_at else "-",
        )

    console.print(table)


@app.command("reset")
def reset(
    ctx: typer.Context,
    component_id: str = typer.Argument(..., help="Component to mark as not installed"),
) -> None:
    """Remove a component's installed marker so the next run installs it again."""
    state: CliState = ctx.obj

    try:
        config = load_configuration(state)
        registry = load_registry(state)
        registry.get(component_id)
    except InstallerError as e:
        fail(e)

    store = open_store(registry, resolve_scripts_dir(state, config))
    if store.clear(component_id):
        console.print(f"[green]✓ Reset '{component_id}'[/green]")
    else:
        console.print(f"[yellow]'{component_id}' was not installed[/yellow]")

    dependents = [d for d in registry.dependents_of(component_id) if store.is_installed(d)]
    if dependents:
        console.print(f"[dim]Still marked installed and depending on it: {', '.join(dependents)}[/dim]")


def main(argv: list[str] | None = None) -> int:
    """Run the CLI, mapping usage errors (unknown flags) to exit code 1."""
    command = typer.main.get_command(app)
    try:
        result = command.main(args=argv, prog_name="netinstall", standalone_mode=False)
    except click.UsageError as e:
        e.show()
        return 1
    except click.exceptions.Abort:
        console.print("[yellow]Aborted[/yellow]")
        return 1
    return result if isinstance(result, int) else 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
