from __future__ import annotations

import functools
import logging
from pathlib import Path

import click

from . import __version__, configure_logging, create_layout
from .errors import CellarError, ConfigurationError
from .install import (
    InstallationDriver,
    InstallationSession,
    InstallState,
    finalize_config,
    installer_runner,
)
from .launch import (
    create_prefix,
    describe,
    ensure_prefix,
    game_plan,
    launch_game,
    run_utility,
)
from .models import ExecMode, GameConfig, OperationKind, RuntimeKind
from .prefixes import list_prefixes, open_prefix, prefix_path_for, remove_prefix
from .runtimes import discover_runtimes, resolve_runtime
from .settings import load_settings
from .store import game_exists, list_games, load_game, remove_game, save_game

log = logging.getLogger(__name__)

EXIT_CANCELLED = 3


def handle_errors(f):
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except CellarError as e:
            log.debug("command failed", exc_info=True)
            raise click.ClickException(str(e)) from e
    return wrapper


class ClickPrompter:
    """Answers installer questions on the terminal."""

    def __init__(self):
        self._errors_seen = 0

    def confirm_success(self, session: InstallationSession) -> bool:
        codes = session.exit_codes
        if codes and codes[-1] != 0:
            click.echo(f"Installer exited with status {codes[-1]} (this is not always a failure).")
        return click.confirm("Did the installation complete successfully?", default=True)

    def ask_executable(self, session: InstallationSession) -> str:
        if len(session.errors) > self._errors_seen:
            click.secho(f"Invalid path: {session.last_error}", fg="red", err=True)
            self._errors_seen = len(session.errors)
        return click.prompt("Path to the game executable (C:\\... or a host path)")

    def ask_retry(self, session: InstallationSession) -> bool:
        return click.confirm(f"Run the installer again? (attempt {session.attempts + 1})",
                             default=True)

    def ask_cleanup(self, session: InstallationSession) -> bool:
        return click.confirm(f"Remove the prefix {session.prefix.path}?", default=False)


@click.group()
@click.option("-v", "--verbose", count=True, help="-v for info, -vv for debug output.")
@click.option("--home", envvar="CELLAR_HOME", type=click.Path(file_okay=False),
              help="Base directory for runners, prefixes and configs.")
@click.version_option(version=__version__, prog_name="cellar")
@click.pass_context
def cli(ctx, verbose, home):
    """A wine prefix and game manager for Linux."""
    configure_logging(verbose)
    layout = create_layout(home)
    ctx.obj = {"layout": layout, "settings": load_settings(layout.settings_file)}


# ──────────────────────────────────────────────────────────────────────────────
# Games
# ──────────────────────────────────────────────────────────────────────────────

@cli.command()
@click.argument("name")
@click.option("--exe", type=click.Path(dir_okay=False), help="Path to an existing executable.")
@click.option("--installer", type=click.Path(exists=True, dir_okay=False),
              help="Path to an installer to run in a fresh prefix.")
@click.option("--proton", "proton_version", help="Runtime version (default from settings).")
@click.pass_obj
@handle_errors
def add(obj, name, exe, installer, proton_version):
    """Add a game from an executable or by running its installer."""
    layout, settings = obj["layout"], obj["settings"]
    if not name.strip():
        raise click.BadParameter("game name cannot be empty", param_hint="NAME")
    if bool(exe) == bool(installer):
        raise click.UsageError("give exactly one of --exe or --installer")
    if game_exists(layout, name):
        raise ConfigurationError(f"game {name!r} already exists")
    version = proton_version or settings["default_proton"]

    if exe:
        exe_path = Path(exe).expanduser()
        if not exe_path.is_file():
            raise ConfigurationError(f"executable does not exist: {exe_path}", path=exe_path)
        config = GameConfig(name=name, executable=str(exe_path.absolute()),
                            wine_prefix=str(prefix_path_for(name, layout)),
                            proton_version=version)
        p = save_game(layout, config)
        click.echo(f"Added {name}\n  Config saved to: {p}")
        return

    runtime = resolve_runtime(version, layout, operation=OperationKind.INSTALLER_RUN.value)
    prefix = ensure_prefix(prefix_path_for(name, layout), runtime, layout, settings)
    session = InstallationSession(prefix=prefix, installer=Path(installer).absolute(),
                                  runtime_id=runtime.id)
    driver = InstallationDriver(installer_runner(runtime, layout, settings), ClickPrompter())
    state = driver.run(session)

    if state is InstallState.CONFIGURED:
        p = save_game(layout, finalize_config(session, name))
        click.echo(f"Added {name} after {session.attempts} attempt(s)\n  Config saved to: {p}")
        return
    if session.cleanup_error:
        click.secho(f"Could not remove the prefix: {session.cleanup_error}", fg="red", err=True)
    kept = "removed" if session.prefix_removed else f"kept at {prefix.path}"
    click.echo(f"Installation cancelled; prefix {kept}.", err=True)
    raise SystemExit(EXIT_CANCELLED)


@cli.command()
@click.argument("name")
@click.option("--visible", is_flag=True, help="Show the game's output instead of filtering it.")
@click.option("--dry-run", is_flag=True, help="Print the command and environment, run nothing.")
@click.pass_obj
@handle_errors
def launch(obj, name, visible, dry_run):
    """Launch a configured game."""
    layout, settings = obj["layout"], obj["settings"]
    config = load_game(layout, name)
    if dry_run:
        for line in describe(game_plan(config, layout, settings)):
            click.echo(line)
        return
    click.echo(f"Launching {config.name}")
    mode = ExecMode.VISIBLE if visible else ExecMode.MANAGED
    result = launch_game(config, layout, settings, mode)
    click.echo(f"Game exited with status {result.exit_code}.")


@cli.command("run")
@click.argument("name")
@click.argument("utility")
@click.argument("args", nargs=-1)
@click.pass_obj
@handle_errors
def run_cmd(obj, name, utility, args):
    """Run a utility (winecfg, regedit, a tool .exe) in a game's prefix."""
    config = load_game(obj["layout"], name)
    result = run_utility(config, utility, args, obj["layout"], obj["settings"])
    if not result.ok:
        raise SystemExit(result.exit_code)


@cli.command("list")
@click.pass_obj
def list_cmd(obj):
    """List configured games."""
    layout = obj["layout"]
    names = list_games(layout)
    if not names:
        click.echo("No games configured.")
        return
    click.echo("Configured games:")
    for n in names:
        try:
            c = load_game(layout, n)
        except ConfigurationError:
            click.echo(f"  {n} [error loading config]")
            continue
        click.echo(f"  {c.name} [{c.status}]")
        click.echo(f"    Executable: {c.executable}")
        click.echo(f"    Proton: {c.proton_version}")


@cli.command()
@click.argument("name")
@click.pass_obj
@handle_errors
def info(obj, name):
    """Show a game's configuration."""
    c = load_game(obj["layout"], name)
    click.echo(f"Game Information for: {c.name}")
    click.echo(f"  Status: {c.status}")
    click.echo(f"  Executable: {c.executable}")
    click.echo(f"  Wine Prefix: {c.wine_prefix}")
    click.echo(f"  Proton Version: {c.proton_version}")
    if c.dxvk_version:
        click.echo(f"  DXVK Version: {c.dxvk_version}")
    if c.preset:
        click.echo(f"  Preset: {c.preset}")
    w = c.wine_config
    click.echo("\nWine Configuration:")
    click.echo(f"  esync: {w.esync}\n  fsync: {w.fsync}\n  dxvk: {w.dxvk}\n  dxvk_async: {w.dxvk_async}")
    if c.gamescope.enabled:
        g = c.gamescope
        click.echo("\nGamescope Configuration:")
        click.echo(f"  Resolution: {g.width}x{g.height}")
        click.echo(f"  Refresh Rate: {g.refresh_rate}Hz")
        click.echo(f"  Upscaling: {g.upscaling}")


@cli.command()
@click.argument("name", required=False)
@click.pass_obj
@handle_errors
def status(obj, name):
    """Show the status of one game or all of them."""
    layout = obj["layout"]
    if name:
        c = load_game(layout, name)
        click.echo(f"Status for {c.name}: {c.status}")
        return
    names = list_games(layout)
    if not names:
        click.echo("No games configured.")
        return
    click.echo("Game Status Summary:")
    for n in names:
        try:
            click.echo(f"  {n}: {load_game(layout, n).status}")
        except ConfigurationError:
            click.echo(f"  {n}: error")


@cli.command()
@click.argument("name")
@click.pass_obj
@handle_errors
def remove(obj, name):
    """Forget a game (its prefix is left alone)."""
    remove_game(obj["layout"], name)
    click.echo(f"Removed {name}")


# ──────────────────────────────────────────────────────────────────────────────
# Prefixes and runners
# ──────────────────────────────────────────────────────────────────────────────

@cli.group()
def prefix():
    """Manage wine prefixes."""


@prefix.command("create")
@click.argument("name")
@click.option("--proton", "proton_version", help="Runtime version (default from settings).")
@click.pass_obj
@handle_errors
def prefix_create(obj, name, proton_version):
    layout, settings = obj["layout"], obj["settings"]
    path = prefix_path_for(name, layout)
    if path.exists():
        raise ConfigurationError(f"prefix already exists: {path}", path=path)
    runtime = resolve_runtime(proton_version or settings["default_proton"], layout,
                              operation=OperationKind.CREATE.value)
    handle = create_prefix(path, runtime, layout, settings)
    click.echo(f"Created prefix {handle.path} ({runtime.id})")


@prefix.command("list")
@click.pass_obj
def prefix_list(obj):
    handles = list_prefixes(obj["layout"])
    if not handles:
        click.echo("No prefixes.")
    for h in handles:
        click.echo(f"  {h.path.name}  [{h.version or 'unknown runtime'}]")


@prefix.command("remove")
@click.argument("name")
@click.confirmation_option(prompt="Delete this prefix and everything installed in it?")
@click.pass_obj
@handle_errors
def prefix_remove(obj, name):
    handle = open_prefix(prefix_path_for(name, obj["layout"]))
    if not remove_prefix(handle, operation="prefix-remove"):
        raise ConfigurationError(f"prefix not found: {handle.path}", path=handle.path)
    click.echo(f"Removed prefix {handle.path}")


@cli.group()
def runners():
    """Inspect installed runtimes."""


@runners.command("list")
@click.pass_obj
def runners_list(obj):
    for kind in (RuntimeKind.PROTON, RuntimeKind.DXVK):
        found = discover_runtimes(obj["layout"], kind)
        click.echo(f"{kind.value}:")
        if not found:
            click.echo("  (none)")
        for r in found:
            click.echo(f"  {r.id}  {r.root}")


def main():
    cli(prog_name="cellar")
