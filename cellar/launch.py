# cellar/launch.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .command import build_command, command_line
from .environment import EnvLayers, compose_environment, forced_mode, interesting
from .errors import ConfigurationError
from .executor import execute
from .models import (
    ExecMode,
    ExecutionPlan,
    ExecutionResult,
    GameConfig,
    LaunchSpec,
    OperationKind,
    PrefixHandle,
    RuntimeDescriptor,
    WineOptions,
)
from .prefixes import allocate_prefix, is_initialized, open_prefix
from .runtimes import detect_prefix_runtime, resolve_runtime, write_version_marker
from .settings import Layout, preset_env
from .utils import expand_tilde, windows_to_host

log = logging.getLogger(__name__)

AUTO_VERSION = "auto"
PREFIX_INIT_COMMAND = ("wineboot", "--init")

# ──────────────────────────────────────────────────────────────────────────────
# Small helpers
# ──────────────────────────────────────────────────────────────────────────────

def layers_for(config: Optional[GameConfig], settings: Optional[Dict]) -> EnvLayers:
    settings = settings or {}
    return EnvLayers(
        global_defaults={str(k): str(v) for k, v in (settings.get("env") or {}).items()},
        preset=preset_env(settings, config.preset) if config else {},
        overrides=dict(config.env) if config else {},
    )


def host_path(path: str, prefix: Path) -> Path:
    """Executables may be stored as 'C:\\...' paths; map those into the prefix."""
    mapped = windows_to_host(path, prefix)
    return mapped if mapped is not None else expand_tilde(path)


def _working_dir(spec: LaunchSpec, prefix: PrefixHandle) -> str:
    exe = host_path(spec.executable, prefix.path) if spec.executable else None
    if exe is not None and exe.is_absolute() and exe.parent.is_dir():
        return str(exe.parent)
    return str(prefix.path)


def runtime_for(config: GameConfig, layout: Layout,
                op: OperationKind = OperationKind.RUN) -> RuntimeDescriptor:
    """The configured runtime, or the prefix's recorded one for 'auto'."""
    version = config.proton_version
    if not version or version == AUTO_VERSION:
        version = detect_prefix_runtime(Path(config.wine_prefix))
        if not version:
            raise ConfigurationError("no runtime configured and no version marker in prefix",
                                     path=config.wine_prefix, operation=op.value)
    return resolve_runtime(version, layout, operation=op.value)

# ──────────────────────────────────────────────────────────────────────────────
# Shared pipeline
# ──────────────────────────────────────────────────────────────────────────────

def prepare(
    op: OperationKind,
    spec: LaunchSpec,
    runtime: RuntimeDescriptor,
    prefix: PrefixHandle,
    *,
    layout: Layout,
    layers: Optional[EnvLayers] = None,
) -> ExecutionPlan:
    """compose -> build. Used for games, installers, utilities and prefix creation."""
    env = compose_environment(op, runtime, prefix, spec.environment_options(),
                              layout=layout, layers=layers)
    return build_command(spec, env, operation=op, cwd=_working_dir(spec, prefix))


def run_plan(plan: ExecutionPlan, mode: ExecMode = ExecMode.MANAGED) -> ExecutionResult:
    return execute(plan, forced_mode(plan.operation) or mode)

# ──────────────────────────────────────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────────────────────────────────────

def create_prefix(path: Path, runtime: RuntimeDescriptor, layout: Layout,
                  settings: Optional[Dict] = None) -> PrefixHandle:
    """Bootstrap a fresh prefix and record which runtime made it."""
    handle = open_prefix(path)
    spec = LaunchSpec(executable=PREFIX_INIT_COMMAND[0], args=list(PREFIX_INIT_COMMAND[1:]),
                      wine=WineOptions(dxvk=False))
    # compose first so a bad runtime fails before anything touches disk
    plan = prepare(OperationKind.CREATE, spec, runtime, handle, layout=layout,
                   layers=layers_for(None, settings))
    handle = allocate_prefix(path)

    log.info("Creating prefix %s with %s", handle.path, runtime.id)
    run_plan(plan).check(OperationKind.CREATE.value)
    write_version_marker(handle.path, runtime.id)
    return open_prefix(handle.path)


def ensure_prefix(path: Path, runtime: RuntimeDescriptor, layout: Layout,
                  settings: Optional[Dict] = None) -> PrefixHandle:
    if is_initialized(path) or detect_prefix_runtime(path):
        return open_prefix(path)
    return create_prefix(path, runtime, layout, settings)


def validate_launch(config: GameConfig) -> PrefixHandle:
    prefix = open_prefix(Path(config.wine_prefix))
    if not prefix.path.is_dir():
        raise ConfigurationError(
            f"wine prefix not found: {prefix.path}. Create it first with 'cellar prefix create'",
            path=prefix.path, operation=OperationKind.RUN.value,
        )
    exe = host_path(config.executable, prefix.path)
    if not exe.exists():
        raise ConfigurationError(f"game executable not found: {exe}", path=exe,
                                 operation=OperationKind.RUN.value)
    if not is_initialized(prefix.path):
        raise ConfigurationError(f"wine prefix appears to be incomplete: {prefix.path}",
                                 path=prefix.path, operation=OperationKind.RUN.value)
    if prefix.version is None:
        log.warning("No runtime version marker in %s; it may not be a Proton prefix", prefix.path)
    return prefix


def game_plan(config: GameConfig, layout: Layout,
              settings: Optional[Dict] = None) -> ExecutionPlan:
    prefix = validate_launch(config)
    runtime = runtime_for(config, layout)
    spec = config.launch_spec()
    spec.executable = str(host_path(config.executable, prefix.path))
    return prepare(OperationKind.RUN, spec, runtime, prefix, layout=layout,
                   layers=layers_for(config, settings))


def launch_game(config: GameConfig, layout: Layout, settings: Optional[Dict] = None,
                mode: ExecMode = ExecMode.MANAGED) -> ExecutionResult:
    """Run a configured game and wait for it.

    A non-zero exit only becomes an ExitError when the filtered output holds
    real error lines; plenty of games exit non-zero on a clean quit.
    """
    plan = game_plan(config, layout, settings)
    log.info("Launching %s in %s", config.name, plan.environment["WINEPREFIX"])
    result = run_plan(plan, mode)
    if not result.ok:
        if result.output:
            result.check(OperationKind.RUN.value)
        log.info("%s exited with status %s but no critical errors", config.name, result.exit_code)
    return result


def installer_plan(installer: Path, runtime: RuntimeDescriptor, prefix: PrefixHandle,
                   layout: Layout, settings: Optional[Dict] = None) -> ExecutionPlan:
    spec = LaunchSpec(executable=str(installer))
    return prepare(OperationKind.INSTALLER_RUN, spec, runtime, prefix, layout=layout,
                   layers=layers_for(None, settings))


def run_utility(config: GameConfig, utility: str, args: Sequence[str], layout: Layout,
                settings: Optional[Dict] = None) -> ExecutionResult:
    """winecfg, regedit, a tool .exe ... against the game's prefix, visibly."""
    prefix = open_prefix(Path(config.wine_prefix))
    runtime = runtime_for(config, layout, OperationKind.UTILITY_RUN)
    spec = LaunchSpec(executable=utility, args=list(args),
                      wine=config.wine_config, dxvk=config.dxvk)
    plan = prepare(OperationKind.UTILITY_RUN, spec, runtime, prefix, layout=layout,
                   layers=layers_for(config, settings))
    return run_plan(plan)


def describe(plan: ExecutionPlan) -> List[str]:
    lines = [command_line(plan)]
    lines.extend(f"{k}={v}" for k, v in interesting(plan.environment).items())
    return lines
