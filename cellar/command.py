"""Layered command line construction.

    [gamescope <flags> --] [mangohud] <template with %command% = umu-run exe args>

Everything here is a pure function of its inputs.
"""
from __future__ import annotations

import shlex
from typing import Dict, List, Optional, Sequence

from .errors import ConfigurationError
from .models import (
    ExecutionPlan,
    GamescopeOptions,
    LaunchSpec,
    OperationKind,
)

LAUNCHER = "umu-run"
PLACEHOLDER = "%command%"
MANGOHUD = "mangohud"
GAMESCOPE = "gamescope"
GAMESCOPE_SEPARATOR = "--"

UPSCALE_FLAGS = {
    "fsr": ["-F", "fsr"],
    "nis": ["-F", "nis"],
    "integer": ["-S", "integer"],
    "stretch": ["-S", "stretch"],
    "linear": ["-F", "linear"],
    "nearest": ["-F", "nearest"],
    "off": [],
}

_GAMESCOPE_TOGGLES = (
    ("fullscreen", "-f"),
    ("borderless", "-b"),
    ("force_grab_cursor", "--force-grab-cursor"),
    ("expose_wayland", "--expose-wayland"),
    ("hdr", "--hdr-enabled"),
    ("adaptive_sync", "--adaptive-sync"),
    ("immediate_flips", "--immediate-flips"),
)


def base_command(executable: str, args: Sequence[str]) -> List[str]:
    # args are opaque tokens; never re-split
    return [LAUNCHER, str(executable), *[str(a) for a in args]]


def apply_template(template: str, base: Sequence[str],
                   operation: Optional[str] = None) -> List[str]:
    """Insert ``base`` into a Steam-style launch options string.

    Only the first token holding the placeholder is expanded; later
    occurrences stay literal. Without a placeholder the template is
    prepended.
    """
    if not template or not template.strip():
        return list(base)
    try:
        tokens = shlex.split(template)
    except ValueError as e:
        raise ConfigurationError(f"invalid launch options {template!r}: {e}",
                                 operation=operation) from e

    for i, tok in enumerate(tokens):
        if PLACEHOLDER not in tok:
            continue
        if tok == PLACEHOLDER:
            replacement = list(base)
        else:
            replacement = [tok.replace(PLACEHOLDER, shlex.join(base), 1)]
        return tokens[:i] + replacement + tokens[i + 1:]

    return tokens + list(base)


def wrap_mangohud(command: Sequence[str]) -> List[str]:
    return [MANGOHUD, *command]


def gamescope_args(opts: GamescopeOptions, operation: Optional[str] = None) -> List[str]:
    if opts.width <= 0 or opts.height <= 0:
        raise ConfigurationError("gamescope width and height must be greater than 0",
                                 operation=operation)
    if opts.output_width <= 0 or opts.output_height <= 0:
        raise ConfigurationError("gamescope output width and height must be greater than 0",
                                 operation=operation)
    if opts.refresh_rate <= 0:
        raise ConfigurationError("gamescope refresh rate must be greater than 0",
                                 operation=operation)
    try:
        upscale = UPSCALE_FLAGS[opts.upscaling]
    except KeyError:
        raise ConfigurationError(
            f"invalid upscaling method {opts.upscaling!r}, "
            f"must be one of: {', '.join(UPSCALE_FLAGS)}",
            operation=operation,
        ) from None

    args = [
        "-w", str(opts.width), "-h", str(opts.height),
        "-W", str(opts.output_width), "-H", str(opts.output_height),
        "-r", str(opts.refresh_rate),
    ]
    args.extend(upscale)
    for attr, flag in _GAMESCOPE_TOGGLES:
        if getattr(opts, attr):
            args.append(flag)
    return args


def wrap_gamescope(command: Sequence[str], opts: GamescopeOptions,
                   operation: Optional[str] = None) -> List[str]:
    return [GAMESCOPE, *gamescope_args(opts, operation), GAMESCOPE_SEPARATOR, *command]


def layer_command(spec: LaunchSpec, operation: Optional[str] = None) -> List[str]:
    cmd = apply_template(spec.template, base_command(spec.executable, spec.args), operation)
    if spec.mangohud.enabled:
        cmd = wrap_mangohud(cmd)
    # gamescope must own the window before anything inside it starts
    if spec.gamescope.enabled:
        cmd = wrap_gamescope(cmd, spec.gamescope, operation)
    return cmd


def build_command(
    spec: LaunchSpec,
    environment: Optional[Dict[str, str]] = None,
    *,
    operation: OperationKind = OperationKind.RUN,
    cwd: Optional[str] = None,
) -> ExecutionPlan:
    return ExecutionPlan(
        operation=operation,
        command=tuple(layer_command(spec, operation.value)),
        environment=dict(environment or {}),
        cwd=cwd,
    )


def command_line(plan: ExecutionPlan) -> str:
    return shlex.join(plan.command)
