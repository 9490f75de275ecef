"""Environment composition for every operation cellar runs.

The composed mapping is what the target process sees on top of the caller's
environment. Layers are applied lowest first and each key from a higher layer
replaces the lower value outright:

    computed defaults < global defaults < preset defaults < per-game overrides

Computed defaults come from the operation kind and the per-game options.

``WINEPREFIX`` and ``PROTONPATH`` are asserted after every layer, so nothing
a user configures can point a launch at another prefix or runtime.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from .errors import ConfigurationError
from .models import (
    EnvironmentOptions,
    ExecMode,
    OperationKind,
    PrefixHandle,
    RuntimeDescriptor,
)
from .settings import Layout
from .utils import nearest_existing

log = logging.getLogger(__name__)

PREFIX_VAR = "WINEPREFIX"
RUNTIME_VAR = "PROTONPATH"
PLATFORM_KEYS = (PREFIX_VAR, RUNTIME_VAR)

DEFAULT_GAMEID = "umu-default"
DXVK_DLL_OVERRIDES = "d3d10core,d3d11,d3d9,dxgi=n,b"

# PROTON_VERB values
VERB_INIT = "run"
VERB_RUN = "waitforexitandrun"

_INTERESTING_PREFIXES = ("WINE", "PROTON", "DXVK", "GAMEID", "HOST_LC_ALL")


@dataclass
class EnvLayers:
    global_defaults: Dict[str, str] = field(default_factory=dict)
    preset: Dict[str, str] = field(default_factory=dict)
    overrides: Dict[str, str] = field(default_factory=dict)


def forced_mode(op: OperationKind) -> Optional[ExecMode]:
    """Installers and utilities always run visible; None means caller's choice."""
    if op in (OperationKind.INSTALLER_RUN, OperationKind.UTILITY_RUN):
        return ExecMode.VISIBLE
    return None


def sync_flag(enabled: bool) -> str:
    return "1" if enabled else "0"


def _check_paths(op: OperationKind, runtime: RuntimeDescriptor, prefix: PrefixHandle) -> None:
    if not runtime.root.is_dir():
        raise ConfigurationError(
            f"runtime {runtime.id!r} not found at {runtime.root}",
            path=runtime.root, operation=op.value,
        )
    if op is OperationKind.CREATE:
        target = nearest_existing(prefix.path)
    else:
        target = prefix.path
        if not target.is_dir():
            raise ConfigurationError(
                f"prefix does not exist: {target}", path=target, operation=op.value,
            )
    if not os.access(target, os.W_OK):
        raise ConfigurationError(
            f"prefix path is not writable: {target}", path=target, operation=op.value,
        )


def _base_env(runtime: RuntimeDescriptor, prefix: PrefixHandle) -> Dict[str, str]:
    return {
        "WINEARCH": "win64",
        PREFIX_VAR: str(prefix.path),
        RUNTIME_VAR: str(runtime.root),
        "HOST_LC_ALL": "en_US.UTF-8",
        "GAMEID": DEFAULT_GAMEID,
    }


def _create_env(runtime: RuntimeDescriptor, layout: Layout) -> Dict[str, str]:
    cache = layout.runtime_cache_dir(runtime.id)
    return {
        "WINEDLLOVERRIDES": "",
        "WINE_MONO_CACHE_DIR": str(cache / "mono"),
        "WINE_GECKO_CACHE_DIR": str(cache / "gecko"),
        "PROTON_VERB": VERB_INIT,
    }


def _run_env(prefix: PrefixHandle, options: EnvironmentOptions) -> Dict[str, str]:
    wine = options.wine
    env = {
        "PROTON_VERB": VERB_RUN,
        "WINEESYNC": sync_flag(wine.esync),
        "WINEFSYNC": sync_flag(wine.fsync),
    }
    if wine.large_address_aware:
        env["WINE_LARGE_ADDRESS_AWARE"] = "1"

    if wine.dxvk:
        env["WINEDLLOVERRIDES"] = DXVK_DLL_OVERRIDES
        env["DXVK_HUD"] = options.dxvk.hud or "0"
        if wine.dxvk_async:
            env["DXVK_ASYNC"] = "1"
        env["DXVK_STATE_CACHE_PATH"] = str(prefix.path / "dxvk_cache")
    else:
        env["WINEDLLOVERRIDES"] = ""
    return env


def compose_environment(
    op: OperationKind,
    runtime: RuntimeDescriptor,
    prefix: PrefixHandle,
    options: Optional[EnvironmentOptions] = None,
    *,
    layout: Optional[Layout] = None,
    layers: Optional[EnvLayers] = None,
) -> Dict[str, str]:
    """Return the environment mapping for running ``op`` against ``prefix``.

    Raises ConfigurationError when the runtime root is missing or the prefix
    cannot be written.
    """
    options = options or EnvironmentOptions()
    layers = layers or EnvLayers()
    _check_paths(op, runtime, prefix)

    env = _base_env(runtime, prefix)
    if op is OperationKind.CREATE:
        env.update(_create_env(runtime, layout or Layout.default()))
    else:
        env.update(_run_env(prefix, options))

    # computed values are the floor; every configured layer replaces them
    env.update(layers.global_defaults)
    env.update(layers.preset)
    env.update(layers.overrides)
    platform = {PREFIX_VAR: str(prefix.path), RUNTIME_VAR: str(runtime.root)}
    for key, value in platform.items():
        if env.get(key) != value:
            log.warning("Ignoring configured %s=%s; it is owned by the launcher", key, env.get(key))
        env[key] = value

    return {str(k): str(v) for k, v in env.items()}


def interesting(env: Dict[str, str]) -> Dict[str, str]:
    """The subset of ``env`` worth showing in logs."""
    return {k: v for k, v in sorted(env.items()) if k.startswith(_INTERESTING_PREFIXES)}
