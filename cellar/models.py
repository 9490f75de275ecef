from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import ExitError


class OperationKind(str, Enum):
    CREATE = "create"
    RUN = "run"
    INSTALLER_RUN = "installer-run"
    UTILITY_RUN = "utility-run"


class ExecMode(str, Enum):
    VISIBLE = "visible"     # inherit stdio, interactive
    MANAGED = "managed"     # capture + filter output


class RuntimeKind(str, Enum):
    PROTON = "proton"       # Wine-compatible runtime
    DXVK = "dxvk"           # DirectX-to-Vulkan translation layer


@dataclass(frozen=True)
class RuntimeDescriptor:
    id: str                 # version id, e.g. "GE-Proton8-32"
    kind: RuntimeKind
    root: Path
    version: str = ""       # numeric part, e.g. "8-32"


@dataclass
class PrefixHandle:
    path: Path
    version: Optional[str] = None    # marker contents at open time
    created: Optional[float] = None  # mtime of the prefix dir


@dataclass
class WineOptions:
    esync: bool = True
    fsync: bool = True
    dxvk: bool = True
    dxvk_async: bool = True
    large_address_aware: bool = False


@dataclass
class DxvkOptions:
    hud: str = ""           # DXVK_HUD string, empty = hidden


@dataclass
class GamescopeOptions:
    enabled: bool = False
    width: int = 1920
    height: int = 1080
    output_width: int = 1920
    output_height: int = 1080
    refresh_rate: int = 60
    upscaling: str = "fsr"
    fullscreen: bool = True
    borderless: bool = False
    force_grab_cursor: bool = False
    expose_wayland: bool = False
    hdr: bool = False
    adaptive_sync: bool = False
    immediate_flips: bool = False


@dataclass
class MangohudOptions:
    enabled: bool = False


@dataclass
class LaunchOptions:
    launch_options: str = ""                            # "%command%" template
    game_args: List[str] = field(default_factory=list)


@dataclass
class EnvironmentOptions:
    """The per-game knobs the environment composer reads."""
    wine: WineOptions = field(default_factory=WineOptions)
    dxvk: DxvkOptions = field(default_factory=DxvkOptions)


@dataclass
class LaunchSpec:
    executable: str
    args: List[str] = field(default_factory=list)
    template: str = ""
    wine: WineOptions = field(default_factory=WineOptions)
    dxvk: DxvkOptions = field(default_factory=DxvkOptions)
    gamescope: GamescopeOptions = field(default_factory=GamescopeOptions)
    mangohud: MangohudOptions = field(default_factory=MangohudOptions)

    def environment_options(self) -> EnvironmentOptions:
        return EnvironmentOptions(wine=self.wine, dxvk=self.dxvk)


@dataclass(frozen=True)
class ExecutionPlan:
    operation: OperationKind
    command: Tuple[str, ...]
    environment: Mapping[str, str] = field(default_factory=dict, hash=False)
    cwd: Optional[str] = None

    def __post_init__(self):
        # read-only view over a private copy
        object.__setattr__(self, "environment", MappingProxyType(dict(self.environment)))


@dataclass
class ExecutionResult:
    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def check(self, operation: str) -> "ExecutionResult":
        if not self.ok:
            raise ExitError(operation, self.exit_code, self.output)
        return self


@dataclass
class InstallationInfo:
    installer_path: str
    install_date: str
    attempts: int = 1


@dataclass
class GameConfig:
    name: str
    executable: str
    wine_prefix: str
    proton_version: str
    dxvk_version: Optional[str] = None
    status: str = "configured"
    preset: Optional[str] = None
    launch: LaunchOptions = field(default_factory=LaunchOptions)
    wine_config: WineOptions = field(default_factory=WineOptions)
    dxvk: DxvkOptions = field(default_factory=DxvkOptions)
    gamescope: GamescopeOptions = field(default_factory=GamescopeOptions)
    mangohud: MangohudOptions = field(default_factory=MangohudOptions)
    env: Dict[str, str] = field(default_factory=dict)   # per-game overrides
    installation: Optional[InstallationInfo] = None

    def launch_spec(self) -> LaunchSpec:
        return LaunchSpec(
            executable=self.executable,
            args=list(self.launch.game_args),
            template=self.launch.launch_options,
            wine=self.wine_config,
            dxvk=self.dxvk,
            gamescope=self.gamescope,
            mangohud=self.mangohud,
        )
