from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

log = logging.getLogger(__name__)

DEFAULT_PROTON = "GE-Proton8-32"


@dataclass(frozen=True)
class Layout:
    """Where cellar keeps things on disk. Tests build one over tmp_path."""
    base_dir: Path
    runners_dir: Path
    prefixes_dir: Path
    configs_dir: Path
    cache_dir: Path
    steam_dirs: List[Path] = field(default_factory=list)

    @classmethod
    def from_base(cls, base_dir: Path, steam_dirs: List[Path] = None) -> "Layout":
        base_dir = Path(base_dir)
        return cls(
            base_dir=base_dir,
            runners_dir=base_dir / "runners",
            prefixes_dir=base_dir / "prefixes",
            configs_dir=base_dir / "configs",
            cache_dir=base_dir / "cache",
            steam_dirs=list(steam_dirs or []),
        )

    @classmethod
    def default(cls) -> "Layout":
        home = Path.home()
        data_home = Path(os.environ.get("XDG_DATA_HOME", home / ".local" / "share"))
        steam = [home / ".steam" / "steam", data_home / "Steam"]
        return cls.from_base(data_home / "cellar", steam_dirs=steam)

    @property
    def settings_file(self) -> Path:
        return self.base_dir / "settings.json"

    def ensure_all_exist(self) -> None:
        for d in (self.base_dir, self.runners_dir, self.prefixes_dir,
                  self.configs_dir, self.cache_dir,
                  self.runners_dir / "proton", self.runners_dir / "dxvk"):
            d.mkdir(parents=True, exist_ok=True)

    def runtime_cache_dir(self, runtime_id: str) -> Path:
        return self.cache_dir / runtime_id


def default_settings() -> Dict:
    return {
        "default_proton": DEFAULT_PROTON,
        "env": {},          # global environment defaults, lowest precedence
        "presets": {},      # preset name -> environment defaults
    }


def load_settings(settings_file: Path) -> Dict:
    default = default_settings()
    if not settings_file.exists():
        return default
    try:
        data = json.loads(settings_file.read_text("utf-8"))
    except (OSError, ValueError) as e:
        log.warning("Ignoring unreadable settings file %s: %s", settings_file, e)
        return default
    default.update({k: data.get(k, default[k]) for k in default})
    return default


def save_settings(settings_file: Path, settings: dict) -> None:
    settings_file.write_text(json.dumps(settings, indent=2), encoding="utf-8")


def preset_env(settings: Dict, preset: str = None) -> Dict[str, str]:
    if not preset:
        return {}
    presets = settings.get("presets") or {}
    if preset not in presets:
        log.warning("Unknown preset %r, ignoring", preset)
        return {}
    return {str(k): str(v) for k, v in presets[preset].items()}
