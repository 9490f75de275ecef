import json
import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, List

from .errors import ConfigurationError
from .models import (
    DxvkOptions,
    GameConfig,
    GamescopeOptions,
    InstallationInfo,
    LaunchOptions,
    MangohudOptions,
    WineOptions,
)
from .settings import Layout
from .utils import sanitize_filename

log = logging.getLogger(__name__)

CONFIG_EXT = ".json"

_SECTIONS = {
    "launch": LaunchOptions,
    "wine_config": WineOptions,
    "dxvk": DxvkOptions,
    "gamescope": GamescopeOptions,
    "mangohud": MangohudOptions,
}


def config_path(layout: Layout, name: str) -> Path:
    return layout.configs_dir / f"{sanitize_filename(name)}{CONFIG_EXT}"


def _section(cls, raw: Any):
    if not isinstance(raw, dict):
        return cls()
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in raw.items() if k in known})


def game_from_dict(data: Dict) -> GameConfig:
    for key in ("name", "executable", "wine_prefix", "proton_version"):
        if not data.get(key):
            raise ValueError(f"missing required field {key!r}")
    inst = data.get("installation")
    return GameConfig(
        name=data["name"],
        executable=data["executable"],
        wine_prefix=data["wine_prefix"],
        proton_version=data["proton_version"],
        dxvk_version=data.get("dxvk_version"),
        status=data.get("status", "configured"),
        preset=data.get("preset"),
        env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
        installation=_section(InstallationInfo, inst) if isinstance(inst, dict) else None,
        **{key: _section(cls, data.get(key)) for key, cls in _SECTIONS.items()},
    )


def game_to_dict(config: GameConfig) -> Dict:
    data = asdict(config)
    if data.get("installation") is None:
        data.pop("installation", None)
    return data


def save_game(layout: Layout, config: GameConfig) -> Path:
    if not config.name.strip():
        raise ConfigurationError("game name cannot be empty")
    p = config_path(layout, config.name)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(game_to_dict(config), indent=2), encoding="utf-8")
    log.debug("Saved game config %s", p)
    return p


def load_game(layout: Layout, name: str) -> GameConfig:
    p = config_path(layout, name)
    if not p.exists():
        raise ConfigurationError(f"game {name!r} not found", path=p)
    try:
        return game_from_dict(json.loads(p.read_text("utf-8")))
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"failed to parse game config: {e}", path=p) from e


def game_exists(layout: Layout, name: str) -> bool:
    return config_path(layout, name).exists()


def list_games(layout: Layout) -> List[str]:
    if not layout.configs_dir.is_dir():
        return []
    return sorted(p.stem for p in layout.configs_dir.iterdir()
                  if p.is_file() and p.suffix == CONFIG_EXT)


def remove_game(layout: Layout, name: str) -> None:
    p = config_path(layout, name)
    if not p.exists():
        raise ConfigurationError(f"game {name!r} not found", path=p)
    p.unlink()
