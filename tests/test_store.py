import json

import pytest

from cellar.errors import ConfigurationError
from cellar.models import GameConfig, GamescopeOptions, InstallationInfo
from cellar.settings import load_settings, preset_env, save_settings
from cellar.store import (
    config_path,
    game_exists,
    list_games,
    load_game,
    remove_game,
    save_game,
)


def _game(name="Game: The Sequel", **kw):
    return GameConfig(name=name, executable="/games/g.exe", wine_prefix="/p/g",
                      proton_version="GE-Proton8-32", **kw)


def test_save_and_load(layout):
    cfg = _game(gamescope=GamescopeOptions(enabled=True, upscaling="nis"),
                env={"DXVK_HUD": "fps"},
                installation=InstallationInfo("/dl/setup.exe", "2024-01-01T00:00:00", 2))
    p = save_game(layout, cfg)
    assert p == layout.configs_dir / "game__the_sequel.json"
    assert load_game(layout, "Game: The Sequel") == cfg


def test_installation_omitted_when_absent(layout):
    p = save_game(layout, _game())
    assert "installation" not in json.loads(p.read_text())


def test_unknown_keys_ignored(layout):
    p = config_path(layout, "x")
    p.write_text(json.dumps({
        "name": "x", "executable": "/g.exe", "wine_prefix": "/p", "proton_version": "auto",
        "gamescope": {"enabled": True, "bogus": 1}, "extra": True,
    }))
    cfg = load_game(layout, "x")
    assert cfg.gamescope.enabled
    assert cfg.wine_config.esync


def test_missing_required_field(layout):
    config_path(layout, "x").write_text(json.dumps({"name": "x"}))
    with pytest.raises(ConfigurationError, match="executable"):
        load_game(layout, "x")


def test_bad_json(layout):
    config_path(layout, "x").write_text("{not json")
    with pytest.raises(ConfigurationError):
        load_game(layout, "x")


def test_missing_game(layout):
    with pytest.raises(ConfigurationError, match="not found"):
        load_game(layout, "nope")
    with pytest.raises(ConfigurationError):
        remove_game(layout, "nope")


def test_empty_name_rejected(layout):
    with pytest.raises(ConfigurationError):
        save_game(layout, _game(name="  "))


def test_list_and_remove(layout):
    save_game(layout, _game("B"))
    save_game(layout, _game("a"))
    assert list_games(layout) == ["a", "b"]
    remove_game(layout, "B")
    assert not game_exists(layout, "B")
    assert list_games(layout) == ["a"]


def test_settings_roundtrip_and_defaults(layout):
    s = load_settings(layout.settings_file)
    assert s["default_proton"] == "GE-Proton8-32"
    s["presets"] = {"perf": {"DXVK_HUD": "fps", "X": 1}}
    save_settings(layout.settings_file, s)
    loaded = load_settings(layout.settings_file)
    assert preset_env(loaded, "perf") == {"DXVK_HUD": "fps", "X": "1"}
    assert preset_env(loaded, "missing") == {}
    assert preset_env(loaded, None) == {}


def test_unreadable_settings_fall_back(layout):
    layout.settings_file.write_text("[[[")
    assert load_settings(layout.settings_file)["env"] == {}
