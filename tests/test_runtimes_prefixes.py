import pytest

from cellar.errors import ConfigurationError
from cellar.models import PrefixHandle, RuntimeKind
from cellar.prefixes import (
    allocate_prefix,
    is_initialized,
    list_prefixes,
    open_prefix,
    prefix_path_for,
    remove_prefix,
)
from cellar.runtimes import (
    detect_prefix_runtime,
    discover_runtimes,
    resolve_runtime,
    version_from_name,
    write_version_marker,
)
from cellar.utils import sanitize_filename, strip_outer_quotes, windows_to_host


@pytest.mark.parametrize("name,version", [
    ("GE-Proton8-32", "8-32"),
    ("Proton 8.0", "8.0"),
    ("Proton-Experimental", "Proton-Experimental"),
])
def test_version_from_name(name, version):
    assert version_from_name(name) == version


def test_discover_managed_before_steam(layout, runtime, touch, tmp_path):
    touch(tmp_path / "steam" / "steamapps" / "common" / "Proton 8.0" / "proton")
    touch(tmp_path / "steam" / "steamapps" / "common" / "Half-Life" / "proton")
    found = discover_runtimes(layout)
    assert [r.id for r in found] == ["GE-Proton8-32", "Proton 8.0"]
    assert all(r.kind is RuntimeKind.PROTON for r in found)


def test_discover_dxvk(layout):
    (layout.runners_dir / "dxvk" / "dxvk-2.3" / "x64").mkdir(parents=True)
    (layout.runners_dir / "dxvk" / "junk").mkdir()
    found = discover_runtimes(layout, RuntimeKind.DXVK)
    assert [(r.id, r.version) for r in found] == [("dxvk-2.3", "2.3")]


def test_resolve_runtime(layout, runtime):
    assert resolve_runtime("GE-Proton8-32", layout) == runtime
    assert resolve_runtime("8-32", layout) == runtime
    assert resolve_runtime("Proton8", layout) == runtime
    with pytest.raises(ConfigurationError, match="not found"):
        resolve_runtime("GE-Proton9-1", layout)


def test_version_marker(prefix):
    assert detect_prefix_runtime(prefix.path) is None
    write_version_marker(prefix.path, "GE-Proton8-32")
    assert detect_prefix_runtime(prefix.path) == "GE-Proton8-32"
    assert open_prefix(prefix.path).version == "GE-Proton8-32"


def test_prefix_lifecycle(layout):
    path = prefix_path_for("My Game", layout)
    assert path == layout.prefixes_dir / "my_game"
    handle = open_prefix(path)
    assert handle.version is None and handle.created is None
    handle = allocate_prefix(path)
    assert handle.created is not None
    assert not is_initialized(path)
    assert [h.path for h in list_prefixes(layout)] == [path]
    assert remove_prefix(handle)
    assert not remove_prefix(handle)
    assert list_prefixes(layout) == []


def test_allocate_prefix_failure(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(ConfigurationError):
        allocate_prefix(blocker / "prefix")


def test_remove_missing_prefix(tmp_path):
    assert remove_prefix(PrefixHandle(path=tmp_path / "gone")) is False


@pytest.mark.parametrize("text,rel", [
    ("C:\\Games\\g.exe", "drive_c/Games/g.exe"),
    ("c:/Games/g.exe", "drive_c/Games/g.exe"),
    ("D:\\", "drive_d"),
    ("C:\\a\\.\\b\\..\\g.exe", "drive_c/a/g.exe"),
])
def test_windows_to_host(tmp_path, text, rel):
    assert windows_to_host(text, tmp_path) == tmp_path / rel


def test_windows_to_host_ignores_host_paths(tmp_path):
    assert windows_to_host("/games/g.exe", tmp_path) is None
    assert windows_to_host("Cdrive/g.exe", tmp_path) is None


def test_small_helpers():
    assert sanitize_filename("Game: The Sequel") == "game__the_sequel"
    assert strip_outer_quotes("'x y'") == "x y"
    assert strip_outer_quotes("'x") == "'x"


def test_remove_prefix_failure_is_configuration_error(layout, monkeypatch):
    handle = allocate_prefix(layout.prefixes_dir / "stuck")

    def deny(path):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr("cellar.prefixes.shutil.rmtree", deny)
    with pytest.raises(ConfigurationError) as ei:
        remove_prefix(handle)
    assert ei.value.operation == "cleanup"
    assert ei.value.path == str(handle.path)
    assert "Permission denied" in str(ei.value)
