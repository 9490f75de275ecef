import subprocess

import pytest

from cellar.errors import SpawnError
from cellar.executor import OutputFilter, execute, split_assignments
from cellar.models import ExecMode, ExecutionPlan, OperationKind


def _plan(*argv, env=None, op=OperationKind.RUN, cwd=None):
    return ExecutionPlan(operation=op, command=tuple(argv),
                         environment=env or {"WINEPREFIX": "/p"}, cwd=cwd)


@pytest.mark.parametrize("line,kept", [
    ("err:module:import_dll Loading library failed", True),
    ("Some ERROR happened", True),
    ("fixme:ntdll:stub error", False),
    ("err:setupapi:create_dest_file failed", False),
    ("wine-staging error", False),
    ("using experimental patches, failed", False),
    ("winediag: error something", False),
    ("Function STUB failed", False),
    ("all good", False),
    ("   ", False),
])
def test_output_filter(line, kept):
    assert OutputFilter().keep(line) is kept


def test_filter_apply_keeps_order():
    text = "error one\nfixme:x error\nnothing\nfailed two\n"
    assert OutputFilter().apply(text) == ["error one", "failed two"]


def test_split_assignments():
    env, argv = split_assignments(["PROTON_LOG=1", "DXVK_HUD=fps", "umu-run", "g.exe", "X=1"])
    assert env == {"PROTON_LOG": "1", "DXVK_HUD": "fps"}
    assert argv == ["umu-run", "g.exe", "X=1"]


def test_split_assignments_after_wrappers():
    env, argv = split_assignments(["gamescope", "-w", "1", "--", "mangohud", "A=b", "umu-run", "g"])
    assert env == {"A": "b"}
    assert argv == ["gamescope", "-w", "1", "--", "mangohud", "umu-run", "g"]


def test_split_assignments_ignores_program_arguments():
    env, argv = split_assignments(["gamemoderun", "A=b", "umu-run"])
    assert env == {}
    assert argv == ["gamemoderun", "A=b", "umu-run"]


def test_visible_inherits_stdio(fake_popen, tmp_path):
    res = execute(_plan("umu-run", "setup.exe", cwd=str(tmp_path)), ExecMode.VISIBLE)
    argv, kw = fake_popen.calls[0]
    assert argv == ["umu-run", "setup.exe"]
    assert "stdout" not in kw
    assert kw["cwd"] == str(tmp_path)
    assert kw["env"]["WINEPREFIX"] == "/p"
    assert res.exit_code == 0 and res.output == ""


def test_managed_captures_and_filters(fake_popen):
    fake_popen.output_for_next = "fixme:d3d error\nreal error here\n"
    fake_popen.returncode_for_next = 0
    res = execute(_plan("umu-run", "g.exe"))
    _, kw = fake_popen.calls[0]
    assert kw["stdout"] is subprocess.PIPE
    assert kw["stderr"] is subprocess.STDOUT
    assert res.output == "real error here"


def test_non_zero_exit_is_a_result(fake_popen):
    fake_popen.returncode_for_next = 3
    res = execute(_plan("umu-run", "g.exe"))
    assert res.exit_code == 3
    assert not res.ok


def test_missing_cwd_falls_back(fake_popen, tmp_path):
    execute(_plan("umu-run", "g.exe", cwd=str(tmp_path / "gone")))
    assert fake_popen.calls[0][1]["cwd"] is None


def test_lifted_assignments_reach_environment(fake_popen):
    execute(_plan("PROTON_LOG=1", "WINEPREFIX=/evil", "umu-run", "g.exe"))
    argv, kw = fake_popen.calls[0]
    assert argv == ["umu-run", "g.exe"]
    assert kw["env"]["PROTON_LOG"] == "1"
    assert kw["env"]["WINEPREFIX"] == "/p"


def test_spawn_failure(fake_popen):
    fake_popen.raise_for_next = FileNotFoundError(2, "No such file", "umu-run")
    with pytest.raises(SpawnError) as ei:
        execute(_plan("umu-run", "g.exe", op=OperationKind.CREATE))
    assert ei.value.operation == "create"
    assert ei.value.argv == ["umu-run", "g.exe"]
    assert isinstance(ei.value.os_error, FileNotFoundError)


def test_empty_command_is_spawn_error(fake_popen):
    with pytest.raises(SpawnError):
        execute(_plan())
    assert fake_popen.calls == []
