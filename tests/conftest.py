import os
from pathlib import Path

import pytest

from cellar.models import PrefixHandle, RuntimeDescriptor, RuntimeKind
from cellar.settings import Layout


def _touch(p: Path, data: bytes = b"", mode: int = None):
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(data or b"stub")
    if mode is not None:
        os.chmod(p, mode)
    return p


class FakePopen:
    """Records argv/kwargs instead of spawning anything."""
    calls = []
    returncode_for_next = 0
    output_for_next = ""
    raise_for_next = None

    def __init__(self, argv, **kw):
        if FakePopen.raise_for_next is not None:
            exc, FakePopen.raise_for_next = FakePopen.raise_for_next, None
            raise exc
        FakePopen.calls.append((argv, kw))
        self.returncode = FakePopen.returncode_for_next
        self._output = FakePopen.output_for_next

    def wait(self):
        return self.returncode

    def communicate(self):
        return self._output, None


@pytest.fixture
def touch():
    return _touch


@pytest.fixture
def fake_popen(monkeypatch):
    import cellar.executor as E
    FakePopen.calls = []
    FakePopen.returncode_for_next = 0
    FakePopen.output_for_next = ""
    FakePopen.raise_for_next = None
    monkeypatch.setattr(E.subprocess, "Popen", FakePopen)
    return FakePopen


@pytest.fixture
def layout(tmp_path):
    lay = Layout.from_base(tmp_path / "cellar", steam_dirs=[tmp_path / "steam"])
    lay.ensure_all_exist()
    return lay


@pytest.fixture
def runtime(layout):
    root = layout.runners_dir / "proton" / "GE-Proton8-32"
    _touch(root / "proton", mode=0o755)
    return RuntimeDescriptor(id="GE-Proton8-32", kind=RuntimeKind.PROTON, root=root, version="8-32")


@pytest.fixture
def prefix(layout):
    path = layout.prefixes_dir / "game"
    (path / "drive_c" / "windows" / "system32").mkdir(parents=True)
    return PrefixHandle(path=path)
