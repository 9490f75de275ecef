import os
import posixpath
import re
from pathlib import Path
from typing import Optional

_DRIVE_RE = re.compile(r"^([A-Za-z]):(?:[\\/]|$)")
_UNSAFE_CHARS = set('/\\:*?"<>|')


def strip_outer_quotes(s: str) -> str:
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        return s[1:-1]
    return s


def sanitize_filename(name: str) -> str:
    """'Game: The Sequel' -> 'game__the_sequel'"""
    out = "".join("_" if (c in _UNSAFE_CHARS or not c.isprintable()) else c for c in name)
    return out.strip().lower().replace(" ", "_")


def expand_tilde(path: str) -> Path:
    return Path(os.path.expanduser(path))


def windows_to_host(path: str, prefix_root: Path) -> Optional[Path]:
    """Map 'C:\\Games\\g.exe' to '<prefix>/drive_c/Games/g.exe'.

    Returns None when the input is not a drive-letter path.
    """
    m = _DRIVE_RE.match(path)
    if not m:
        return None
    drive = "drive_" + m.group(1).lower()
    rest = path[2:].replace("\\", "/").lstrip("/")
    rest = posixpath.normpath(rest) if rest else ""
    if rest in ("", "."):
        return Path(prefix_root) / drive
    return Path(prefix_root) / drive / rest


def is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(Path(root).resolve())
    except ValueError:
        return False
    return True


def nearest_existing(path: Path) -> Path:
    p = Path(path)
    while not p.exists() and p.parent != p:
        p = p.parent
    return p
