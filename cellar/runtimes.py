from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional

from .errors import ConfigurationError
from .models import RuntimeDescriptor, RuntimeKind
from .settings import Layout

log = logging.getLogger(__name__)

VERSION_MARKER = "version"
PROTON_LAUNCHER = "proton"

_VERSION_RE = re.compile(r"proton[^\d]*(\d+(?:[.-]\d+)*)", re.IGNORECASE)


def version_from_name(name: str) -> str:
    """'GE-Proton8-32' -> '8-32', 'Proton 8.0' -> '8.0'"""
    m = _VERSION_RE.search(name)
    return m.group(1) if m else name


def _scan(parent: Path, *, require_name: bool) -> List[RuntimeDescriptor]:
    found: List[RuntimeDescriptor] = []
    if not parent.is_dir():
        return found
    for p in sorted(parent.iterdir()):
        if not p.is_dir():
            continue
        if require_name and "proton" not in p.name.lower():
            continue
        if not (p / PROTON_LAUNCHER).exists():
            continue
        found.append(RuntimeDescriptor(
            id=p.name, kind=RuntimeKind.PROTON, root=p, version=version_from_name(p.name),
        ))
    return found


def _scan_dxvk(parent: Path) -> List[RuntimeDescriptor]:
    if not parent.is_dir():
        return []
    return [
        RuntimeDescriptor(id=p.name, kind=RuntimeKind.DXVK, root=p,
                          version=re.sub(r"^dxvk-?v?", "", p.name))
        for p in sorted(parent.iterdir())
        if p.is_dir() and (p / "x64").is_dir()
    ]


def discover_runtimes(layout: Layout, kind: RuntimeKind = RuntimeKind.PROTON) -> List[RuntimeDescriptor]:
    """Runtimes already on disk. Cellar-managed ones come first."""
    if kind is RuntimeKind.DXVK:
        return _scan_dxvk(layout.runners_dir / "dxvk")
    runtimes = _scan(layout.runners_dir / "proton", require_name=False)
    for steam in layout.steam_dirs:
        runtimes.extend(_scan(Path(steam) / "steamapps" / "common", require_name=True))
    return runtimes


def resolve_runtime(version: str, layout: Layout, kind: RuntimeKind = RuntimeKind.PROTON,
                    *, operation: Optional[str] = None) -> RuntimeDescriptor:
    runtimes = discover_runtimes(layout, kind)
    for r in runtimes:
        if r.id == version or r.version == version:
            return r
    for r in runtimes:
        if version in r.id:
            return r
    raise ConfigurationError(
        f"{kind.value} version {version!r} not found; install it under "
        f"{layout.runners_dir / kind.value}",
        path=layout.runners_dir / kind.value, operation=operation,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Prefix version marker
# ──────────────────────────────────────────────────────────────────────────────

def marker_path(prefix_path: Path) -> Path:
    return Path(prefix_path) / VERSION_MARKER


def detect_prefix_runtime(prefix_path: Path) -> Optional[str]:
    """Runtime id recorded in the prefix, if any."""
    marker = marker_path(prefix_path)
    if not marker.is_file():
        return None
    text = marker.read_text(encoding="utf-8", errors="ignore").strip()
    return text.splitlines()[0].strip() if text else None


def write_version_marker(prefix_path: Path, runtime_id: str) -> Path:
    marker = marker_path(prefix_path)
    marker.write_text(runtime_id + "\n", encoding="utf-8")
    log.debug("Wrote runtime marker %s -> %s", marker, runtime_id)
    return marker
