from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List

from .errors import ConfigurationError
from .models import PrefixHandle
from .runtimes import detect_prefix_runtime
from .settings import Layout
from .utils import sanitize_filename

log = logging.getLogger(__name__)


def prefix_path_for(name: str, layout: Layout) -> Path:
    return layout.prefixes_dir / sanitize_filename(name)


def open_prefix(path: Path) -> PrefixHandle:
    """Snapshot a prefix directory; it does not have to exist yet."""
    path = Path(path)
    if not path.exists():
        return PrefixHandle(path=path)
    return PrefixHandle(
        path=path,
        version=detect_prefix_runtime(path),
        created=path.stat().st_mtime,
    )


def allocate_prefix(path: Path) -> PrefixHandle:
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(f"cannot create prefix directory: {e}", path=path,
                                 operation="create") from e
    return open_prefix(path)


def is_initialized(path: Path) -> bool:
    return (Path(path) / "drive_c" / "windows" / "system32").is_dir()


def remove_prefix(handle: PrefixHandle, *, operation: str = "cleanup") -> bool:
    if not handle.path.exists():
        return False
    try:
        shutil.rmtree(handle.path)
    except OSError as e:
        raise ConfigurationError(f"cannot remove prefix: {e}", path=handle.path,
                                 operation=operation) from e
    log.warning("Removed prefix %s", handle.path)
    return True


def list_prefixes(layout: Layout) -> List[PrefixHandle]:
    if not layout.prefixes_dir.is_dir():
        return []
    return [open_prefix(p) for p in sorted(layout.prefixes_dir.iterdir()) if p.is_dir()]
