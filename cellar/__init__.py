import logging
import os
from pathlib import Path

from .settings import Layout

__version__ = "0.1.0"

# Base directory for runners, prefixes and configs unless overridden
CELLAR_HOME = os.environ.get("CELLAR_HOME")
LOG_LEVEL = os.environ.get("CELLAR_LOG_LEVEL", "WARNING")


def configure_logging(verbosity: int = 0) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = getattr(logging, LOG_LEVEL.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def create_layout(base_dir: str = None) -> Layout:
    """Resolve the directory layout and make sure every directory exists."""
    base = base_dir or CELLAR_HOME
    layout = Layout.from_base(Path(base).expanduser()) if base else Layout.default()
    layout.ensure_all_exist()
    return layout
