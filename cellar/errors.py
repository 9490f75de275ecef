from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union


class CellarError(Exception):
    """Base class for every error the orchestration core reports."""


class ConfigurationError(CellarError):
    """Bad or missing runtime, unwritable prefix, malformed launch settings.

    Fatal and never retried. ``path`` is the offending path when there is one.
    """

    def __init__(self, message: str, *, path: Optional[Union[str, Path]] = None,
                 operation: Optional[str] = None):
        self.path = str(path) if path is not None else None
        self.operation = operation
        parts = []
        if operation:
            parts.append(f"[{operation}]")
        parts.append(message)
        if self.path and self.path not in message:
            parts.append(f"({self.path})")
        super().__init__(" ".join(parts))


class SpawnError(CellarError):
    """The process never started. Not eligible for installer retry."""

    def __init__(self, operation: str, argv: List[str], os_error: OSError):
        self.operation = operation
        self.argv = list(argv)
        self.os_error = os_error
        program = argv[0] if argv else "<empty command>"
        super().__init__(f"[{operation}] failed to start {program}: {os_error}")


class ExitError(CellarError):
    """The process ran and exited non-zero. Recoverable."""

    def __init__(self, operation: str, exit_code: int, output: str = ""):
        self.operation = operation
        self.exit_code = exit_code
        self.output = output
        msg = f"[{operation}] process exited with status {exit_code}"
        if output:
            msg += ":\n" + output
        super().__init__(msg)


class ValidationError(CellarError):
    """A user-supplied executable path was rejected; resolved by re-prompting."""


class InvalidTransition(CellarError):
    """An installation input arrived in a state that does not accept it."""
