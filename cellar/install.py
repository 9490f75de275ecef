"""Installer sessions.

An installer runs visibly inside a fresh prefix and the user, not the exit
code, decides whether it worked. The session moves through:

    Created -> Running -> AwaitingConfirmation
        yes -> AwaitingExecutablePath -> Configured
        no  -> AwaitingRetryDecision
                  yes -> Running (same prefix, attempt + 1)
                  no  -> AwaitingCleanupDecision -> Cancelled

Every prompt answer is an explicit input to :func:`drive_installation`, so
tests and the CLI drive the same machine.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .errors import ConfigurationError, InvalidTransition, SpawnError, ValidationError
from .launch import installer_plan, run_plan
from .models import GameConfig, InstallationInfo, PrefixHandle, RuntimeDescriptor
from .prefixes import remove_prefix
from .settings import Layout
from .utils import expand_tilde, is_within, strip_outer_quotes, windows_to_host

log = logging.getLogger(__name__)


class InstallState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    AWAITING_CONFIRMATION = "awaiting-confirmation"
    AWAITING_EXECUTABLE_PATH = "awaiting-executable-path"
    CONFIGURED = "configured"
    AWAITING_RETRY_DECISION = "awaiting-retry-decision"
    AWAITING_CLEANUP_DECISION = "awaiting-cleanup-decision"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (InstallState.CONFIGURED, InstallState.CANCELLED)

# ──────────────────────────────────────────────────────────────────────────────
# Inputs
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class ProcessExited:
    exit_code: int


@dataclass(frozen=True)
class Confirm:
    yes: bool


@dataclass(frozen=True)
class ExecutablePath:
    text: str


@dataclass(frozen=True)
class Retry:
    yes: bool


@dataclass(frozen=True)
class Cleanup:
    yes: bool


UserInput = Union[Start, ProcessExited, Confirm, ExecutablePath, Retry, Cleanup]


@dataclass
class InstallationSession:
    prefix: PrefixHandle
    installer: Path
    runtime_id: str
    state: InstallState = InstallState.CREATED
    attempts: int = 0
    executable: Optional[Path] = None
    exit_codes: List[int] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    prefix_removed: bool = False
    cleanup_error: Optional[str] = None

    @property
    def last_error(self) -> Optional[str]:
        return self.errors[-1] if self.errors else None

# ──────────────────────────────────────────────────────────────────────────────
# Executable path validation
# ──────────────────────────────────────────────────────────────────────────────

def resolve_executable(text: str, prefix_root: Path) -> Path:
    """Turn user input into a host path inside the prefix, or raise ValidationError.

    Accepts 'C:\\Games\\g.exe' (mapped onto <prefix>/drive_c) or a host path.
    """
    raw = strip_outer_quotes((text or "").strip())
    if not raw:
        raise ValidationError("no path given")

    path = windows_to_host(raw, prefix_root)
    if path is None:
        path = expand_tilde(raw).absolute()

    if not path.exists():
        raise ValidationError(f"{path} does not exist")
    if not is_within(path, prefix_root):
        raise ValidationError(f"{path} is not inside the prefix {prefix_root}")
    if not path.is_file():
        raise ValidationError(f"{path} is not a file")
    if not os.access(path, os.X_OK):
        raise ValidationError(f"{path} is not marked executable")
    return path

# ──────────────────────────────────────────────────────────────────────────────
# Transitions
# ──────────────────────────────────────────────────────────────────────────────

def _start(session: InstallationSession, _inp: Start) -> InstallState:
    session.attempts += 1
    return InstallState.RUNNING


def _exited(session: InstallationSession, inp: ProcessExited) -> InstallState:
    # exit status is recorded, never interpreted
    session.exit_codes.append(inp.exit_code)
    return InstallState.AWAITING_CONFIRMATION


def _confirm(session: InstallationSession, inp: Confirm) -> InstallState:
    if inp.yes:
        return InstallState.AWAITING_EXECUTABLE_PATH
    return InstallState.AWAITING_RETRY_DECISION


def _path(session: InstallationSession, inp: ExecutablePath) -> InstallState:
    try:
        session.executable = resolve_executable(inp.text, session.prefix.path)
    except ValidationError as e:
        session.errors.append(str(e))
        log.info("Rejected executable path %r: %s", inp.text, e)
        return InstallState.AWAITING_EXECUTABLE_PATH
    return InstallState.CONFIGURED


def _retry(session: InstallationSession, inp: Retry) -> InstallState:
    if inp.yes:
        session.attempts += 1
        return InstallState.RUNNING
    return InstallState.AWAITING_CLEANUP_DECISION


def _cleanup(session: InstallationSession, inp: Cleanup) -> InstallState:
    if inp.yes:
        try:
            session.prefix_removed = remove_prefix(session.prefix)
        except ConfigurationError as e:
            # the cancel stands; the prefix is left for the user to clear
            session.cleanup_error = str(e)
            session.errors.append(str(e))
            log.error("%s", e)
    return InstallState.CANCELLED


_TRANSITIONS: Dict[tuple, Callable] = {
    (InstallState.CREATED, Start): _start,
    (InstallState.RUNNING, ProcessExited): _exited,
    (InstallState.AWAITING_CONFIRMATION, Confirm): _confirm,
    (InstallState.AWAITING_EXECUTABLE_PATH, ExecutablePath): _path,
    (InstallState.AWAITING_RETRY_DECISION, Retry): _retry,
    (InstallState.AWAITING_CLEANUP_DECISION, Cleanup): _cleanup,
}


def drive_installation(session: InstallationSession, user_input: UserInput) -> InstallState:
    """Apply one input to ``session`` and return the state it lands in."""
    handler = _TRANSITIONS.get((session.state, type(user_input)))
    if handler is None:
        raise InvalidTransition(
            f"{type(user_input).__name__} is not accepted in state {session.state.value}"
        )
    previous = session.state
    session.state = handler(session, user_input)
    if session.state is not previous:
        log.info("Installation %s: %s -> %s (attempt %d)",
                 session.installer.name, previous.value, session.state.value, session.attempts)
    return session.state

# ──────────────────────────────────────────────────────────────────────────────
# Driving a session end to end
# ──────────────────────────────────────────────────────────────────────────────

class InstallationDriver:
    """Runs a session to a terminal state.

    ``runner`` starts the installer and returns its exit code; ``prompter``
    answers the questions (confirm_success, ask_executable, ask_retry,
    ask_cleanup), each receiving the session.
    """

    def __init__(self, runner: Callable[[InstallationSession], int], prompter):
        self.runner = runner
        self.prompter = prompter

    def run(self, session: InstallationSession) -> InstallState:
        while not session.state.terminal:
            drive_installation(session, self.next_input(session))
        return session.state

    def next_input(self, session: InstallationSession) -> UserInput:
        state = session.state
        if state is InstallState.CREATED:
            return Start()
        if state is InstallState.RUNNING:
            return ProcessExited(self._run_installer(session))
        if state is InstallState.AWAITING_CONFIRMATION:
            return Confirm(bool(self.prompter.confirm_success(session)))
        if state is InstallState.AWAITING_EXECUTABLE_PATH:
            return ExecutablePath(self.prompter.ask_executable(session))
        if state is InstallState.AWAITING_RETRY_DECISION:
            return Retry(bool(self.prompter.ask_retry(session)))
        if state is InstallState.AWAITING_CLEANUP_DECISION:
            return Cleanup(bool(self.prompter.ask_cleanup(session)))
        raise InvalidTransition(f"no input for terminal state {state.value}")

    def _run_installer(self, session: InstallationSession) -> int:
        try:
            return self.runner(session)
        except SpawnError as e:
            session.errors.append(str(e))
            raise


def installer_runner(runtime: RuntimeDescriptor, layout: Layout,
                     settings: Optional[Dict] = None) -> Callable[[InstallationSession], int]:
    def _run(session: InstallationSession) -> int:
        plan = installer_plan(session.installer, runtime, session.prefix, layout, settings)
        return run_plan(plan).exit_code
    return _run


def finalize_config(session: InstallationSession, name: str) -> GameConfig:
    """GameConfig for a Configured session."""
    if session.state is not InstallState.CONFIGURED or session.executable is None:
        raise InvalidTransition(f"session is {session.state.value}, not configured")
    return GameConfig(
        name=name,
        executable=str(session.executable),
        wine_prefix=str(session.prefix.path),
        proton_version=session.runtime_id,
        status="configured",
        installation=InstallationInfo(
            installer_path=str(session.installer),
            install_date=datetime.now().isoformat(timespec="seconds"),
            attempts=session.attempts,
        ),
    )
