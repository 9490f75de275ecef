from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .command import GAMESCOPE_SEPARATOR, LAUNCHER, MANGOHUD, command_line
from .environment import PLATFORM_KEYS, interesting
from .errors import SpawnError
from .models import ExecMode, ExecutionPlan, ExecutionResult

log = logging.getLogger(__name__)

_ASSIGN_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")

# ──────────────────────────────────────────────────────────────────────────────
# Output filtering (managed mode)
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class OutputFilter:
    """Keep genuine error lines, drop known compatibility-layer chatter.

    A line survives when it mentions one of ``allow`` (case-insensitive) and
    hits none of the deny rules.
    """
    allow: Tuple[str, ...] = ("error", "failed")
    deny: Tuple[str, ...] = (
        "fixme:",
        "err:setupapi:create_dest_file",
        "wine-staging",
        "experimental patches",
        "winediag:",
    )
    deny_ci: Tuple[str, ...] = ("stub",)

    def keep(self, line: str) -> bool:
        if not line.strip():
            return False
        lower = line.lower()
        if not any(a in lower for a in self.allow):
            return False
        if any(d in line for d in self.deny):
            return False
        return not any(d in lower for d in self.deny_ci)

    def apply(self, text: str) -> List[str]:
        return [ln for ln in text.splitlines() if self.keep(ln)]


DEFAULT_FILTER = OutputFilter()

# ──────────────────────────────────────────────────────────────────────────────
# Spawning
# ──────────────────────────────────────────────────────────────────────────────

def split_assignments(argv: Sequence[str]) -> Tuple[Dict[str, str], List[str]]:
    """Lift ``NAME=value`` tokens sitting where a program name is expected.

    Launch templates such as ``PROTON_LOG=1 %command%`` rely on shell
    semantics; we never use a shell, so the assignments move into the
    environment instead. Nothing after the launcher itself is touched.
    """
    env: Dict[str, str] = {}
    out: List[str] = []
    at_program = True
    past_launcher = False
    for tok in argv:
        if at_program and not past_launcher and _ASSIGN_RE.match(tok):
            key, value = tok.split("=", 1)
            env[key] = value
            continue
        out.append(tok)
        if tok == LAUNCHER:
            past_launcher = True
        at_program = tok in (GAMESCOPE_SEPARATOR, MANGOHUD)
    return env, out


def spawn_environment(plan: ExecutionPlan, lifted: Dict[str, str]) -> Dict[str, str]:
    env = os.environ.copy()
    env.update(plan.environment)
    for key, value in lifted.items():
        if key in PLATFORM_KEYS and key in plan.environment:
            log.warning("Launch options tried to set %s; keeping %s", key, plan.environment[key])
            continue
        env[key] = value
    return env


def execute(plan: ExecutionPlan, mode: ExecMode = ExecMode.MANAGED,
            output_filter: OutputFilter = DEFAULT_FILTER) -> ExecutionResult:
    """Run ``plan`` and wait for it.

    Non-zero exit is a normal result. SpawnError means nothing ran.
    """
    lifted, argv = split_assignments(plan.command)
    env = spawn_environment(plan, lifted)
    cwd = plan.cwd if plan.cwd and os.path.isdir(plan.cwd) else None

    log.debug("Executing (%s, %s): %s", plan.operation.value, mode.value, command_line(plan))
    for key, value in interesting({**plan.environment, **lifted}).items():
        log.debug("  %s=%s", key, value)

    if not argv:
        raise SpawnError(plan.operation.value, argv, OSError("empty command line"))

    try:
        if mode is ExecMode.VISIBLE:
            p = subprocess.Popen(argv, cwd=cwd, env=env)
        else:
            p = subprocess.Popen(
                argv, cwd=cwd, env=env,
                stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                text=True, errors="replace",
            )
    except OSError as e:
        log.error("Could not start %s: %s", argv[0], e)
        raise SpawnError(plan.operation.value, argv, e) from e

    if mode is ExecMode.VISIBLE:
        rc = p.wait()
        output = ""
    else:
        raw, _ = p.communicate()
        rc = p.returncode
        output = "\n".join(output_filter.apply(raw or ""))

    log.info("%s exited with status %s", argv[0], rc)
    return ExecutionResult(exit_code=rc, output=output)
