"""
External process capability.

The sequencer only ever talks to the CLIs through `CommandRunner.run`, so tests can swap in a fake
that returns canned output.
"""
from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence

from provisioner.core.errors import PreconditionError


@dataclass(frozen=True)
class CommandResult:
    status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.status == 0

    @property
    def output(self) -> str:
        parts = [p.strip() for p in (self.stdout, self.stderr) if p and p.strip()]
        return "\n".join(parts)


class CommandRunner(Protocol):
    def run(self, program: str, args: Sequence[str], *, cwd: Optional[str] = None) -> CommandResult:
        ...


class SubprocessRunner:
    """
    Runs commands with subprocess, resolving the program through PATH first
    (on Windows `firebase` and `npm` are .cmd shims that CreateProcess won't find by bare name).
    """

    def run(self, program: str, args: Sequence[str], *, cwd: Optional[str] = None) -> CommandResult:
        exe = shutil.which(program) or program
        cmd: List[str] = [exe, *args]
        try:
            proc = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, check=False)
        except FileNotFoundError:
            raise PreconditionError(program, f"'{program}' not found on PATH")
        return CommandResult(status=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")


INSTALL_HINTS = {
    "gcloud": "Install the Google Cloud SDK: https://cloud.google.com/sdk/docs/install",
    "firebase": "Install firebase-tools: npm install -g firebase-tools",
    "npm": "Install Node.js (includes npm): https://nodejs.org/",
}


def require_tools(tools: Iterable[str]) -> None:
    for tool in tools:
        if shutil.which(tool) is None:
            hint = INSTALL_HINTS.get(tool, "")
            raise PreconditionError("Check prerequisites", f"required tool '{tool}' is not on PATH", output=hint)
