from __future__ import annotations

from typing import Optional


class BootstrapError(Exception):
    """
    Base failure for a bootstrap run. Every failure aborts the run; rerunning is the recovery path.

    Carries the failing step label, the exit/HTTP status (if any) and the raw captured output
    so the operator can diagnose by hand.
    """

    def __init__(self, label: str, message: str, *, status: Optional[int] = None, output: str = "") -> None:
        self.label = label
        self.message = message
        self.status = status
        self.output = output
        super().__init__(self.describe())

    def describe(self) -> str:
        head = f"[{self.label}] {self.message}"
        if self.status is not None:
            head += f" (status={self.status})"
        out = (self.output or "").strip()
        if out:
            head += f"\n{out}"
        return head


class PreconditionError(BootstrapError):
    """Missing tool, or project absent while creation is disabled."""


class CommandFailed(BootstrapError):
    """External CLI / REST call failed and no allow-list pattern matched."""


class ResponseShapeError(BootstrapError):
    """Response or file did not have the shape we rely on (JSON, mandatory fields, anchors)."""
