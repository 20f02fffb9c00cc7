"""Error types raised while driving remote nodes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from distributed_harness.core.orchestrator import PhaseReport


class HarnessError(Exception):
    """Base class for harness failures."""


class TransportError(HarnessError):
    """Connection or authentication failure talking to a node."""

    def __init__(self, node: str, message: str) -> None:
        self.node = node
        super().__init__(f"[{node}] transport error: {message}")


class CommandError(HarnessError):
    """A remote command exited non-zero."""

    def __init__(
        self,
        node: str,
        command: str,
        exit_status: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.node = node
        self.command = command
        self.exit_status = exit_status
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr or stdout
        message = f"[{node}] command exited {exit_status}: {command}"
        if detail:
            message = f"{message}\n{detail}"
        super().__init__(message)


class ArtifactError(CommandError):
    """Downloading or unpacking an installation artifact failed."""


class SupervisionError(HarnessError):
    """The service binary could not be launched or its pid located."""

    def __init__(self, node: str, binary: str, detail: str, output: str = "") -> None:
        self.node = node
        self.binary = binary
        self.detail = detail
        self.output = output
        message = f"[{node}] {binary}: {detail}"
        if output:
            message = f"{message}\n{output}"
        super().__init__(message)


class RunFailed(HarnessError):
    """A fleet-wide phase left one or more nodes failed."""

    def __init__(self, phase: str, report: Optional["PhaseReport"] = None) -> None:
        self.phase = phase
        self.report = report
        failed = report.failed_nodes() if report is not None else []
        lines = [f"{phase} failed on {len(failed)} node(s)"]
        if report is not None:
            for outcome in report.failures():
                lines.append(f"  {outcome.node} ({outcome.step}): {outcome.error}")
        super().__init__("\n".join(lines))
