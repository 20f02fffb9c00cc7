"""Scoped command execution against a single node.

A :class:`RemoteSession` is bound to one node and carries an immutable
:class:`ExecutionContext`. ``run_as`` and ``cd`` swap in a modified copy of
that context for the duration of a ``with`` block, so helpers called inside
the block inherit it, and the previous context comes back however the block
exits. Sessions belong to one task; never share one between concurrent
per-node operations.
"""

from __future__ import annotations

import os
import shlex
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Iterator, Optional

import structlog

from distributed_harness.config import NodeConfig, SSHConfig
from distributed_harness.core.ssh_manager import SSHCommandResult, SSHManager
from distributed_harness.errors import CommandError

logger = structlog.get_logger(__name__)

ROOT = "root"


@dataclass(frozen=True)
class Literal:
    """Shell text passed through without escaping, e.g. ``>>`` or ``2>&1``."""

    text: str

    def __str__(self) -> str:
        return self.text


def lit(text: str) -> Literal:
    return Literal(text)


def escape(value: Any) -> str:
    """Render one argument as shell text."""
    if isinstance(value, Literal):
        return value.text
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return " ".join(escape(v) for v in value if v is not None)
    if isinstance(value, os.PathLike):
        return shlex.quote(os.fspath(value))
    return shlex.quote(str(value))


def build_command(*args: Any) -> str:
    """Join arguments into one command line, escaping each; ``None`` is dropped."""
    return " ".join(escape(a) for a in args if a is not None)


@dataclass(frozen=True)
class ExecutionContext:
    node: NodeConfig
    principal: Optional[str] = None
    directory: Optional[str] = None
    sudo_password: Optional[str] = None

    def wrap(self, command: str) -> str:
        """Apply the working directory and principal to a command line."""
        if self.directory:
            command = f"cd {shlex.quote(self.directory)} && {command}"
        if self.principal:
            command = f"sudo -S -u {shlex.quote(self.principal)} bash -c {shlex.quote(command)}"
        return command

    def stdin(self) -> Optional[str]:
        if self.principal and self.sudo_password:
            return f"{self.sudo_password}\n"
        return None


class RemoteSession:
    """Command execution bound to one node."""

    def __init__(
        self,
        ssh_manager: SSHManager,
        node: NodeConfig,
        ssh: SSHConfig | None = None,
    ) -> None:
        ssh = ssh or SSHConfig()
        self.ssh_manager = ssh_manager
        self.node = node
        self.timeout = ssh.command_timeout
        self.context = ExecutionContext(node=node, sudo_password=ssh.sudo_password)

    @contextmanager
    def run_as(self, principal: str) -> Iterator[RemoteSession]:
        """Execute commands in the block as ``principal``."""
        previous = self.context
        self.context = replace(previous, principal=principal)
        try:
            yield self
        finally:
            self.context = previous

    def su(self) -> Any:
        """Shorthand for ``run_as("root")``."""
        return self.run_as(ROOT)

    @contextmanager
    def cd(self, directory: str) -> Iterator[RemoteSession]:
        """Execute commands in the block from ``directory``."""
        previous = self.context
        self.context = replace(previous, directory=directory)
        try:
            yield self
        finally:
            self.context = previous

    async def exec(
        self,
        *args: Any,
        check: bool = True,
        timeout: int | None = None,
    ) -> SSHCommandResult:
        """Run a command under the current context.

        Raises :class:`CommandError` on a non-zero exit unless ``check`` is
        false, in which case the caller inspects ``exit_status`` itself.
        """
        command = build_command(*args)
        context = self.context
        logger.debug(
            "Executing command",
            node=self.node.name,
            principal=context.principal,
            command=command,
        )
        result = await self.ssh_manager.run_command(
            self.node.name,
            context.wrap(command),
            timeout=timeout or self.timeout,
            stdin=context.stdin(),
        )
        if check and result.exit_status != 0:
            raise CommandError(
                self.node.name,
                command,
                result.exit_status,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    async def exists(self, path: str) -> bool:
        result = await self.exec("test", "-e", path, check=False)
        return result.exit_status == 0

    async def download(self, remote_path: str, local_path: Path) -> None:
        """Copy a remote file to ``local_path``."""
        await self.ssh_manager.download(self.node.name, remote_path, local_path)
