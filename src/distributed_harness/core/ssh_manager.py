"""SSH connection management for test nodes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import paramiko
import structlog

from distributed_harness.config import NodeConfig, SSHConfig
from distributed_harness.errors import TransportError
from distributed_harness.utils.retry import RetryConfig, RetryError, retry_async

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SSHCommandResult:
    stdout: str
    stderr: str
    exit_status: int


@dataclass(frozen=True)
class ConnectParams:
    hostname: str
    port: int
    username: str
    password: Optional[str]
    key_filename: Optional[str]


class SSHManager:
    """Manages one SSH connection per node.

    Connections are opened lazily on first use, so a node that cannot be
    reached only fails the operations aimed at it.
    """

    def __init__(self, nodes: list[NodeConfig], ssh: SSHConfig | None = None) -> None:
        self.ssh = ssh or SSHConfig()
        self._nodes_by_name: dict[str, NodeConfig] = {n.name: n for n in nodes}
        self._clients: Dict[str, paramiko.SSHClient] = {}
        self._locks: Dict[str, asyncio.Lock] = {n.name: asyncio.Lock() for n in nodes}
        self._ssh_config = self._load_ssh_config()

    @staticmethod
    def _load_ssh_config() -> Optional[paramiko.SSHConfig]:
        cfg_path = Path.home() / ".ssh" / "config"
        if not cfg_path.exists():
            return None
        try:
            return paramiko.SSHConfig.from_path(str(cfg_path))
        except (OSError, paramiko.SSHException) as e:
            logger.warning("Ignoring unreadable ssh config", path=str(cfg_path), error=str(e))
            return None

    def _lookup_ssh_config(self, host_alias: str) -> Dict[str, object]:
        if not self._ssh_config:
            return {}
        return self._ssh_config.lookup(host_alias) or {}

    def connect_params(self, node: NodeConfig) -> ConnectParams:
        """Resolve connection parameters: node overrides, shared credentials, then ~/.ssh/config."""
        ssh_cfg = self._lookup_ssh_config(node.address)

        cfg_identity = ssh_cfg.get("identityfile")
        cfg_key_filename: Optional[str] = None
        if isinstance(cfg_identity, list) and cfg_identity:
            cfg_key_filename = cfg_identity[0]
        elif isinstance(cfg_identity, str) and cfg_identity:
            cfg_key_filename = cfg_identity

        key_path = node.ssh_key_path or self.ssh.private_key_path
        cfg_port = ssh_cfg.get("port")

        return ConnectParams(
            hostname=str(ssh_cfg.get("hostname") or node.address),
            port=node.port or (int(cfg_port) if cfg_port else self.ssh.port),
            username=node.user or self.ssh.username,
            password=self.ssh.password,
            key_filename=str(key_path) if key_path else cfg_key_filename,
        )

    async def close_all(self) -> None:
        """Close all SSH connections."""
        for name, client in list(self._clients.items()):
            try:
                await asyncio.to_thread(client.close)
            except (OSError, paramiko.SSHException):
                logger.warning("Failed closing SSH connection", node=name)
        self._clients.clear()

    async def run_command(
        self,
        node_name: str,
        command: str,
        timeout: int | None = None,
        stdin: str | None = None,
    ) -> SSHCommandResult:
        """Run a shell command on a node and collect its output and exit status."""
        client = await self._ensure_connected(node_name)
        timeout = timeout or self.ssh.command_timeout

        def _exec() -> SSHCommandResult:
            chan_in, chan_out, chan_err = client.exec_command(command, timeout=timeout)
            if stdin is not None:
                chan_in.write(stdin)
                chan_in.flush()
            chan_in.channel.shutdown_write()
            stdout = chan_out.read().decode(errors="replace")
            stderr = chan_err.read().decode(errors="replace")
            exit_status = chan_out.channel.recv_exit_status()
            return SSHCommandResult(
                stdout=stdout.strip(),
                stderr=stderr.strip(),
                exit_status=exit_status,
            )

        try:
            return await asyncio.to_thread(_exec)
        except (paramiko.SSHException, OSError) as e:
            self._discard(node_name)
            raise TransportError(node_name, str(e)) from e

    async def download(self, node_name: str, remote_path: str, local_path: Path) -> None:
        """Copy a file from a node to the local filesystem over SFTP."""
        client = await self._ensure_connected(node_name)

        def _get() -> None:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            # SFTPClient.get creates the local file before the remote open
            partial = local_path.with_name(f"{local_path.name}.part")
            sftp = client.open_sftp()
            try:
                sftp.get(remote_path, str(partial))
                partial.replace(local_path)
            except BaseException:
                partial.unlink(missing_ok=True)
                raise
            finally:
                sftp.close()

        try:
            await asyncio.to_thread(_get)
        except FileNotFoundError:
            raise
        except (paramiko.SSHException, OSError) as e:
            raise TransportError(node_name, f"download of {remote_path} failed: {e}") from e

    def _discard(self, node_name: str) -> None:
        client = self._clients.pop(node_name, None)
        if client is not None:
            client.close()

    async def _ensure_connected(self, node_name: str) -> paramiko.SSHClient:
        if node_name not in self._nodes_by_name:
            raise KeyError(f"Unknown node: {node_name}")

        async with self._locks[node_name]:
            if node_name in self._clients:
                return self._clients[node_name]

            node = self._nodes_by_name[node_name]
            params = self.connect_params(node)

            def _connect() -> paramiko.SSHClient:
                client = paramiko.SSHClient()
                client.load_system_host_keys()
                if self.ssh.strict_host_key_checking:
                    client.set_missing_host_key_policy(paramiko.RejectPolicy())
                else:
                    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
                try:
                    client.connect(
                        hostname=params.hostname,
                        port=params.port,
                        username=params.username,
                        password=params.password,
                        key_filename=params.key_filename,
                        timeout=self.ssh.connect_timeout,
                        allow_agent=True,
                        look_for_keys=True,
                    )
                except BaseException:
                    client.close()
                    raise
                return client

            async def _attempt() -> paramiko.SSHClient:
                return await asyncio.to_thread(_connect)

            try:
                client = await retry_async(
                    _attempt,
                    config=RetryConfig(
                        max_attempts=self.ssh.connect_attempts,
                        retry_on=(paramiko.SSHException, OSError),
                    ),
                    label=f"ssh connect {node_name}",
                )
            except RetryError as e:
                raise TransportError(node_name, str(e.last_exception)) from e

            self._clients[node_name] = client
            logger.info("SSH connected", node=node_name, host=params.hostname, port=params.port)
            return client
