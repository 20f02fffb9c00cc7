"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import posixpath
import shlex
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

from distributed_harness.config import DBConfig, NodeConfig, TestConfig
from distributed_harness.core.control import RemoteSession
from distributed_harness.core.ssh_manager import SSHCommandResult
from distributed_harness.errors import TransportError
from distributed_harness.utils.logging import setup_logging

ETCD_URL = "https://storage.googleapis.com/etcd/v3.1.5/etcd-v3.1.5-linux-amd64.tar.gz"


def _ok(stdout: str = "") -> SSHCommandResult:
    return SSHCommandResult(stdout=stdout, stderr="", exit_status=0)


def _fail(status: int, stderr: str) -> SSHCommandResult:
    return SSHCommandResult(stdout="", stderr=stderr, exit_status=status)


class FakeHost:
    """In-memory stand-in for a remote host.

    Understands the handful of shell commands the harness issues: it keeps
    a flat map of files, a set of directories and a table of live
    processes, and counts network transfers.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.files: Dict[str, str] = {}
        self.dirs: Set[str] = {"/", "/opt", "/tmp"}
        self.processes: Dict[int, str] = {}
        self.archive_entries: List[str] = [
            "etcd-v3.1.5-linux-amd64/etcd",
            "etcd-v3.1.5-linux-amd64/etcdctl",
            "etcd-v3.1.5-linux-amd64/README.md",
        ]
        self.commands: List[Tuple[Optional[str], List[str]]] = []
        self.downloads: List[str] = []
        self.failing: Dict[str, int] = {}
        self._next_pid = 4000

    # -- filesystem helpers -------------------------------------------------

    def is_dir(self, path: str) -> bool:
        prefix = path.rstrip("/") + "/"
        return path in self.dirs or any(k.startswith(prefix) for k in self.files)

    def exists(self, path: str) -> bool:
        return path in self.files or self.is_dir(path)

    def _mkdirs(self, path: str) -> None:
        while path and path not in self.dirs:
            self.dirs.add(path)
            path = posixpath.dirname(path)

    def _remove(self, path: str) -> None:
        prefix = path.rstrip("/") + "/"
        for k in [k for k in self.files if k == path or k.startswith(prefix)]:
            del self.files[k]
        if path not in ("/", "/opt", "/tmp"):
            self.dirs = {d for d in self.dirs if d != path and not d.startswith(prefix)}

    def _rename(self, src: str, dst: str) -> None:
        prefix = src + "/"
        for k in [k for k in self.files if k == src or k.startswith(prefix)]:
            self.files[dst + k[len(src):]] = self.files.pop(k)
        moved = {d for d in self.dirs if d == src or d.startswith(prefix)}
        self.dirs -= moved
        self.dirs |= {dst + d[len(src):] for d in moved}

    def principals(self, program: str) -> List[Optional[str]]:
        return [p for p, argv in self.commands if argv and argv[0] == program]

    def ran(self, program: str) -> List[List[str]]:
        return [argv for _, argv in self.commands if argv and argv[0] == program]

    # -- command dispatch ---------------------------------------------------

    def run(self, command: str) -> SSHCommandResult:
        principal = None
        tokens = shlex.split(command)
        if tokens[0] == "sudo":
            principal = tokens[tokens.index("-u") + 1]
            tokens = shlex.split(tokens[-1])
        if tokens[0] == "cd" and "&&" in tokens:
            tokens = tokens[tokens.index("&&") + 1:]
        self.commands.append((principal, tokens))

        program, args = tokens[0], tokens[1:]
        if program in self.failing:
            return _fail(self.failing[program], f"{program}: simulated failure")
        handler = getattr(self, "_cmd_" + program.replace("-", "_"), None)
        if handler is None:
            return _ok()
        return handler(args)

    def _cmd_test(self, args: List[str]) -> SSHCommandResult:
        flag, path = args
        checks = {"-e": self.exists, "-d": self.is_dir, "-f": lambda p: p in self.files}
        return _ok() if checks[flag](path) else _fail(1, "")

    def _cmd_cat(self, args: List[str]) -> SSHCommandResult:
        path = args[0]
        if path not in self.files:
            return _fail(1, f"cat: {path}: No such file or directory")
        return _ok(self.files[path].strip())

    def _cmd_mkdir(self, args: List[str]) -> SSHCommandResult:
        for path in args:
            if not path.startswith("-"):
                self._mkdirs(path)
        return _ok()

    def _cmd_rm(self, args: List[str]) -> SSHCommandResult:
        for path in args:
            if not path.startswith("-"):
                self._remove(path)
        return _ok()

    def _cmd_mv(self, args: List[str]) -> SSHCommandResult:
        src, dst = [a for a in args if not a.startswith("-")][-2:]
        if not self.exists(src):
            return _fail(1, f"mv: cannot stat '{src}'")
        self._rename(src, dst)
        return _ok()

    def _cmd_wget(self, args: List[str]) -> SSHCommandResult:
        target = args[args.index("-O") + 1]
        url = args[-1]
        self.downloads.append(url)
        self.files[target] = f"archive {url}"
        return _ok()

    def _cmd_tar(self, args: List[str]) -> SSHCommandResult:
        archive = args[args.index("-xf") + 1]
        dest = args[args.index("-C") + 1]
        if archive not in self.files:
            return _fail(2, f"tar: {archive}: Cannot open")
        for entry in self.archive_entries:
            path = f"{dest}/{entry}"
            self.files[path] = "binary"
            self._mkdirs(posixpath.dirname(path))
        return _ok()

    def _cmd_ls(self, args: List[str]) -> SSHCommandResult:
        path = [a for a in args if not a.startswith("-")][-1]
        if not self.is_dir(path):
            return _fail(2, f"ls: cannot access '{path}'")
        prefix = path.rstrip("/") + "/"
        children = sorted(
            {k[len(prefix):].split("/")[0] for k in list(self.files) + list(self.dirs) if k.startswith(prefix)}
        )
        return _ok("\n".join(children))

    def _cmd_echo(self, args: List[str]) -> SSHCommandResult:
        for op in (">>", ">"):
            if op in args:
                i = args.index(op)
                text = " ".join(args[:i]) + "\n"
                path = args[i + 1]
                if op == ">>":
                    self.files[path] = self.files.get(path, "") + text
                else:
                    self.files[path] = text
                return _ok()
        return _ok(" ".join(args))

    def _cmd_start_stop_daemon(self, args: List[str]) -> SSHCommandResult:
        pidfile = args[args.index("--pidfile") + 1]
        binary = args[args.index("--exec") + 1]
        if "--start" in args:
            if binary not in self.files:
                return _fail(2, f"start-stop-daemon: unable to stat {binary} (No such file or directory)")
            pid = self._next_pid
            self._next_pid += 1
            self.processes[pid] = binary
            self.files[pidfile] = f"{pid}\n"
            if ">>" in args:
                logfile = args[args.index(">>") + 1]
                self.files[logfile] = self.files.get(logfile, "") + f"{binary} running\n"
            return _ok()
        try:
            pid = int(self.files.get(pidfile, "").strip())
        except ValueError:
            return _fail(2, "start-stop-daemon: pidfile does not contain a valid pid")
        if self.processes.get(pid) == binary:
            del self.processes[pid]
        return _ok()

    def _cmd_kill(self, args: List[str]) -> SSHCommandResult:
        pid = int(args[-1])
        return _ok() if pid in self.processes else _fail(1, "No such process")


class FakeSSHManager:
    """SSHManager double routing commands to :class:`FakeHost` instances."""

    def __init__(self, nodes: List[NodeConfig]) -> None:
        self.hosts: Dict[str, FakeHost] = {n.name: FakeHost(n.name) for n in nodes}
        self.unreachable: Set[str] = set()
        self.stdin: List[Optional[str]] = []
        self.closed = 0

    async def close_all(self) -> None:
        self.closed += 1

    async def run_command(
        self,
        node_name: str,
        command: str,
        timeout: int | None = None,
        stdin: str | None = None,
    ) -> SSHCommandResult:
        if node_name in self.unreachable:
            raise TransportError(node_name, "Connection refused")
        await asyncio.sleep(0)
        self.stdin.append(stdin)
        return self.hosts[node_name].run(command)

    async def download(self, node_name: str, remote_path: str, local_path: Path) -> None:
        if node_name in self.unreachable:
            raise TransportError(node_name, "Connection refused")
        host = self.hosts[node_name]
        if remote_path not in host.files:
            raise FileNotFoundError(remote_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_text(host.files[remote_path])


@pytest.fixture(autouse=True)
def setup_test_logging() -> None:
    """Setup logging for tests."""
    setup_logging(level="DEBUG", format_type="text")


@pytest.fixture
def sample_test_config_data(tmp_path: Path) -> Dict[str, Any]:
    """Sample test configuration data."""
    return {
        "name": "etcd-test",
        "nodes": [{"name": "n1"}, {"name": "n2"}, {"name": "n3"}],
        "ssh": {"username": "admin", "sudo_password": "secret"},
        "db": {"kind": "etcd", "version": "v3.1.5", "startup_grace_seconds": 0},
        "logging": {"level": "DEBUG", "format": "text"},
        "results_dir": str(tmp_path / "store"),
    }


@pytest.fixture
def test_config(sample_test_config_data: Dict[str, Any]) -> TestConfig:
    return TestConfig(**sample_test_config_data)


@pytest.fixture
def db_config(test_config: TestConfig) -> DBConfig:
    return test_config.db


@pytest.fixture
def fake_ssh(test_config: TestConfig) -> FakeSSHManager:
    return FakeSSHManager(test_config.nodes)


@pytest.fixture
def node(test_config: TestConfig) -> NodeConfig:
    return test_config.nodes[0]


@pytest.fixture
def host(fake_ssh: FakeSSHManager, node: NodeConfig) -> FakeHost:
    return fake_ssh.hosts[node.name]


@pytest.fixture
def session(fake_ssh: FakeSSHManager, node: NodeConfig, test_config: TestConfig) -> RemoteSession:
    return RemoteSession(fake_ssh, node, test_config.ssh)


@pytest.fixture
def temp_config_file(tmp_path: Path, sample_test_config_data: Dict[str, Any]) -> Path:
    """Create a temporary configuration file."""
    import yaml

    config_path = tmp_path / "harness.yaml"
    with open(config_path, "w") as f:
        yaml.dump(sample_test_config_data, f)
    return config_path
