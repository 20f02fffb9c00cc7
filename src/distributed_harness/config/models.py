"""Configuration models for Distributed Harness."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _expand_user(v: Any) -> Optional[Path]:
    if v is None:
        return None
    if isinstance(v, str):
        if v.startswith("~/"):
            return Path.home() / v[2:]
        return Path(v)
    return v


class NodeConfig(BaseModel):
    """A single host participating in the test."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique name for the node")
    host: Optional[str] = Field(None, description="Hostname or IP address; defaults to the name")
    port: Optional[int] = Field(None, ge=1, le=65535, description="SSH port override")
    user: Optional[str] = Field(None, description="SSH username override")
    ssh_key_path: Optional[Path] = Field(None, description="Path to SSH private key override")

    @field_validator("ssh_key_path", mode="before")
    @classmethod
    def resolve_ssh_key_path(cls, v: Any) -> Optional[Path]:
        """Resolve SSH key path relative to home directory if needed."""
        return _expand_user(v)

    @property
    def address(self) -> str:
        """Address used for SSH and for the service's endpoints."""
        return self.host or self.name


class SSHConfig(BaseModel):
    """Credentials shared by every node unless a node overrides them."""

    model_config = ConfigDict(frozen=True)

    username: str = Field("root", description="SSH username")
    password: Optional[str] = Field(None, description="SSH password")
    private_key_path: Optional[Path] = Field(None, description="Path to SSH private key")
    port: int = Field(22, ge=1, le=65535, description="SSH port")
    strict_host_key_checking: bool = Field(False, description="Reject unknown host keys")
    sudo_password: Optional[str] = Field(None, description="Password fed to sudo on stdin")
    connect_timeout: int = Field(10, ge=1, description="Connection timeout in seconds")
    connect_attempts: int = Field(3, ge=1, description="Attempts when opening a connection")
    command_timeout: int = Field(600, ge=1, description="Default command timeout in seconds")

    @field_validator("private_key_path", mode="before")
    @classmethod
    def resolve_private_key_path(cls, v: Any) -> Optional[Path]:
        return _expand_user(v)


class DBConfig(BaseModel):
    """The service every node installs and runs."""

    model_config = ConfigDict(frozen=True)

    kind: str = Field("etcd", description="Registered DB implementation")
    version: str = Field("v3.1.5", min_length=1, description="Version to install")
    archive_url: str = Field(
        "https://storage.googleapis.com/etcd/{version}/etcd-{version}-linux-amd64.tar.gz",
        description="Download URL template; {version} is substituted",
    )
    install_dir: str = Field("/opt/etcd", description="Install directory on each node")
    binary: str = Field("etcd", min_length=1, description="Binary name inside the install directory")
    peer_port: int = Field(2380, ge=1, le=65535, description="Peer communication port")
    client_port: int = Field(2379, ge=1, le=65535, description="Client-facing port")
    startup_grace_seconds: float = Field(10.0, ge=0, description="Pause after start before setup returns")

    @field_validator("install_dir")
    @classmethod
    def ensure_absolute_path(cls, v: str) -> str:
        """Ensure the install directory is an absolute path, never the root."""
        if not v.startswith("/"):
            v = f"/{v}"
        v = v.rstrip("/")
        if not v:
            raise ValueError("install_dir must not be the filesystem root")
        return v

    @property
    def url(self) -> str:
        return self.archive_url.format(version=self.version)

    @property
    def binary_path(self) -> str:
        return f"{self.install_dir}/{self.binary}"

    @property
    def logfile(self) -> str:
        return f"{self.install_dir}/{self.binary}.log"

    @property
    def pidfile(self) -> str:
        return f"{self.install_dir}/{self.binary}.pid"


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field("INFO", description="Log level")
    format: str = Field("json", description="Log format (json or text)")
    file_path: Optional[Path] = Field(None, description="Log file path")


class TestConfig(BaseModel):
    """Everything one run needs. Built once, read-only afterwards."""

    __test__ = False

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Test name")
    nodes: List[NodeConfig] = Field(..., min_length=1, description="Participating nodes, in order")
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    db: DBConfig = Field(default_factory=DBConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    results_dir: Path = Field(Path("store"), description="Local directory for retrieved artifacts")

    @field_validator("nodes")
    @classmethod
    def unique_node_names(cls, v: List[NodeConfig]) -> List[NodeConfig]:
        seen: set[str] = set()
        for node in v:
            if node.name in seen:
                raise ValueError(f"Duplicate node name: {node.name}")
            seen.add(node.name)
        return v

    @classmethod
    def from_yaml(cls, path: Path) -> TestConfig:
        """Load configuration from YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls(**data)

    def to_yaml(self, path: Path) -> None:
        """Save configuration to YAML file."""
        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False, indent=2)

    def get_node_by_name(self, name: str) -> Optional[NodeConfig]:
        """Get a node configuration by name."""
        for node in self.nodes:
            if node.name == name:
                return node
        return None
