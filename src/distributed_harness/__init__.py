"""Distributed Harness - bring a service up and down across a fleet of nodes."""

__version__ = "0.1.0"

# Configuration
from distributed_harness.config import DBConfig, NodeConfig, SSHConfig, TestConfig, Settings

# Core components
from distributed_harness.core import RemoteSession, SSHManager, initial_cluster
from distributed_harness.core.orchestrator import HarnessOrchestrator, RunReport

# Services under test
from distributed_harness.db import DB, EtcdDB, make_db

# Errors
from distributed_harness.errors import (
    HarnessError,
    TransportError,
    CommandError,
    ArtifactError,
    SupervisionError,
    RunFailed,
)

__all__ = [
    "__version__",
    "DBConfig",
    "NodeConfig",
    "SSHConfig",
    "TestConfig",
    "Settings",
    "RemoteSession",
    "SSHManager",
    "initial_cluster",
    "HarnessOrchestrator",
    "RunReport",
    "DB",
    "EtcdDB",
    "make_db",
    "HarnessError",
    "TransportError",
    "CommandError",
    "ArtifactError",
    "SupervisionError",
    "RunFailed",
]
