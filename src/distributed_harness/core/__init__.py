"""Remote execution, artifact, daemon and topology primitives.

The orchestrator is imported from ``distributed_harness.core.orchestrator``
directly; it depends on ``distributed_harness.db``, which builds on these.
"""

from distributed_harness.core.control import RemoteSession, ExecutionContext, Literal, lit, escape, build_command
from distributed_harness.core.ssh_manager import SSHManager, SSHCommandResult
from distributed_harness.core.topology import client_url, initial_cluster, peer_url

__all__ = [
    "RemoteSession",
    "ExecutionContext",
    "Literal",
    "lit",
    "escape",
    "build_command",
    "SSHManager",
    "SSHCommandResult",
    "client_url",
    "initial_cluster",
    "peer_url",
]
