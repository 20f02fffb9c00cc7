"""etcd cluster under test."""

from __future__ import annotations

from typing import Any, List

from distributed_harness.config import TestConfig
from distributed_harness.core.control import RemoteSession
from distributed_harness.core.topology import client_url, initial_cluster, peer_url
from distributed_harness.db.base import ArchiveDB


class EtcdDB(ArchiveDB):
    """etcd, booted as a fresh cluster over every node in the test."""

    def daemon_args(self, test: TestConfig, session: RemoteSession) -> List[Any]:
        node = session.node
        peer = peer_url(node, self.config.peer_port)
        client = client_url(node, self.config.client_port)
        return [
            "--log-output", "stderr",
            "--name", node.name,
            "--listen-peer-urls", peer,
            "--listen-client-urls", client,
            "--advertise-client-urls", client,
            "--initial-cluster-state", "new",
            "--initial-advertise-peer-urls", peer,
            "--initial-cluster", initial_cluster(test.nodes, self.config.peer_port),
        ]
