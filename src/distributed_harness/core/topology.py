"""Endpoints and the initial cluster membership string."""

from __future__ import annotations

from typing import Sequence

from distributed_harness.config import NodeConfig

PEER_PORT = 2380
CLIENT_PORT = 2379


def node_url(node: NodeConfig, port: int) -> str:
    return f"http://{node.address}:{port}"


def peer_url(node: NodeConfig, port: int = PEER_PORT) -> str:
    """URL other members use to reach ``node``."""
    return node_url(node, port)


def client_url(node: NodeConfig, port: int = CLIENT_PORT) -> str:
    """URL clients use to reach ``node``."""
    return node_url(node, port)


def initial_cluster(nodes: Sequence[NodeConfig], peer_port: int = PEER_PORT) -> str:
    """``name=peer_url`` pairs for every node, comma-joined in input order.

    Every node must be started with the same string so they agree on the
    membership at first boot.
    """
    if not nodes:
        raise ValueError("initial cluster requires at least one node")
    return ",".join(f"{node.name}={peer_url(node, peer_port)}" for node in nodes)
