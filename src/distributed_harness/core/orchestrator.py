"""Fleet-wide lifecycle: teardown sweep, setup, workload, logs, teardown."""

from __future__ import annotations

import asyncio
import posixpath
import time
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from distributed_harness.config import NodeConfig, TestConfig
from distributed_harness.core.control import RemoteSession
from distributed_harness.core.ssh_manager import SSHManager
from distributed_harness.db import DB, make_db
from distributed_harness.errors import (
    ArtifactError,
    CommandError,
    RunFailed,
    SupervisionError,
    TransportError,
)

logger = structlog.get_logger(__name__)

NodeOperation = Callable[[RemoteSession], Awaitable[Any]]
Workload = Callable[[TestConfig], Awaitable[Any]]


def _step_for(error: BaseException, operation: str) -> str:
    if isinstance(error, TransportError):
        return "connect"
    if isinstance(error, ArtifactError):
        return "install"
    if isinstance(error, SupervisionError):
        return "start"
    if isinstance(error, CommandError):
        return "command"
    return operation


class NodeOutcome(BaseModel):
    """Result of one operation on one node."""

    node: str
    operation: str
    ok: bool
    step: Optional[str] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0


class PhaseReport(BaseModel):
    """Outcomes of one operation fanned out across the fleet."""

    operation: str
    outcomes: List[NodeOutcome]
    started_at: datetime
    finished_at: datetime

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    def failures(self) -> List[NodeOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def failed_nodes(self) -> List[str]:
        return [o.node for o in self.failures()]


class RunReport(BaseModel):
    """Everything that happened during one run."""

    name: str
    phases: List[PhaseReport] = Field(default_factory=list)
    logs: Dict[str, List[Path]] = Field(default_factory=dict)
    workload_result: Any = None

    @property
    def ok(self) -> bool:
        return all(p.ok for p in self.phases)


class HarnessOrchestrator:
    """Drives a DB's lifecycle across every node of a test concurrently."""

    def __init__(
        self,
        config: TestConfig,
        db: DB | None = None,
        ssh_manager: SSHManager | None = None,
    ) -> None:
        self.config = config
        self.db = db or make_db(config.db)
        self.ssh_manager = ssh_manager or SSHManager(config.nodes, config.ssh)
        self.last_report: Optional[RunReport] = None

    def session(self, node: NodeConfig) -> RemoteSession:
        """A fresh execution context for ``node``; one per task."""
        return RemoteSession(self.ssh_manager, node, self.config.ssh)

    async def on_nodes(self, operation: str, fn: NodeOperation) -> PhaseReport:
        """Run ``fn`` once per node concurrently and wait for all of them.

        A failing node does not interrupt its siblings; each outcome is
        recorded independently.
        """
        nodes = self.config.nodes
        started_at = datetime.now(UTC)

        async def _run(node: NodeConfig) -> NodeOutcome:
            start = time.monotonic()
            with structlog.contextvars.bound_contextvars(node=node.name, operation=operation):
                try:
                    await fn(self.session(node))
                except Exception as e:
                    logger.error(
                        "Node operation failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    return NodeOutcome(
                        node=node.name,
                        operation=operation,
                        ok=False,
                        step=_step_for(e, operation),
                        error=str(e),
                        duration_seconds=time.monotonic() - start,
                    )
            return NodeOutcome(
                node=node.name,
                operation=operation,
                ok=True,
                duration_seconds=time.monotonic() - start,
            )

        outcomes = await asyncio.gather(*(_run(node) for node in nodes))
        report = PhaseReport(
            operation=operation,
            outcomes=list(outcomes),
            started_at=started_at,
            finished_at=datetime.now(UTC),
        )
        logger.info(
            "Phase complete",
            operation=operation,
            nodes=len(nodes),
            failed=report.failed_nodes(),
        )
        return report

    async def setup_all(self) -> PhaseReport:
        return await self.on_nodes("setup", lambda s: self.db.setup(self.config, s))

    async def teardown_all(self) -> PhaseReport:
        return await self.on_nodes("teardown", lambda s: self.db.teardown(self.config, s))

    def node_results_dir(self, node: NodeConfig) -> Path:
        return self.config.results_dir / self.config.name / node.name

    async def collect_logs(self) -> Dict[str, List[Path]]:
        """Copy every node's log files into the local results directory."""
        collected: Dict[str, List[Path]] = {}

        async def _snarf(session: RemoteSession) -> None:
            node = session.node
            paths = await self.db.log_files(self.config, session)
            local_paths: List[Path] = []
            for remote in paths:
                local = self.node_results_dir(node) / posixpath.basename(remote)
                try:
                    await session.download(remote, local)
                except FileNotFoundError:
                    logger.warning("Log file missing", remote=remote)
                    continue
                local_paths.append(local)
            collected[node.name] = local_paths

        report = await self.on_nodes("logs", _snarf)
        if not report.ok:
            logger.warning("Some logs could not be retrieved", failed=report.failed_nodes())
        return collected

    async def run(self, workload: Workload | None = None) -> RunReport:
        """Run the full protocol around ``workload``.

        Teardown everywhere, then setup everywhere, then the workload.
        Logs are retrieved and every node torn down again however the
        earlier phases end. Raises :class:`RunFailed` if the initial sweep
        or setup fails on any node; workload exceptions propagate after
        cleanup.
        """
        report = RunReport(name=self.config.name)
        self.last_report = report
        logger.info("Starting run", test=self.config.name, nodes=[n.name for n in self.config.nodes])
        try:
            sweep = await self.teardown_all()
            report.phases.append(sweep)
            if not sweep.ok:
                raise RunFailed("initial teardown", sweep)

            setup = await self.setup_all()
            report.phases.append(setup)
            if not setup.ok:
                raise RunFailed("setup", setup)

            if workload is not None:
                report.workload_result = await workload(self.config)
        finally:
            try:
                report.logs = await self.collect_logs()
                report.phases.append(await self.teardown_all())
            finally:
                await self.ssh_manager.close_all()
            logger.info("Run finished", test=self.config.name, ok=report.ok)

        return report
