"""Lifecycle interfaces for a service under test."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, List

import structlog

from distributed_harness.config import DBConfig, TestConfig
from distributed_harness.core.artifacts import install_archive
from distributed_harness.core.control import RemoteSession
from distributed_harness.core.daemon import DaemonConfig, start_daemon, stop_daemon

logger = structlog.get_logger(__name__)


class DB(ABC):
    """A service installed and run on every node of a test."""

    @abstractmethod
    async def setup(self, test: TestConfig, session: RemoteSession) -> None:
        """Install and start the service on the session's node."""

    @abstractmethod
    async def teardown(self, test: TestConfig, session: RemoteSession) -> None:
        """Stop the service and remove everything setup left behind.

        Must succeed on a node that was never set up.
        """

    async def log_files(self, test: TestConfig, session: RemoteSession) -> List[str]:
        """Remote paths worth copying off the node before teardown."""
        return []


class Process(ABC):
    """A DB whose daemon can be stopped and restarted without reinstalling."""

    @abstractmethod
    async def start(self, test: TestConfig, session: RemoteSession) -> None:
        ...

    @abstractmethod
    async def kill(self, test: TestConfig, session: RemoteSession) -> None:
        ...


class ArchiveDB(DB, Process):
    """A service shipped as an archive and run as a single daemon.

    ``setup`` moves a node from uninstalled through installed to running;
    ``teardown`` stops the daemon and then deletes the install directory.
    Subclasses provide the daemon's command line via :meth:`daemon_args`.
    """

    def __init__(self, config: DBConfig) -> None:
        self.config = config
        self.daemon = DaemonConfig(
            logfile=config.logfile,
            pidfile=config.pidfile,
            chdir=config.install_dir,
        )

    @property
    def version(self) -> str:
        return self.config.version

    def daemon_args(self, test: TestConfig, session: RemoteSession) -> List[Any]:
        return []

    async def install(self, test: TestConfig, session: RemoteSession) -> bool:
        with session.su():
            return await install_archive(session, self.config.url, self.config.install_dir)

    async def start(self, test: TestConfig, session: RemoteSession) -> None:
        with session.su():
            await start_daemon(
                session,
                self.daemon,
                self.config.binary_path,
                *self.daemon_args(test, session),
            )

    async def kill(self, test: TestConfig, session: RemoteSession) -> None:
        with session.su():
            await stop_daemon(session, self.config.binary_path, self.config.pidfile)

    async def setup(self, test: TestConfig, session: RemoteSession) -> None:
        node = session.node.name
        logger.info("Setting up", node=node, db=self.config.kind, version=self.version)
        await self.install(test, session)
        await self.start(test, session)
        # Fixed grace period, not a readiness probe: the cluster may still
        # be bootstrapping when setup returns.
        await asyncio.sleep(self.config.startup_grace_seconds)
        logger.info("Setup complete", node=node, db=self.config.kind)

    async def teardown(self, test: TestConfig, session: RemoteSession) -> None:
        node = session.node.name
        logger.info("Tearing down", node=node, db=self.config.kind)
        await self.kill(test, session)
        with session.su():
            await session.exec(
                "rm", "-rf", self.config.install_dir, f"{self.config.install_dir}.staging"
            )

    async def log_files(self, test: TestConfig, session: RemoteSession) -> List[str]:
        return [self.config.logfile]
