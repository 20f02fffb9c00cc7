"""Background daemons supervised through a pidfile and a logfile."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from distributed_harness.core.control import RemoteSession, build_command, lit
from distributed_harness.errors import SupervisionError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DaemonConfig:
    """Where one daemon instance writes its output and records its pid."""

    logfile: str
    pidfile: str
    chdir: str


async def read_pid(session: RemoteSession, pidfile: str) -> Optional[int]:
    """Pid recorded in ``pidfile``; None if the file is missing or unparsable."""
    result = await session.exec("cat", pidfile, check=False)
    if result.exit_status != 0:
        return None
    try:
        return int(result.stdout.strip())
    except ValueError:
        return None


async def daemon_running(session: RemoteSession, pidfile: str) -> bool:
    pid = await read_pid(session, pidfile)
    if pid is None:
        return False
    result = await session.exec("kill", "-0", pid, check=False)
    return result.exit_status == 0


async def start_daemon(
    session: RemoteSession,
    config: DaemonConfig,
    binary: str,
    *args: Any,
) -> int:
    """Launch ``binary`` detached from the session and return its pid.

    Output is appended to ``config.logfile``. Returns once the process has
    been forked and its pid written; the daemon itself may still be
    starting up.
    """
    node = session.node.name
    logger.info("Starting daemon", node=node, binary=binary, pidfile=config.pidfile)

    await session.exec("mkdir", "-p", posixpath.dirname(config.logfile))
    await session.exec(
        "echo",
        lit("`date +'%Y-%m-%d %H:%M:%S'`"),
        f"harness starting {build_command(binary, *args)}",
        lit(">>"),
        config.logfile,
    )

    result = await session.exec(
        "start-stop-daemon",
        "--start",
        "--background",
        "--no-close",
        "--make-pidfile",
        "--pidfile", config.pidfile,
        "--chdir", config.chdir,
        "--oknodo",
        "--exec", binary,
        "--",
        *args,
        lit(">>"), config.logfile,
        lit("2>&1"),
        check=False,
    )
    if result.exit_status != 0:
        raise SupervisionError(
            node,
            binary,
            f"launch failed with exit status {result.exit_status}",
            output=result.stderr or result.stdout,
        )

    pid = await read_pid(session, config.pidfile)
    if pid is None:
        raise SupervisionError(node, binary, f"no pid recorded in {config.pidfile}")

    logger.info("Daemon started", node=node, binary=binary, pid=pid)
    return pid


async def stop_daemon(session: RemoteSession, binary: str, pidfile: str) -> bool:
    """Stop the daemon recorded in ``pidfile``.

    Missing pidfiles and dead processes count as already stopped. A
    pidfile that does not hold a pid is removed with a warning, and a
    failed stop is logged rather than raised, so this never fails on a
    node in an unknown state. Returns True if a stop was attempted.
    """
    node = session.node.name
    pid = await read_pid(session, pidfile)
    if pid is None:
        if await session.exists(pidfile):
            logger.warning("Removing unreadable pidfile", node=node, pidfile=pidfile)
            await session.exec("rm", "-f", pidfile, check=False)
        else:
            logger.debug("No pidfile, daemon not running", node=node, pidfile=pidfile)
        return False

    logger.info("Stopping daemon", node=node, binary=binary, pid=pid)
    result = await session.exec(
        "start-stop-daemon",
        "--stop",
        "--oknodo",
        "--retry", "TERM/5/KILL/5",
        "--pidfile", pidfile,
        "--exec", binary,
        check=False,
    )
    if result.exit_status != 0:
        logger.warning(
            "Daemon stop reported failure",
            node=node,
            binary=binary,
            pid=pid,
            exit_status=result.exit_status,
            stderr=result.stderr,
        )
    await session.exec("rm", "-f", pidfile, check=False)
    return True
