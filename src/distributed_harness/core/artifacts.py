"""Installation artifacts fetched and unpacked at most once per URL."""

from __future__ import annotations

import posixpath
from urllib.parse import quote, urlparse

import structlog

from distributed_harness.core.control import RemoteSession, lit
from distributed_harness.errors import ArtifactError, CommandError

logger = structlog.get_logger(__name__)

WGET_CACHE_DIR = "/tmp/harness/wget-cache"
ARTIFACT_MARKER = ".harness-artifact"


def cache_path(url: str) -> str:
    """Where the downloaded copy of ``url`` lives on a node."""
    return f"{WGET_CACHE_DIR}/{quote(url, safe='')}"


def _extract_args(archive: str, url: str, staging: str) -> list[str]:
    name = urlparse(url).path.lower()
    if name.endswith(".zip"):
        return ["unzip", "-q", archive, "-d", staging]
    return ["tar", "--no-same-owner", "-xf", archive, "-C", staging]


async def cached_wget(session: RemoteSession, url: str, force: bool = False) -> str:
    """Download ``url`` into the node's cache unless it is already there."""
    path = cache_path(url)
    if force:
        await session.exec("rm", "-f", path)
    elif await session.exists(path):
        logger.debug("Artifact already cached", node=session.node.name, url=url)
        return path

    logger.info("Downloading artifact", node=session.node.name, url=url)
    partial = f"{path}.part"
    await session.exec("mkdir", "-p", WGET_CACHE_DIR)
    await session.exec("rm", "-f", partial)
    try:
        await session.exec("wget", "-q", "-O", partial, url)
    except CommandError as e:
        await session.exec("rm", "-f", partial, check=False)
        raise ArtifactError(e.node, e.command, e.exit_status, e.stdout, e.stderr) from e
    await session.exec("mv", "-f", partial, path)
    return path


async def installed_from(session: RemoteSession, dest: str) -> str | None:
    """The URL ``dest`` was populated from, or None when absent or incomplete."""
    result = await session.exec("cat", f"{dest}/{ARTIFACT_MARKER}", check=False)
    if result.exit_status != 0:
        return None
    return result.stdout.strip() or None


async def install_archive(
    session: RemoteSession,
    url: str,
    dest: str,
    force: bool = False,
) -> bool:
    """Make ``dest`` hold the unpacked contents of the archive at ``url``.

    Returns False when ``dest`` was already populated from the same URL.
    The archive is unpacked beside ``dest`` and moved into place in one
    ``mv``, and the marker is written before the move, so a ``dest`` that
    carries the marker is always complete. A single top-level directory in
    the archive is stripped.
    """
    node = session.node.name
    if not force and await installed_from(session, dest) == url:
        logger.info("Install directory up to date", node=node, dest=dest, url=url)
        return False

    archive = await cached_wget(session, url, force=force)
    staging = f"{dest}.staging"

    await session.exec("rm", "-rf", staging)
    await session.exec("mkdir", "-p", staging)
    try:
        await session.exec(*_extract_args(archive, url, staging))
    except CommandError as e:
        logger.warning("Extraction failed, discarding cached archive", node=node, url=url)
        await session.exec("rm", "-rf", staging, check=False)
        await session.exec("rm", "-f", archive, check=False)
        raise ArtifactError(e.node, e.command, e.exit_status, e.stdout, e.stderr) from e

    listing = await session.exec("ls", "-A", staging)
    entries = [e for e in listing.stdout.split("\n") if e]
    root = staging
    if len(entries) == 1:
        candidate = f"{staging}/{entries[0]}"
        is_dir = await session.exec("test", "-d", candidate, check=False)
        if is_dir.exit_status == 0:
            root = candidate

    await session.exec("echo", url, lit(">"), f"{root}/{ARTIFACT_MARKER}")
    await session.exec("rm", "-rf", dest)
    await session.exec("mkdir", "-p", posixpath.dirname(dest))
    await session.exec("mv", root, dest)
    await session.exec("rm", "-rf", staging)

    logger.info("Installed artifact", node=node, dest=dest, url=url)
    return True
