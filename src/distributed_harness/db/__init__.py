"""Services the harness knows how to install and run."""

from __future__ import annotations

from typing import Dict, Type

from distributed_harness.config import DBConfig
from distributed_harness.db.base import DB, ArchiveDB, Process
from distributed_harness.db.etcd import EtcdDB

DB_KINDS: Dict[str, Type[ArchiveDB]] = {
    "etcd": EtcdDB,
    "archive": ArchiveDB,
}


def make_db(config: DBConfig) -> DB:
    """Build the DB implementation registered for ``config.kind``."""
    try:
        cls = DB_KINDS[config.kind]
    except KeyError:
        known = ", ".join(sorted(DB_KINDS))
        raise ValueError(f"Unknown DB kind {config.kind!r} (known: {known})") from None
    return cls(config)


__all__ = ["DB", "ArchiveDB", "Process", "EtcdDB", "DB_KINDS", "make_db"]
