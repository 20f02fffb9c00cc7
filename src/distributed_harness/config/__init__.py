"""Configuration management for Distributed Harness."""

from distributed_harness.config.models import (
    DBConfig,
    LoggingConfig,
    NodeConfig,
    SSHConfig,
    TestConfig,
)
from distributed_harness.config.settings import Settings

__all__ = [
    "DBConfig",
    "LoggingConfig",
    "NodeConfig",
    "SSHConfig",
    "TestConfig",
    "Settings",
]
