"""Utility functions and helpers."""

from distributed_harness.utils.logging import setup_logging, get_logger
from distributed_harness.utils.retry import retry_async, RetryConfig, RetryError

__all__ = [
    "setup_logging",
    "get_logger",
    "retry_async",
    "RetryConfig",
    "RetryError",
]
