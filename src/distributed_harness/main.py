"""Distributed Harness - Main entry point."""

from __future__ import annotations

from distributed_harness.cli import cli as cli_app, configure_logging
from distributed_harness.config import Settings


def main() -> None:
    """Main entry point for the harness."""
    configure_logging(Settings())
    cli_app()


if __name__ == "__main__":
    main()
