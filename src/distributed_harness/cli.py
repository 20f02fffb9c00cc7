"""Command-line interface for Distributed Harness."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import click
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from distributed_harness.config import LoggingConfig, Settings, TestConfig
from distributed_harness.core.orchestrator import HarnessOrchestrator, PhaseReport
from distributed_harness.core.topology import client_url, initial_cluster, peer_url
from distributed_harness.errors import HarnessError
from distributed_harness.utils.logging import setup_logging

console = Console()

DEFAULT_CONFIG = Path("config/harness.yaml")


def configure_logging(settings: Settings, test: Optional[TestConfig] = None) -> None:
    """Set up logging from the environment, then the test configuration.

    Each of ``LOG_LEVEL``, ``LOG_FORMAT`` and ``LOG_FILE`` that is set wins over
    the matching field of the test's ``logging`` section.
    """
    base = test.logging if test is not None else LoggingConfig(format="text")
    env = settings.logging
    file_path = env.file_path if env.file_path is not None else base.file_path
    setup_logging(
        env.level or base.level,
        env.format or base.format,
        Path(file_path) if file_path else None,
    )


def _load(config: Path) -> TestConfig:
    try:
        test = TestConfig.from_yaml(config)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise click.ClickException(f"Invalid configuration {config}: {e}")
    settings = Settings()
    if settings.results_dir:
        test = test.model_copy(update={"results_dir": Path(settings.results_dir)})
    ssh_overrides = settings.credentials.ssh_overrides()
    if ssh_overrides:
        test = test.model_copy(update={"ssh": test.ssh.model_copy(update=ssh_overrides)})
    configure_logging(settings, test)
    return test


def _print_phase(report: PhaseReport) -> None:
    for outcome in report.outcomes:
        if outcome.ok:
            console.print(
                f"[green]✓[/green] {report.operation} {outcome.node} "
                f"({outcome.duration_seconds:.1f}s)"
            )
        else:
            console.print(
                f"[red]✗[/red] {report.operation} {outcome.node} "
                f"failed at {outcome.step}: {outcome.error}"
            )


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=DEFAULT_CONFIG,
    help="Path to test configuration file",
)


@click.group()
def cli():
    """Bring a service under test up and down across a cluster."""
    pass


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default=DEFAULT_CONFIG,
    help="Path to test configuration file",
)
def init(config: Path) -> None:
    """Write a sample test configuration."""
    if config.exists():
        if not click.confirm(f"Configuration file {config} already exists. Overwrite?"):
            console.print("[yellow]Initialization cancelled.[/yellow]")
            return

    config.parent.mkdir(parents=True, exist_ok=True)

    sample_config = {
        "name": "etcd-test",
        "nodes": [{"name": f"n{i}"} for i in range(1, 6)],
        "ssh": {
            "username": "root",
            "private_key_path": "~/.ssh/id_rsa",
            "strict_host_key_checking": False,
        },
        "db": {
            "kind": "etcd",
            "version": "v3.1.5",
            "install_dir": "/opt/etcd",
            "binary": "etcd",
        },
        "logging": {
            "level": "INFO",
            "format": "text",
        },
        "results_dir": "store",
    }

    with open(config, "w") as f:
        yaml.dump(sample_config, f, default_flow_style=False, indent=2, sort_keys=False)

    console.print(f"[green]✓[/green] Configuration initialized at {config}")


@cli.command("config")
@click.argument(
    "config_path",
    type=click.Path(exists=True, path_type=Path),
)
def validate_config(config_path: Path) -> None:
    """Validate a test configuration file."""
    test = _load(config_path)
    db = test.db
    console.print("[green]✓[/green] Configuration is valid")
    console.print(f"  Test: {test.name}")
    console.print(f"  DB: {db.kind} {db.version}")
    console.print(f"  Nodes: {len(test.nodes)}")

    table = Table(title="Nodes")
    table.add_column("Name", style="cyan")
    table.add_column("Address", style="magenta")
    table.add_column("Peer URL")
    table.add_column("Client URL")

    for node in test.nodes:
        table.add_row(
            node.name,
            node.address,
            peer_url(node, db.peer_port),
            client_url(node, db.client_port),
        )

    console.print(table)


@cli.command()
@config_option
def membership(config: Path) -> None:
    """Print the initial cluster string every node boots with."""
    test = _load(config)
    click.echo(initial_cluster(test.nodes, test.db.peer_port))


@cli.command()
@config_option
def setup(config: Path) -> None:
    """Install and start the service on every node."""
    test = _load(config)

    async def _setup() -> PhaseReport:
        orchestrator = HarnessOrchestrator(test)
        try:
            return await orchestrator.setup_all()
        finally:
            await orchestrator.ssh_manager.close_all()

    report = asyncio.run(_setup())
    _print_phase(report)
    if not report.ok:
        raise click.ClickException(f"Setup failed on {', '.join(report.failed_nodes())}")


@cli.command()
@config_option
def teardown(config: Path) -> None:
    """Stop the service and remove it from every node."""
    test = _load(config)

    async def _teardown() -> PhaseReport:
        orchestrator = HarnessOrchestrator(test)
        try:
            return await orchestrator.teardown_all()
        finally:
            await orchestrator.ssh_manager.close_all()

    report = asyncio.run(_teardown())
    _print_phase(report)
    if not report.ok:
        raise click.ClickException(f"Teardown failed on {', '.join(report.failed_nodes())}")


@cli.command()
@config_option
def logs(config: Path) -> None:
    """Copy every node's service logs into the results directory."""
    test = _load(config)

    async def _logs():
        orchestrator = HarnessOrchestrator(test)
        try:
            return await orchestrator.collect_logs()
        finally:
            await orchestrator.ssh_manager.close_all()

    collected = asyncio.run(_logs())
    for node, paths in collected.items():
        for path in paths:
            console.print(f"[green]✓[/green] {node}: {path}")


@cli.command()
@config_option
@click.option(
    "--hold",
    type=float,
    default=0.0,
    show_default=True,
    help="Seconds to keep the cluster up between setup and teardown",
)
def run(config: Path, hold: float) -> None:
    """Teardown, setup, hold the cluster up, collect logs, teardown."""
    test = _load(config)

    async def _hold(_: TestConfig) -> None:
        if hold > 0:
            console.print(f"[blue]Cluster up, holding for {hold:g}s...[/blue]")
            await asyncio.sleep(hold)

    orchestrator = HarnessOrchestrator(test)
    error: Optional[HarnessError] = None
    try:
        asyncio.run(orchestrator.run(_hold))
    except HarnessError as e:
        error = e

    report = orchestrator.last_report
    if report is not None:
        for phase in report.phases:
            _print_phase(phase)
        for node, paths in report.logs.items():
            for path in paths:
                console.print(f"  {node}: {path}")

    if error is not None:
        raise click.ClickException(str(error))
    console.print("[green]✓[/green] Run complete")
