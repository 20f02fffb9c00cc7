"""Tests for the CLI interface."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from distributed_harness.cli import cli
from distributed_harness.config import TestConfig
from distributed_harness.utils.logging import setup_logging

from tests.conftest import FakeSSHManager

runner = CliRunner()


@pytest.fixture(autouse=True)
def clear_harness_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "HARNESS_RESULTS_DIR",
        "HARNESS_SSH_PASSWORD",
        "HARNESS_SUDO_PASSWORD",
        "LOG_LEVEL",
        "LOG_FORMAT",
        "LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def patched_ssh(monkeypatch: pytest.MonkeyPatch, test_config: TestConfig) -> FakeSSHManager:
    fake = FakeSSHManager(test_config.nodes)
    monkeypatch.setattr(
        "distributed_harness.core.orchestrator.SSHManager",
        lambda nodes, ssh: fake,
    )
    return fake


def test_cli_init_command(tmp_path: Path) -> None:
    """Test init command creates configuration."""
    config_path = tmp_path / "harness.yaml"

    result = runner.invoke(cli, ["init", "--config", str(config_path)])

    assert result.exit_code == 0
    assert config_path.exists()

    config = TestConfig.from_yaml(config_path)
    assert config.name == "etcd-test"
    assert [n.name for n in config.nodes] == ["n1", "n2", "n3", "n4", "n5"]


def test_cli_init_keeps_existing_file(temp_config_file: Path) -> None:
    before = temp_config_file.read_text()

    result = runner.invoke(cli, ["init", "--config", str(temp_config_file)], input="n\n")

    assert result.exit_code == 0
    assert "cancelled" in result.output
    assert temp_config_file.read_text() == before


def test_cli_config_validation(temp_config_file: Path) -> None:
    """Test config validation command."""
    result = runner.invoke(cli, ["config", str(temp_config_file)])

    assert result.exit_code == 0
    assert "Configuration is valid" in result.output
    assert "etcd v3.1.5" in result.output
    assert "http://n2:2380" in result.output


def test_cli_config_invalid(tmp_path: Path) -> None:
    config_path = tmp_path / "bad.yaml"
    config_path.write_text(yaml.dump({"name": "t", "nodes": []}))

    result = runner.invoke(cli, ["config", str(config_path)])

    assert result.exit_code != 0
    assert "Invalid configuration" in result.output


def test_cli_membership(temp_config_file: Path) -> None:
    result = runner.invoke(cli, ["membership", "-c", str(temp_config_file)])

    assert result.exit_code == 0
    assert "n1=http://n1:2380,n2=http://n2:2380,n3=http://n3:2380" in result.output


def test_cli_run(temp_config_file: Path, test_config: TestConfig, patched_ssh: FakeSSHManager) -> None:
    result = runner.invoke(cli, ["run", "-c", str(temp_config_file)])

    assert result.exit_code == 0, result.output
    assert "Run complete" in result.output
    for name, host in patched_ssh.hosts.items():
        assert host.processes == {}
        assert (test_config.results_dir / test_config.name / name / "etcd.log").exists()


def test_cli_run_reports_failed_nodes(temp_config_file: Path, patched_ssh: FakeSSHManager) -> None:
    patched_ssh.hosts["n2"].failing["wget"] = 8

    result = runner.invoke(cli, ["run", "-c", str(temp_config_file)])

    assert result.exit_code != 0
    assert "setup failed on 1 node(s)" in result.output
    assert "n2 (install)" in result.output


def test_cli_setup_and_teardown(temp_config_file: Path, patched_ssh: FakeSSHManager) -> None:
    result = runner.invoke(cli, ["setup", "-c", str(temp_config_file)])
    assert result.exit_code == 0, result.output
    assert all(len(h.processes) == 1 for h in patched_ssh.hosts.values())

    result = runner.invoke(cli, ["teardown", "-c", str(temp_config_file)])
    assert result.exit_code == 0, result.output
    assert all(h.processes == {} for h in patched_ssh.hosts.values())


def test_cli_environment_overrides(
    temp_config_file: Path,
    tmp_path: Path,
    patched_ssh: FakeSSHManager,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("HARNESS_SUDO_PASSWORD", "hunter2")
    monkeypatch.setenv("HARNESS_RESULTS_DIR", str(tmp_path / "elsewhere"))

    result = runner.invoke(cli, ["run", "-c", str(temp_config_file)])

    assert result.exit_code == 0, result.output
    assert "hunter2\n" in patched_ssh.stdin
    assert "secret\n" not in patched_ssh.stdin
    assert (tmp_path / "elsewhere" / "etcd-test" / "n1" / "etcd.log").exists()


def test_cli_log_level_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "bare.yaml"
    config_path.write_text(yaml.dump({"name": "t", "nodes": [{"name": "n1"}]}))
    monkeypatch.setenv("LOG_LEVEL", "ERROR")

    result = runner.invoke(cli, ["membership", "-c", str(config_path)])

    assert result.exit_code == 0, result.output
    assert logging.getLogger().level == logging.ERROR


def test_cli_log_level_from_config(temp_config_file: Path) -> None:
    setup_logging(level="WARNING", format_type="text")

    result = runner.invoke(cli, ["membership", "-c", str(temp_config_file)])

    assert result.exit_code == 0, result.output
    assert logging.getLogger().level == logging.DEBUG
