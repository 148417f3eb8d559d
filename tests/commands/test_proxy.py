"""Tests for the proxy command group."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from edgectl.cli import cli
from edgectl.domain.types import ContainerStatus
from tests.conftest import json_tail
from tests.fakes import FakeRuntime


@pytest.mark.usefixtures("_isolated_root")
class TestProxyCommands:
    def test_start_then_status(self, cli_runner: CliRunner, runtime: FakeRuntime) -> None:
        result = cli_runner.invoke(cli, ["--json", "proxy", "start"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["data"]["state_before"] == "absent"

        status = cli_runner.invoke(cli, ["proxy", "status"])
        assert status.exit_code == 0
        assert "state: running" in status.stdout
        assert "networks: nginx-proxy-network" in status.stdout

    def test_health(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, ["proxy", "start"])
        result = cli_runner.invoke(cli, ["proxy", "health"])
        assert result.exit_code == 0, result.output
        assert "config_syntax: ok" in result.stdout

    def test_health_when_absent(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "proxy", "health"])
        assert result.exit_code == 1
        assert json_tail(result.stderr)["error"]["detail"]["check"] == "running"

    def test_stop_and_restart(self, cli_runner: CliRunner, runtime: FakeRuntime) -> None:
        cli_runner.invoke(cli, ["proxy", "start"])
        assert cli_runner.invoke(cli, ["proxy", "stop"]).exit_code == 0
        assert runtime.container_status("nginx-proxy") == ContainerStatus.STOPPED
        result = cli_runner.invoke(cli, ["--json", "proxy", "restart"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["op"] == "proxy_restart"
        assert runtime.container_status("nginx-proxy") == ContainerStatus.RUNNING

    def test_logs(self, cli_runner: CliRunner, runtime: FakeRuntime) -> None:
        cli_runner.invoke(cli, ["proxy", "start"])
        runtime.log_text = "line one\nline two\nline three\n"
        result = cli_runner.invoke(cli, ["proxy", "logs", "--tail", "2"])
        assert result.exit_code == 0
        assert result.stdout == "line two\nline three\n"

    def test_logs_tail_must_be_positive(self, cli_runner: CliRunner) -> None:
        assert cli_runner.invoke(cli, ["proxy", "logs", "--tail", "0"]).exit_code == 2
