"""Tests for the remove and status commands."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from edgectl.cli import cli
from tests.conftest import json_tail
from tests.fakes import FakeRuntime

DEPLOY = ["deploy", "shop", "--domain", "shop.example.com", "--port", "9001"]


@pytest.mark.usefixtures("_isolated_root")
class TestRemoveCommand:
    def test_remove(self, cli_runner: CliRunner, runtime: FakeRuntime) -> None:
        assert cli_runner.invoke(cli, DEPLOY).exit_code == 0
        result = cli_runner.invoke(cli, ["--json", "remove", "shop"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)["data"]
        assert data["route_retracted"] is True
        assert "shop" not in runtime.containers
        assert "nginx-proxy" in runtime.containers

    def test_unknown_project(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "remove", "ghost"])
        assert result.exit_code == 1
        assert json_tail(result.stderr)["error"]["detail"]["check"] == "project_unknown"


@pytest.mark.usefixtures("_isolated_root")
class TestStatusCommand:
    def test_empty(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "proxy nginx-proxy absent" in result.stdout
        assert "No projects deployed." in result.stdout

    def test_after_deploy(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, DEPLOY)
        result = cli_runner.invoke(cli, ["--json", "status"])
        data = json.loads(result.stdout)["data"]
        assert data["count"] == 1
        assert data["items"][0]["container"] == "running"
        assert data["history"][0]["outcome"] == "success"

    def test_quiet_lists_domains(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, DEPLOY)
        result = cli_runner.invoke(cli, ["-q", "status"])
        assert result.stdout.strip() == "shop.example.com"
