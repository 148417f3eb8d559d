"""Tests for the upstream reachability gate."""

from __future__ import annotations

import pytest

from edgectl.domain.errors import ConnectivityError
from edgectl.domain.types import Reachability
from edgectl.infrastructure.runtime import ContainerSpec
from edgectl.infrastructure.workspace import Workspace
from edgectl.services.connectivity import ConnectivityService
from tests.fakes import FakeRuntime, FakeSleeper

SHARED = "nginx-proxy-network"


@pytest.fixture
def connectivity(proxy_up: Workspace, runtime: FakeRuntime) -> ConnectivityService:
    runtime.run_container(ContainerSpec(name="shop", image="shop:latest", network=SHARED))
    return ConnectivityService(proxy_up)


class TestVerify:
    def test_verified_over_http(
        self, connectivity: ConnectivityService, runtime: FakeRuntime
    ) -> None:
        report = connectivity.verify("shop")
        address = runtime.addresses["shop"][SHARED]
        assert report.reachability == Reachability.VERIFIED
        assert report.method == "http"
        assert report.address == address
        assert report.upstream == f"{address}:80"
        assert report.warning is None
        _, command = runtime.exec_log[-1]
        assert command == [
            "curl", "-s", "-f", "-o", "/dev/null", "--max-time", "5",
            f"http://{address}:80/health",
        ]  # fmt: skip

    def test_explicit_port(self, connectivity: ConnectivityService) -> None:
        assert connectivity.verify("shop", 8080).upstream.endswith(":8080")

    def test_ping_fallback_without_curl(
        self, connectivity: ConnectivityService, runtime: FakeRuntime
    ) -> None:
        runtime.missing_commands.add("curl")
        report = connectivity.verify("shop")
        assert report.reachability == Reachability.REACHABLE
        assert report.method == "ping"
        assert report.warning is not None
        assert "readiness is unknown" in report.warning

    def test_unreachable_http(
        self, connectivity: ConnectivityService, runtime: FakeRuntime, sleeper: FakeSleeper
    ) -> None:
        runtime.unreachable.add("shop")
        sleeper.calls.clear()
        with pytest.raises(ConnectivityError) as exc_info:
            connectivity.verify("shop")
        assert exc_info.value.check == "http_probe"
        assert exc_info.value.detail["attempts"] == 5
        assert sleeper.calls == [3.0] * 4

    def test_unreachable_ping(
        self, connectivity: ConnectivityService, runtime: FakeRuntime
    ) -> None:
        runtime.missing_commands.add("curl")
        runtime.unreachable.add("shop")
        with pytest.raises(ConnectivityError) as exc_info:
            connectivity.verify("shop")
        assert exc_info.value.check == "ping_probe"

    def test_address_never_assigned(
        self, connectivity: ConnectivityService, runtime: FakeRuntime
    ) -> None:
        runtime.withhold_address.add("shop")
        with pytest.raises(ConnectivityError) as exc_info:
            connectivity.verify("shop")
        assert exc_info.value.check == "address_resolution"
        assert exc_info.value.detail["network"] == SHARED

    def test_ipv6_ping(self, connectivity: ConnectivityService, runtime: FakeRuntime) -> None:
        runtime.addresses["shop"][SHARED] = "fd00::3"
        runtime.missing_commands.add("curl")
        report = connectivity.verify("shop")
        assert report.upstream == "[fd00::3]:80"
        _, command = runtime.exec_log[-1]
        assert command[:2] == ["ping", "-6"]
        assert command[-1] == "fd00::3"
