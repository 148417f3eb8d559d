"""End-to-end deployment flows against the fake runtime."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Generator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.exc import OperationalError

from edgectl.config.settings import EdgeSettings
from edgectl.domain.models import BuildParams
from edgectl.domain.routes import unit_owner
from edgectl.domain.types import ContainerStatus
from edgectl.infrastructure.runtime import LABEL_DOMAIN, ContainerSpec
from edgectl.infrastructure.workspace import Workspace
from edgectl.plugins.hookspecs import hookimpl
from edgectl.plugins.manager import PluginManager
from edgectl.services.orchestrator import DeploymentOrchestrator
from edgectl.services.proxy import ProxyService
from edgectl.services.result import ServiceResult
from tests.fakes import FakeProxyTransport, FakeRuntime

PROXY = "nginx-proxy"
SHARED = "nginx-proxy-network"

ALL_STAGES = [
    "validate",
    "proxy",
    "network",
    "container",
    "certificates",
    "connectivity",
    "compile",
    "apply",
    "smoke_test",
]


@pytest.fixture
def orchestrator(workspace: Workspace) -> DeploymentOrchestrator:
    return DeploymentOrchestrator(workspace)


def _assert_torn_down(runtime: FakeRuntime, workspace: Workspace, name: str, domain: str) -> None:
    assert name not in runtime.containers
    assert f"{name}-network" not in runtime.networks
    assert not workspace.routes.exists(domain)
    assert not workspace.certificates.is_placed(domain)
    assert workspace.registry.get_project(name) is None


class TestDeploy:
    def test_first_deploy_bootstraps_proxy(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, workspace: Workspace
    ) -> None:
        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert result.ok, result.error
        data = result.data
        assert data["proxy"]["state_before"] == "absent"
        assert data["steps"] == ALL_STAGES
        assert data["replaced"] is False
        assert data["reachability"] == "verified"
        assert data["unit"] == "shop.example.com.conf"
        assert data["upstream"] == f"{runtime.addresses['shop'][SHARED]}:80"
        assert [p["name"] for p in data["smoke"]] == ["redirect", "secure_health"]

        assert runtime.container_status(PROXY) == ContainerStatus.RUNNING
        assert runtime.network_members(SHARED) == [PROXY, "shop"]
        assert runtime.network_members("shop-network") == ["shop"]
        assert runtime.containers["shop"].spec.ports == {80: 9001}
        assert runtime.containers["shop"].spec.image == "nginx:alpine"
        assert "shop.example.com" in runtime.live
        assert workspace.registry.get_route("shop.example.com")["digest"] == data["digest"]

    def test_second_deploy_leaves_first_untouched(
        self,
        orchestrator: DeploymentOrchestrator,
        runtime: FakeRuntime,
        workspace: Workspace,
        transport: FakeProxyTransport,
    ) -> None:
        assert orchestrator.deploy("shop", "shop.example.com", 9001).ok
        shop_unit = workspace.routes.read("shop.example.com")
        proxy_container = runtime.containers[PROXY]

        result = orchestrator.deploy("blog", "blog.example.com", 9002)
        assert result.ok, result.error
        assert result.data["proxy"]["state_before"] == "running"
        assert runtime.containers[PROXY] is proxy_container
        assert workspace.routes.read("shop.example.com") == shop_unit
        regression = result.data["smoke"][-1]
        assert regression["name"] == "regression"
        assert regression["domain"] == "shop.example.com"
        assert regression["ok"] is True
        assert "blog" not in runtime.network_members("shop-network")
        assert "shop" not in runtime.network_members("blog-network")

    def test_domain_conflict_rejected(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime
    ) -> None:
        orchestrator.deploy("shop", "shop.example.com", 9001)
        result = orchestrator.deploy("blog", "shop.example.com", 9002)
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "VALIDATION_ERROR"
        assert result.error.detail["stage"] == "validate"
        assert result.error.detail["check"] == "domain_conflict"
        assert "blog" not in runtime.containers
        assert "blog-network" not in runtime.networks

    def test_unreachable_upstream_tears_down(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, workspace: Workspace
    ) -> None:
        runtime.unreachable.add("shop")
        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "CONNECTIVITY_ERROR"
        assert result.error.detail["check"] == "http_probe"
        assert result.data["failed_stage"] == "connectivity"
        assert result.data["rolled_back"] is True
        assert [c["kind"] for c in result.data["created"]] == [
            "network",
            "container",
            "certificates",
        ]
        _assert_torn_down(runtime, workspace, "shop", "shop.example.com")
        assert runtime.container_status(PROXY) == ContainerStatus.RUNNING
        assert SHARED in runtime.networks
        assert runtime.reloads == 0

    def test_invalid_domain_mutates_nothing(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, workspace: Workspace
    ) -> None:
        result = orchestrator.deploy("shop", "not a domain", 9001)
        assert not result.ok
        assert result.error is not None
        assert result.error.detail["check"] == "domain_format"
        assert runtime.containers == {}
        assert runtime.networks == {}
        assert runtime.exec_log == []
        assert workspace.routes.domains() == []

    @pytest.mark.parametrize(
        ("name", "port", "check"),
        [
            ("shop_1", 9001, "name_format"),
            ("shop", 80, "port_range"),
            ("shop", "http", "port_range"),
            ("nginx-proxy", 9001, "name_reserved"),
        ],
    )
    def test_rejected_input(
        self,
        orchestrator: DeploymentOrchestrator,
        runtime: FakeRuntime,
        name: str,
        port: Any,
        check: str,
    ) -> None:
        result = orchestrator.deploy(name, "shop.example.com", port)
        assert result.error is not None
        assert result.error.detail["check"] == check
        assert runtime.containers == {}

    def test_invalid_config_rolls_back(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, workspace: Workspace
    ) -> None:
        assert orchestrator.deploy("blog", "blog.example.com", 9002).ok
        before = workspace.routes.snapshot()
        runtime.reject_domains.add("shop.example.com")

        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "CONFIGURATION_ERROR"
        assert result.error.detail["stage"] == "apply"
        assert workspace.routes.snapshot() == before
        _assert_torn_down(runtime, workspace, "shop", "shop.example.com")
        assert "blog" in runtime.containers

    def test_container_never_running(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, workspace: Workspace
    ) -> None:
        runtime.crash_on_start.add("shop")
        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert result.error is not None
        assert result.error.detail["stage"] == "container"
        assert result.error.detail["check"] == "container_running"
        assert result.error.detail["log_tail"]
        _assert_torn_down(runtime, workspace, "shop", "shop.example.com")

    def test_production_requires_domain_certificate(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, workspace: Workspace
    ) -> None:
        result = orchestrator.deploy("shop", "shop.example.com", 9001, "pro")
        assert result.error is not None
        assert result.error.detail["stage"] == "certificates"
        assert result.error.detail["check"] == "certificate_missing"
        _assert_torn_down(runtime, workspace, "shop", "shop.example.com")

    def test_redeploy_replaces_unit(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, workspace: Workspace
    ) -> None:
        orchestrator.deploy("shop", "shop.example.com", 9001)
        container = runtime.containers["shop"]
        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert result.ok, result.error
        assert result.data["replaced"] is True
        assert runtime.containers["shop"] is container

    def test_redeploy_under_other_domain_rejected(
        self, orchestrator: DeploymentOrchestrator
    ) -> None:
        orchestrator.deploy("shop", "shop.example.com", 9001)
        result = orchestrator.deploy("shop", "store.example.com", 9001)
        assert result.error is not None
        assert result.error.detail["check"] == "project_domain"
        assert result.error.detail["registered_domain"] == "shop.example.com"

    def test_redeploy_failure_keeps_previous_route(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, workspace: Workspace
    ) -> None:
        orchestrator.deploy("shop", "shop.example.com", 9001)
        unit = workspace.routes.read("shop.example.com")
        runtime.reject_domains.add("shop.example.com")
        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert not result.ok
        assert result.data["created"] == []
        assert workspace.routes.read("shop.example.com") == unit
        assert runtime.container_status("shop") == ContainerStatus.RUNNING

    def test_foreign_member_detached(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime
    ) -> None:
        orchestrator.deploy("shop", "shop.example.com", 9001)
        runtime.run_container(ContainerSpec(name="intruder", image="busybox"))
        runtime.connect("intruder", "shop-network")
        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert result.ok
        assert any("intruder" in w for w in result.warnings)
        assert runtime.network_members("shop-network") == ["shop"]

    def test_build_context(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, tmp_path: Path
    ) -> None:
        context = tmp_path / "app"
        context.mkdir()
        build = BuildParams(context=str(context), dockerfile="Dockerfile.prod", args={"A": "1"})
        result = orchestrator.deploy("shop", "shop.example.com", 9001, build=build)
        assert result.ok, result.error
        assert result.data["image"] == "shop:latest"
        assert runtime.builds == [(context, "shop:latest", "Dockerfile.prod", {"A": "1"})]

    def test_missing_build_context(
        self, orchestrator: DeploymentOrchestrator, tmp_path: Path
    ) -> None:
        build = BuildParams(context=str(tmp_path / "missing"))
        result = orchestrator.deploy("shop", "shop.example.com", 9001, build=build)
        assert result.error is not None
        assert result.error.detail["check"] == "build_context"

    def test_curl_missing_warns(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime
    ) -> None:
        runtime.missing_commands.add("curl")
        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert result.ok
        assert result.data["reachability"] == "reachable"
        assert any("readiness is unknown" in w for w in result.warnings)


class TestSmokeTest:
    def test_failure_is_warning_by_default(
        self,
        orchestrator: DeploymentOrchestrator,
        transport: FakeProxyTransport,
        workspace: Workspace,
    ) -> None:
        transport.broken.add("shop.example.com")
        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert result.ok
        assert any(w.startswith("Smoke test: secure_health") for w in result.warnings)
        assert workspace.routes.exists("shop.example.com")

    def test_strict_failure_reverts(
        self,
        make_workspace: Callable[..., Workspace],
        runtime: FakeRuntime,
        transport: FakeProxyTransport,
    ) -> None:
        ws = make_workspace(smoke={"strict": True})
        transport.broken.add("shop.example.com")
        result = DeploymentOrchestrator(ws).deploy("shop", "shop.example.com", 9001)
        assert not result.ok
        assert result.error is not None
        assert result.error.detail["stage"] == "smoke_test"
        assert result.error.detail["check"] == "secure_health"
        assert len(result.error.detail["probes"]) == 2
        assert "shop.example.com" not in runtime.live
        _assert_torn_down(runtime, ws, "shop", "shop.example.com")

    def test_disabled(
        self, make_workspace: Callable[..., Workspace], transport: FakeProxyTransport
    ) -> None:
        ws = make_workspace(smoke={"enabled": False})
        result = DeploymentOrchestrator(ws).deploy("shop", "shop.example.com", 9001)
        assert result.ok
        assert result.data["smoke"] == []
        assert "smoke_test" not in result.data["steps"]
        assert transport.requests == []


class TestRemove:
    def test_remove_deployed_project(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, workspace: Workspace
    ) -> None:
        orchestrator.deploy("shop", "shop.example.com", 9001)
        result = orchestrator.remove("shop")
        assert result.ok, result.error
        assert result.data == {
            "project": "shop",
            "domain": "shop.example.com",
            "route_retracted": True,
            "container_removed": True,
            "network_removed": True,
            "certificates_removed": True,
        }
        _assert_torn_down(runtime, workspace, "shop", "shop.example.com")
        assert "shop.example.com" not in runtime.live
        assert runtime.container_status(PROXY) == ContainerStatus.RUNNING

    def test_remove_keeps_other_projects(
        self, orchestrator: DeploymentOrchestrator, workspace: Workspace
    ) -> None:
        orchestrator.deploy("shop", "shop.example.com", 9001)
        orchestrator.deploy("blog", "blog.example.com", 9002)
        blog_unit = workspace.routes.read("blog.example.com")
        assert orchestrator.remove("shop").ok
        assert workspace.routes.read("blog.example.com") == blog_unit

    def test_unknown_project(
        self, orchestrator: DeploymentOrchestrator, workspace: Workspace
    ) -> None:
        result = orchestrator.remove("ghost")
        assert result.error is not None
        assert result.error.detail["check"] == "project_unknown"
        assert workspace.registry.history() == []

    def test_found_by_container_label(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime
    ) -> None:
        runtime.run_container(
            ContainerSpec(name="shop", image="x", labels={LABEL_DOMAIN: "shop.example.com"})
        )
        result = orchestrator.remove("shop")
        assert result.ok
        assert result.data["domain"] == "shop.example.com"
        assert result.data["route_retracted"] is False
        assert result.data["container_removed"] is True

    def test_found_by_unit_owner(
        self, orchestrator: DeploymentOrchestrator, proxy_up: Workspace
    ) -> None:
        text = "# Generated automatically for project: shop\nserver {\n}\n"
        proxy_up.routes.write("shop.example.com", text)
        result = orchestrator.remove("shop")
        assert result.ok, result.error
        assert result.data["domain"] == "shop.example.com"
        assert result.data["route_retracted"] is True
        assert not proxy_up.routes.exists("shop.example.com")


class TestStatus:
    def test_lists_projects_and_history(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime
    ) -> None:
        orchestrator.deploy("shop", "shop.example.com", 9001)
        runtime.unreachable.add("blog")
        orchestrator.deploy("blog", "blog.example.com", 9002)

        result = orchestrator.status()
        assert result.ok
        assert result.data["proxy"]["state"] == "running"
        assert result.data["count"] == 1
        [item] = result.data["items"]
        assert item["name"] == "shop"
        assert item["container"] == "running"
        assert item["host_port"] == 9001
        assert item["digest"]
        latest, first = result.data["history"]
        assert latest["project"] == "blog"
        assert latest["outcome"] == "failed"
        assert latest["failed_stage"] == "connectivity"
        assert latest["rolled_back"] is True
        assert first["outcome"] == "success"
        assert first["steps"] == ALL_STAGES

    def test_empty(self, orchestrator: DeploymentOrchestrator) -> None:
        result = orchestrator.status()
        assert result.data["proxy"]["state"] == "absent"
        assert result.data["items"] == []
        assert result.warnings == []

    def test_orphan_unit_warning(
        self, orchestrator: DeploymentOrchestrator, workspace: Workspace
    ) -> None:
        workspace.routes.write("ghost.example.com", "server {\n}\n")
        result = orchestrator.status()
        assert result.warnings == ["Route unit for 'ghost.example.com' has no registered project"]


class _Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, str]]] = []

    @hookimpl
    def post_deploy(self, project: str, domain: str, upstream: str, environment: str) -> None:
        self.events.append(("post_deploy", {"project": project, "environment": environment}))

    @hookimpl
    def post_remove(self, project: str, domain: str) -> None:
        self.events.append(("post_remove", {"project": project, "domain": domain}))

    @hookimpl
    def post_rollback(self, project: str, domain: str, stage: str) -> None:
        self.events.append(("post_rollback", {"project": project, "stage": stage}))


class _Broken:
    @hookimpl
    def post_deploy(self, project: str, domain: str, upstream: str, environment: str) -> None:
        raise RuntimeError("hosts file is read-only")


class TestPluginHooks:
    @pytest.fixture
    def recorder(self, workspace: Workspace) -> _Recorder:
        recorder = _Recorder()
        manager = PluginManager()
        manager.register_plugin(recorder)
        workspace.use_plugins(manager)
        return recorder

    def test_lifecycle_events(
        self, orchestrator: DeploymentOrchestrator, recorder: _Recorder, runtime: FakeRuntime
    ) -> None:
        orchestrator.deploy("shop", "shop.example.com", 9001)
        orchestrator.remove("shop")
        runtime.unreachable.add("blog")
        orchestrator.deploy("blog", "blog.example.com", 9002)
        assert recorder.events == [
            ("post_deploy", {"project": "shop", "environment": "dev"}),
            ("post_remove", {"project": "shop", "domain": "shop.example.com"}),
            ("post_rollback", {"project": "blog", "stage": "connectivity"}),
        ]

    def test_failing_plugin_is_warning(
        self, orchestrator: DeploymentOrchestrator, workspace: Workspace
    ) -> None:
        manager = PluginManager()
        manager.register_plugin(_Broken())
        workspace.use_plugins(manager)
        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert result.ok
        assert "Plugin hook post_deploy failed" in result.warnings


class TestRuntimeFailures:
    def test_daemon_error_mid_run_compensates(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, workspace: Workspace
    ) -> None:
        runtime.daemon_errors[("network_members", "shop-network")] = (
            "500 Server Error: daemon busy"
        )
        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "INFRASTRUCTURE_ERROR"
        assert result.error.detail["stage"] == "container"
        assert result.error.detail["check"] == "runtime_api"
        assert "daemon busy" in result.error.message
        assert result.data["rolled_back"] is True
        _assert_torn_down(runtime, workspace, "shop", "shop.example.com")

    def test_unremovable_stuck_proxy(
        self, orchestrator: DeploymentOrchestrator, runtime: FakeRuntime, proxy_up: Workspace
    ) -> None:
        runtime.stop_container(PROXY)
        runtime.refuse_start.add(PROXY)
        runtime.daemon_errors[("remove_container", PROXY)] = (
            "removal of container nginx-proxy is already in progress"
        )
        result = orchestrator.deploy("alpha", "alpha.example.com", 9001)
        assert not result.ok
        assert result.error is not None
        assert result.error.detail["stage"] == "proxy"
        assert result.error.detail["check"] == "proxy_recreate"
        assert "alpha" not in runtime.containers
        assert "alpha-network" not in runtime.networks

    def test_registry_failure_reverts_route(
        self,
        orchestrator: DeploymentOrchestrator,
        runtime: FakeRuntime,
        workspace: Workspace,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def locked(project: object) -> None:
            raise OperationalError("INSERT INTO projects", {}, Exception("database is locked"))

        monkeypatch.setattr(workspace.registry, "save_project", locked)
        result = orchestrator.deploy("shop", "shop.example.com", 9001)
        assert not result.ok
        assert result.error is not None
        assert result.error.detail["stage"] == "apply"
        assert result.error.detail["check"] == "registry"
        assert result.data["rolled_back"] is True
        assert "shop.example.com" not in runtime.live
        _assert_torn_down(runtime, workspace, "shop", "shop.example.com")


class _SerializedRuntime:
    """Funnels every runtime call through one lock; the fake's dicts are not thread-safe."""

    def __init__(self, runtime: FakeRuntime) -> None:
        self._runtime = runtime
        self._lock = threading.RLock()

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._runtime, name)
        if not callable(attr):
            return attr

        def call(*args: Any, **kwargs: Any) -> Any:
            with self._lock:
                return attr(*args, **kwargs)

        return call


@pytest.fixture
def parallel_workspaces(
    runtime: FakeRuntime,
    transport: FakeProxyTransport,
    make_settings: Callable[..., EdgeSettings],
) -> Generator[list[Workspace]]:
    """Two workspaces on one state dir, each with its own lock handle and engine."""
    shared = _SerializedRuntime(runtime)
    fast_lock = {"lock": {"attempts": 500, "delay": 0.01}}
    workspaces = [
        Workspace(
            make_settings(retry=fast_lock),
            runtime=shared,  # type: ignore[arg-type]
            sleep=time.sleep,
            http_transport=transport,
        )
        for _ in range(2)
    ]
    ProxyService(workspaces[0]).ensure_ready([])
    for ws in workspaces:
        assert ws.registry is not None
    yield workspaces
    for ws in workspaces:
        ws.close()


def _deploy_together(
    workspaces: list[Workspace], requests: list[tuple[str, str, int]]
) -> list[ServiceResult]:
    barrier = threading.Barrier(len(requests))

    def run(ws: Workspace, name: str, domain: str, port: int) -> ServiceResult:
        barrier.wait(timeout=10)
        return DeploymentOrchestrator(ws).deploy(name, domain, port)

    with ThreadPoolExecutor(max_workers=len(requests)) as pool:
        futures = [
            pool.submit(run, ws, *request) for ws, request in zip(workspaces, requests)
        ]
        return [f.result(timeout=60) for f in futures]


class TestConcurrentDeploys:
    def test_simultaneous_deploys_both_applied(
        self, parallel_workspaces: list[Workspace], runtime: FakeRuntime
    ) -> None:
        results = _deploy_together(
            parallel_workspaces,
            [("gamma", "gamma.example.com", 9003), ("delta", "delta.example.com", 9004)],
        )
        assert all(r.ok for r in results), [r.error for r in results]
        routes = parallel_workspaces[0].routes
        assert routes.domains() == ["delta.example.com", "gamma.example.com"]
        assert {"gamma.example.com", "delta.example.com"} <= set(runtime.live)
        assert unit_owner(runtime.live["gamma.example.com"]) == "gamma"
        assert unit_owner(runtime.live["delta.example.com"]) == "delta"

    def test_same_domain_race_has_one_winner(
        self, parallel_workspaces: list[Workspace], runtime: FakeRuntime
    ) -> None:
        results = _deploy_together(
            parallel_workspaces,
            [("gamma", "shared.example.com", 9003), ("delta", "shared.example.com", 9004)],
        )
        winners = [r for r in results if r.ok]
        losers = [r for r in results if not r.ok]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].error is not None
        assert losers[0].error.detail["check"] == "domain_conflict"

        winner = winners[0].data["project"]
        loser = "delta" if winner == "gamma" else "gamma"
        assert unit_owner(runtime.live["shared.example.com"]) == winner
        assert loser not in runtime.containers
        assert parallel_workspaces[0].certificates.is_placed("shared.example.com")
        assert parallel_workspaces[0].registry.project_for_domain("shared.example.com") == winner

    def test_domain_claimed_during_run(
        self,
        make_workspace: Callable[..., Workspace],
        runtime: FakeRuntime,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        first = DeploymentOrchestrator(make_workspace())
        second_ws = make_workspace()
        second = DeploymentOrchestrator(second_ws)
        verify = first.connectivity.verify

        def claim_then_verify(*args: Any, **kwargs: Any) -> Any:
            assert second.deploy("owner", "shop.example.com", 9002).ok
            return verify(*args, **kwargs)

        monkeypatch.setattr(first.connectivity, "verify", claim_then_verify)
        result = first.deploy("intruder", "shop.example.com", 9001)

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "VALIDATION_ERROR"
        assert result.error.detail["stage"] == "apply"
        assert result.error.detail["check"] == "domain_conflict"
        assert unit_owner(runtime.live["shop.example.com"]) == "owner"
        assert "intruder" not in runtime.containers
        assert "intruder-network" not in runtime.networks
        assert second_ws.certificates.is_placed("shop.example.com")
        assert second_ws.registry.get_project("intruder") is None
        assert second_ws.registry.get_project("owner") is not None
