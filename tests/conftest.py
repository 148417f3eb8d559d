"""Shared pytest fixtures for edgectl tests."""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from edgectl.config.settings import EdgeSettings
from edgectl.infrastructure.workspace import Workspace
from edgectl.services.telemetry import _current_span, disable_telemetry
from tests.fakes import FakeProxyTransport, FakeRuntime, FakeSleeper, write_pem_pair


@pytest.fixture(autouse=True)
def _reset_global_state() -> Generator[None]:
    """Undo what ``AppContext`` does to logging and telemetry."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    edge = logging.getLogger("edgectl")
    edge_level = edge.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    edge.setLevel(edge_level)
    disable_telemetry()
    _current_span.set(None)


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def sleeper() -> FakeSleeper:
    return FakeSleeper()


@pytest.fixture
def transport(runtime: FakeRuntime) -> FakeProxyTransport:
    return FakeProxyTransport(runtime)


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., EdgeSettings]:
    """Settings rooted at ``tmp_path`` with a generic development certificate."""
    write_pem_pair(tmp_path / "certs")

    def _make(**overrides: Any) -> EdgeSettings:
        return EdgeSettings(root=tmp_path, **overrides)

    return _make


@pytest.fixture
def settings(make_settings: Callable[..., EdgeSettings]) -> EdgeSettings:
    return make_settings()


@pytest.fixture
def make_workspace(
    runtime: FakeRuntime,
    sleeper: FakeSleeper,
    transport: FakeProxyTransport,
    make_settings: Callable[..., EdgeSettings],
) -> Generator[Callable[..., Workspace]]:
    """Build workspaces on the shared fakes; extra kwargs become settings overrides."""
    created: list[Workspace] = []

    def _make(**overrides: Any) -> Workspace:
        ws = Workspace(
            make_settings(**overrides),
            runtime=runtime,
            sleep=sleeper,
            http_transport=transport,
        )
        created.append(ws)
        return ws

    yield _make
    for ws in created:
        ws.close()


@pytest.fixture
def workspace(make_workspace: Callable[..., Workspace]) -> Workspace:
    return make_workspace()


@pytest.fixture
def _isolated_root(
    tmp_path: Path,
    runtime: FakeRuntime,
    sleeper: FakeSleeper,
    transport: FakeProxyTransport,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Run CLI commands from ``tmp_path`` against the fake runtime.

    Use via ``@pytest.mark.usefixtures("_isolated_root")`` on command test
    classes.
    """
    write_pem_pair(tmp_path / "certs")
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("EDGECTL_CONFIG", raising=False)

    def _workspace(settings: EdgeSettings) -> Workspace:
        return Workspace(settings, runtime=runtime, sleep=sleeper, http_transport=transport)

    monkeypatch.setattr("edgectl.infrastructure.workspace.Workspace", _workspace)


def json_tail(text: str) -> dict[str, Any]:
    """Parse the JSON document at the end of CLI output (log lines may precede it)."""
    import json

    start = text.rfind("\n{\n")
    return json.loads(text[start + 1 :] if start >= 0 else text)


@pytest.fixture
def proxy_up(workspace: Workspace) -> Workspace:
    """Workspace whose proxy has been bootstrapped and verified healthy."""
    from edgectl.services.proxy import ProxyService

    ProxyService(workspace).ensure_ready([])
    return workspace
