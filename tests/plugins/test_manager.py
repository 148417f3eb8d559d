"""Tests for PluginManager: registration, dispatch and hook relay."""

from __future__ import annotations

from pathlib import Path

import pytest

from edgectl.plugins.hookspecs import hookimpl
from edgectl.plugins.manager import PluginManager


class _HostsPlugin:
    """Records post_deploy/post_remove the way an /etc/hosts editor would."""

    def __init__(self) -> None:
        self.hosts: dict[str, str] = {}

    @hookimpl
    def post_deploy(self, project: str, domain: str, upstream: str, environment: str) -> None:
        if environment == "dev":
            self.hosts[domain] = "127.0.0.1"

    @hookimpl
    def post_remove(self, project: str, domain: str) -> None:
        self.hosts.pop(domain, None)


class _Failing:
    @hookimpl
    def post_remove(self, project: str, domain: str) -> None:
        raise OSError("permission denied: /etc/hosts")


class TestPluginManager:
    def test_hook_relay_accessible(self) -> None:
        pm = PluginManager()
        assert hasattr(pm.hook, "post_deploy")
        assert hasattr(pm.hook, "post_remove")
        assert hasattr(pm.hook, "post_rollback")

    def test_register_plugin(self) -> None:
        pm = PluginManager()
        pm.register_plugin(_HostsPlugin(), name="hosts")
        assert "hosts" in pm.list_plugin_names()

    def test_register_plugin_default_name(self) -> None:
        pm = PluginManager()
        pm.register_plugin(_HostsPlugin())
        assert "_HostsPlugin" in pm.list_plugin_names()

    def test_unregister(self) -> None:
        pm = PluginManager()
        plugin = _HostsPlugin()
        pm.register_plugin(plugin, name="hosts")
        pm.unregister(plugin)
        assert pm.list_plugin_names() == []

    def test_is_loaded(self, tmp_path: Path) -> None:
        pm = PluginManager()
        assert pm.is_loaded is False
        pm.discover_and_load(local_dir=tmp_path / "absent")
        assert pm.is_loaded is True


class TestDispatch:
    def test_dispatch_calls_hook(self) -> None:
        pm = PluginManager()
        plugin = _HostsPlugin()
        pm.register_plugin(plugin)
        payload = {
            "project": "shop",
            "domain": "shop.example.com",
            "upstream": "172.18.0.3:80",
            "environment": "dev",
        }
        pm.dispatch("post_deploy", payload)
        assert plugin.hosts == {"shop.example.com": "127.0.0.1"}
        pm.dispatch("post_remove", {"project": "shop", "domain": "shop.example.com"})
        assert plugin.hosts == {}

    def test_dispatch_without_implementations(self) -> None:
        PluginManager().dispatch("post_rollback", {"project": "a", "domain": "b", "stage": "c"})

    def test_dispatch_propagates_failure(self) -> None:
        pm = PluginManager()
        pm.register_plugin(_Failing())
        with pytest.raises(OSError, match="permission denied"):
            pm.dispatch("post_remove", {"project": "shop", "domain": "shop.example.com"})
