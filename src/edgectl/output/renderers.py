"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console backed by StringIO; the caller
extracts the text with ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from edgectl.output.console import create_console, get_output, style_for_state

if TYPE_CHECKING:
    from rich.console import Console

    from edgectl.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich."""
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    if result.op == "route_render":
        return str(result.data.get("text", "")).rstrip("\n")

    items = result.data.get("items") or result.data.get("networks")
    if items and isinstance(items, list):
        return "\n".join(_extract_key(item) for item in items if _extract_key(item))

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _extract_key(item: Any) -> str:
    """Identifying value of a list item (domain first, then name)."""
    if isinstance(item, dict):
        for key in ("domain", "name"):
            val = item.get(key)
            if val:
                return str(val)
    return ""


def _status_line(console: Console, result: ServiceResult) -> None:
    label = Text("OK", style="edge.ok")
    op = Text(f"  {result.op}", style="edge.op")
    console.print(label, op, sep="", end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="edge.key")
    if key == "domain":
        v = Text(str(value), style="edge.domain")
    elif key in ("project", "name"):
        v = Text(str(value), style="edge.project")
    elif key == "digest":
        v = Text(str(value)[:12], style="edge.digest")
    elif key in ("state", "state_before", "container"):
        v = Text(str(value), style=style_for_state(str(value)))
    elif isinstance(value, list):
        v = Text(", ".join(str(x) for x in value) or "-")
    else:
        v = Text(str(value))
    console.print(k, v, sep="", end="")
    console.print()


def _warnings(console: Console, result: ServiceResult) -> None:
    for warning in result.warnings:
        console.print(Text("  warning: ", style="edge.warning"), warning, sep="")


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}", markup=False)


def _render_telemetry_tree(
    console: Console,
    span_data: dict[str, Any],
    indent: int = 4,
) -> None:
    """Render a span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if span_data.get("failed"):
        style = "bold red"
    elif duration > 1000:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {name}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        extras = ", ".join(f"{ak}={av}" for ak, av in annotations.items())
        line += f"  ({extras})"

    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="edge.error")
    op = Text(f"  {result.op}", style="edge.op")
    console.print(label, op, Text(" — "), msg, sep="")

    if err and err.detail:
        stage = err.detail.get("stage")
        check = err.detail.get("check")
        if stage:
            console.print(Text("  stage: ", style="edge.key"), f"{stage} ({check})", sep="")
        if err.detail.get("manual_intervention"):
            console.print(
                Text("  manual intervention required", style="edge.warning"),
            )
        if verbose:
            console.print(Text("  detail:", style="dim"))
            for k, v in err.detail.items():
                if k in ("stage", "check"):
                    continue
                if isinstance(v, list):
                    console.print(f"    {k}:")
                    for line in v:
                        console.print(f"      {line}", markup=False)
                else:
                    console.print(f"    {k}: {v}", markup=False)

    if result.data.get("rolled_back"):
        created = result.data.get("created", [])
        torn_down = ", ".join(f"{c['kind']} {c['name']}" for c in created)
        console.print(Text("  rolled back: ", style="edge.key"), torn_down or "-", sep="")
    _warnings(console, result)


# ── Deployment renderers ──────────────────────────────────────────────


def _render_deploy(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    data = result.data
    for key in ("project", "domain", "environment", "image", "upstream", "reachability"):
        if key in data:
            _field(console, key, data[key])
    _field(console, "unit", f"{data.get('unit')} ({'replaced' if data.get('replaced') else 'new'})")
    if "digest" in data:
        _field(console, "digest", data["digest"])
    smoke = data.get("smoke") or []
    for probe in smoke:
        mark = Text("pass", style="edge.ok") if probe["ok"] else Text("fail", style="edge.error")
        detail = probe.get("error") or f"HTTP {probe.get('status')}"
        label = Text(f"  smoke {probe['name']}: ", style="edge.key")
        console.print(label, mark, f" {detail}", sep="")
    if verbose:
        _field(console, "steps", data.get("steps", []))
    _warnings(console, result)
    if verbose:
        _render_meta(console, result)


def _render_remove(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key in (
        "project",
        "domain",
        "route_retracted",
        "container_removed",
        "network_removed",
        "certificates_removed",
    ):
        if key in result.data:
            _field(console, key, result.data[key])
    _warnings(console, result)
    if verbose:
        _render_meta(console, result)


def _render_status(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    proxy = result.data.get("proxy", {})
    state = proxy.get("state", "absent")
    console.print(
        Text("proxy ", style="edge.key"),
        Text(str(proxy.get("name", "")), style="edge.project"),
        Text(f" {state}", style=style_for_state(state)),
        sep="",
    )
    items = result.data.get("items", [])
    if not items:
        console.print(Text("No projects deployed.", style="dim"))
    else:
        table = Table(show_header=True, pad_edge=False, expand=False)
        table.add_column("Project", style="edge.project", no_wrap=True)
        table.add_column("Domain", style="edge.domain")
        table.add_column("Env")
        table.add_column("Port", justify="right")
        table.add_column("Container")
        table.add_column("Upstream")
        for item in items:
            container = str(item.get("container", ""))
            table.add_row(
                item.get("name", ""),
                item.get("domain", ""),
                item.get("environment", ""),
                str(item.get("host_port", "")),
                Text(container, style=style_for_state(container)),
                item.get("upstream") or "-",
            )
        console.print(table)

    if verbose:
        history = result.data.get("history", [])
        if history:
            console.print(Text("recent deployments:", style="dim"))
            for entry in history:
                stage = f" at {entry['failed_stage']}" if entry.get("failed_stage") else ""
                console.print(
                    f"  {entry.get('finished') or entry.get('started')}  "
                    f"{entry['operation']} {entry['project']}: {entry['outcome']}{stage}"
                )
    _warnings(console, result)
    if verbose:
        _render_meta(console, result)


# ── Proxy renderers ───────────────────────────────────────────────────


def _render_proxy_status(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key in ("name", "image", "state", "networks", "ports", "routes"):
        if key in result.data:
            _field(console, key, result.data[key])
    if verbose:
        _render_meta(console, result)


def _render_proxy_health(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    data = result.data
    _field(console, "config_syntax", "ok" if data.get("syntax_ok") else "invalid")
    _field(console, "listening", data.get("listening", []))
    _field(console, "workers", data.get("workers", 0))
    if verbose and data.get("syntax_output"):
        console.print(Text("  validator:", style="dim"))
        for line in str(data["syntax_output"]).splitlines():
            console.print(f"    {line}", markup=False)
        _render_meta(console, result)


def _render_proxy_lifecycle(
    result: ServiceResult, console: Console, *, verbose: bool = False
) -> None:
    """Render proxy start/stop/restart results."""
    _status_line(console, result)
    for key in ("name", "state_before", "state", "stopped"):
        if key in result.data:
            _field(console, key, result.data[key])
    if result.data.get("layout_written"):
        _field(console, "layout_written", result.data["layout_written"])
    _warnings(console, result)
    if verbose:
        _render_meta(console, result)


def _render_proxy_logs(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    for line in result.data.get("lines", []):
        console.print(line, markup=False)


# ── Network and route renderers ───────────────────────────────────────


def _render_network_show(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("Network", no_wrap=True)
    table.add_column("Role")
    table.add_column("Project", style="edge.project")
    table.add_column("Members")
    for net in result.data.get("networks", []):
        name = net["name"] if net.get("exists") else f"{net['name']} (missing)"
        table.add_row(
            name,
            net.get("role", ""),
            net.get("project") or "-",
            ", ".join(net.get("members", [])) or "-",
        )
    console.print(table)
    _warnings(console, result)
    if verbose:
        _render_meta(console, result)


def _render_route_render(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    if verbose:
        _field(console, "filename", result.data.get("filename"))
        _field(console, "digest", result.data.get("digest"))
    console.print(str(result.data.get("text", "")).rstrip("\n"), markup=False)


def _render_route_list(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    if not items:
        console.print(Text("No routes published.", style="dim"))
    else:
        table = Table(show_header=True, pad_edge=False, expand=False)
        table.add_column("Domain", style="edge.domain", no_wrap=True)
        table.add_column("Project", style="edge.project")
        table.add_column("Upstream")
        table.add_column("Digest", style="edge.digest")
        for item in items:
            upstream = item.get("upstream") or ("-" if item.get("indexed") else "(unindexed)")
            table.add_row(
                item["domain"],
                item.get("project") or "?",
                upstream,
                (item.get("digest") or "")[:12],
            )
        console.print(table)
    _warnings(console, result)
    if verbose:
        _render_meta(console, result)


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    _warnings(console, result)
    if verbose:
        _render_meta(console, result)


_OP_RENDERERS = {
    "deploy": _render_deploy,
    "remove": _render_remove,
    "status": _render_status,
    "proxy_status": _render_proxy_status,
    "proxy_health": _render_proxy_health,
    "proxy_start": _render_proxy_lifecycle,
    "proxy_stop": _render_proxy_lifecycle,
    "proxy_restart": _render_proxy_lifecycle,
    "proxy_logs": _render_proxy_logs,
    "network_show": _render_network_show,
    "route_render": _render_route_render,
    "route_list": _render_route_list,
}
