"""Rich Console factory and theme for edgectl output.

Consoles render into a StringIO buffer so renderers keep the
``format_result() -> str`` contract. Rich drops color codes on its own
when the output is not a terminal (CliRunner, pipes).
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

EDGE_THEME = Theme(
    {
        "edge.ok": "bold green",
        "edge.error": "bold red",
        "edge.warning": "bold yellow",
        "edge.op": "bold cyan",
        "edge.key": "dim",
        "edge.domain": "bold blue",
        "edge.project": "bold",
        "edge.digest": "dim",
        "edge.state.running": "green",
        "edge.state.stopped": "yellow",
        "edge.state.absent": "red",
    }
)

_STATE_STYLES: dict[str, str] = {
    "running": "edge.state.running",
    "stopped": "edge.state.stopped",
    "absent": "edge.state.absent",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer."""
    return Console(
        file=StringIO(),
        theme=EDGE_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_state(state: str) -> str:
    """Rich style name for a container state (``""`` when unknown)."""
    return _STATE_STYLES.get(state, "")
