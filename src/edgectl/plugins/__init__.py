"""Extension layer: plugin system via pluggy.

Discovery: entry points in the ``edgectl.plugins`` group, plus single-file
plugins in ``<state_dir>/plugins/``.
INVARIANT: Plugin failures are warnings, never errors.
"""

from edgectl.plugins.hookspecs import hookimpl
from edgectl.plugins.manager import PluginManager

__all__ = ["PluginManager", "hookimpl"]
