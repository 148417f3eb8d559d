"""edgectl — incremental multi-project deployment behind a shared nginx proxy."""

__version__ = "0.4.0"
