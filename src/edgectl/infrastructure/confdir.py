"""Route-unit directory on the host.

INVARIANT: The directory is authoritative. Whatever ``*.conf`` files it holds
is exactly the set the proxy loads on its next validation or reload; the
registry only indexes it.

Files are mounted into the proxy at ``/etc/nginx/conf.d/domains``.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

from edgectl.domain.routes import unit_owner

UNIT_SUFFIX = ".conf"


def unit_filename(domain: str) -> str:
    return f"{domain}{UNIT_SUFFIX}"


class RouteDirectory:
    """Read and write per-domain route units."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def ensure(self) -> None:
        self.path.mkdir(parents=True, exist_ok=True)

    def path_for(self, domain: str) -> Path:
        return self.path / unit_filename(domain)

    def exists(self, domain: str) -> bool:
        return self.path_for(domain).is_file()

    def read(self, domain: str) -> str | None:
        """Return the unit text for *domain*, or None if there is none."""
        target = self.path_for(domain)
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")

    def write(self, domain: str, text: str) -> Path:
        """Write a unit atomically (temp file plus rename)."""
        self.ensure()
        target = self.path_for(domain)
        tmp = target.with_name(f".{target.name}.tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, target)
        return target

    def remove(self, domain: str) -> bool:
        """Delete the unit for *domain*. Returns True if a file was removed."""
        target = self.path_for(domain)
        if not target.is_file():
            return False
        target.unlink()
        return True

    def domains(self) -> list[str]:
        if not self.path.is_dir():
            return []
        return sorted(
            p.name.removesuffix(UNIT_SUFFIX)
            for p in self.path.iterdir()
            if p.is_file() and p.suffix == UNIT_SUFFIX and not p.name.startswith(".")
        )

    def owner(self, domain: str) -> str | None:
        """Project recorded in the unit header for *domain*."""
        text = self.read(domain)
        return unit_owner(text) if text is not None else None

    def snapshot(self) -> dict[str, str]:
        """Map each unit filename to the sha256 of its bytes."""
        result: dict[str, str] = {}
        for domain in self.domains():
            data = self.path_for(domain).read_bytes()
            result[unit_filename(domain)] = hashlib.sha256(data).hexdigest()
        return result
