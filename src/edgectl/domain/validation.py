"""Input validation for project names, domains, ports, and upstreams.

All checks run before any container, network, or configuration mutation.
A failure raises :class:`~edgectl.domain.errors.ValidationError`.
"""

from __future__ import annotations

import ipaddress
import re

from edgectl.domain.errors import ValidationError
from edgectl.domain.types import EnvironmentClass, Stage

NAME_PATTERN = re.compile(r"^[a-zA-Z0-9-]+$")
FQDN_PATTERN = re.compile(r"^([a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}$")

MAX_NAME_LENGTH = 63
MAX_DOMAIN_LENGTH = 253
MIN_PORT = 1024
MAX_PORT = 65535


def is_valid_name(name: str) -> bool:
    """Check whether *name* is usable as a container and network name."""
    return bool(name) and len(name) <= MAX_NAME_LENGTH and NAME_PATTERN.match(name) is not None


def is_valid_domain(domain: str) -> bool:
    """Check *domain* against the canonical FQDN pattern."""
    if not domain or len(domain) > MAX_DOMAIN_LENGTH:
        return False
    return FQDN_PATTERN.match(domain) is not None


def validate_name(name: str) -> str:
    if not is_valid_name(name):
        msg = (
            f"Invalid project name format: {name!r}. "
            "Use only alphanumeric characters and hyphens."
        )
        raise ValidationError(msg, stage=Stage.VALIDATE, check="name_format", detail={"name": name})
    return name


def validate_domain(domain: str) -> str:
    """Return *domain* lowercased, or raise if it is not a valid FQDN.

    A leading ``www.`` is rejected because the compiler always adds the
    ``www.`` alias itself.
    """
    if not is_valid_domain(domain):
        msg = f"Invalid domain format: {domain!r}"
        raise ValidationError(
            msg, stage=Stage.VALIDATE, check="domain_format", detail={"domain": domain}
        )
    normalized = domain.lower()
    if normalized.startswith("www."):
        msg = f"Domain must be given without the 'www.' prefix: {domain!r}"
        raise ValidationError(
            msg, stage=Stage.VALIDATE, check="domain_www_prefix", detail={"domain": domain}
        )
    return normalized


def validate_port(port: int | str) -> int:
    """Return *port* as an int in the unprivileged range, or raise."""
    try:
        value = int(port)
    except (TypeError, ValueError):
        value = -1
    if not MIN_PORT <= value <= MAX_PORT:
        msg = f"Invalid port number: {port}. Must be between {MIN_PORT} and {MAX_PORT}."
        raise ValidationError(msg, stage=Stage.VALIDATE, check="port_range", detail={"port": port})
    return value


def validate_environment(value: str | EnvironmentClass) -> EnvironmentClass:
    try:
        return EnvironmentClass(str(value).lower())
    except ValueError:
        allowed = ", ".join(e.value for e in EnvironmentClass)
        msg = f"Environment class must be one of: {allowed} (got {value!r})"
        raise ValidationError(
            msg, stage=Stage.VALIDATE, check="environment_class", detail={"environment": value}
        ) from None


def validate_address(address: str) -> str:
    """Return *address* if it is a literal IP address.

    Route units embed literal addresses only, never container names, so the
    proxy never has to resolve arbitrary project-name characters.
    """
    try:
        ipaddress.ip_address(address)
    except ValueError:
        msg = f"Upstream address must be a literal IP address: {address!r}"
        raise ValidationError(
            msg, stage=Stage.COMPILE, check="upstream_literal", detail={"address": address}
        ) from None
    return address


def parse_upstream(value: str) -> tuple[str, int]:
    """Split ``ADDR:PORT`` (or ``[V6]:PORT``) into a literal address and port.

    Examples:
        >>> parse_upstream("172.18.0.5:80")
        ('172.18.0.5', 80)
        >>> parse_upstream("[fd00::5]:8080")
        ('fd00::5', 8080)
    """
    if value.startswith("["):
        host, sep, port = value[1:].partition("]:")
    else:
        host, sep, port = value.rpartition(":")
    if not sep or not port.isdigit():
        msg = f"Upstream must look like ADDR:PORT: {value!r}"
        raise ValidationError(
            msg, stage=Stage.VALIDATE, check="upstream_format", detail={"upstream": value}
        )
    port_value = int(port)
    if not 1 <= port_value <= MAX_PORT:
        msg = f"Upstream port out of range: {value!r}"
        raise ValidationError(
            msg, stage=Stage.VALIDATE, check="upstream_format", detail={"upstream": value}
        )
    return validate_address(host), port_value


def format_upstream(address: str, port: int) -> str:
    """Render an address/port pair as nginx expects it (IPv6 bracketed)."""
    if ":" in address:
        return f"[{address}]:{port}"
    return f"{address}:{port}"
