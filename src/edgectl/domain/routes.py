"""Typed builder for per-domain route units.

A route unit is two nginx ``server`` blocks for one domain: a secure block on
the TLS port that forwards to the project's upstream, and an insecure block on
the plaintext port that redirects everything to HTTPS. The unit is built as a
tree of :class:`Directive` and :class:`Block` nodes and serialized only by
:meth:`RouteUnit.render`, so compilation can be inspected and tested without
parsing nginx syntax.

INVARIANT: Compiling the same project twice yields identical text except for
the embedded upstream address.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field

from edgectl.domain.validation import format_upstream, validate_address

INDENT = "    "

_OWNER_RE = re.compile(r"^# Generated automatically for project: (?P<name>\S+)\s*$", re.MULTILINE)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Directive:
    """A single ``name arg1 arg2;`` statement."""

    name: str
    args: tuple[str, ...] = ()

    def render(self, depth: int = 0) -> list[str]:
        parts = " ".join((self.name, *self.args))
        return [f"{INDENT * depth}{parts};"]


@dataclass(frozen=True)
class Block:
    """A ``name args { ... }`` block containing directives and nested blocks."""

    name: str
    args: tuple[str, ...] = ()
    children: tuple[Directive | Block, ...] = ()

    def render(self, depth: int = 0) -> list[str]:
        pad = INDENT * depth
        header = " ".join((self.name, *self.args))
        lines = [f"{pad}{header} {{"]
        previous: Directive | Block | None = None
        for child in self.children:
            # Nested blocks get a blank line before them, except the first child.
            if isinstance(child, Block) and previous is not None and child.name != "if":
                lines.append("")
            lines.extend(child.render(depth + 1))
            previous = child
        lines.append(f"{pad}}}")
        return lines

    def directives(self, name: str) -> list[Directive]:
        """Direct child directives called *name*."""
        return [c for c in self.children if isinstance(c, Directive) and c.name == name]

    def blocks(self, name: str) -> list[Block]:
        """Direct child blocks called *name*."""
        return [c for c in self.children if isinstance(c, Block) and c.name == name]

    def location(self, path: str) -> Block | None:
        for block in self.blocks("location"):
            if block.args and block.args[-1] == path:
                return block
        return None


@dataclass(frozen=True)
class ServerBlock(Block):
    """A top-level ``server { ... }`` block."""

    name: str = "server"

    @property
    def server_names(self) -> tuple[str, ...]:
        found = self.directives("server_name")
        return found[0].args if found else ()

    @property
    def listen_ports(self) -> list[str]:
        return [d.args[0] for d in self.directives("listen")]


# ---------------------------------------------------------------------------
# Template
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RouteTemplate:
    """Fixed values every compiled route unit shares."""

    tls_port: int = 443
    plain_port: int = 80
    certs_root: str = "/etc/nginx/certs"
    cert_filename: str = "cert.pem"
    key_filename: str = "cert-key.pem"
    ssl_settings_include: str = "/etc/nginx/conf.d/ssl-settings.conf"
    security_headers_include: str = "/etc/nginx/conf.d/security-headers.conf"
    rate_limit_zone: str = "securitylimit"
    rate_limit_burst: int = 20
    conn_zone: str = "securityconn"
    conn_limit: int = 20
    timeout_seconds: int = 60
    buffer_size: str = "4k"
    buffers: str = "8 4k"
    busy_buffers_size: str = "8k"
    health_path: str = "/health"
    error_statuses: tuple[int, ...] = (502, 503, 504)
    error_page: str = "/50x.html"
    error_root: str = "/usr/share/nginx/html"
    blocked_status: int = 444

    def cert_paths(self, domain: str) -> tuple[str, str]:
        """Certificate and key paths inside the proxy for *domain*."""
        base = f"{self.certs_root}/{domain}"
        return f"{base}/{self.cert_filename}", f"{base}/{self.key_filename}"


FORWARDED_HEADERS: tuple[tuple[str, str], ...] = (
    ("Host", "$host"),
    ("X-Real-IP", "$remote_addr"),
    ("X-Forwarded-For", "$proxy_add_x_forwarded_for"),
    ("X-Forwarded-Proto", "$scheme"),
    ("X-Forwarded-Host", "$host"),
    ("X-Forwarded-Port", "$server_port"),
)


# ---------------------------------------------------------------------------
# Route unit
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RouteUnit:
    """Compiled configuration fragment for one domain (a DomainRoute)."""

    domain: str
    project: str
    upstream: str
    secure: ServerBlock
    insecure: ServerBlock
    template: RouteTemplate = field(default_factory=RouteTemplate, repr=False, compare=False)

    @property
    def filename(self) -> str:
        return f"{self.domain}.conf"

    def render(self) -> str:
        """Serialize the unit to nginx configuration text."""
        lines = [
            f"# Domain configuration for {self.domain}",
            f"# Generated automatically for project: {self.project}",
            "",
            "# HTTPS server block",
            *self.secure.render(),
            "",
            "# HTTP redirect to HTTPS",
            *self.insecure.render(),
        ]
        return "\n".join(lines) + "\n"

    def digest(self) -> str:
        return hashlib.sha256(self.render().encode("utf-8")).hexdigest()


def _rate_limit(template: RouteTemplate) -> tuple[Directive, Directive]:
    return (
        Directive(
            "limit_req",
            (f"zone={template.rate_limit_zone}", f"burst={template.rate_limit_burst}", "nodelay"),
        ),
        Directive("limit_conn", (template.conn_zone, str(template.conn_limit))),
    )


def _filter(variable: str, value: str, status: int) -> Block:
    return Block("if", (f"(${variable} = {value})",), (Directive("return", (str(status),)),))


def build_secure_block(
    domain: str,
    upstream: str,
    template: RouteTemplate,
    *,
    cert_path: str | None = None,
    key_path: str | None = None,
) -> ServerBlock:
    """Build the TLS server block forwarding *domain* to *upstream*."""
    default_cert, default_key = template.cert_paths(domain)
    timeout = f"{template.timeout_seconds}s"
    default_location = Block(
        "location",
        ("/",),
        (
            Directive("proxy_pass", (f"http://{upstream}",)),
            *(Directive("proxy_set_header", (name, value)) for name, value in FORWARDED_HEADERS),
            Directive("proxy_connect_timeout", (timeout,)),
            Directive("proxy_send_timeout", (timeout,)),
            Directive("proxy_read_timeout", (timeout,)),
            Directive("proxy_buffering", ("on",)),
            Directive("proxy_buffer_size", (template.buffer_size,)),
            Directive("proxy_buffers", (template.buffers,)),
            Directive("proxy_busy_buffers_size", (template.busy_buffers_size,)),
        ),
    )
    health_location = Block(
        "location",
        (template.health_path,),
        (
            Directive("proxy_pass", (f"http://{upstream}{template.health_path}",)),
            Directive("access_log", ("off",)),
        ),
    )
    error_location = Block(
        "location",
        ("=", template.error_page),
        (Directive("root", (template.error_root,)), Directive("internal")),
    )
    return ServerBlock(
        children=(
            Directive("listen", (f"{template.tls_port}", "ssl")),
            Directive("listen", (f"[::]:{template.tls_port}", "ssl")),
            Directive("http2", ("on",)),
            Directive("server_name", (domain, f"www.{domain}")),
            Directive("ssl_certificate", (cert_path or default_cert,)),
            Directive("ssl_certificate_key", (key_path or default_key,)),
            Directive("include", (template.ssl_settings_include,)),
            Directive("include", (template.security_headers_include,)),
            _filter("bad_bot", "1", template.blocked_status),
            _filter("method_allowed", "0", template.blocked_status),
            *_rate_limit(template),
            default_location,
            health_location,
            Directive(
                "error_page",
                (*(str(s) for s in template.error_statuses), template.error_page),
            ),
            error_location,
        ),
    )


def build_insecure_block(domain: str, template: RouteTemplate) -> ServerBlock:
    """Build the plaintext server block that permanently redirects to HTTPS."""
    return ServerBlock(
        children=(
            Directive("listen", (f"{template.plain_port}",)),
            Directive("listen", (f"[::]:{template.plain_port}",)),
            Directive("server_name", (domain, f"www.{domain}")),
            *_rate_limit(template),
            Directive("return", ("301", "https://$host$request_uri")),
        ),
    )


def compile_route(
    project: str,
    domain: str,
    address: str,
    port: int,
    template: RouteTemplate | None = None,
    *,
    cert_path: str | None = None,
    key_path: str | None = None,
) -> RouteUnit:
    """Compile a route unit for *domain* forwarding to ``address:port``.

    *address* must be a literal IP address; domain validation happens before
    this is called.
    """
    template = template or RouteTemplate()
    upstream = format_upstream(validate_address(address), port)
    return RouteUnit(
        domain=domain,
        project=project,
        upstream=upstream,
        secure=build_secure_block(
            domain, upstream, template, cert_path=cert_path, key_path=key_path
        ),
        insecure=build_insecure_block(domain, template),
        template=template,
    )


def unit_owner(text: str) -> str | None:
    """Return the owning project recorded in a rendered unit's header."""
    match = _OWNER_RE.search(text)
    return match.group("name") if match else None
