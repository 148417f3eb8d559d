"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, edgectl.toml only contains overrides.
A fresh checkout needs no config file at all.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from edgectl.domain.routes import RouteTemplate
from edgectl.domain.types import EnvironmentClass
from edgectl.infrastructure.retry import Backoff

# --- edgectl.toml sections ---


class PathsConfig(BaseModel):
    """[paths] section. Relative paths resolve against the config root."""

    model_config = {"frozen": True}

    proxy_dir: Path = Path("proxy")
    certs_dir: Path = Path("certs")
    state_dir: Path = Path(".edgectl")


class ProxyConfig(BaseModel):
    """[proxy] section."""

    model_config = {"frozen": True}

    container_name: str = "nginx-proxy"
    image: str = "nginx:alpine"
    build_context: Path | None = None
    http_port: int = 8080
    https_port: int = 8443
    shared_network: str = "nginx-proxy-network"
    listen_ports: list[int] = Field(default_factory=lambda: [80, 443])


class RoutesConfig(BaseModel):
    """[routes] section — constants baked into every route unit."""

    model_config = {"frozen": True}

    internal_port: int = 80
    certs_root: str = "/etc/nginx/certs"
    ssl_settings_include: str = "/etc/nginx/conf.d/ssl-settings.conf"
    security_headers_include: str = "/etc/nginx/conf.d/security-headers.conf"
    rate_limit_zone: str = "securitylimit"
    rate_limit_burst: int = 20
    conn_zone: str = "securityconn"
    conn_limit: int = 20
    timeout_seconds: int = 60
    error_statuses: list[int] = Field(default_factory=lambda: [502, 503, 504])

    def template(self, *, health_path: str = "/health") -> RouteTemplate:
        return RouteTemplate(
            certs_root=self.certs_root,
            ssl_settings_include=self.ssl_settings_include,
            security_headers_include=self.security_headers_include,
            rate_limit_zone=self.rate_limit_zone,
            rate_limit_burst=self.rate_limit_burst,
            conn_zone=self.conn_zone,
            conn_limit=self.conn_limit,
            timeout_seconds=self.timeout_seconds,
            error_statuses=tuple(self.error_statuses),
            health_path=health_path,
        )


class RetryConfig(BaseModel):
    """[retry] section — one policy per observation point."""

    model_config = {"frozen": True}

    proxy_start: Backoff = Field(default_factory=lambda: Backoff(attempts=3, delay=2.0))
    proxy_health: Backoff = Field(default_factory=lambda: Backoff(attempts=10, delay=3.0))
    network: Backoff = Field(default_factory=lambda: Backoff(attempts=3, delay=1.0))
    container_start: Backoff = Field(default_factory=lambda: Backoff(attempts=10, delay=1.0))
    address: Backoff = Field(default_factory=lambda: Backoff(attempts=10, delay=1.0))
    connectivity: Backoff = Field(default_factory=lambda: Backoff(attempts=5, delay=3.0))
    smoke: Backoff = Field(
        default_factory=lambda: Backoff(attempts=3, delay=1.0, step=1.0, max_delay=3.0)
    )
    lock: Backoff = Field(
        default_factory=lambda: Backoff(attempts=60, delay=0.5, step=0.5, max_delay=2.0)
    )


class ProbeConfig(BaseModel):
    """[probe] section."""

    model_config = {"frozen": True}

    timeout_seconds: int = 5
    health_path: str = "/health"


class SmokeConfig(BaseModel):
    """[smoke] section."""

    model_config = {"frozen": True}

    enabled: bool = True
    strict: bool = False
    host: str = "127.0.0.1"


class DeployConfig(BaseModel):
    """[deploy] section."""

    model_config = {"frozen": True}

    default_environment: EnvironmentClass = EnvironmentClass.DEV
    default_image: str = "nginx:alpine"
    restart_policy: str = "unless-stopped"
