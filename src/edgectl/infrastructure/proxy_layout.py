"""Host-side directory layout for the shared proxy.

::

    <proxy_dir>/
      nginx.conf                    main config, includes conf.d/domains/*.conf
      conf.d/ssl-settings.conf      included by every secure server block
      conf.d/security-headers.conf  included by every secure server block
      conf.d/domains/               one route unit per domain
      certs/                        placed certificate material
      html/50x.html                 shared error page
      logs/                         nginx access and error logs

Files that already exist are never overwritten, so operators can tune them.
"""

from __future__ import annotations

from pathlib import Path

from edgectl.domain.routes import RouteTemplate
from edgectl.infrastructure.certificates import FALLBACK_CERT, FALLBACK_KEY
from edgectl.infrastructure.runtime import Mount

DOMAINS_SUBDIR = "conf.d/domains"

# Default TLS server: present the fallback pair when placed, else refuse the handshake.
TLS_FALLBACK = """\
        ssl_certificate {certs_root}/{cert};
        ssl_certificate_key {certs_root}/{key};
        include /etc/nginx/conf.d/ssl-settings.conf;
        return {blocked_status};"""
TLS_REJECT = "        ssl_reject_handshake on;"

NGINX_CONF = """\
user nginx;
worker_processes auto;
error_log /var/log/nginx/error.log warn;
pid /var/run/nginx.pid;

events {{
    worker_connections 1024;
}}

http {{
    include /etc/nginx/mime.types;
    default_type application/octet-stream;

    log_format main '$remote_addr - $remote_user [$time_local] "$request" '
                    '$status $body_bytes_sent "$http_referer" '
                    '"$http_user_agent" "$http_x_forwarded_for"';
    access_log /var/log/nginx/access.log main;

    sendfile on;
    keepalive_timeout 65;
    server_tokens off;
    client_max_body_size 10m;

    limit_req_zone $binary_remote_addr zone={rate_zone}:10m rate=10r/s;
    limit_conn_zone $binary_remote_addr zone={conn_zone}:10m;

    map $http_user_agent $bad_bot {{
        default 0;
        ~*(nmap|nikto|sqlmap|arachni|dirbuster|gobuster|w3af|nessus|masscan|ZmEu|zgrab) 1;
        "" 1;
    }}

    map $request_method $method_allowed {{
        default 1;
        ~*(TRACE|TRACK|DEBUG) 0;
    }}

    server {{
        listen {plain_port} default_server;
        listen [::]:{plain_port} default_server;
        server_name _;

        location {health_path} {{
            access_log off;
            return 200 "ok\\n";
        }}

        location / {{
            return {blocked_status};
        }}
    }}

    server {{
        listen {tls_port} ssl default_server;
        listen [::]:{tls_port} ssl default_server;
        server_name _;
{tls_default}
    }}

    include /etc/nginx/{domains_subdir}/*.conf;
}}
"""

SSL_SETTINGS = """\
ssl_protocols TLSv1.2 TLSv1.3;
ssl_prefer_server_ciphers on;
ssl_ciphers 'ECDHE-ECDSA-AES128-GCM-SHA256:ECDHE-RSA-AES128-GCM-SHA256:ECDHE-ECDSA-AES256-GCM-SHA384:ECDHE-RSA-AES256-GCM-SHA384:ECDHE-ECDSA-CHACHA20-POLY1305:ECDHE-RSA-CHACHA20-POLY1305';
ssl_session_timeout 1d;
ssl_session_cache shared:SSL:10m;
ssl_session_tickets off;
"""

SECURITY_HEADERS = """\
add_header Strict-Transport-Security "max-age=31536000; includeSubDomains" always;
add_header X-Frame-Options "SAMEORIGIN" always;
add_header X-Content-Type-Options "nosniff" always;
add_header Referrer-Policy "strict-origin-when-cross-origin" always;
"""

ERROR_PAGE = """\
<!DOCTYPE html>
<html>
<head><title>Service unavailable</title></head>
<body>
<h1>Service temporarily unavailable</h1>
<p>The upstream service did not respond. Please try again shortly.</p>
</body>
</html>
"""


class ProxyLayout:
    """Create and describe the proxy's host directory tree."""

    def __init__(self, root: Path, template: RouteTemplate) -> None:
        self.root = root
        self.template = template

    @property
    def nginx_conf(self) -> Path:
        return self.root / "nginx.conf"

    @property
    def conf_dir(self) -> Path:
        return self.root / "conf.d"

    @property
    def domains_dir(self) -> Path:
        return self.root / DOMAINS_SUBDIR

    @property
    def certs_dir(self) -> Path:
        return self.root / "certs"

    @property
    def html_dir(self) -> Path:
        return self.root / "html"

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    def _tls_default(self, fallback: bool) -> str:
        t = self.template
        if not fallback:
            return TLS_REJECT
        return TLS_FALLBACK.format(
            certs_root=t.certs_root,
            cert=FALLBACK_CERT,
            key=FALLBACK_KEY,
            blocked_status=t.blocked_status,
        )

    def _files(self, fallback: bool) -> dict[Path, str]:
        t = self.template
        return {
            self.nginx_conf: NGINX_CONF.format(
                tls_default=self._tls_default(fallback),
                domains_subdir=DOMAINS_SUBDIR,
                rate_zone=t.rate_limit_zone,
                conn_zone=t.conn_zone,
                plain_port=t.plain_port,
                tls_port=t.tls_port,
                health_path=t.health_path,
                blocked_status=t.blocked_status,
            ),
            self.conf_dir / "ssl-settings.conf": SSL_SETTINGS,
            self.conf_dir / "security-headers.conf": SECURITY_HEADERS,
            self.html_dir / t.error_page.lstrip("/"): ERROR_PAGE,
        }

    def ensure(self, *, fallback_certificate: bool = False) -> list[str]:
        """Create missing directories and default files.

        *fallback_certificate* says whether the fallback pair has been placed
        in ``certs/``; the default TLS server only references it then.
        Returns the paths (relative to the proxy root) that were written.
        """
        for directory in (self.domains_dir, self.certs_dir, self.html_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)
        written: list[str] = []
        for path, content in self._files(fallback_certificate).items():
            if path.exists():
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            written.append(str(path.relative_to(self.root)))
        return written

    def mounts(self) -> tuple[Mount, ...]:
        """Bind mounts for the proxy container."""
        return (
            Mount(self.nginx_conf.resolve(), "/etc/nginx/nginx.conf"),
            Mount(self.conf_dir.resolve(), "/etc/nginx/conf.d"),
            Mount(self.certs_dir.resolve(), self.template.certs_root),
            Mount(self.html_dir.resolve(), self.template.error_root),
            Mount(self.logs_dir.resolve(), "/var/log/nginx", read_only=False),
        )
