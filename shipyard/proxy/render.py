"""
nginx configuration rendering.

Rendering is a pure function of a ``ReverseProxyConfig``: equal configs
always produce byte-identical text.
"""

from dataclasses import dataclass, replace
from typing import List, Optional

from ..config import ProxySettings

DEFAULT_SERVER_NAME = "localhost"

STATIC_ASSET_PATTERN = r"\.(js|css|png|jpg|jpeg|gif|ico|svg|woff|woff2|ttf|eot)$"

GZIP_TYPES = (
    "text/plain",
    "text/css",
    "text/xml",
    "text/javascript",
    "application/json",
    "application/javascript",
    "application/xml+rss",
    "application/atom+xml",
    "image/svg+xml",
)

SECURITY_HEADERS = (
    ("X-Frame-Options", "SAMEORIGIN"),
    ("X-XSS-Protection", "1; mode=block"),
    ("X-Content-Type-Options", "nosniff"),
    ("Referrer-Policy", "no-referrer-when-downgrade"),
    ("Content-Security-Policy", "default-src 'self' http: https: data: blob: 'unsafe-inline'"),
)


@dataclass(frozen=True)
class ReverseProxyConfig:
    server_name: str = DEFAULT_SERVER_NAME
    root: str = "/usr/share/nginx/html"
    index: str = "index.html"
    listen: int = 80
    backend_url: str = "http://localhost"
    backend_port: int = 5000
    frontend_url: str = "http://localhost"
    frontend_port: int = 3000
    enable_gzip: bool = True
    enable_security: bool = True
    enable_caching: bool = True
    enable_proxy: bool = True
    is_production: bool = False
    tls_cert_path: Optional[str] = None
    tls_key_path: Optional[str] = None

    @property
    def tls(self) -> bool:
        return bool(self.tls_cert_path and self.tls_key_path)

    @property
    def backend_upstream(self) -> str:
        return f"{self.backend_url}:{self.backend_port}"

    @property
    def frontend_upstream(self) -> str:
        return f"{self.frontend_url}:{self.frontend_port}"


def development_config(**overrides) -> ReverseProxyConfig:
    return replace(ReverseProxyConfig(is_production=False), **overrides)


def production_config(**overrides) -> ReverseProxyConfig:
    return replace(ReverseProxyConfig(is_production=True), **overrides)


def config_for_domain(domain: str, production: bool = True, **overrides) -> ReverseProxyConfig:
    """Preset serving ``domain`` and its ``www.`` alias."""
    names = domain if domain.startswith("www.") else f"{domain} www.{domain}"
    base = production_config() if production else development_config()
    return replace(base, server_name=names, **overrides)


def from_settings(settings: ProxySettings, enable_tls: bool = False) -> ReverseProxyConfig:
    """Build the proxy config from the run configuration's proxy section."""
    return ReverseProxyConfig(
        server_name=settings.server_name,
        root=settings.root,
        index=settings.index,
        listen=settings.listen_port,
        backend_url=settings.backend_url,
        backend_port=settings.backend_port,
        frontend_url=settings.frontend_url,
        frontend_port=settings.frontend_port,
        enable_gzip=settings.enable_gzip,
        enable_security=settings.enable_security,
        enable_caching=settings.enable_caching,
        enable_proxy=settings.enable_proxy,
        is_production=settings.production,
        tls_cert_path=settings.tls_cert_path if enable_tls else None,
        tls_key_path=settings.tls_key_path if enable_tls else None,
    )


def _proxy_directives(upstream: str, indent: str) -> List[str]:
    return [indent + line for line in (
        f"proxy_pass {upstream};",
        "proxy_http_version 1.1;",
        "proxy_set_header Upgrade $http_upgrade;",
        "proxy_set_header Connection 'upgrade';",
        "proxy_set_header Host $host;",
        "proxy_set_header X-Real-IP $remote_addr;",
        "proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;",
        "proxy_set_header X-Forwarded-Proto $scheme;",
        "proxy_cache_bypass $http_upgrade;",
        "proxy_read_timeout 86400;",
    )]


def _locations(cfg: ReverseProxyConfig) -> List[str]:
    ind = " " * 8
    inner = " " * 12
    lines: List[str] = []

    if cfg.enable_caching:
        lines += [
            f"{ind}location ~* {STATIC_ASSET_PATTERN} {{",
            f"{inner}expires 1y;",
            f'{inner}add_header Cache-Control "public, immutable";',
            f"{inner}add_header Vary Accept-Encoding;",
            f"{ind}}}",
            "",
            f"{ind}location ~* \\.html$ {{",
            f"{inner}expires -1;",
            f'{inner}add_header Cache-Control "no-cache, no-store, must-revalidate";',
            f"{ind}}}",
            "",
        ]

    if cfg.enable_proxy:
        lines.append(f"{ind}location /api/ {{")
        lines += _proxy_directives(cfg.backend_upstream, inner)
        lines += [f"{ind}}}", ""]

    lines.append(f"{ind}location / {{")
    if cfg.is_production:
        lines.append(f"{inner}try_files $uri $uri/ /{cfg.index};")
    else:
        lines += _proxy_directives(cfg.frontend_upstream, inner)
    lines += [f"{ind}}}", ""]

    lines += [
        f"{ind}location /health {{",
        f"{inner}access_log off;",
        f'{inner}return 200 "healthy\\n";',
        f"{inner}add_header Content-Type text/plain;",
        f"{ind}}}",
        "",
        f"{ind}error_page 404 /{cfg.index};",
        f"{ind}error_page 500 502 503 504 /50x.html;",
        f"{ind}location = /50x.html {{",
        f"{inner}root {cfg.root};",
        f"{ind}}}",
    ]
    return lines


def _server_block(cfg: ReverseProxyConfig) -> List[str]:
    ind = " " * 4
    body = " " * 8
    lines = [f"{ind}server {{"]
    if cfg.tls:
        lines += [
            f"{body}listen 443 ssl http2;",
            f"{body}server_name {cfg.server_name};",
            f"{body}ssl_certificate {cfg.tls_cert_path};",
            f"{body}ssl_certificate_key {cfg.tls_key_path};",
            f"{body}ssl_protocols TLSv1.2 TLSv1.3;",
            f"{body}ssl_prefer_server_ciphers on;",
            f"{body}ssl_session_cache shared:SSL:10m;",
            f"{body}ssl_session_timeout 10m;",
            f'{body}add_header Strict-Transport-Security "max-age=31536000; includeSubDomains" always;',
        ]
    else:
        lines += [
            f"{body}listen {cfg.listen};",
            f"{body}server_name {cfg.server_name};",
        ]
    lines += [
        f"{body}root {cfg.root};",
        f"{body}index {cfg.index};",
        "",
    ]
    lines += _locations(cfg)
    lines.append(f"{ind}}}")
    return lines


def _redirect_block(cfg: ReverseProxyConfig) -> List[str]:
    return [
        "    server {",
        f"        listen {cfg.listen};",
        f"        server_name {cfg.server_name};",
        "",
        "        location /health {",
        "            access_log off;",
        '            return 200 "healthy\\n";',
        "            add_header Content-Type text/plain;",
        "        }",
        "",
        "        location / {",
        "            return 301 https://$host$request_uri;",
        "        }",
        "    }",
    ]


def render_config(cfg: ReverseProxyConfig) -> str:
    """
    Render a complete nginx.conf for ``cfg``.

    Args:
        cfg: Proxy configuration

    Returns:
        Configuration text, ending with a newline
    """
    lines = [
        "events {",
        "    worker_connections 1024;",
        "}",
        "",
        "http {",
        "    include       /etc/nginx/mime.types;",
        "    default_type  application/octet-stream;",
        "",
        "    log_format main '$remote_addr - $remote_user [$time_local] \"$request\" '",
        "                    '$status $body_bytes_sent \"$http_referer\" '",
        "                    '\"$http_user_agent\" \"$http_x_forwarded_for\"';",
        "",
        "    access_log /var/log/nginx/access.log main;",
        "    error_log /var/log/nginx/error.log warn;",
        "",
        "    sendfile on;",
        "    tcp_nopush on;",
        "    tcp_nodelay on;",
        "    keepalive_timeout 65;",
        "    types_hash_max_size 2048;",
    ]

    if cfg.enable_gzip:
        lines += [
            "",
            "    gzip on;",
            "    gzip_vary on;",
            "    gzip_min_length 1024;",
            "    gzip_proxied any;",
            "    gzip_comp_level 6;",
            "    gzip_types",
        ]
        lines += [f"        {t}" for t in GZIP_TYPES[:-1]]
        lines.append(f"        {GZIP_TYPES[-1]};")

    if cfg.enable_security:
        lines.append("")
        lines += [f'    add_header {name} "{value}" always;' for name, value in SECURITY_HEADERS]

    if cfg.tls:
        lines.append("")
        lines += _redirect_block(cfg)

    lines.append("")
    lines += _server_block(cfg)
    lines.append("}")
    return "\n".join(lines) + "\n"
