"""nginx reverse-proxy vhost: render, write, enable, test and reload."""

import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Sequence

from certprov.common.errors import ActivationError, StorageError
from certprov.common.models import ArtifactSet, IssuanceRequest

logger = logging.getLogger(__name__)

NGINX_TEST_CMD = ("nginx", "-t")
NGINX_RELOAD_CMD = ("systemctl", "reload", "nginx")

VHOST_TEMPLATE = """\
server {{
    listen 80;
    server_name {domain};
    return 301 https://$host$request_uri;
}}

server {{
    listen 443 ssl http2;
    server_name {domain};

    # SSL Certificate
    ssl_certificate     {cert_path};
    ssl_certificate_key {key_path};

    # SSL Hardening
    ssl_protocols TLSv1.2 TLSv1.3;
    ssl_prefer_server_ciphers on;
    ssl_session_cache shared:SSL:10m;
    ssl_session_timeout 10m;

    # Security Headers
    add_header Strict-Transport-Security "max-age=31536000" always;

    location / {{
        proxy_pass {upstream}/;

        # Proxy Headers
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;

        # WebSocket Support
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection "upgrade";
    }}
}}
"""


def render_vhost(request: IssuanceRequest, artifacts: ArtifactSet) -> str:
    """Render the HTTP->HTTPS redirect and TLS reverse-proxy server blocks."""
    return VHOST_TEMPLATE.format(
        domain=request.domain,
        cert_path=artifacts.cert_path.absolute(),
        key_path=artifacts.key_path.absolute(),
        upstream=request.upstream_target.rstrip("/"),
    )


def write_vhost(path: Path, text: str) -> None:
    """Atomically write (or replace) the vhost file at `path`."""
    try:
        fd, name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    except OSError as e:
        raise StorageError(f"Cannot write nginx config ({e.strerror})", path) from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.chmod(name, 0o644)
        os.replace(name, path)
    except OSError as e:
        Path(name).unlink(missing_ok=True)
        raise StorageError(f"Cannot write nginx config ({e.strerror})", path) from e
    logger.info("Writing Nginx config to: %s", path)


def enable_site(available: Path, enabled: Path) -> bool:
    """
    Symlink the vhost into sites-enabled.

    Returns:
        True if a link was created, False if something was already there
    """
    if enabled.is_symlink() or enabled.exists():
        logger.info("Existing config found in sites-enabled. Skipping symlink.")
        return False
    try:
        enabled.symlink_to(available)
    except OSError as e:
        raise StorageError(f"Cannot create symlink ({e.strerror})", enabled) from e
    logger.info("Symlink created: %s", enabled)
    return True


def _run(cmd: Sequence[str]) -> None:
    try:
        subprocess.run(list(cmd), check=True, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise ActivationError(f"Command not found: {cmd[0]}") from e
    except subprocess.CalledProcessError as e:
        output = (e.stderr or e.stdout or "").strip()
        raise ActivationError(f"'{' '.join(cmd)}' failed with exit code {e.returncode}: {output}") from e


def reload_nginx() -> None:
    """Validate the nginx configuration, then reload the service."""
    logger.info("Testing and reloading Nginx...")
    _run(NGINX_TEST_CMD)
    _run(NGINX_RELOAD_CMD)
