"""Command-line entry point: issue a local-CA certificate and wire up an nginx vhost.

Examples:
    issue-local-cert                                              # Interactive mode
    issue-local-cert uptimekuma.local http://10.0.0.50:3001       # Positional args
    issue-local-cert -d uptimekuma.local -p http://10.0.0.50:3001 # Flags
"""

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from certprov.common.config import ProvisionerConfig
from certprov.common.errors import PreconditionError, ProvisionError, UserAbort, ValidationError
from certprov.common.models import ArtifactSet, IssuanceRequest
from certprov.common.utils import colon_hex
from certprov.crypto.issuer import issue
from certprov.crypto.pki import check_ca_context
from certprov.resolver import Confirm, resolve
from certprov.storage.nginx import enable_site, reload_nginx, render_vhost, write_vhost

logger = logging.getLogger(__name__)

DOMAIN_PROMPT = "Enter domain/server_name (e.g., uptimekuma.local): "
PROXY_PROMPT = "Enter proxy_pass target (e.g., http://10.0.0.50:3001): "


@dataclass
class ProvisionResult:
    request: IssuanceRequest
    artifacts: ArtifactSet
    vhost_path: Path
    link_created: bool


def preflight(config: ProvisionerConfig) -> None:
    """Privilege and trust-anchor checks; run before any request input is read."""
    if config.require_root and os.geteuid() != 0:
        raise PreconditionError("This script must be run as root")
    check_ca_context(config.ca)


def provision(
    config: ProvisionerConfig,
    raw_domain: str,
    raw_proxy: str,
    confirm: Confirm,
) -> ProvisionResult:
    """Resolve, issue, write the vhost and activate it."""
    request = resolve(raw_domain, raw_proxy, config.issued_root, confirm)
    artifacts = issue(request, config.ca, config.policy, config.issued_root)

    vhost_path = config.nginx.sites_available / request.domain
    write_vhost(vhost_path, render_vhost(request, artifacts))
    link_created = enable_site(vhost_path, config.nginx.sites_enabled / request.domain)

    if config.nginx.reload:
        reload_nginx()
    else:
        logger.info("Skipping nginx reload")

    return ProvisionResult(request, artifacts, vhost_path, link_created)


def terminal_confirm(prompt: str) -> bool:
    """Ask on the terminal; only y/Y counts as yes, EOF counts as no."""
    try:
        answer = input(f"{prompt} [y/N]: ")
    except EOFError:
        return False
    return answer.strip() in ("y", "Y")


def _ask(prompt: str) -> str:
    try:
        return input(prompt)
    except EOFError:
        return ""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="issue-local-cert",
        description="Issue a certificate from the local CA and configure an nginx reverse proxy for it.",
        epilog=__doc__.split("\n\n", 1)[1],
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("domain", nargs="?", help="Domain/server_name (e.g., uptimekuma.local)")
    parser.add_argument("proxy", nargs="?", help="Proxy pass target (e.g., http://10.0.0.50:3001)")
    parser.add_argument(
        "-d", "--domain",
        dest="domain_opt",
        metavar="DOMAIN",
        help="Domain/server_name; takes precedence over the positional form",
    )
    parser.add_argument(
        "-p", "--proxy",
        dest="proxy_opt",
        metavar="TARGET",
        help="Proxy pass target; http:// is assumed when no scheme is given",
    )
    parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Overwrite an existing certificate without asking",
    )
    parser.add_argument(
        "--ca-dir",
        type=Path,
        help="CA base directory (default: $PROXYCERT_CA_DIR or /etc/local-ca)",
    )
    parser.add_argument(
        "--days",
        type=int,
        help="Certificate validity period in days (default: $PROXYCERT_DAYS_VALID or 825)",
    )
    parser.add_argument(
        "--no-reload",
        action="store_true",
        help="Write and enable the vhost but do not test/reload nginx",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging",
    )
    return parser


def main(
    argv: Optional[List[str]] = None,
    config: Optional[ProvisionerConfig] = None,
    confirm: Optional[Confirm] = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        format="[%(asctime)s] [%(levelname)s] %(message)s",
        level=logging.DEBUG if args.verbose else logging.INFO,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if confirm is None:
        confirm = (lambda prompt: True) if args.yes else terminal_confirm

    try:
        config = (config or ProvisionerConfig.from_env()).with_overrides(
            ca_dir=args.ca_dir,
            validity_days=args.days,
            reload=False if args.no_reload else None,
        )
        preflight(config)

        raw_domain = args.domain_opt if args.domain_opt is not None else args.domain
        raw_proxy = args.proxy_opt if args.proxy_opt is not None else args.proxy
        if raw_domain is None and raw_proxy is None:
            raw_domain = _ask(DOMAIN_PROMPT)
            raw_proxy = _ask(PROXY_PROMPT)

        result = provision(config, raw_domain or "", raw_proxy or "", confirm)

    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return e.exit_code
    except UserAbort as e:
        print(f"Aborting. {e}", file=sys.stderr)
        return e.exit_code
    except ProvisionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code

    artifacts = result.artifacts
    print()
    print(f"[OK] Done! Site available at https://{result.request.domain}")
    print(f"  Cert:  {artifacts.cert_path}")
    print(f"  Key:   {artifacts.key_path}")
    print(f"  Nginx: {result.vhost_path}")
    print(f"  Proxy: {result.request.upstream_target}")
    print(f"  Serial: {artifacts.serial_number:x}")
    print(f"  Valid until: {artifacts.not_valid_after}")
    print(f"  SHA-256 fingerprint: {colon_hex(artifacts.fingerprint)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
