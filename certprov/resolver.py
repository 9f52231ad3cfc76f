"""Turn raw (domain, proxy target) input into a validated IssuanceRequest."""

import logging
import re
from pathlib import Path
from typing import Callable

from certprov.common.errors import UserAbort, ValidationError
from certprov.common.models import IssuanceRequest
from certprov.storage.artifacts import artifact_paths

logger = logging.getLogger(__name__)

Confirm = Callable[[str], bool]

_LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
DOMAIN_RE = re.compile(rf"^{_LABEL}(?:\.{_LABEL})*$")
MAX_DOMAIN_LENGTH = 253
UNSAFE_UPSTREAM_RE = re.compile(r"[;{}\s]")


def normalize_domain(raw_domain: str) -> str:
    """
    Trim and validate a domain name.

    The result becomes a directory name and a SAN DNS entry, so only plain
    DNS labels are accepted (no wildcards, slashes or empty labels).
    """
    domain = (raw_domain or "").strip()
    if not domain:
        raise ValidationError("missing domain")
    if len(domain) > MAX_DOMAIN_LENGTH or not DOMAIN_RE.match(domain):
        raise ValidationError(f"invalid domain {domain!r}: expected DNS labels such as uptimekuma.local")
    return domain


def normalize_upstream(raw_proxy_input: str) -> str:
    """Trim the proxy target and default its scheme to http://.

    Only the literal, case-sensitive `http` prefix counts as a scheme, so
    both http:// and https:// targets pass through unchanged. The target is
    spliced into an nginx directive, so `;`, braces and whitespace are refused.
    """
    target = (raw_proxy_input or "").strip()
    if not target:
        raise ValidationError("missing proxy target")
    if UNSAFE_UPSTREAM_RE.search(target):
        raise ValidationError(f"invalid proxy target {target!r}: must not contain ; {{ }} or whitespace")
    if not target.startswith("http"):
        target = f"http://{target}"
    return target


def resolve(
    raw_domain: str,
    raw_proxy_input: str,
    issued_root: Path,
    confirm: Confirm,
) -> IssuanceRequest:
    """
    Validate input and enforce the overwrite policy.

    Args:
        raw_domain: Domain / server_name as typed
        raw_proxy_input: Upstream target, scheme optional
        issued_root: Root of the issued artifact tree
        confirm: Asked once if a key or certificate already exists

    Returns:
        Immutable IssuanceRequest

    Raises:
        ValidationError: Missing or malformed input
        UserAbort: Existing artifacts and overwrite was declined
    """
    domain = normalize_domain(raw_domain)
    upstream = normalize_upstream(raw_proxy_input)

    artifacts = artifact_paths(issued_root, domain)
    overwrite = artifacts.exists()
    if overwrite:
        logger.warning("A certificate for %s already exists.", domain)
        if not confirm(f"A certificate for {domain} already exists. Do you want to overwrite it?"):
            raise UserAbort(f"Overwrite of existing certificate for {domain} declined")
        logger.info("Overwriting existing certificate for %s", domain)

    return IssuanceRequest(domain=domain, upstream_target=upstream, overwrite=overwrite)
