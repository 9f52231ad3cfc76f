"""Pydantic models: issuance request and the artifact set it produces."""

from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict


class IssuanceRequest(BaseModel):
    """Validated (domain, upstream) pair. Built only by the resolver."""
    model_config = ConfigDict(frozen=True)

    domain: str  # CN, SAN DNS entry and artifact directory name
    upstream_target: str  # Always carries a scheme, e.g. http://10.0.0.50:3001
    overwrite: bool = False  # Replacing existing artifacts was confirmed


class ArtifactSet(BaseModel):
    """Persisted key/certificate pair for one domain.

    Paths are derived as <issued_root>/<domain>/<domain>.{key,crt}.pem.
    The certificate metadata fields are only filled in after issuance.
    """
    model_config = ConfigDict(frozen=True)

    key_path: Path
    cert_path: Path
    serial_number: Optional[int] = None
    not_valid_before: Optional[datetime] = None
    not_valid_after: Optional[datetime] = None
    fingerprint: Optional[str] = None  # SHA-256 of the DER certificate

    @property
    def directory(self) -> Path:
        return self.cert_path.parent

    def exists(self) -> bool:
        """True if either the key or the certificate is already on disk."""
        return self.key_path.exists() or self.cert_path.exists()
